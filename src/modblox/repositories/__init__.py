"""Repositories: the only modules that issue SQL. Every method takes the connection first."""
