"""Moderation ledger, duration parsing and identity cross-referencing."""
