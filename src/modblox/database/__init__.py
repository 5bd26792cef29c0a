"""
Database package for Modblox.

- **db_connection.py**: The single aiosqlite connection, write serialisation
  and transactions.
- **db_schema.py**: Table, index and trigger creation. The moderation log is
  append-only at the storage level.
"""
