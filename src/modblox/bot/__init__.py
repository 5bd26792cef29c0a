"""
Discord bot wiring for Modblox.

- **bot_services.py**: Builds the ledger, verification, leveling and lookup
  services on one database connection and owns their startup and shutdown.

- **cogs/**: Slash commands and event listeners registered by ``main.py``.
"""
