"""
Utility functions and helpers for Modblox.

- **logger.py**: Centralized logging configuration with colored console output
  through prompt_toolkit, a shared per-session rotating log file, and
  suppression of noisy library loggers.

- **discord_utils.py**: Stateless Discord helpers: permission and staff role
  checks, mod-log channel discovery, DM delivery and nickname sync.

- **time_utils.py**: Millisecond clock and timestamp conversion helpers used by
  the ledger and the leveling engine.
"""
