"""
Modblox - Discord community moderation bot for Roblox groups

Modblox keeps an append-only moderation ledger per server, tracks member
activity with a message-based leveling system, and links Discord members to
their Roblox accounts.

Core Components:

- **Moderation Ledger**: Case records for bans, mutes, timeouts, kicks,
  warnings, community bans and game bans with lazy time-based expiry and
  explicit reversal
- **Duration Parser**: Short duration strings ("1d", "2w", "3h") converted to
  milliseconds with per-command unit sets
- **Leveling Engine**: Cooldown-gated message counting with a cumulative
  threshold table and level role rewards
- **Verification**: Roblox account linking through a profile description code
- **Cross-reference**: Aggregated moderation records for a Discord or Roblox
  identity

Usage:
    from modblox.main import main
    main()
"""
