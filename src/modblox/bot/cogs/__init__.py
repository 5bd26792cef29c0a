"""
Cogs package for the Modblox bot.

- **moderation_cmds.py**: Ban, mute, timeout, kick and the ledger-only warning,
  community ban and game ban commands
- **history_cmds.py**: /history, /cmdhistory and /modstats
- **leveling_cmds.py**: Message counting, level-up announcements, /levels,
  /leaderboard and /levelrole
- **verification_cmds.py**: /verify, /unverify and /check
- **events_listener.py**: on_ready, member join nickname sync and command errors

Each module defines a cog class and a setup function to register it with the bot.
The cogs are loaded explicitly in main.py to avoid dynamic imports.
"""
