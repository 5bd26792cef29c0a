"""Discord to Roblox account linking."""
