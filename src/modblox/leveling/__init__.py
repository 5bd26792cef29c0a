"""Message-based leveling: the engine, its profile stores and level reward roles."""
