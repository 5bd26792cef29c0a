"""
Database schema creation and version tracking.

All timestamps are INTEGER unix milliseconds. Discord snowflakes are stored
as TEXT in their canonical decimal form.
"""

import aiosqlite

from modblox.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1

# Columns of moderation_logs that never change after insert.
IMMUTABLE_LOG_COLUMNS = (
    "id",
    "guild_id",
    "target_id",
    "moderator_id",
    "kind",
    "reason",
    "duration",
    "expires_at",
    "created_at",
)


class SchemaManager:
    """Creates tables, indexes and triggers, and records the schema version."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create every table, index and trigger that does not exist yet.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._create_triggers(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized (version %d)", SCHEMA_VERSION)

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        # Moderation ledger, append-only apart from is_active
        await db.execute("""
            CREATE TABLE IF NOT EXISTS moderation_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id TEXT NOT NULL,
                target_id TEXT NOT NULL,
                moderator_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                reason TEXT NOT NULL CHECK (length(trim(reason)) > 0),
                duration INTEGER CHECK (duration IS NULL OR duration >= 0),
                expires_at INTEGER,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at INTEGER NOT NULL,
                CHECK ((duration IS NULL) = (expires_at IS NULL))
            )
        """)

        # One row per Discord user: Roblox link and leveling counters
        await db.execute("""
            CREATE TABLE IF NOT EXISTS users (
                discord_id TEXT PRIMARY KEY,
                roblox_id INTEGER UNIQUE,
                roblox_username TEXT,
                verified_at INTEGER,
                message_count INTEGER NOT NULL DEFAULT 0 CHECK (message_count >= 0),
                level INTEGER NOT NULL DEFAULT 0 CHECK (level BETWEEN 0 AND 100),
                last_message_time INTEGER NOT NULL DEFAULT 0
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS verification_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                discord_id TEXT NOT NULL,
                roblox_id INTEGER NOT NULL,
                roblox_username TEXT NOT NULL DEFAULT '',
                linked_at INTEGER NOT NULL,
                unlinked_at INTEGER NOT NULL,
                FOREIGN KEY (discord_id) REFERENCES users(discord_id) ON DELETE CASCADE
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS level_roles (
                level INTEGER PRIMARY KEY CHECK (level BETWEEN 1 AND 100),
                role_id TEXT NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL DEFAULT (CAST(strftime('%s', 'now') AS INTEGER) * 1000)
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_moderation_logs_target "
            "ON moderation_logs(guild_id, target_id, kind, is_active)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_moderation_logs_created "
            "ON moderation_logs(guild_id, created_at DESC)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_moderation_logs_moderator "
            "ON moderation_logs(guild_id, moderator_id)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_users_level "
            "ON users(level DESC, message_count DESC)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_verification_history_user "
            "ON verification_history(discord_id)"
        )

    @staticmethod
    async def _create_triggers(db: aiosqlite.Connection) -> None:
        await db.execute("""
            CREATE TRIGGER IF NOT EXISTS moderation_logs_no_delete
            BEFORE DELETE ON moderation_logs
            BEGIN
                SELECT RAISE(ABORT, 'moderation_logs is append-only');
            END
        """)

        await db.execute(f"""
            CREATE TRIGGER IF NOT EXISTS moderation_logs_immutable
            BEFORE UPDATE OF {", ".join(IMMUTABLE_LOG_COLUMNS)} ON moderation_logs
            BEGIN
                SELECT RAISE(ABORT, 'only is_active may change on a moderation log');
            END
        """)

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute(
            "INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
        )
