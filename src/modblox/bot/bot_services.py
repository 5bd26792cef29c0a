"""
Runtime services shared by every cog.

BotServices owns the database connection and builds the ledger, verification,
leveling and lookup services on top of it.

Lifecycle:
    1. Call ``async_init()`` once at startup (opens the database, creates the
       schema, loads leveling profiles and level roles).
    2. Cogs use the service attributes.
    3. Call ``shutdown()`` at program end.
"""

from __future__ import annotations

from typing import Optional

from modblox.configuration.app_configuration import AppConfig, app_config
from modblox.database.db_connection import ConnectionManager, db_connection
from modblox.database.db_schema import SchemaManager
from modblox.leveling.engine import LevelingEngine
from modblox.leveling.level_roles import LevelRoleTable
from modblox.leveling.level_store import SqliteLevelStore
from modblox.moderation.cross_reference import CrossReferenceResolver
from modblox.moderation.ledger import ModerationLedger
from modblox.roblox.roblox_api import RobloxAPI
from modblox.util.logger import get_logger
from modblox.util.time_utils import Clock, now_ms
from modblox.verification.pending_store import PendingVerificationStore
from modblox.verification.verification_service import VerificationService

logger = get_logger("bot_services")


class BotServices:
    """Container wiring the domain services to one database connection."""

    def __init__(
        self,
        config: AppConfig = app_config,
        connection: ConnectionManager = db_connection,
        clock: Clock = now_ms,
        roblox: Optional[RobloxAPI] = None,
    ) -> None:
        self.config = config
        self.connection = connection
        self.clock = clock

        self.ledger = ModerationLedger(connection, clock)
        self.verification = VerificationService(connection, clock)
        self.level_store = SqliteLevelStore(connection)
        self.leveling = LevelingEngine(self.level_store, clock)
        self.level_roles = LevelRoleTable(seed=config.level_roles, connection=connection)
        self.pending_verifications = PendingVerificationStore(
            clock, ttl_ms=config.verification_code_ttl_seconds * 1000
        )
        self.roblox = roblox or RobloxAPI()
        self.cross_reference = CrossReferenceResolver(
            self.ledger,
            self.verification,
            roblox=self.roblox,
            community_group_ids=config.community_group_ids,
        )
        self._initialized = False

    async def async_init(self) -> None:
        """Open the database, create the schema and warm the in-memory caches."""
        if self._initialized:
            logger.debug("[BOT SERVICES] Already initialized, skipping")
            return

        path = self.config.database_path
        await self.connection.open(path)
        await SchemaManager.initialize_schema(self.connection.connection)
        await self.level_store.load()
        await self.level_roles.load()

        self._initialized = True
        logger.info("[BOT SERVICES] Services initialized with database %s", path)

    async def shutdown(self) -> None:
        """Close the Roblox client and the database connection."""
        await self.roblox.close()
        await self.connection.close()
        self._initialized = False
        logger.info("[BOT SERVICES] Shutdown complete")


bot_services = BotServices()
