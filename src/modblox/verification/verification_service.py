"""
VerificationService: Discord to Roblox account links.

A Discord user has at most one current Roblox link and a Roblox account is
linked to at most one Discord user. Replacing or removing a link moves the old
one into ``verification_history``. All SQL is delegated to the user and
verification-history repositories.
"""

from __future__ import annotations

from typing import List, Optional

from modblox.database.db_connection import ConnectionManager, db_connection
from modblox.datatypes.discord_datatypes import UserID
from modblox.datatypes.verification_datatypes import PreviousAccount, VerifiedUser
from modblox.errors import LinkConflictError, NotFoundError, ValidationError
from modblox.repositories.user_repo import UserRepository
from modblox.repositories.verification_history_repo import VerificationHistoryRepository
from modblox.util.logger import get_logger
from modblox.util.time_utils import Clock, now_ms

logger = get_logger("verification_service")


class VerificationService:
    """Reads and writes account links; the identity-link lookup used by /check."""

    def __init__(self, connection: ConnectionManager = db_connection, clock: Clock = now_ms) -> None:
        self._db = connection
        self._clock = clock

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def verify_user(self, discord_id: UserID, roblox_id: int, roblox_username: str) -> VerifiedUser:
        """Link ``discord_id`` to a Roblox account, archiving any previous link.

        Raises:
            ValidationError: If the Roblox ID is not positive.
            LinkConflictError: If the Roblox account belongs to another Discord user.
        """
        if roblox_id <= 0:
            raise ValidationError(f"Invalid Roblox user id {roblox_id}")

        now = self._clock()
        async with self._db.transaction() as conn:
            owner = await UserRepository.get_by_roblox_id(conn, roblox_id)
            if owner is not None and owner.is_verified and owner.discord_id != str(discord_id):
                raise LinkConflictError(
                    f"The Roblox account {roblox_username} is already linked to another Discord account"
                )

            await UserRepository.ensure(conn, discord_id)
            current = await UserRepository.get(conn, discord_id)
            if current is not None and current.is_verified:
                await VerificationHistoryRepository.insert(
                    conn,
                    discord_id=discord_id,
                    roblox_id=current.roblox_id,
                    roblox_username=current.roblox_username or "",
                    linked_at=current.verified_at,
                    unlinked_at=now,
                )
            await UserRepository.set_link(conn, discord_id, roblox_id, roblox_username, now)

        logger.info(
            "[VERIFICATION] %s verified as Roblox account %s (%d)", discord_id, roblox_username, roblox_id
        )
        return VerifiedUser(
            discord_id=UserID(discord_id),
            roblox_id=roblox_id,
            roblox_username=roblox_username,
            verified_at=now,
        )

    async def unverify_user(self, discord_id: UserID) -> VerifiedUser:
        """Remove the current link and archive it.

        Returns:
            The link that was removed.

        Raises:
            NotFoundError: If ``discord_id`` is not verified.
        """
        now = self._clock()
        async with self._db.transaction() as conn:
            current = await UserRepository.get(conn, discord_id)
            removed = current.to_verified_user() if current is not None else None
            if removed is None:
                raise NotFoundError("You are not verified")

            await VerificationHistoryRepository.insert(
                conn,
                discord_id=discord_id,
                roblox_id=removed.roblox_id,
                roblox_username=removed.roblox_username,
                linked_at=removed.verified_at,
                unlinked_at=now,
            )
            await UserRepository.clear_link(conn, discord_id)

        logger.info(
            "[VERIFICATION] %s unlinked from Roblox account %s (%d)",
            discord_id, removed.roblox_username, removed.roblox_id,
        )
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def lookup_by_local_id(self, discord_id: UserID) -> Optional[VerifiedUser]:
        """Current Roblox link of a Discord user, with their previous accounts."""
        async with self._db.read() as conn:
            row = await UserRepository.get(conn, discord_id)
            linked = row.to_verified_user() if row is not None else None
            if linked is None:
                return None
            previous = await VerificationHistoryRepository.for_user(conn, discord_id)
        return VerifiedUser(
            discord_id=linked.discord_id,
            roblox_id=linked.roblox_id,
            roblox_username=linked.roblox_username,
            verified_at=linked.verified_at,
            previous_accounts=previous,
        )

    async def lookup_link_by_external_id(self, roblox_id: int) -> Optional[VerifiedUser]:
        async with self._db.read() as conn:
            row = await UserRepository.get_by_roblox_id(conn, roblox_id)
        return row.to_verified_user() if row is not None else None

    async def lookup_by_external_id(self, roblox_id: int) -> Optional[UserID]:
        """Discord user currently linked to ``roblox_id``, if any."""
        link = await self.lookup_link_by_external_id(roblox_id)
        return link.discord_id if link is not None else None

    async def get_user_history(self, discord_id: UserID) -> List[PreviousAccount]:
        async with self._db.read() as conn:
            return await VerificationHistoryRepository.for_user(conn, discord_id)

    async def is_roblox_linked(self, roblox_id: int) -> bool:
        return await self.lookup_link_by_external_id(roblox_id) is not None

    async def is_discord_verified(self, discord_id: UserID) -> bool:
        async with self._db.read() as conn:
            row = await UserRepository.get(conn, discord_id)
        return row is not None and row.is_verified

    async def all_verified_users(self) -> List[VerifiedUser]:
        async with self._db.read() as conn:
            rows = await UserRepository.all_verified(conn)
        return [user for user in (row.to_verified_user() for row in rows) if user is not None]
