"""
Thin async client for the public Roblox web APIs.

Only the endpoints the bot needs are wrapped: user lookup by name or id,
avatar headshots, and group memberships. Network or HTTP failures are logged
and reported as "no data" (None or an empty list) so that a Roblox outage
degrades /verify and /check instead of failing them outright.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

import aiohttp

from modblox.datatypes.report_datatypes import AccountAge
from modblox.datatypes.verification_datatypes import RobloxGroupRole, RobloxUser
from modblox.util.logger import get_logger

logger = get_logger("roblox_api")

USERS_URL = "https://users.roblox.com"
GROUPS_URL = "https://groups.roblox.com"
THUMBNAILS_URL = "https://thumbnails.roblox.com"

REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=10)


def profile_url(roblox_id: int) -> str:
    return f"https://www.roblox.com/users/{roblox_id}/profile"


def calculate_account_age(created: str, now: Optional[datetime] = None) -> AccountAge:
    """Age of an account from its ISO-8601 ``created`` timestamp.

    Years are 365 days and months 30 days, matching the display elsewhere.
    """
    created_at = datetime.fromisoformat(created.replace("Z", "+00:00"))
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)

    days = max(0, (now - created_at).days)
    return AccountAge(days=days, years=days // 365, months=(days % 365) // 30)


def format_account_age(age: AccountAge) -> str:
    def plural(amount: int, unit: str) -> str:
        return f"{amount} {unit}{'s' if amount != 1 else ''}"

    if age.years > 0:
        return f"{plural(age.years, 'year')}, {plural(age.months, 'month')}"
    if age.months > 0:
        return plural(age.months, "month")
    return plural(age.days, "day")


class RobloxAPI:
    """Roblox web API client.

    Args:
        session: Shared aiohttp session. When omitted the client opens its own
            on first use and closes it in :meth:`close`.
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None) -> None:
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=REQUEST_TIMEOUT)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(self, method: str, url: str, **kwargs: Any) -> Optional[Any]:
        """Perform a request and return the decoded JSON body, or None on failure."""
        session = await self._get_session()
        try:
            async with session.request(method, url, **kwargs) as resp:
                if resp.status != 200:
                    logger.warning("[ROBLOX API] %s %s returned HTTP %d", method, url, resp.status)
                    return None
                return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error("[ROBLOX API] %s %s failed: %s", method, url, exc)
            return None

    async def get_user_by_id(self, roblox_id: int) -> Optional[RobloxUser]:
        payload = await self._request("GET", f"{USERS_URL}/v1/users/{roblox_id}")
        if not isinstance(payload, dict) or "id" not in payload:
            return None
        return RobloxUser.from_payload(payload)

    async def get_user_by_username(self, username: str) -> Optional[RobloxUser]:
        """Resolve a username to a full profile (two requests)."""
        payload = await self._request(
            "POST",
            f"{USERS_URL}/v1/usernames/users",
            json={"usernames": [username], "excludeBannedUsers": False},
        )
        matches = payload.get("data") if isinstance(payload, dict) else None
        if not matches:
            return None
        return await self.get_user_by_id(int(matches[0]["id"]))

    async def get_user_thumbnail(self, roblox_id: int, size: str = "420x420") -> Optional[str]:
        payload = await self._request(
            "GET",
            f"{THUMBNAILS_URL}/v1/users/avatar-headshot",
            params={"userIds": str(roblox_id), "size": size, "format": "Png", "isCircular": "false"},
        )
        entries = payload.get("data") if isinstance(payload, dict) else None
        if not entries:
            return None
        return entries[0].get("imageUrl")

    async def get_user_groups(self, roblox_id: int) -> List[RobloxGroupRole]:
        payload = await self._request("GET", f"{GROUPS_URL}/v2/users/{roblox_id}/groups/roles")
        entries = payload.get("data") if isinstance(payload, dict) else None
        roles: List[RobloxGroupRole] = []
        for entry in entries or []:
            try:
                roles.append(RobloxGroupRole.from_payload(entry))
            except (KeyError, TypeError, ValueError):
                logger.debug("[ROBLOX API] Skipping malformed group entry: %r", entry)
        return roles

    async def get_community_groups(
        self, roblox_id: int, community_group_ids: Iterable[int] = ()
    ) -> List[RobloxGroupRole]:
        """Group memberships limited to the configured community groups (all if none configured)."""
        wanted = set(community_group_ids)
        groups = await self.get_user_groups(roblox_id)
        if not wanted:
            return groups
        return [group for group in groups if group.group_id in wanted]
