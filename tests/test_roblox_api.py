"""Tests for the Roblox web API client using a fake aiohttp session."""

from datetime import datetime, timezone

import aiohttp
import pytest

from modblox.datatypes.report_datatypes import AccountAge
from modblox.roblox.roblox_api import (
    RobloxAPI,
    calculate_account_age,
    format_account_age,
    profile_url,
)


class FakeResponse:
    def __init__(self, status, payload):
        self.status = status
        self._payload = payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self):
        return self._payload


class FakeSession:
    """Serves canned responses keyed by URL and records every request."""

    def __init__(self, routes=None, error=None):
        self.routes = routes or {}
        self.error = error
        self.calls = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        status, payload = self.routes.get(url, (404, None))
        return FakeResponse(status, payload)

    async def close(self):
        self.closed = True


USER_PAYLOAD = {
    "id": 5555,
    "name": "BuilderBob",
    "displayName": "Bob",
    "description": "code: ABC123",
    "created": "2020-01-01T00:00:00.000Z",
    "isBanned": False,
}


@pytest.mark.asyncio
async def test_get_user_by_username_resolves_then_fetches_profile():
    session = FakeSession({
        "https://users.roblox.com/v1/usernames/users": (200, {"data": [{"id": 5555}]}),
        "https://users.roblox.com/v1/users/5555": (200, USER_PAYLOAD),
    })
    api = RobloxAPI(session)

    user = await api.get_user_by_username("BuilderBob")

    assert user.id == 5555
    assert user.display_name == "Bob"
    assert "ABC123" in user.description
    method, _, kwargs = session.calls[0]
    assert method == "POST"
    assert kwargs["json"]["usernames"] == ["BuilderBob"]


@pytest.mark.asyncio
async def test_get_user_by_username_no_match():
    session = FakeSession({"https://users.roblox.com/v1/usernames/users": (200, {"data": []})})

    assert await RobloxAPI(session).get_user_by_username("nobody") is None
    assert len(session.calls) == 1


@pytest.mark.asyncio
async def test_non_200_status_is_reported_as_missing():
    session = FakeSession({"https://users.roblox.com/v1/users/1": (500, {"errors": []})})

    assert await RobloxAPI(session).get_user_by_id(1) is None


@pytest.mark.asyncio
async def test_client_errors_are_reported_as_missing():
    session = FakeSession(error=aiohttp.ClientConnectionError("down"))
    api = RobloxAPI(session)

    assert await api.get_user_by_id(1) is None
    assert await api.get_user_thumbnail(1) is None
    assert await api.get_user_groups(1) == []


@pytest.mark.asyncio
async def test_thumbnail_url():
    session = FakeSession({
        "https://thumbnails.roblox.com/v1/users/avatar-headshot": (
            200,
            {"data": [{"targetId": 5555, "imageUrl": "https://tr.rbxcdn.com/bob.png"}]},
        ),
    })

    assert await RobloxAPI(session).get_user_thumbnail(5555) == "https://tr.rbxcdn.com/bob.png"


@pytest.mark.asyncio
async def test_community_groups_filter_and_skip_malformed_entries():
    session = FakeSession({
        "https://groups.roblox.com/v2/users/5555/groups/roles": (
            200,
            {
                "data": [
                    {"group": {"id": 7, "name": "Builders", "memberCount": 40}, "role": {"name": "Admin", "rank": 255}},
                    {"group": {"id": 8, "name": "Racers"}, "role": {"name": "Member", "rank": 1}},
                    {"group": {}, "role": {}},
                ]
            },
        ),
    })
    api = RobloxAPI(session)

    all_groups = await api.get_community_groups(5555)
    assert [group.group_id for group in all_groups] == [7, 8]

    session.calls.clear()
    community = await api.get_community_groups(5555, [7])
    assert len(community) == 1
    assert community[0].group_name == "Builders"
    assert community[0].rank == 255
    assert community[0].member_count == 40


@pytest.mark.asyncio
async def test_close_leaves_injected_session_open():
    session = FakeSession()
    api = RobloxAPI(session)

    await api.close()

    assert session.closed is False


def test_calculate_account_age():
    now = datetime(2024, 3, 1, tzinfo=timezone.utc)

    age = calculate_account_age("2022-01-01T00:00:00.000Z", now)

    assert age.days == 790
    assert age.years == 2
    assert age.months == 2


def test_calculate_account_age_never_negative():
    now = datetime(2020, 1, 1, tzinfo=timezone.utc)
    assert calculate_account_age("2021-01-01T00:00:00Z", now).days == 0


@pytest.mark.parametrize(
    "age, text",
    [
        (AccountAge(days=800, years=2, months=2), "2 years, 2 months"),
        (AccountAge(days=400, years=1, months=1), "1 year, 1 month"),
        (AccountAge(days=45, years=0, months=1), "1 month"),
        (AccountAge(days=3, years=0, months=0), "3 days"),
        (AccountAge(days=1, years=0, months=0), "1 day"),
    ],
)
def test_format_account_age(age, text):
    assert format_account_age(age) == text


def test_profile_url():
    assert profile_url(5555) == "https://www.roblox.com/users/5555/profile"
