"""
Pytest configuration and fixtures for Modblox tests.
"""

import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from modblox.database.db_connection import ConnectionManager  # noqa: E402
from modblox.database.db_schema import SchemaManager  # noqa: E402


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = 0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def db(tmp_path):
    """A ConnectionManager opened on a fresh database file with the schema applied."""
    manager = ConnectionManager()
    await manager.open(tmp_path / "modblox.db")
    await SchemaManager.initialize_schema(manager.connection)
    yield manager
    await manager.close()
