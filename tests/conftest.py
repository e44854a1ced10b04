"""
Pytest configuration and fixtures for Autocord tests.
"""

import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from autocord.database.state_store import StateStore  # noqa: E402

from fakes import FakeSink  # noqa: E402


@pytest_asyncio.fixture
async def store(tmp_path):
    """A StateStore backed by a temporary SQLite file."""
    state_store = StateStore()
    await state_store.open(tmp_path / "state.db")
    yield state_store
    await state_store.close()


@pytest.fixture
def sink():
    return FakeSink()
