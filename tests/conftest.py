"""Shared pytest fixtures for the ladder engine tests."""

import os
import random

# Keep test runs from writing dated log files
os.environ.setdefault("LOG_DIR", "")

import pytest
import pytest_asyncio

from ladder.database.database import Database
from ladder.engine import LadderEngine
from factories import EventRecorder


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'ladder_test.db'}"


@pytest_asyncio.fixture
async def database(database_url):
    db = Database(database_url)
    await db.initialize()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def engine(database_url):
    """Engine with four-player queues so a match is two versus two."""
    ladder = LadderEngine(
        database=Database(database_url),
        capacity=4,
        rng=random.Random(7),
        require_host_confirmation=False,
    )
    await ladder.initialize()
    yield ladder
    await ladder.close()


@pytest.fixture
def recorder(engine):
    listener = EventRecorder()
    engine.notifier.subscribe(listener)
    return listener
