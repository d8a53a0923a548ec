"""Shared test fixtures."""

from __future__ import annotations

import pytest
import pytest_asyncio

from dotcommand.config import AppConfig, CaptureConfig, CleaningConfig, LoggingConfig, RetentionConfig, StorageConfig
from dotcommand.storage.database import CommandDatabase
from dotcommand.storage.store import CommandStore

NOW = 1_700_000_000.0


class FakeClock:
    """Settable clock for store and cache tests."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def app_config(tmp_path):
    """Create a test configuration."""
    return AppConfig(
        capture=CaptureConfig(enabled=True, min_length=2, default_category="uncategorized", shell=""),
        cleaning=CleaningConfig(),
        retention=RetentionConfig(
            max_commands=5,
            trash_retention_days=90,
            most_used_threshold=10,
            recent_days=30,
            eviction_buffer=0,
        ),
        storage=StorageConfig(db_path=str(tmp_path / "test.db")),
        logging=LoggingConfig(level="DEBUG", file=str(tmp_path / "test.log")),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def store(app_config, clock):
    database = CommandDatabase(app_config.storage.db_path)
    await database.init()
    yield CommandStore(database, app_config.retention, clock=clock)
    await database.close()
