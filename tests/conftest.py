"""
Pytest configuration and fixtures for feed-batcher.

Provides cross-platform event loop configuration, a fake clock, settings
factories and loguru capture.
"""

import asyncio
import sys
from datetime import datetime, timezone

import pytest
from loguru import logger

from feed_batcher.config import BatcherSettings, get_settings

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

_ENV_VARS = (
    "MAX_BATCH_SIZE",
    "BUFFER_SIZE",
    "SAFETY_MARGIN",
    "MAX_RETRIES",
    "RETRY_DELAY",
    "MIN_BATCH_INTERVAL",
    "CONTINUE_ON_FAILURE",
    "LOG_LEVEL",
    "LOG_JSON",
    "ENABLE_METRICS",
    "SHOW_PROGRESS",
    "PROGRESS_INTERVAL",
)


class FakeClock:
    """Clock that advances instantly and records every sleep."""

    def __init__(self, start: float = 1000.0):
        self.t = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.t

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.t += seconds
        await asyncio.sleep(0)

    def advance(self, seconds: float) -> None:
        self.t += seconds

    def utc_now(self) -> datetime:
        return datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate tests from the caller's environment and any .env file."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_settings():
    """Settings factory with quiet, test-friendly defaults."""

    def _make(**overrides) -> BatcherSettings:
        values = {"show_progress": False, "enable_metrics": False}
        values.update(overrides)
        return BatcherSettings(**values)

    return _make


@pytest.fixture
def log_records():
    """Capture loguru records emitted during the test."""
    records = []
    handler_id = logger.add(lambda msg: records.append(msg.record), level="DEBUG")
    yield records
    logger.remove(handler_id)
