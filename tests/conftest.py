"""Pytest configuration and shared fixtures."""

from typing import List

import httpx
import pytest

from dynprov.models.config import EngineSettings, load_provider_config
from dynprov.monitoring.logger import StructuredLogger
from dynprov.provider.dynamic_provider import DynamicProvider
from tests.fixtures.sample_data import JSON_VENDOR_CONFIG, TEXT_VENDOR_CONFIG


class FakeClock:
    """Fake clock for deterministic time testing."""

    def __init__(self, initial_time: float = 0.0):
        self.t = initial_time

    def now(self) -> float:
        """Get current fake time."""
        return self.t

    async def sleep(self, dt: float) -> None:
        """Advance fake time by dt seconds."""
        self.t += dt


class SleepRecorder:
    """Async sleeper that records requested delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def sleep(self, dt: float) -> None:
        self.delays.append(dt)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def quiet_logger():
    """Structured logger that only emits critical events."""
    return StructuredLogger(name="dynprov.test", level="CRITICAL")


@pytest.fixture
def engine_settings():
    return EngineSettings()


@pytest.fixture
def text_vendor_config():
    return load_provider_config(TEXT_VENDOR_CONFIG)


@pytest.fixture
def json_vendor_config():
    return load_provider_config(JSON_VENDOR_CONFIG)


@pytest.fixture
def make_provider(engine_settings, quiet_logger, sleep_recorder):
    """Factory wiring a ``DynamicProvider`` to an in-process ASGI app."""

    def _make(config, app, **kwargs):
        return DynamicProvider(
            config,
            settings=kwargs.pop("settings", engine_settings),
            transport=httpx.ASGITransport(app=app),
            logger=quiet_logger,
            sleeper=sleep_recorder.sleep,
            **kwargs,
        )

    return _make
