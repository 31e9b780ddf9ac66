"""Pytest configuration file for setting up test environment."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

# Add the project root to the Python path so tests run without installing
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

from tests.fakes import FakeTransportFactory, SleepRecorder  # noqa: E402
from topupbot.rconclient import (  # noqa: E402
    RCONClientManager,
    RCONManagerSettings,
    RetryPolicy,
)

if TYPE_CHECKING:
    from collections.abc import Callable


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    """Provide a fresh fake transport factory."""
    return FakeTransportFactory()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    """Provide a recorder replacing the retry backoff sleep."""
    return SleepRecorder()


@pytest.fixture
def fast_settings() -> RCONManagerSettings:
    """Provide manager settings with short timeouts."""
    return RCONManagerSettings(
        connect_timeout=0.2,
        command_timeout=0.2,
        close_timeout=0.2,
        retry_policy=RetryPolicy(max_retries=2, backoff_seconds=1),
    )


@pytest.fixture
def make_manager(
    transport_factory: FakeTransportFactory,
    fast_settings: RCONManagerSettings,
    sleep_recorder: SleepRecorder,
) -> Callable[..., RCONClientManager]:
    """Provide a builder of loaded managers using fake transports."""

    def build(
        endpoints: dict[str, Any],
        settings: RCONManagerSettings | None = None,
    ) -> RCONClientManager:
        manager = RCONClientManager(
            lambda: endpoints,
            transport_factory=transport_factory,
            settings=settings or fast_settings,
            sleep=sleep_recorder,
        )
        manager.reload()
        return manager

    return build
