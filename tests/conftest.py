from __future__ import annotations

import os

import pytest

from core.config import AppSettings
from helpers import RecordingSleep


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer `HIVE_REWARDS_*` variables out of the tests."""

    for key in list(os.environ):
        if key.upper().startswith("HIVE_REWARDS_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        _env_file=None,
        api_calls_delay_ms=0,
        retry_base_delay_ms=100,
        beacon_timeout_seconds=1,
        request_timeout_seconds=1,
    )


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()
