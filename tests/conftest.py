"""Test session configuration.

Loads the project `.env` once so tests that exercise `load_settings` see the
same environment a developer's shell would. Individual tests override values
with the `monkeypatch` fixture.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from dotenv import load_dotenv


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    # Load once per test session; no error if .env is absent.
    load_dotenv()


class ManualClock:
    """Callable returning a UTC datetime that only moves when advanced."""

    def __init__(self, start: datetime | None = None) -> None:
        self._current = start or datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)

    def advance(self, seconds: float) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current

    def __call__(self) -> datetime:
        return self._current


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()
