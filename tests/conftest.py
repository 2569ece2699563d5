"""Shared test fixtures for databridge.

Provides an existing cache directory, a controllable clock, a ready-made
bridge wired to both, call-counting producers, config isolation and a CLI
runner. These fixtures are discovered by pytest and available to every test
module without explicit imports.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from databridge.bridge import Databridge
from databridge.output import reset_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager holds Rich consoles bound to the sys.stdout/sys.stderr
    of the moment it was created; CliRunner swaps those streams per
    invocation, so a manager must never outlive a test.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Clock and cache directory
# ---------------------------------------------------------------------------


class FrozenClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """An existing, empty cache directory."""
    path = tmp_path / "databridgeJsonCache"
    path.mkdir()
    return path


@pytest.fixture
def bridge(cache_dir: Path, clock: FrozenClock) -> Databridge:
    """A bridge over *cache_dir* with a 60 minute default TTL and the frozen clock."""
    return Databridge(cache_dir=cache_dir, default_cache_ttl=60, clock=clock)


# ---------------------------------------------------------------------------
# Producers
# ---------------------------------------------------------------------------


class CountingProducer:
    """A producer that records every call and returns a fixed value."""

    def __init__(self, value: Any) -> None:
        self.value = value
        self.calls: list[tuple[Any, ...]] = []

    def __call__(self, *args: Any) -> Any:
        self.calls.append(args)
        return self.value

    @property
    def call_count(self) -> int:
        return len(self.calls)


@pytest.fixture
def counting_producer():
    """Factory for :class:`CountingProducer` instances."""
    return CountingProducer


# ---------------------------------------------------------------------------
# Config isolation and CLI
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run the test from *tmp_path* with no DATABRIDGE_* variables set.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    for var in ["DATABRIDGE_CACHE_DIR", "DATABRIDGE_DEFAULT_CACHE_TTL"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
