"""Shared fixtures for rule_unifier tests."""

import os
import time
from pathlib import Path

import pytest

from rule_unifier.cache_utils import FileArtifactStore, FreshnessChecker
from rule_unifier.fetch_sources import FetchError
from rule_unifier.status import RunContext
from rule_unifier.utils import FRESHNESS_WINDOW


def set_age(path: Path, seconds: float) -> None:
    """Backdate a file's mtime by `seconds`."""
    stamp = time.time() - seconds
    os.utime(path, (stamp, stamp))


def make_fetch(bodies: dict[str, bytes]):
    """Async fetch fake: known URLs return their body, others fail."""
    calls: list[str] = []

    async def fetch(url: str) -> bytes:
        calls.append(url)
        if url not in bodies:
            raise FetchError("HTTP 404")
        return bodies[url]

    fetch.calls = calls
    return fetch


def make_sleep():
    delays: list[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest.fixture
def store(tmp_path):
    return FileArtifactStore(tmp_path / "cache")


@pytest.fixture
def checker(store):
    return FreshnessChecker(store)


@pytest.fixture
def context():
    return RunContext()


@pytest.fixture
def stale_age():
    return FRESHNESS_WINDOW + 60
