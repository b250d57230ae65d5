"""
Pytest configuration og shared fixtures.
"""

import asyncio
import os

import pytest
import pytest_asyncio

from log_manager import LogManager
from log_manager.services.liveness import LivenessSnapshot


@pytest.fixture
def log_dir(tmp_path):
    """Empty log directory for hver test."""
    directory = tmp_path / "logs"
    directory.mkdir()
    return directory


@pytest.fixture
def eventually():
    """Poll a predicate until it holds or the timeout expires."""

    async def _eventually(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if predicate():
                return True
            await asyncio.sleep(interval)
        return predicate()

    return _eventually


class StaticLivenessOracle:
    """Liveness oracle returning a fixed set of live pids."""

    def __init__(self, pids):
        self.pids = frozenset(pids)
        self.calls = 0

    async def snapshot(self) -> LivenessSnapshot:
        self.calls += 1
        return LivenessSnapshot(self.pids)


@pytest.fixture
def live_pids():
    return {os.getpid()}


@pytest.fixture
def liveness_oracle(live_pids):
    return StaticLivenessOracle(live_pids)


@pytest_asyncio.fixture
async def manager(log_dir, liveness_oracle):
    """LogManager over the test log directory, always stopped afterwards."""
    log_manager = LogManager(
        log_dir=str(log_dir),
        log_level="DEBUG",
        liveness_oracle=liveness_oracle,
    )
    yield log_manager
    await log_manager.stop()
    # Let rescans triggered by the last writes settle before tmp_path goes away
    await asyncio.sleep(0.05)
