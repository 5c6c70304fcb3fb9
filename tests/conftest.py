"""
Block time test fixtures.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import pytest

from blocktime.client import ChainQueryService
from blocktime.errors import BlockNotFound, ChainConnectionError
from blocktime.types import BlockSample, CalculatorConfig

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeChain(ChainQueryService):
    """In-memory chain that records every query."""

    def __init__(
        self,
        samples: list[BlockSample],
        head: Optional[int] = None,
        fail_heights=(),
        delay: Callable[[int], float] = lambda height: 0.0,
        on_get: Optional[Callable[[int], None]] = None,
    ):
        self.blocks = {s.height: s for s in samples}
        self.head = head if head is not None else max(self.blocks)
        self.fail_heights = set(fail_heights)
        self.delay = delay
        self.on_get = on_get
        self.calls: list[int] = []
        self.height_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def current_height(self) -> int:
        self.height_calls += 1
        return self.head

    async def get_block(self, height: int) -> BlockSample:
        self.calls.append(height)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.on_get is not None:
                self.on_get(height)
            await asyncio.sleep(self.delay(height))
            if height in self.fail_heights:
                raise ChainConnectionError(f"node unreachable at {height}", "get_block", height)
            if height not in self.blocks:
                raise BlockNotFound(height)
            return self.blocks[height]
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        self.closed = True


def build_samples(deltas, start_height: int = 1, proposers=None) -> list[BlockSample]:
    """Samples whose consecutive gaps are ``deltas`` seconds."""
    proposers = proposers or ["val-a"]
    ts = BASE_TIME
    samples = [BlockSample(start_height, ts, proposers[0], 1)]
    for i, delta in enumerate(deltas, start=1):
        ts = ts + timedelta(seconds=delta)
        samples.append(BlockSample(start_height + i, ts, proposers[i % len(proposers)], i % 7))
    return samples


def jittered_deltas(count: int) -> list[float]:
    """Block times around 6s with a few stalls."""
    pattern = [5.8, 6.0, 6.1, 5.9, 6.3, 6.0, 5.7, 6.2, 6.0, 6.1]
    deltas = [pattern[i % len(pattern)] for i in range(count)]
    for i in range(7, count, 23):
        deltas[i] = 45.0
    return deltas


@pytest.fixture
def make_chain():
    return FakeChain


@pytest.fixture
def samples_factory():
    return build_samples


@pytest.fixture
def steady_chain() -> FakeChain:
    """100 blocks with jittered ~6s block times."""
    return FakeChain(build_samples(jittered_deltas(99)))


@pytest.fixture
def config() -> CalculatorConfig:
    return CalculatorConfig(sample_size=50, min_sample_size=30)


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
