"""
Block time statistics for a window of recent blocks.

Composes the range fetcher, outlier removal, descriptive statistics and the
range estimator. Every call goes back to the chain; nothing is cached.
"""

import dataclasses
import logging
from collections import defaultdict
from typing import Optional

from blocktime import estimator, stats
from blocktime.client import ChainQueryService
from blocktime.errors import InsufficientSample, InvalidRange
from blocktime.fetcher import RangeFetcher, compute_deltas
from blocktime.types import BlockSample, CalculatorConfig, StatisticalSummary

logger = logging.getLogger(__name__)

MIN_PROPOSER_BLOCKS = 5


class BlockTimeCalculator:
    def __init__(
        self,
        service: ChainQueryService,
        config: Optional[CalculatorConfig] = None,
        fetcher: Optional[RangeFetcher] = None,
    ):
        self.service = service
        self.config = config or CalculatorConfig()
        self.fetcher = fetcher or RangeFetcher(service)

    async def window(self, sample_size: Optional[int] = None) -> tuple[int, int]:
        """Heights of the latest ``sample_size`` blocks, clamped at 1."""
        latest_height = await self.service.current_height()
        size = sample_size or self.config.sample_size
        return max(1, latest_height - size + 1), latest_height

    async def calculate_stats(self) -> StatisticalSummary:
        start_height, end_height = await self.window()
        return await self.calculate_stats_for_range(start_height, end_height)

    async def calculate_stats_for_range(self, start_height: int, end_height: int) -> StatisticalSummary:
        if start_height > end_height or start_height < 1:
            raise InvalidRange(start_height, end_height, "calculate")

        requested = end_height - start_height + 1
        if requested < self.config.min_sample_size:
            raise InsufficientSample("sample size", requested, self.config.min_sample_size)

        samples = await self.fetcher.fetch(start_height, end_height)
        return self.summarize_samples(samples)

    def summarize_samples(self, samples: list[BlockSample]) -> StatisticalSummary:
        """Summary of already fetched samples, sorted by height."""
        deltas = [d.seconds for d in compute_deltas(samples)]
        minimum = self.config.min_sample_size
        if len(deltas) < minimum:
            raise InsufficientSample("valid block times", len(deltas), minimum)

        cleaned, outlier_count = stats.clean(deltas, self.config)
        if len(cleaned) < minimum:
            raise InsufficientSample("block times after outlier removal", len(cleaned), minimum)

        summary = stats.summarize(cleaned)
        summary = dataclasses.replace(
            summary,
            sample_size=len(deltas),
            start_height=samples[0].height,
            end_height=samples[-1].height,
            start_time=samples[0].timestamp,
            end_time=samples[-1].timestamp,
            outlier_count=outlier_count,
            confidence_level=self.config.confidence_level,
            estimated_range=estimator.estimate(cleaned, summary, self.config.confidence_level),
        )
        logger.info(
            f"blocks {summary.start_height}..{summary.end_height}: median {summary.median:.3f}s, "
            f"{outlier_count} outliers removed from {len(deltas)} block times"
        )
        return summary

    def analyze_proposers(
        self,
        samples: list[BlockSample],
        min_blocks: int = MIN_PROPOSER_BLOCKS,
    ) -> dict[str, StatisticalSummary]:
        """
        Block time statistics grouped by the proposer of each block.

        Proposers with fewer than ``min_blocks`` valid block times (never
        fewer than 5) are left out.
        """
        min_blocks = max(min_blocks, MIN_PROPOSER_BLOCKS)
        grouped = defaultdict(list)
        for delta in compute_deltas(samples):
            grouped[delta.proposer].append(delta.seconds)

        result = {}
        for proposer, times in grouped.items():
            if len(times) < min_blocks:
                continue
            cleaned, outlier_count = stats.clean(times, self.config)
            result[proposer] = dataclasses.replace(
                stats.summarize(cleaned),
                sample_size=len(times),
                outlier_count=outlier_count,
            )
        return result

    async def analyze_recent_proposers(
        self,
        sample_size: Optional[int] = None,
        min_blocks: int = MIN_PROPOSER_BLOCKS,
    ) -> dict[str, StatisticalSummary]:
        start_height, end_height = await self.window(sample_size)
        samples = await self.fetcher.fetch(start_height, end_height)
        return self.analyze_proposers(samples, min_blocks)
