"""
Block arrival prediction.

Projections are anchored to the local wall clock at call time, not to the
timestamp of the latest block, so their accuracy depends on the skew between
this machine's clock and the chain's.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from blocktime.calculator import BlockTimeCalculator
from blocktime.client import ChainQueryService
from blocktime.errors import InvalidArgument
from blocktime.types import BlockMilestone, DurationEstimate, MultiBlockPrediction, Prediction

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BlockPredictor:
    def __init__(
        self,
        service: ChainQueryService,
        calculator: BlockTimeCalculator,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.service = service
        self.calculator = calculator
        self.clock = clock

    async def predict_height(self, target_height: int) -> Prediction:
        """Estimate when ``target_height`` will be produced."""
        if target_height < 1:
            raise InvalidArgument("target_height", "must be >= 1", "predict_height")

        current_height = await self.service.current_height()

        if target_height <= current_height:
            block = await self.service.get_block(target_height)
            return Prediction(
                target_height=target_height,
                current_height=current_height,
                blocks_left=0,
                is_complete=True,
                actual_time=block.timestamp,
            )

        summary = await self.calculator.calculate_stats()
        current_block = await self.service.get_block(current_height)
        now = self.clock()

        blocks_left = target_height - current_height
        estimated = summary.estimated_range
        typical = timedelta(seconds=blocks_left * estimated.typical)
        optimistic = timedelta(seconds=blocks_left * estimated.lower)
        pessimistic = timedelta(seconds=blocks_left * estimated.upper)

        logger.info(f"block {target_height} is {blocks_left} blocks away, typical arrival in {typical}")

        return Prediction(
            target_height=target_height,
            current_height=current_height,
            blocks_left=blocks_left,
            current_time=now,
            current_block_age=now - current_block.timestamp,
            estimated_time=now + typical,
            optimistic_time=now + optimistic,
            pessimistic_time=now + pessimistic,
            duration=DurationEstimate(typical=typical, min=optimistic, max=pessimistic),
            summary=summary,
            confidence_level=summary.confidence_level,
        )

    async def predict_next(self, count: int) -> MultiBlockPrediction:
        """Estimate arrival of the next ``count`` blocks, each projected from now."""
        if count <= 0:
            raise InvalidArgument("count", "must be positive", "predict_next")

        current_height = await self.service.current_height()
        summary = await self.calculator.calculate_stats()
        current_block = await self.service.get_block(current_height)
        now = self.clock()

        typical = summary.estimated_range.typical
        milestones = []
        for blocks_ahead in range(1, count + 1):
            duration = timedelta(seconds=blocks_ahead * typical)
            milestones.append(BlockMilestone(
                height=current_height + blocks_ahead,
                blocks_from_now=blocks_ahead,
                estimated_time=now + duration,
                duration=duration,
            ))

        return MultiBlockPrediction(
            current_height=current_height,
            current_time=now,
            milestones=tuple(milestones),
            summary=summary,
            current_block_age=now - current_block.timestamp,
        )
