"""
Value types shared by the fetcher, statistics, estimator and predictor.

All of them are frozen: a summary or prediction is rebuilt on every call,
never updated in place.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Optional


@dataclass(frozen=True)
class BlockSample:
    height: int
    timestamp: datetime
    proposer: str = ""
    tx_count: int = 0
    block_hash: str = ""


@dataclass(frozen=True)
class BlockDelta:
    """Seconds between block ``height`` and its predecessor."""
    height: int
    seconds: float
    proposer: str = ""


@dataclass(frozen=True)
class EstimatedRange:
    lower: float = 0.0
    upper: float = 0.0
    typical: float = 0.0


@dataclass(frozen=True)
class CalculatorConfig:
    sample_size: int = 100          # blocks to analyze
    min_sample_size: int = 30       # minimum valid deltas
    outlier_threshold: float = 1.5  # IQR fence multiplier
    confidence_level: float = 0.95
    trim_percent: float = 0.05      # trimmed from each end after MAD filtering
    use_median_absolute: bool = True


@dataclass(frozen=True)
class StatisticalSummary:
    sample_size: int = 0
    start_height: int = 0
    end_height: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    mean: float = 0.0
    median: float = 0.0
    std_dev: float = 0.0
    min: float = 0.0
    max: float = 0.0
    p25: float = 0.0
    p75: float = 0.0
    p95: float = 0.0
    p99: float = 0.0
    outlier_count: int = 0
    estimated_range: EstimatedRange = field(default_factory=EstimatedRange)
    confidence_level: float = 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["start_time"] = _isoformat(self.start_time)
        data["end_time"] = _isoformat(self.end_time)
        return data


@dataclass(frozen=True)
class DurationEstimate:
    typical: timedelta
    min: timedelta
    max: timedelta


@dataclass(frozen=True)
class Prediction:
    """
    Arrival estimate for a single target height.

    When the target already exists ``is_complete`` is set, ``actual_time``
    holds the block timestamp and every forward-looking field is None.
    """
    target_height: int
    current_height: int
    blocks_left: int
    is_complete: bool = False
    actual_time: Optional[datetime] = None
    current_time: Optional[datetime] = None
    current_block_age: Optional[timedelta] = None
    estimated_time: Optional[datetime] = None
    optimistic_time: Optional[datetime] = None
    pessimistic_time: Optional[datetime] = None
    duration: Optional[DurationEstimate] = None
    summary: Optional[StatisticalSummary] = None
    confidence_level: Optional[float] = None

    def to_dict(self) -> dict:
        duration = None
        if self.duration is not None:
            duration = {
                "typical": self.duration.typical.total_seconds(),
                "min": self.duration.min.total_seconds(),
                "max": self.duration.max.total_seconds(),
            }
        return {
            "target_height": self.target_height,
            "current_height": self.current_height,
            "blocks_left": self.blocks_left,
            "is_complete": self.is_complete,
            "actual_time": _isoformat(self.actual_time),
            "current_time": _isoformat(self.current_time),
            "current_block_age": _seconds(self.current_block_age),
            "estimated_time": _isoformat(self.estimated_time),
            "optimistic_time": _isoformat(self.optimistic_time),
            "pessimistic_time": _isoformat(self.pessimistic_time),
            "duration": duration,
            "confidence_level": self.confidence_level,
            "block_time_stats": self.summary.to_dict() if self.summary else None,
        }


@dataclass(frozen=True)
class BlockMilestone:
    height: int
    blocks_from_now: int
    estimated_time: datetime
    duration: timedelta


@dataclass(frozen=True)
class MultiBlockPrediction:
    current_height: int
    current_time: datetime
    milestones: tuple[BlockMilestone, ...]
    summary: Optional[StatisticalSummary] = None
    current_block_age: Optional[timedelta] = None

    def to_dict(self) -> dict:
        return {
            "current_height": self.current_height,
            "current_time": _isoformat(self.current_time),
            "current_block_age": _seconds(self.current_block_age),
            "predictions": [
                {
                    "height": m.height,
                    "blocks_from_now": m.blocks_from_now,
                    "estimated_time": _isoformat(m.estimated_time),
                    "duration": m.duration.total_seconds(),
                }
                for m in self.milestones
            ],
            "block_time_stats": self.summary.to_dict() if self.summary else None,
        }


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _seconds(value: Optional[timedelta]) -> Optional[float]:
    return value.total_seconds() if value is not None else None
