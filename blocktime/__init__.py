"""
blocktime: block time statistics and block arrival prediction.

Samples a window of recent blocks over RPC, removes outliers with robust
statistics, estimates a typical block time range and projects it forward.
"""

from blocktime.calculator import BlockTimeCalculator
from blocktime.client import BitcoinRPCClient, ChainQueryService, CometRPCClient, create_client
from blocktime.errors import (
    BlockNotFound,
    BlockTimeError,
    ChainConnectionError,
    ChainTimeout,
    ConfigError,
    FetchCancelled,
    InsufficientSample,
    InvalidArgument,
    InvalidRange,
    UpstreamFailure,
)
from blocktime.fetcher import RangeFetcher, compute_deltas
from blocktime.predictor import BlockPredictor
from blocktime.types import (
    BlockDelta,
    BlockMilestone,
    BlockSample,
    CalculatorConfig,
    DurationEstimate,
    EstimatedRange,
    MultiBlockPrediction,
    Prediction,
    StatisticalSummary,
)

__version__ = "0.1.0"
