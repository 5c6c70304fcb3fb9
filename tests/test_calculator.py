"""
Block time calculator tests.
"""

from datetime import timedelta

import pytest

from blocktime.calculator import BlockTimeCalculator
from blocktime.errors import InsufficientSample, InvalidRange, UpstreamFailure
from blocktime.types import BlockSample, CalculatorConfig

from conftest import BASE_TIME


class TestCalculateStats:
    """Tests for window statistics."""

    @pytest.mark.asyncio
    async def test_latest_window(self, steady_chain, config):
        summary = await BlockTimeCalculator(steady_chain, config).calculate_stats()
        assert summary.start_height == 51
        assert summary.end_height == 100
        assert summary.sample_size == 49
        assert summary.start_time == steady_chain.blocks[51].timestamp
        assert summary.end_time == steady_chain.blocks[100].timestamp
        assert summary.confidence_level == config.confidence_level
        assert sorted(steady_chain.calls) == list(range(51, 101))

    @pytest.mark.asyncio
    async def test_stalls_are_removed(self, steady_chain, config):
        summary = await BlockTimeCalculator(steady_chain, config).calculate_stats()
        assert summary.outlier_count >= 2
        assert summary.max < 45.0
        assert 5.9 <= summary.estimated_range.typical <= 6.1
        assert summary.estimated_range.lower <= summary.estimated_range.typical <= summary.estimated_range.upper

    @pytest.mark.asyncio
    async def test_window_clamped_to_genesis(self, make_chain, samples_factory):
        chain = make_chain(samples_factory([6.0] * 19))
        calc = BlockTimeCalculator(chain, CalculatorConfig(sample_size=100, min_sample_size=5))
        summary = await calc.calculate_stats()
        assert summary.start_height == 1
        assert summary.end_height == 20

    @pytest.mark.asyncio
    async def test_requested_range_too_small(self, steady_chain, config):
        with pytest.raises(InsufficientSample):
            await BlockTimeCalculator(steady_chain, config).calculate_stats_for_range(80, 100)
        assert steady_chain.calls == []

    @pytest.mark.asyncio
    async def test_invalid_range(self, steady_chain, config):
        with pytest.raises(InvalidRange):
            await BlockTimeCalculator(steady_chain, config).calculate_stats_for_range(90, 10)
        assert steady_chain.calls == []

    @pytest.mark.asyncio
    async def test_duplicate_timestamps_leave_too_few_deltas(self, make_chain, samples_factory, config):
        deltas = [6.0 if i % 2 else 0.0 for i in range(49)]
        chain = make_chain(samples_factory(deltas))
        with pytest.raises(InsufficientSample) as exc_info:
            await BlockTimeCalculator(chain, config).calculate_stats()
        assert exc_info.value.details["got"] == 24

    @pytest.mark.asyncio
    async def test_upstream_failure_propagates(self, make_chain, samples_factory, config):
        chain = make_chain(samples_factory([6.0] * 99), fail_heights={75})
        with pytest.raises(UpstreamFailure):
            await BlockTimeCalculator(chain, config).calculate_stats()

    @pytest.mark.asyncio
    async def test_recomputed_on_every_call(self, steady_chain, config):
        calc = BlockTimeCalculator(steady_chain, config)
        first = await calc.calculate_stats()
        second = await calc.calculate_stats()
        assert first == second
        assert steady_chain.height_calls == 2
        assert len(steady_chain.calls) == 100

    @pytest.mark.asyncio
    async def test_iqr_strategy(self, steady_chain):
        config = CalculatorConfig(sample_size=50, min_sample_size=30, use_median_absolute=False)
        summary = await BlockTimeCalculator(steady_chain, config).calculate_stats()
        assert summary.max < 45.0


class TestProposerAnalysis:
    """Tests for per-proposer statistics."""

    def test_groups_by_proposer(self, samples_factory):
        samples = samples_factory([6.0, 6.2, 5.8, 6.1, 6.0, 5.9] * 4, proposers=["a", "b", "c"])
        calc = BlockTimeCalculator(service=None)
        result = calc.analyze_proposers(samples)
        assert set(result) == {"a", "b", "c"}
        assert sum(s.sample_size for s in result.values()) == 24
        for summary in result.values():
            assert 5.8 <= summary.median <= 6.2
            assert summary.estimated_range.typical == 0.0

    def test_small_groups_omitted(self):
        samples = [BlockSample(1, BASE_TIME, "a")]
        proposers = ["a"] * 6 + ["b"] * 4
        for i, proposer in enumerate(proposers, start=2):
            samples.append(BlockSample(i, BASE_TIME + timedelta(seconds=6 * (i - 1)), proposer))
        result = BlockTimeCalculator(service=None).analyze_proposers(samples)
        assert list(result) == ["a"]
        assert result["a"].sample_size == 6

    def test_min_blocks_never_below_five(self, samples_factory):
        samples = samples_factory([6.0] * 4, proposers=["a"])
        calc = BlockTimeCalculator(service=None)
        assert calc.analyze_proposers(samples, min_blocks=1) == {}
        assert calc.analyze_proposers(samples_factory([6.0] * 12), min_blocks=20) == {}

    @pytest.mark.asyncio
    async def test_recent_window(self, make_chain, samples_factory):
        chain = make_chain(samples_factory([6.0] * 59, proposers=["x", "y"]))
        result = await BlockTimeCalculator(chain).analyze_recent_proposers(sample_size=40, min_blocks=10)
        assert set(result) == {"x", "y"}
        assert sorted(chain.calls) == list(range(21, 61))
