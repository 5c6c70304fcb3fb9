"""Human readable and JSON rendering of summaries and predictions."""

import json
from datetime import datetime, timedelta

from blocktime.errors import InvalidArgument
from blocktime.types import MultiBlockPrediction, Prediction, StatisticalSummary

PROPOSER_WIDTH = 38


def format_duration(d: timedelta) -> str:
    seconds = d.total_seconds()
    if seconds < 60:
        return f"{seconds:.0f} seconds"
    if seconds < 3600:
        mins, secs = divmod(int(seconds), 60)
        if secs > 0:
            return f"{mins}m {secs}s"
        return f"{mins} minutes"
    hours = int(seconds // 3600)
    mins = int(seconds // 60) % 60
    if mins > 0:
        return f"{hours}h {mins}m"
    return f"{hours} hours"


def _rfc3339(ts: datetime) -> str:
    return ts.isoformat(timespec="seconds")


def _json(data, pretty: bool) -> str:
    if pretty:
        return json.dumps(data, indent=2)
    return json.dumps(data)


def _unsupported(fmt: str) -> InvalidArgument:
    return InvalidArgument("output", f"unsupported output format: {fmt}", "render")


def render_summary(summary: StatisticalSummary, fmt: str, verbose: bool = False, pretty: bool = True) -> str:
    fmt = fmt.strip()
    if fmt == "json":
        return _json(summary.to_dict(), pretty)

    r = summary.estimated_range
    if fmt == "text":
        lines = [
            "Block Time Statistics",
            "=====================",
            f"Sample Size: {summary.sample_size} blocks",
            f"Height Range: {summary.start_height} - {summary.end_height}",
        ]
        if summary.start_time and summary.end_time:
            lines.append(f"Time Range: {_rfc3339(summary.start_time)} - {_rfc3339(summary.end_time)}")
        lines += [
            "",
            "Statistics (seconds):",
            f"  Mean: {summary.mean:.2f}",
            f"  Median: {summary.median:.2f}",
            f"  Std Dev: {summary.std_dev:.2f}",
            f"  Min: {summary.min:.2f}",
            f"  Max: {summary.max:.2f}",
        ]
        if verbose:
            lines += [
                "",
                "Percentiles:",
                f"  P25: {summary.p25:.2f}",
                f"  P75: {summary.p75:.2f}",
                f"  P95: {summary.p95:.2f}",
                f"  P99: {summary.p99:.2f}",
                "",
                f"Outliers Removed: {summary.outlier_count}",
            ]
        lines += [
            "",
            f"Estimated Block Time Range ({summary.confidence_level * 100:.0f}% confidence):",
            f"  Lower Bound: {r.lower:.2f} seconds",
            f"  Upper Bound: {r.upper:.2f} seconds",
            f"  Typical: {r.typical:.2f} seconds",
        ]
        return "\n".join(lines)

    if fmt == "table":
        sep = "---------------------|----------------"
        return "\n".join([
            f"{'Metric':<20} | {'Value':<15}",
            sep,
            f"{'Sample Size':<20} | {summary.sample_size} blocks",
            f"{'Mean':<20} | {summary.mean:.2f} s",
            f"{'Median':<20} | {summary.median:.2f} s",
            f"{'Std Dev':<20} | {summary.std_dev:.2f} s",
            f"{'Range':<20} | {summary.min:.2f} - {summary.max:.2f} s",
            f"{'Outliers Removed':<20} | {summary.outlier_count}",
            sep,
            f"{'Estimated Range':<20} | {r.lower:.2f} - {r.upper:.2f} s",
            f"{'Typical Block Time':<20} | {r.typical:.2f} s",
            f"{'Confidence Level':<20} | {summary.confidence_level * 100:.0f}%",
        ])

    raise _unsupported(fmt)


def render_proposers(proposer_stats: dict[str, StatisticalSummary], fmt: str, pretty: bool = True) -> str:
    fmt = fmt.strip()
    if not proposer_stats:
        return "No proposer statistics available"

    if fmt == "json":
        return _json({p: s.to_dict() for p, s in proposer_stats.items()}, pretty)

    if fmt in ("table", "text"):
        lines = [
            f"{'Proposer':<40} | {'Blocks':<10} | {'Mean (s)':<10} | {'Median (s)':<10} | {'Std Dev':<10}",
            "-" * 42 + "|" + "|".join(["-" * 12] * 4),
        ]
        ordered = sorted(proposer_stats.items(), key=lambda item: (-item[1].sample_size, item[0]))
        for proposer, s in ordered:
            name = proposer or "(unknown)"
            if len(name) > PROPOSER_WIDTH:
                name = name[:35] + "..."
            lines.append(f"{name:<40} | {s.sample_size:>10} | {s.mean:>10.2f} | {s.median:>10.2f} | {s.std_dev:>10.2f}")
        return "\n".join(lines)

    raise _unsupported(fmt)


def render_prediction(pred: Prediction, fmt: str, verbose: bool = False, pretty: bool = True) -> str:
    fmt = fmt.strip()
    if fmt == "json":
        return _json(pred.to_dict(), pretty)

    if fmt == "text":
        lines = ["Block Time Prediction", "====================="]
        if pred.is_complete:
            lines += [
                f"Block {pred.target_height} already exists",
                f"Created at: {_rfc3339(pred.actual_time)}",
            ]
            return "\n".join(lines)

        lines += [
            f"Target Block: {pred.target_height}",
            f"Current Block: {pred.current_height}",
            f"Blocks Remaining: {pred.blocks_left}",
            f"Current Time: {_rfc3339(pred.current_time)}",
            "",
            "Estimated Arrival Time:",
            f"  Typical: {_rfc3339(pred.estimated_time)} (in {format_duration(pred.duration.typical)})",
            f"  Optimistic: {_rfc3339(pred.optimistic_time)} (in {format_duration(pred.duration.min)})",
            f"  Pessimistic: {_rfc3339(pred.pessimistic_time)} (in {format_duration(pred.duration.max)})",
        ]
        if verbose and pred.summary is not None:
            lines += [
                "",
                "Block Time Statistics:",
                f"  Mean: {pred.summary.mean:.2f} seconds",
                f"  Median: {pred.summary.median:.2f} seconds",
                f"  Confidence: {pred.confidence_level * 100:.0f}%",
            ]
        return "\n".join(lines)

    if fmt == "table":
        sep = "---------------------|-------------------------------"
        lines = [
            f"{'Metric':<20} | {'Value':<30}",
            sep,
            f"{'Target Block':<20} | {pred.target_height}",
            f"{'Current Block':<20} | {pred.current_height}",
            f"{'Blocks Remaining':<20} | {pred.blocks_left}",
            sep,
        ]
        if pred.is_complete:
            lines.append(f"{'Created At':<20} | {pred.actual_time:%Y-%m-%d %H:%M:%S}")
            return "\n".join(lines)
        lines += [
            f"{'Estimated Time':<20} | {pred.estimated_time:%Y-%m-%d %H:%M:%S}",
            f"{'Time from Now':<20} | {format_duration(pred.duration.typical)}",
            f"{'Range':<20} | {format_duration(pred.duration.min)} - {format_duration(pred.duration.max)}",
        ]
        return "\n".join(lines)

    raise _unsupported(fmt)


def render_milestones(pred: MultiBlockPrediction, fmt: str, verbose: bool = False, pretty: bool = True) -> str:
    fmt = fmt.strip()
    if fmt == "json":
        return _json(pred.to_dict(), pretty)

    if fmt == "text":
        lines = [
            "Next Blocks Prediction",
            "======================",
            f"Current Block: {pred.current_height}",
            f"Current Time: {_rfc3339(pred.current_time)}",
            "",
            "Upcoming Blocks:",
        ]
        for m in pred.milestones:
            lines.append(f"  Block {m.height}: {m.estimated_time:%H:%M:%S} (in {format_duration(m.duration)})")
        if verbose and pred.summary is not None:
            lines += [
                "",
                f"Based on block time: {pred.summary.median:.2f}s (±{pred.summary.std_dev:.2f}s)",
            ]
        return "\n".join(lines)

    if fmt == "table":
        lines = [
            f"{'Block':<10} | {'Estimated Time':<20} | {'Duration':<15}",
            "-----------|----------------------|----------------",
        ]
        for m in pred.milestones:
            lines.append(f"{m.height:<10} | {m.estimated_time:%Y-%m-%d %H:%M:%S}  | {format_duration(m.duration):<15}")
        return "\n".join(lines)

    raise _unsupported(fmt)
