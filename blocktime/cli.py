"""
Command line entry point.

    blocktime calculate --rpc http://localhost:26657 --sample-size 200
    blocktime analyze --sample-size 500 --output table
    blocktime predict 1200000
    blocktime predict --next 5
    blocktime config config.json
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from dotenv import load_dotenv

from blocktime import render
from blocktime.calculator import BlockTimeCalculator
from blocktime.client import create_client
from blocktime.config import DEFAULT_CONFIG_FILE, OUTPUT_FORMATS, Config, build_config
from blocktime.errors import BlockTimeError, ConfigError
from blocktime.predictor import BlockPredictor

logger = logging.getLogger("blocktime")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_NEXT_BLOCKS = 10


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blocktime",
        description="Block time statistics with outlier removal and confidence-based range estimation, "
                    "and block arrival prediction.",
    )
    parser.add_argument("--config", help=f"config file (default: ./{DEFAULT_CONFIG_FILE} if present)")
    parser.add_argument("--rpc", help="RPC endpoint URL")
    parser.add_argument("--chain-type", choices=["cosmos", "bitcoin"], help="RPC dialect of the node")
    parser.add_argument("--chain-id", help="chain ID")
    parser.add_argument("--timeout", type=float, help="request timeout in seconds")
    parser.add_argument("--log-level", default="WARNING", help="logging level (default: WARNING)")

    sub = parser.add_subparsers(dest="command", required=True)

    calc = sub.add_parser("calculate", help="calculate block time statistics")
    calc.add_argument("--sample-size", type=int, help="number of blocks to analyze")
    calc.add_argument("--start-height", type=int, default=0, help="start height (0 for latest - sample-size)")
    calc.add_argument("--end-height", type=int, default=0, help="end height (0 for latest)")
    calc.add_argument("--outlier-threshold", type=float, help="IQR multiplier for outlier detection")
    calc.add_argument("--confidence", type=float, help="confidence level for range estimation")
    calc.add_argument("--trim-percent", type=float, help="fraction of extremes to trim from each end")
    calc.add_argument("--use-mad", action=argparse.BooleanOptionalAction, default=None,
                      help="use median absolute deviation for outlier detection")
    calc.add_argument("--output", choices=OUTPUT_FORMATS, help="output format")
    calc.add_argument("--verbose", action="store_true", default=None, help="show percentiles and outliers")

    analyze = sub.add_parser("analyze", help="analyze block times per proposer")
    analyze.add_argument("--sample-size", type=int, default=500, help="number of blocks to analyze")
    analyze.add_argument("--min-blocks", type=int, default=10, help="minimum blocks per proposer to include")
    analyze.add_argument("--output", choices=OUTPUT_FORMATS, default="table", help="output format")

    predict = sub.add_parser("predict", help="predict when a block will be produced")
    predict.add_argument("target", nargs="?", type=int, help="target block height")
    predict.add_argument("--height", type=int, default=0, help="target block height")
    predict.add_argument("--next", type=int, default=0, help="predict the next N blocks")
    predict.add_argument("--sample-size", type=int, help="number of blocks to analyze for statistics")
    predict.add_argument("--output", choices=OUTPUT_FORMATS, help="output format")
    predict.add_argument("--verbose", action="store_true", default=None, help="show block time statistics")

    config = sub.add_parser("config", help="write the default configuration")
    config.add_argument("path", nargs="?", default=DEFAULT_CONFIG_FILE, help="destination file")

    return parser


def overrides_from_args(args: argparse.Namespace) -> dict:
    """Map explicitly given flags onto ``{section: {field: value}}``."""
    mapping = {
        "rpc": ("chain", "rpc_endpoint"),
        "chain_type": ("chain", "chain_type"),
        "chain_id": ("chain", "chain_id"),
        "timeout": ("chain", "timeout"),
        "sample_size": ("calculator", "sample_size"),
        "outlier_threshold": ("calculator", "outlier_threshold"),
        "confidence": ("calculator", "confidence_level"),
        "trim_percent": ("calculator", "trim_percent"),
        "use_mad": ("calculator", "use_median_absolute"),
        "output": ("output", "format"),
        "verbose": ("output", "verbose"),
    }
    overrides: dict[str, dict] = {}
    for name, (section, key) in mapping.items():
        value = getattr(args, name, None)
        if value is not None:
            overrides.setdefault(section, {})[key] = value
    return overrides


def _client(config: Config):
    chain = config.chain
    if not chain.rpc_endpoint:
        raise ConfigError(["RPC endpoint is required (use --rpc flag or config file)"])
    return create_client(
        chain.chain_type,
        chain.rpc_endpoint,
        timeout=chain.timeout,
        max_retries=chain.max_retries,
        retry_delay=chain.retry_delay,
        requests_per_second=chain.requests_per_second,
    )


async def run_calculate(args: argparse.Namespace, config: Config) -> str:
    out = config.output
    async with _client(config) as client:
        calculator = BlockTimeCalculator(client, config.calculator)
        if args.start_height > 0 and args.end_height > 0:
            summary = await calculator.calculate_stats_for_range(args.start_height, args.end_height)
        else:
            summary = await calculator.calculate_stats()
    return render.render_summary(summary, out.format, out.verbose, out.pretty_print)


async def run_analyze(args: argparse.Namespace, config: Config) -> str:
    async with _client(config) as client:
        calculator = BlockTimeCalculator(client, config.calculator)
        proposer_stats = await calculator.analyze_recent_proposers(args.sample_size, args.min_blocks)
    return render.render_proposers(proposer_stats, config.output.format, config.output.pretty_print)


async def run_predict(args: argparse.Namespace, config: Config) -> str:
    out = config.output
    target_height = args.target or args.height
    async with _client(config) as client:
        calculator = BlockTimeCalculator(client, config.calculator)
        predictor = BlockPredictor(client, calculator)

        if args.next > 0 or not target_height:
            prediction = await predictor.predict_next(args.next or DEFAULT_NEXT_BLOCKS)
            return render.render_milestones(prediction, out.format, out.verbose, out.pretty_print)

        prediction = await predictor.predict_height(target_height)
        return render.render_prediction(prediction, out.format, out.verbose, out.pretty_print)


COMMANDS = {
    "calculate": run_calculate,
    "analyze": run_analyze,
    "predict": run_predict,
}


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)

    try:
        if args.command == "config":
            Config().save(args.path)
            print(f"Default configuration written to {args.path}")
            return 0

        config = build_config(args.config, overrides_from_args(args))
        output = asyncio.run(COMMANDS[args.command](args, config))
    except BlockTimeError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(output)
    if config.output.save_to_file:
        with open(config.output.save_to_file, "w") as f:
            f.write(output + "\n")
        logger.info(f"Output saved to {config.output.save_to_file}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
