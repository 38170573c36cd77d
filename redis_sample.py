#!/usr/bin/env python3
"""Profile a live Redis keyspace from RANDOMKEY samples."""

import argparse
import asyncio
import sys

from sample_config import Settings, parse_target, settings
from sample_logging import configure_logging, get_logger
from sample_probe import RedisProbe, SamplerError, connect
from sample_report import print_report
from sample_runner import SampleCoordinator
from sample_stats import Aggregator, SampleRun

logger = get_logger("redis_sample")


def non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got {value}")
    return number


def build_parser(defaults: Settings) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Estimate Redis keyspace composition by sampling random keys"
    )
    p.add_argument(
        "target",
        nargs="?",
        default=None,
        help=(
            "host[:port] or [ipv6]:port of the Redis server "
            f"(default: {defaults.redis_host}:{defaults.redis_port})"
        ),
    )
    p.add_argument(
        "--samples",
        "-n",
        type=non_negative_int,
        default=defaults.sample_size,
        help="Number of RANDOMKEY draws (default: %(default)s)",
    )
    p.add_argument("--password", type=str, default=defaults.redis_password)
    p.add_argument("--db", type=int, default=defaults.redis_db)
    p.add_argument(
        "--max-in-flight",
        type=non_negative_int,
        default=defaults.max_in_flight,
        help="Max concurrent probe cycles, 0 = unbounded (default: %(default)s)",
    )
    p.add_argument(
        "--timeout",
        type=float,
        default=defaults.probe_timeout_seconds,
        help="Per-command timeout in seconds (default: %(default)s)",
    )
    p.add_argument(
        "--size-source",
        choices=["debug", "memory"],
        default=defaults.size_source,
        help="Size via DEBUG OBJECT serializedlength or MEMORY USAGE (default: %(default)s)",
    )
    p.add_argument(
        "--delimiters",
        type=str,
        default=defaults.key_delimiters,
        help="Characters that separate key name segments (default: whitespace , : . \")",
    )
    p.add_argument("--log-level", type=str, default=defaults.app_log_level)
    return p


def settings_from_args(args: argparse.Namespace, defaults: Settings) -> Settings:
    if args.target is None:
        host, port = defaults.redis_host, defaults.redis_port
    else:
        host, port = parse_target(args.target, defaults.redis_host, defaults.redis_port)
    if args.delimiters is not None and not args.delimiters:
        raise ValueError("--delimiters must name at least one character")
    return defaults.model_copy(
        update={
            "redis_host": host,
            "redis_port": port,
            "redis_db": args.db,
            "redis_password": args.password,
            "sample_size": args.samples,
            "max_in_flight": args.max_in_flight,
            "probe_timeout_seconds": args.timeout,
            "size_source": args.size_source,
            "key_delimiters": args.delimiters,
            "app_log_level": args.log_level,
        }
    )


async def sample(config: Settings) -> SampleRun:
    client = await connect(config)
    try:
        probe = RedisProbe(
            client, timeout=config.probe_timeout_seconds, size_source=config.size_source
        )
        run = SampleRun(sample_size=config.sample_size)
        run.total_keys = await probe.keyspace_size()
        run.server_info = await probe.server_metadata()

        aggregator = Aggregator(run, delimiters=config.key_delimiters)
        coordinator = SampleCoordinator(probe, aggregator, max_in_flight=config.max_in_flight)
        return await coordinator.run_sample(config.sample_size)
    finally:
        await client.aclose()


def main(argv=None) -> int:
    parser = build_parser(settings)
    args = parser.parse_args(argv)
    try:
        config = settings_from_args(args, settings)
    except ValueError as exc:
        parser.error(str(exc))

    configure_logging(config.app_log_level)

    try:
        run = asyncio.run(sample(config))
    except SamplerError as exc:
        logger.error("sample_failed error=%s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print_report(run)
    return 0


if __name__ == "__main__":
    sys.exit(main())
