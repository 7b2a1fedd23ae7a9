"""memsampler - command line entry point."""

import argparse
import logging
import sys
from typing import TextIO

from memsampler.models import (
    DEFAULT_COUNT,
    DEFAULT_OVERHEAD_US,
    MIN_DELAY,
    InterfaceUnavailable,
    KernelPaths,
    MissingMetric,
    SampleSchedule,
    SamplerConfig,
    ScheduleError,
)
from memsampler.monitor import Sampler, SnapshotBuilder
from memsampler.report import ReportRenderer
from memsampler.sources import discover_topology, resolve_policy
from memsampler.units import Unit

logger = logging.getLogger("memsampler")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

EXIT_OK = 0
EXIT_FATAL = 1


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="memsampler",
        description="Sample host and per-NUMA-node memory at a fixed cadence.",
    )
    parser.add_argument(
        "-d",
        "--delay",
        type=float,
        default=1.0,
        help=f"seconds between samples (minimum {MIN_DELAY}, default 1.0)",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "-c",
        "--count",
        type=int,
        help=f"number of samples to take (default {DEFAULT_COUNT})",
    )
    group.add_argument(
        "-p",
        "--period",
        type=float,
        help="total seconds to sample for; the count is derived from it",
    )
    parser.add_argument(
        "-u",
        "--unit",
        choices=[unit.value for unit in Unit],
        default=Unit.MIB.value,
        help="report unit: K, M or G (default M)",
    )
    parser.add_argument(
        "--overhead-us",
        type=int,
        default=DEFAULT_OVERHEAD_US,
        help=f"microseconds subtracted from each sleep (default {DEFAULT_OVERHEAD_US})",
    )
    parser.add_argument(
        "--root",
        help="read kernel interfaces below this directory instead of /",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--debug", action="store_true", help="log per-sample timing to stderr")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="only log errors")
    return parser


def configure_logging(debug: bool = False, quiet: bool = False) -> None:
    """Send log records to stderr so stdout carries only the report."""
    level = logging.WARNING
    if debug:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.handlers[:] = [handler]
    logger.setLevel(level)
    logger.propagate = False


def build_config(args: argparse.Namespace) -> SamplerConfig:
    """
    Fold parsed arguments into a SamplerConfig.

    Raises:
        ScheduleError: If the schedule options are inconsistent.
    """
    schedule = SampleSchedule.resolve(args.delay, count=args.count, period=args.period)
    paths = KernelPaths.under(args.root) if args.root else KernelPaths()
    return SamplerConfig(
        schedule=schedule,
        unit=Unit(args.unit),
        paths=paths,
        overhead_us=args.overhead_us,
    )


def run(config: SamplerConfig, out: TextIO | None = None) -> int:
    """
    Discover the host, then sample until the schedule is exhausted.

    Returns:
        Number of rows rendered.
    """
    policy = resolve_policy(config.paths.overcommit)
    topology = discover_topology(config.paths.cpuinfo)

    renderer = ReportRenderer(topology, unit=config.unit, out=out)
    builder = SnapshotBuilder(policy, topology, paths=config.paths)
    sampler = Sampler(config, builder, renderer)

    renderer.banner(config, policy)
    return sampler.run()


def main(argv: list[str] | None = None) -> int:
    """Entry point for memsampler."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(debug=args.debug, quiet=args.quiet)

    if args.overhead_us < 0:
        parser.error(f"--overhead-us must not be negative, got {args.overhead_us}")

    try:
        config = build_config(args)
    except ScheduleError as e:
        parser.error(str(e))

    try:
        run(config)
    except (InterfaceUnavailable, MissingMetric) as e:
        logger.error("%s", e)
        return EXIT_FATAL
    except KeyboardInterrupt:
        logger.info("interrupted")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
