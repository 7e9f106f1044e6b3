"""Entry point for the bashtap test runner.

Parses command-line arguments, resolves them against the configuration
file into an ExecutionPlan and a FormatterChoice, discovers and parses the
test files, and runs them with the matching scheduler.
"""

from __future__ import annotations

import argparse
import logging
import re
import sys
from pathlib import Path
from typing import TextIO

from bashtap.config import DEFAULT_CONFIG_PATH, ConfigError, RunConfig
from bashtap.discovery.files import discover_test_files
from bashtap.execution.exit_code import EXIT_OK, EXIT_USAGE
from bashtap.execution.scheduler import create_scheduler
from bashtap.model import ExecutionPlan, FormatterChoice, TestFile
from bashtap.parsing.spec_parser import load_files
from bashtap.reporting.aggregator import Aggregator
from bashtap.reporting.artifacts import REPORT_FORMATTERS, ReportFileFormatter
from bashtap.reporting.base import Formatter
from bashtap.reporting.external import ExternalFormatter
from bashtap.reporting.junit import JUnitFormatter
from bashtap.reporting.pretty import PrettyFormatter
from bashtap.reporting.tap import TapFormatter

log = logging.getLogger("bashtap")

BUILTIN_FORMATTERS = ("tap", "junit", "pretty")


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid job count: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"job count must be at least 1, got {number}")
    return number


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid timeout: {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"timeout must be positive, got {number}")
    return number


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="bashtap",
        description="Run shell test files and report the results as TAP",
    )
    parser.add_argument(
        "paths",
        nargs="+",
        type=Path,
        help="Test files, or directories containing *.bats files",
    )
    parser.add_argument(
        "-r", "--recursive",
        action="store_true",
        default=False,
        help="Include test files in subdirectories of directory arguments",
    )
    parser.add_argument(
        "-j", "--jobs",
        type=_positive_int,
        default=None,
        help="Number of tests and hooks to run in parallel (default: 1)",
    )
    parser.add_argument(
        "--no-parallelize-across-files",
        action="store_true",
        default=False,
        help="Run one test file at a time, even with --jobs",
    )
    parser.add_argument(
        "--no-parallelize-within-files",
        action="store_true",
        default=False,
        help="Run the tests of each file one at a time, even with --jobs",
    )
    parser.add_argument(
        "-F", "--formatter",
        default=None,
        help="Output format: tap, junit, pretty, or the path of a formatter "
             "program reading TAP on stdin (default: pretty on a terminal, else tap)",
    )
    parser.add_argument(
        "--report-formatter",
        choices=REPORT_FORMATTERS,
        default=None,
        help="Also write a report file (report.xml / report.tap) to --output",
    )
    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Directory for the --report-formatter report (default: .)",
    )
    parser.add_argument(
        "--verbose-run",
        action="store_true",
        default=False,
        help="Show captured output of passing tests as well",
    )
    parser.add_argument(
        "--timeout",
        type=_positive_float,
        default=None,
        help="Per-test timeout in seconds",
    )
    parser.add_argument(
        "-f", "--filter",
        default=None,
        help="Only run tests whose description matches this regular expression",
    )
    parser.add_argument(
        "-c", "--count",
        action="store_true",
        default=False,
        help="Print the number of tests that would run and exit",
    )
    parser.add_argument(
        "--config-file",
        type=Path,
        default=None,
        help=f"Path to the YAML configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--no-tempdir-cleanup",
        action="store_true",
        default=False,
        help="Keep the run's temporary directory",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug logging on stderr",
    )
    return parser.parse_args(argv)


def build_plan(args: argparse.Namespace, config: RunConfig) -> ExecutionPlan:
    """Resolve the execution plan; flags win over the config file.

    Raises:
        ValueError: If the resolved values are invalid.
    """
    return ExecutionPlan(
        jobs=args.jobs if args.jobs is not None else config.jobs,
        parallelize_across_files=(
            config.parallelize_across_files and not args.no_parallelize_across_files
        ),
        parallelize_within_files=(
            config.parallelize_within_files and not args.no_parallelize_within_files
        ),
        timeout=args.timeout if args.timeout is not None else config.timeout,
        shell=config.shell,
    )


def build_formatter_choice(
    args: argparse.Namespace, config: RunConfig, stream: TextIO
) -> FormatterChoice:
    """Resolve the output selection; flags win over the config file.

    Raises:
        ValueError: If the report formatter from the config file is unknown.
    """
    formatter = args.formatter or config.formatter
    if formatter is None:
        isatty = getattr(stream, "isatty", None)
        formatter = "pretty" if isatty and isatty() else "tap"

    report_formatter = args.report_formatter or config.report_formatter
    if report_formatter is not None and report_formatter not in REPORT_FORMATTERS:
        raise ValueError(f"unknown report formatter: {report_formatter}")
    output_dir = args.output or config.output
    if report_formatter is not None and output_dir is None:
        output_dir = Path(".")

    return FormatterChoice(
        formatter=formatter,
        report_formatter=report_formatter,
        output_dir=output_dir,
        verbose_run=args.verbose_run,
    )


def create_formatters(choice: FormatterChoice, stream: TextIO) -> list[Formatter]:
    """Instantiate the streamed formatter and the optional report writer.

    Raises:
        OSError: If an external formatter program cannot be started.
    """
    formatters: list[Formatter] = []
    if choice.formatter == "tap":
        formatters.append(TapFormatter(stream, verbose_run=choice.verbose_run))
    elif choice.formatter == "pretty":
        formatters.append(PrettyFormatter(stream, verbose_run=choice.verbose_run))
    elif choice.formatter == "junit":
        formatters.append(JUnitFormatter(stream, verbose_run=choice.verbose_run))
    else:
        formatters.append(ExternalFormatter(choice.formatter, verbose_run=choice.verbose_run))

    if choice.report_formatter is not None:
        assert choice.output_dir is not None
        formatters.append(ReportFileFormatter(
            choice.report_formatter, choice.output_dir, verbose_run=choice.verbose_run,
        ))
    return formatters


def _apply_filter(files: list[TestFile], pattern: str | None) -> list[TestFile]:
    if pattern is None:
        return files
    regex = re.compile(pattern)
    return [f.select(lambda case: regex.search(case.description) is not None) for f in files]


def main(argv: list[str] | None = None, stream: TextIO | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    out = stream if stream is not None else sys.stdout

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    # Load config (scheduling and output defaults)
    config_path = args.config_file
    if config_path is None and DEFAULT_CONFIG_PATH.exists():
        config_path = DEFAULT_CONFIG_PATH
    elif config_path is not None and not config_path.exists():
        print(f"Error: Config file not found: {config_path}", file=sys.stderr)
        return EXIT_USAGE
    try:
        config = RunConfig(config_path)
        plan = build_plan(args, config)
        choice = build_formatter_choice(args, config, out)
    except (ConfigError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    # Discover and parse test files
    try:
        paths = discover_test_files(args.paths, recursive=args.recursive)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE
    files, parse_errors = load_files(paths)

    try:
        files = _apply_filter(files, args.filter)
    except re.error as e:
        print(f"Error: Invalid filter: {e}", file=sys.stderr)
        return EXIT_USAGE

    if args.count:
        print(sum(len(f.tests) for f in files), file=out)
        return EXIT_OK

    try:
        formatters = create_formatters(choice, out)
    except (OSError, ValueError) as e:
        print(f"Error: Cannot start formatter {choice.formatter!r}: {e}", file=sys.stderr)
        return EXIT_USAGE

    aggregator = Aggregator(formatters)
    for error in parse_errors:
        aggregator.record_file_error(error.path, error.diagnostic)

    log.debug("running %d files with %s", len(files), plan)
    scheduler = create_scheduler(plan, keep_workspace=args.no_tempdir_cleanup)
    report = scheduler.run(files, aggregator)
    if report.fatal is not None:
        print(f"Error: {report.fatal}", file=sys.stderr)
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
