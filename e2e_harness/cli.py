"""
Main CLI interface for the E2E harness.

Provides the ``run`` entry point plus report viewing and configuration
validation utilities.
"""

import argparse
import asyncio
import sys
from importlib import metadata
from typing import Optional, List

from . import __version__
from .core.config import OpenPolicy, ReporterKind, load_run_configuration
from .core.exceptions import ConfigError, HarnessError
from .core.logging_config import setup_logging, get_logger
from .core.run_context import RunContext
from .core.settings import Settings
from .execution.scheduler import ExecutionScheduler
from .execution.targets import TargetRegistry
from .execution.units import filter_units, load_suites
from .reporting.reporter import ResultReporter
from .reporting.server import serve_report


def _settings_from_args(args: argparse.Namespace) -> Settings:
    headed = getattr(args, "headed", False)
    return Settings(
        retries_override=getattr(args, "retries", None),
        workers_override=getattr(args, "workers", None),
        headless_override=False if headed else None,
        log_level="DEBUG" if getattr(args, "verbose", False) else None,
    )


def _load_plan(args: argparse.Namespace, settings: Settings):
    """Load configuration, targets and units; nothing is launched here."""
    config = load_run_configuration(args.config, settings)
    targets = TargetRegistry(config.targets).select(getattr(args, "project", None))
    units = filter_units(
        load_suites(config.test_dir),
        grep=getattr(args, "grep", None),
        forbid_only=config.forbid_only,
    )
    return config, targets, units


def cmd_run(args: argparse.Namespace) -> int:
    """Run the configured test suites."""
    settings = _settings_from_args(args)
    context = RunContext(metadata={"command": "run"})
    setup_logging(settings, context.run_id)
    logger = get_logger("e2e_harness.cli", run_id=context.run_id)

    try:
        config, targets, units = _load_plan(args, settings)

        if not units:
            print("Error: No tests found", file=sys.stderr)
            return 1

        if args.list:
            for unit in units:
                for target in targets:
                    print(f"  [{target.name}] › {unit.file} › {unit.title}")
            print(f"Total: {len(units) * len(targets)} tests in {len(units)} unit(s)")
            return 0

        reporter = ResultReporter(
            config,
            stream=sys.stdout,
            run_context=context,
            overwrite=args.overwrite_report,
        )
        scheduler = ExecutionScheduler(config, reporter=reporter, run_id=context.run_id)
        asyncio.run(scheduler.run(units, targets))
        outcome = reporter.finalize()
        context.finish()
        logger.info(
            "Run finished",
            extra={"metadata": {**context.to_dict(), "exit_code": outcome.exit_code}},
        )

        html = config.reporter(ReporterKind.HTML)
        if html is not None and outcome.html_report is not None:
            should_open = html.open == OpenPolicy.ALWAYS or (
                html.open == OpenPolicy.ON_FAILURE and outcome.exit_code != 0
            )
            if should_open and not config.ci_mode:
                serve_report(outcome.html_report, html.host, html.port)
            else:
                print(f"\n  To open the last HTML report run:\n\n    e2e-harness show-report {outcome.html_report}\n")

        return outcome.exit_code

    except ConfigError as e:
        logger.error(
            f"Configuration error: {e.message}",
            extra={"metadata": e.to_dict()},
        )
        print(f"Configuration error: {e.message}", file=sys.stderr)
        for violation in e.violations:
            print(f"  - {violation}", file=sys.stderr)
        return 1
    except HarnessError as e:
        logger.error(f"E2E harness error: {e.message}", extra={"metadata": e.to_dict()})
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


def cmd_show_report(args: argparse.Namespace) -> int:
    """Serve an HTML report folder."""
    folder = args.folder
    host, port = args.host, args.port

    if folder is None:
        try:
            config = load_run_configuration(args.config, Settings())
        except ConfigError as e:
            print(f"Configuration error: {e.message}", file=sys.stderr)
            return 1
        html = config.reporter(ReporterKind.HTML)
        if html is None:
            print("Error: no html reporter configured; pass a report folder", file=sys.stderr)
            return 1
        folder = html.output_path
        host = host or html.host
        port = port or html.port

    try:
        serve_report(folder, host or "localhost", port or 9323)
    except HarnessError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate the configuration and suites without launching browsers."""
    settings = _settings_from_args(args)
    try:
        config, targets, units = _load_plan(args, settings)
    except ConfigError as e:
        print(f"❌ Configuration validation failed: {e.message}")
        for violation in e.violations:
            print(f"   • {violation}")
        return 1

    print("✅ Configuration is valid")
    print(f"   Base URL: {config.base_url}")
    print(f"   Targets: {', '.join(t.name for t in targets)}")
    print(f"   Test units: {len(units)}")
    print(f"   Retries: {config.retries}  Workers: {config.resolve_workers()}")
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    """Show version information."""
    try:
        version = metadata.version("e2e-harness")
    except metadata.PackageNotFoundError:
        version = __version__
    print(f"E2E Harness {version}")
    return 0


def _add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        help="Path to the configuration file (default: harness.config.yaml)",
    )


def create_main_parser() -> argparse.ArgumentParser:
    """Create main CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="e2e-harness",
        description="E2E Harness - cross-browser end-to-end test runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  e2e-harness run
  e2e-harness run --project chromium --grep login
  e2e-harness show-report
  e2e-harness validate
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run test suites")
    _add_config_argument(run_parser)
    run_parser.add_argument(
        "--project", "-p",
        action="append",
        help="Only run against the named target (repeatable)",
    )
    run_parser.add_argument("--grep", "-g", help="Only run tests whose title matches this regex")
    run_parser.add_argument("--retries", type=int, help="Override the retry count")
    run_parser.add_argument("--workers", "-j", type=int, help="Override the worker count")
    run_parser.add_argument("--headed", action="store_true", help="Run browsers headed")
    run_parser.add_argument(
        "--overwrite-report",
        action="store_true",
        help="Replace an existing non-empty HTML report folder",
    )
    run_parser.add_argument("--list", action="store_true", help="List tests without running them")
    run_parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    run_parser.set_defaults(func=cmd_run)

    show_parser = subparsers.add_parser("show-report", help="Serve an HTML report")
    show_parser.add_argument("folder", nargs="?", help="Report folder (default: configured html folder)")
    _add_config_argument(show_parser)
    show_parser.add_argument("--host", help="Host to bind")
    show_parser.add_argument("--port", type=int, help="Port to bind")
    show_parser.set_defaults(func=cmd_show_report)

    validate_parser = subparsers.add_parser("validate", help="Validate configuration and suites")
    _add_config_argument(validate_parser)
    validate_parser.set_defaults(func=cmd_validate)

    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.set_defaults(func=cmd_version)

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_main_parser()

    if args is None:
        args = sys.argv[1:]

    # Bare invocation runs the suites
    if not args:
        args = ["run"]

    parsed_args = parser.parse_args(args)

    if not hasattr(parsed_args, "func"):
        parser.print_help()
        return 1

    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
