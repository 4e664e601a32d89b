"""
Main CLI interface for the POS QA harness.

Provides commands to run scenario modules, inspect resolved configuration
and manage the local Appium server.
"""

import argparse
import importlib.util
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .core.config import Config
from .core.exceptions import ConfigurationError, POSQAError
from .core.logging_config import setup_logging
from .core.platform import PlatformMode, resolve_platform_mode
from .core.properties import PropertySet
from .execution.models import Scenario
from .execution.retry import RetryTracker
from .execution.runner import ScenarioRunner
from .reporting.attachments import ArtifactStore
from .reporting.generator import ReportGenerator
from .reporting.models import SuiteReport
from .reporting.xray import SharedExecutionKey, XrayReporter
from .session.appium_server import AppiumServer
from .session.registry import SessionRegistry


SECRET_MARKERS = ("password", "secret", "token", "accesskey")


def load_scenarios(path: str) -> List[Scenario]:
    """Import a Python file and return its ``SCENARIOS`` list."""
    module_path = Path(path)
    if not module_path.is_file():
        raise ConfigurationError(f"Scenario module not found: {module_path}", source=path)

    spec = importlib.util.spec_from_file_location(module_path.stem, module_path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    scenarios = getattr(module, "SCENARIOS", None)
    if not isinstance(scenarios, (list, tuple)) or not scenarios:
        raise ConfigurationError(
            f"{module_path} must define a non-empty SCENARIOS list", source=path
        )
    for item in scenarios:
        if not isinstance(item, Scenario):
            raise ConfigurationError(
                f"SCENARIOS entry {item!r} in {module_path} is not a Scenario", source=path
            )
    return list(scenarios)


def _mask(key: str, value: str) -> str:
    return "****" if any(marker in key for marker in SECRET_MARKERS) else value


def cmd_run(args: argparse.Namespace) -> int:
    """Run the scenarios defined in a module."""
    try:
        config = Config.from_env()
        if args.workers:
            config.workers = max(1, args.workers)
        run_id = f"run-{datetime.now():%Y%m%d-%H%M%S}"
        setup_logging(config, run_id)
        config.validate()

        properties = PropertySet.from_config(config)
        scenarios = load_scenarios(args.module)
        platform = PlatformMode.parse(args.platform) if args.platform else None

        print(f"🚀 Running {len(scenarios)} scenario(s) with {config.workers} worker(s)...")
        registry = SessionRegistry.from_properties(
            properties,
            config.artifacts_dir,
            config.logs_dir,
            headless=config.get_effective_headless_mode(),
        )
        tracker = RetryTracker()
        runner = ScenarioRunner(
            registry,
            properties,
            sink=ArtifactStore(config.artifacts_dir, run_id),
            tracker=tracker,
            platform=platform,
        )

        started_at = datetime.now()
        try:
            results = runner.run_all(scenarios, workers=config.workers)
        finally:
            runner.shutdown()

        report = SuiteReport.build(
            run_id,
            results,
            started_at,
            platform=platform.value if platform else None,
            environment=properties.environment,
            configuration=config.to_dict(),
        )
        report_dir = Path(args.report_dir) if args.report_dir else config.reports_dir
        written = ReportGenerator(report_dir).write(report)

        if not args.no_xray:
            key_store = SharedExecutionKey(config.project_root / "target" / "testexecution.key")
            XrayReporter(properties, tracker, key_store).publish(results)

        summary = report.summary
        print(
            f"📊 {summary.passed}/{summary.total} passed, {summary.failed} failed, "
            f"{summary.errors} errors ({summary.duration:.1f}s)"
        )
        for path in written.values():
            print(f"📄 Report: {path}")
        for failure in report.failures:
            print(f"❌ {failure.name}: {failure.error_kind}: {failure.error_message}")
        return 0 if summary.all_passed else 1

    except KeyboardInterrupt:
        print("⚠️  Interrupted")
        return 130
    except POSQAError as e:
        print(f"❌ {type(e).__name__}: {e}")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Print resolved configuration."""
    try:
        config = Config.from_env()
        properties = PropertySet.from_config(config)
    except POSQAError as e:
        print(f"❌ {e}")
        return 1

    if args.key:
        try:
            print(properties.get(args.key))
        except ConfigurationError as e:
            print(f"❌ {e}")
            return 1
        return 0

    print(f"Platform: {resolve_platform_mode(properties).value}")
    print(f"Environment: {properties.environment or '(none)'}")
    print(f"Source: {properties.source}")
    print()
    for key in sorted(properties):
        print(f"  {key} = {_mask(key, properties.get(key))}")
    return 0


def cmd_appium(args: argparse.Namespace) -> int:
    """Start, stop or probe the local Appium server."""
    try:
        config = Config.from_env()
        server = AppiumServer(PropertySet.from_config(config), config.logs_dir)

        if args.action == "status":
            ready = server.is_ready()
            print(f"{'✅' if ready else '❌'} Appium at {server.status_url}: {'ready' if ready else 'not responding'}")
            return 0 if ready else 1

        if args.action == "start":
            server.ensure_running()
            print(f"✅ Appium server ready at {server.status_url}")
            return 0

        if server.free_port():
            print(f"✅ Stopped Appium server on port {server.port}")
        else:
            print(f"No Appium server listening on port {server.port}")
        return 0

    except POSQAError as e:
        print(f"❌ {e}")
        return 1


def create_main_parser() -> argparse.ArgumentParser:
    """Create main CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="posqa",
        description="POS QA harness - web, API and mobile scenario runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  posqa run scenarios/smoke.py --workers 4
  posqa run scenarios/mobile.py --platform mobile --no-xray
  posqa config --key browser
  posqa appium status
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run scenarios from a Python module")
    run_parser.add_argument("module", help="Python file defining SCENARIOS")
    run_parser.add_argument("--workers", type=int, help="Number of parallel worker threads")
    run_parser.add_argument(
        "--platform",
        choices=[mode.value for mode in PlatformMode],
        type=str.upper,
        help="Platform mode override for every scenario",
    )
    run_parser.add_argument("--report-dir", help="Directory for JSON and HTML reports")
    run_parser.add_argument(
        "--no-xray", action="store_true", help="Do not publish results to Xray"
    )
    run_parser.set_defaults(func=cmd_run)

    config_parser = subparsers.add_parser("config", help="Show resolved configuration")
    config_parser.add_argument("--key", help="Print a single property value")
    config_parser.set_defaults(func=cmd_config)

    appium_parser = subparsers.add_parser("appium", help="Manage the local Appium server")
    appium_parser.add_argument("action", choices=["start", "stop", "status"])
    appium_parser.set_defaults(func=cmd_appium)

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_main_parser()
    parsed_args = parser.parse_args(sys.argv[1:] if args is None else args)

    if not hasattr(parsed_args, "func"):
        parser.print_help()
        return 1

    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
