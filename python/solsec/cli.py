"""
solsec command line.

Static scanning, fuzz campaigns and plugin management for Solana programs.
"""

import argparse
import asyncio
import logging
import sys
import webbrowser
from pathlib import Path
from typing import List, Optional

from . import __version__
from .analysis import RULE_CLASSES
from .audit import AuditLogger
from .config import FuzzConfig, ScanConfig, Settings, ToolSettings
from .config.defaults import SUPPORTED_FORMATS
from .errors import ConfigInvalid
from .plugins import PluginRegistry, PluginStore
from .reports import ReportFormat
from .scanner import Fuzzer, Scanner

logger = logging.getLogger("solsec")

EXIT_OK = 0
EXIT_CRITICAL = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logging for the process."""
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    logging.getLogger().setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="solsec",
        description="solsec - Solana smart contract security toolkit",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scan an Anchor workspace, JSON and HTML reports
  solsec scan ./programs/vault

  # CI gate: JSON only, fail when a critical finding exists
  solsec scan . --json-only --no-open --fail-on-critical

  # Fuzz built harnesses with 8 workers, 60s per job
  solsec fuzz . --jobs 8 --timeout 60

  # Manage plugins
  solsec plugin install ./my_rules.py
  solsec plugin list
        """
    )
    parser.add_argument("--version", action="version", version=f"solsec {__version__}")
    parser.add_argument("--settings", help="Path to YAML settings file")
    parser.add_argument("--log-dir", help="Directory for audit logs")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only print warnings and errors")

    sub = parser.add_subparsers(dest="command", required=True)

    # scan
    scan = sub.add_parser("scan", help="Statically scan program sources")
    scan.add_argument("path", help="Program directory or source file")
    scan.add_argument("--config", "-c", help="Path to YAML rule configuration")
    scan.add_argument("--output", "-o", help="Output directory for reports")
    scan.add_argument(
        "--format", "-f",
        action="append",
        dest="formats",
        default=[],
        help=f"Report format, repeatable ({', '.join(SUPPORTED_FORMATS)})"
    )
    scan.add_argument("--json-only", action="store_true", help="Only write the JSON report")
    scan.add_argument("--html-only", action="store_true", help="Only write the HTML report")
    scan.add_argument("--no-open", action="store_true", help="Do not open the HTML report")
    scan.add_argument(
        "--fail-on-critical",
        action="store_true",
        help="Exit with status 1 when a critical finding is present"
    )
    scan.add_argument("--mode", choices=["sequential", "parallel"], help="Rule evaluation mode")
    scan.add_argument("--workers", type=int, help="Worker threads in parallel mode")
    scan.add_argument("--plugin-dir", help="Directory of installed plugins")

    # fuzz
    fuzz = sub.add_parser("fuzz", help="Run a fuzz campaign against built harnesses")
    fuzz.add_argument("path", help="Program directory or harness executable")
    fuzz.add_argument("--timeout", "-t", type=float, help="Per-job timeout in seconds")
    fuzz.add_argument("--jobs", "-j", type=int, help="Max concurrently running jobs")
    fuzz.add_argument("--output", "-o", help="Output directory for reports")
    fuzz.add_argument("--campaign-timeout", type=float, help="Whole-campaign deadline in seconds")
    fuzz.add_argument(
        "--timeouts-as-findings",
        action="store_true",
        help="Report job timeouts as findings instead of statistics"
    )
    fuzz.add_argument(
        "--timeout-severity",
        choices=["low", "medium"],
        default="low",
        help="Severity of timeout findings (default: low)"
    )
    fuzz.add_argument("--max-executions", type=int, help="Executions per job before it completes")
    fuzz.add_argument("--execution-timeout", type=float, help="Timeout of a single harness execution")
    fuzz.add_argument("--seed-dir", help="Directory of seed inputs")
    fuzz.add_argument("--seed", type=int, help="Random seed for reproducible campaigns")
    fuzz.add_argument(
        "--format", "-f",
        action="append",
        dest="formats",
        default=[],
        help="Report format, repeatable (default: json)"
    )
    fuzz.add_argument("--plugin-dir", help="Directory of installed plugins")

    # plugin
    plugin = sub.add_parser("plugin", help="Install, list or remove plugins")
    plugin.add_argument("action", choices=["install", "list", "remove"])
    plugin.add_argument("path", nargs="?", help="Plugin file (install) or name (remove)")
    plugin.add_argument("--plugin-dir", help="Directory of installed plugins")

    return parser


def load_settings(args: argparse.Namespace) -> ToolSettings:
    """Tool settings: defaults, then the settings file, then SOLSEC_* variables."""
    settings = Settings()
    if args.settings:
        return settings.load_from_file(args.settings)
    return settings.config


def load_registry(plugin_dir: str, audit_logger: Optional[AuditLogger]) -> PluginRegistry:
    store = PluginStore(plugin_dir, reserved_rule_ids=RULE_CLASSES, audit_logger=audit_logger)
    registry = store.load_registry()
    if len(registry) or registry.errors:
        logger.info(f"Plugins: {len(registry)} loaded, {len(registry.errors)} rejected")
    return registry


def _log_summary(title: str, summary: dict) -> None:
    logger.info("=" * 50)
    logger.info(title)
    logger.info(f"Findings: {summary['total']}")
    for severity in ("critical", "high", "medium", "low", "info"):
        logger.info(f"  {severity.capitalize()}: {summary[severity]}")
    logger.info("=" * 50)


def run_scan(args: argparse.Namespace, tool: ToolSettings, audit_logger: Optional[AuditLogger]) -> int:
    """Run a static scan."""
    config = ScanConfig(
        path=args.path,
        config=args.config,
        output=args.output or tool.output_dir,
        formats=list(args.formats),
        json_only=args.json_only,
        html_only=args.html_only,
        no_open=args.no_open,
        fail_on_critical=args.fail_on_critical,
        mode=args.mode or tool.mode,
        max_workers=tool.max_workers if args.workers is None else args.workers,
        plugin_dir=args.plugin_dir or tool.plugin_dir,
    )
    if not args.formats and not (args.json_only or args.html_only):
        config.formats = list(tool.formats)
    config.validate()

    registry = load_registry(config.plugin_dir, audit_logger)
    scanner = Scanner(config, registry=registry, audit_logger=audit_logger)

    logger.info(f"Scanning {config.path}")
    outcome = scanner.run()
    _log_summary("SCAN COMPLETE", outcome.report.summary)
    if outcome.report.diagnostics:
        logger.warning(f"{len(outcome.report.diagnostics)} diagnostics recorded (see report)")

    paths = scanner.synthesizer.write(outcome.artifacts, config.output, base_name="scan-report")
    for fmt, path in paths.items():
        logger.info(f"Report generated: {path}")

    html = paths.get(ReportFormat.HTML)
    if html and not config.no_open:
        webbrowser.open(Path(html).resolve().as_uri())

    if outcome.critical_present:
        logger.error(f"{outcome.report.critical_count} critical findings")
        return EXIT_CRITICAL
    return EXIT_OK


def run_fuzz(args: argparse.Namespace, tool: ToolSettings, audit_logger: Optional[AuditLogger]) -> int:
    """Run a fuzz campaign."""
    config = FuzzConfig(
        path=args.path,
        timeout=tool.per_job_timeout if args.timeout is None else args.timeout,
        jobs=tool.job_count if args.jobs is None else args.jobs,
        output=args.output or tool.output_dir,
        campaign_timeout=args.campaign_timeout,
        timeouts_as_findings=args.timeouts_as_findings,
        timeout_severity=args.timeout_severity,
        execution_timeout=args.execution_timeout,
        seed=args.seed,
        seed_dir=args.seed_dir,
        formats=["markdown" if f.lower() == "md" else f.lower() for f in args.formats] or ["json"],
        plugin_dir=args.plugin_dir or tool.plugin_dir,
    )
    if args.max_executions is not None:
        config.max_executions_per_job = args.max_executions
    config.validate()

    registry = load_registry(config.plugin_dir, audit_logger)
    fuzzer = Fuzzer(config, registry=registry, audit_logger=audit_logger)
    targets = fuzzer.targets()

    logger.info(f"Fuzzing {len(targets)} targets with {config.jobs} workers")
    try:
        outcome = asyncio.run(fuzzer.run(targets))
    except KeyboardInterrupt:
        logger.info("Fuzz campaign interrupted by user")
        return EXIT_INTERRUPTED

    campaign = outcome.campaign
    _log_summary("CAMPAIGN INTERRUPTED" if campaign.interrupted else "CAMPAIGN COMPLETE", outcome.report.summary)
    logger.info(f"Jobs: {campaign.state_counts()}")
    logger.info(f"Statistics: {campaign.stats.to_dict()}")

    paths = fuzzer.synthesizer.write(outcome.artifacts, config.output, base_name="fuzz-report")
    for fmt, path in paths.items():
        logger.info(f"Report generated: {path}")
    if campaign.interrupted:
        logger.info("Fuzz campaign interrupted by user; partial report written")
        return EXIT_INTERRUPTED
    return EXIT_OK


def run_plugin(args: argparse.Namespace, tool: ToolSettings, audit_logger: Optional[AuditLogger]) -> int:
    """Run a plugin management action."""
    store = PluginStore(
        args.plugin_dir or tool.plugin_dir,
        reserved_rule_ids=RULE_CLASSES,
        audit_logger=audit_logger,
    )
    result = store.run(args.action, args.path)

    print(result.message)
    for descriptor in result.descriptors:
        capabilities = ", ".join(descriptor.capabilities)
        print(f"  {descriptor.name} {descriptor.version} (api {descriptor.api_version}) [{capabilities}]")
        for rule_id in descriptor.rule_ids:
            print(f"    rule {rule_id}")
        for name in descriptor.strategy_names:
            print(f"    strategy {name}")
    for error in result.errors:
        print(f"  rejected {error.plugin_name}: {error.reason}")

    return EXIT_OK if result.success else EXIT_CONFIG


COMMANDS = {
    "scan": run_scan,
    "fuzz": run_fuzz,
    "plugin": run_plugin,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose, args.quiet)

    audit_logger = None
    try:
        tool = load_settings(args)
        log_dir = args.log_dir or tool.log_dir
        if log_dir:
            audit_logger = AuditLogger(log_dir=log_dir, console_output=args.verbose)
        return COMMANDS[args.command](args, tool, audit_logger)
    except ConfigInvalid as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
