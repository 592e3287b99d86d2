"""Scan and fuzz pipelines as used by the command-line layer."""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
import asyncio
import logging
import signal

from .analysis import RuleEngine, Rule, ScanUnit, builtin_rules, discover_units, discover_fuzz_harnesses
from .audit import AuditLogger
from .config import FuzzConfig, RuleConfig, ScanConfig
from .errors import ConfigInvalid
from .fuzzing import FuzzStrategy, FuzzTarget, SeedCorpus, command_targets, default_strategies
from .orchestrator import ExecutionMode
from .orchestrator.campaign import FUZZ_RULE_ORDER, INTERRUPTED, Campaign, TransitionObserver
from .orchestrator.orchestrator import FuzzOrchestrator, OrchestratorConfig
from .plugins import PluginRegistry
from .reports import ReportFormat, ReportSynthesizer
from .results import AggregatedReport, RuleFailure, aggregate, critical_present

logger = logging.getLogger(__name__)


@dataclass
class ScanOutcome:
    """What a scan hands back to its caller."""
    report: AggregatedReport
    artifacts: Dict[ReportFormat, str] = field(default_factory=dict)
    critical_present: bool = False
    failures: List[RuleFailure] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)


class Scanner:
    """
    Static scan pipeline.

    Discovery -> rule engine -> aggregation -> report synthesis. Configuration
    errors surface as ConfigInvalid before any unit is scanned; rule faults
    and plugin rejections end up as diagnostics in the report.
    """

    def __init__(
        self,
        config: ScanConfig,
        registry: Optional[PluginRegistry] = None,
        audit_logger: Optional[AuditLogger] = None,
        synthesizer: Optional[ReportSynthesizer] = None
    ):
        self.config = config
        self.registry = registry
        self._audit_logger = audit_logger
        self.synthesizer = synthesizer or ReportSynthesizer()

    def build_rules(self, rule_config: RuleConfig) -> List[Rule]:
        """Built-in rules followed by plugin rules, minus disabled ones."""
        rules = builtin_rules(rule_config)
        if self.registry is not None:
            rules.extend(
                rule for rule in self.registry.list_rules()
                if rule_config.is_enabled(rule.rule_id)
            )
        return rules

    def run(self, units: Optional[Sequence[ScanUnit]] = None) -> ScanOutcome:
        """
        Scan ``config.path`` (or the given units) and render the report.

        Args:
            units: Pre-built units; discovered from ``config.path`` when omitted

        Returns:
            ScanOutcome with the report, rendered artifacts and critical signal

        Raises:
            ConfigInvalid: Malformed configuration, raised before scanning
        """
        self.config.validate()
        formats = self.config.resolve_formats()
        rule_config = self.config.load_rules()
        rules = self.build_rules(rule_config)

        if units is None:
            root = Path(self.config.path)
            if not root.exists():
                raise ConfigInvalid(f"path does not exist: {self.config.path}", key="path")
            units = discover_units(root, rule_config.ignore_paths)

        if self._audit_logger:
            self._audit_logger.start_session({
                "kind": "scan",
                "target": self.config.path,
                "rules": [r.rule_id for r in rules],
            })

        engine = RuleEngine(
            mode=ExecutionMode.parse(self.config.mode),
            max_workers=self.config.max_workers,
            audit_logger=self._audit_logger,
        )
        result = engine.run(units, rules)

        diagnostics = [f.to_diagnostic() for f in result.failures]
        if self.registry is not None:
            diagnostics.extend(self.registry.diagnostics())

        report = aggregate(
            result.findings,
            diagnostics,
            rule_order=result.rule_order,
            metadata={
                "kind": "scan",
                "target": self.config.path,
                "units": result.stats["units"],
                "rules": result.stats["rules"],
                "raw_findings": result.stats["raw_findings"],
                "min_severity": rule_config.min_severity.value,
            },
        )
        report = self._filter(report, rule_config)

        if self._audit_logger:
            for finding in report.findings:
                self._audit_logger.log_finding(finding.to_dict())
            self._audit_logger.end_session(report.summary)

        artifacts = self.synthesizer.render(report, formats)
        logger.info(
            f"Scan complete: {report.summary['total']} findings "
            f"({report.critical_count} critical), {len(result.failures)} rule failures"
        )

        return ScanOutcome(
            report=report,
            artifacts=artifacts,
            critical_present=critical_present(report, self.config.fail_on_critical),
            failures=list(result.failures),
            stats=result.stats,
        )

    @staticmethod
    def _filter(report: AggregatedReport, rule_config: RuleConfig) -> AggregatedReport:
        """Drop findings below the configured minimum severity."""
        threshold = rule_config.min_severity
        kept = tuple(f for f in report.findings if f.severity >= threshold)
        if len(kept) == len(report.findings):
            return report
        logger.debug(f"Filtered {len(report.findings) - len(kept)} findings below {threshold.value}")
        return replace(report, findings=kept)


@dataclass
class FuzzOutcome:
    """A terminal campaign and its rendered report."""
    campaign: Campaign
    report: AggregatedReport
    artifacts: Dict[ReportFormat, str] = field(default_factory=dict)


class Fuzzer:
    """
    Fuzz pipeline: harness discovery, strategy selection and a campaign run.
    """

    def __init__(
        self,
        config: FuzzConfig,
        registry: Optional[PluginRegistry] = None,
        audit_logger: Optional[AuditLogger] = None,
        synthesizer: Optional[ReportSynthesizer] = None,
        on_transition: Optional[TransitionObserver] = None
    ):
        self.config = config
        self.registry = registry
        self._audit_logger = audit_logger
        self.synthesizer = synthesizer or ReportSynthesizer()
        self.orchestrator = FuzzOrchestrator(
            self._orchestrator_config(config),
            audit_logger=audit_logger,
            on_transition=on_transition,
        )

    @staticmethod
    def _orchestrator_config(config: FuzzConfig) -> OrchestratorConfig:
        config.validate()
        return OrchestratorConfig(
            job_count=config.jobs,
            per_job_timeout=config.timeout,
            campaign_timeout=config.campaign_timeout,
            max_executions_per_job=config.max_executions_per_job,
            execution_timeout=config.execution_timeout,
            timeouts_as_findings=config.timeouts_as_findings,
            timeout_severity=config.timeout_severity,
            crash_severity=config.crash_severity,
            violation_severity=config.violation_severity,
            grace_period=config.grace_period,
            seed=config.seed,
        )

    def strategies(self) -> List[FuzzStrategy]:
        strategies = default_strategies()
        if self.registry is not None:
            strategies.extend(self.registry.list_strategies())
        return strategies

    def targets(self) -> List[FuzzTarget]:
        """Harness executables found under ``config.path``."""
        root = Path(self.config.path)
        if not root.exists():
            raise ConfigInvalid(f"path does not exist: {self.config.path}", key="path")
        harnesses = discover_fuzz_harnesses(root)
        if not harnesses:
            raise ConfigInvalid(f"no fuzz harness executables found under {self.config.path}", key="path")
        source_root = root if root.is_dir() else root.parent
        return command_targets(harnesses, source_root)

    def corpus(self) -> SeedCorpus:
        if self.config.seed_dir:
            return SeedCorpus.from_directory(Path(self.config.seed_dir))
        return SeedCorpus()

    async def run(self, targets: Optional[Sequence[FuzzTarget]] = None) -> FuzzOutcome:
        """
        Run a campaign against the discovered (or given) targets.

        Ctrl-C cancels the campaign cooperatively: running jobs are cancelled
        and findings proven so far are still reported.

        Returns:
            FuzzOutcome with the terminal campaign and rendered report
        """
        targets = list(targets) if targets is not None else self.targets()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self.orchestrator.cancel, INTERRUPTED)
            handles_sigint = True
        except (NotImplementedError, RuntimeError):
            # Windows event loops and non-main threads
            handles_sigint = False

        try:
            campaign = await self.orchestrator.run_campaign(
                targets,
                self.strategies(),
                corpus=self.corpus(),
            )
        finally:
            if handles_sigint:
                loop.remove_signal_handler(signal.SIGINT)
        if campaign.interrupted:
            logger.warning(f"Campaign interrupted; reporting {len(campaign.findings)} findings found so far")

        diagnostics = list(campaign.diagnostics)
        if self.registry is not None:
            diagnostics.extend(self.registry.diagnostics())
        report = aggregate(
            campaign.findings,
            diagnostics,
            rule_order=FUZZ_RULE_ORDER,
            metadata={**campaign.report.metadata, "target": self.config.path},
        )

        artifacts = self.synthesizer.render(report, self.config.formats)
        return FuzzOutcome(campaign=campaign, report=report, artifacts=artifacts)
