"""Rule engine: dispatches detection rules over scan units."""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging
import time

from ..audit import AuditLogger
from ..orchestrator.scheduler import ExecutionMode
from ..results import Finding, FindingCollector, RuleFailure
from .index import ProgramIndex
from .rules.base import Rule
from .source_model import ScanUnit

logger = logging.getLogger(__name__)


@dataclass
class EngineResult:
    """Raw output of one engine run, before aggregation."""
    findings: List[Finding] = field(default_factory=list)
    failures: List[RuleFailure] = field(default_factory=list)
    rule_order: Dict[str, int] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)


class RuleEngine:
    """
    Evaluates rules against scan units.

    Units are processed in path order and rules in id order. In parallel
    mode each unit is handed to a worker thread; the units and the
    whole-program index are shared read-only and findings go into a
    thread-safe collector, so both modes produce the same aggregated set.
    A rule that raises is isolated into a RuleFailure and the run continues.
    """

    def __init__(
        self,
        mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
        max_workers: int = 4,
        audit_logger: Optional[AuditLogger] = None
    ):
        self.mode = mode
        self.max_workers = max(1, max_workers)
        self._audit_logger = audit_logger

    def run(self, units: Iterable[ScanUnit], rules: Iterable[Rule]) -> EngineResult:
        """
        Run every applicable rule over every unit.

        Args:
            units: Units to scan
            rules: Rules to evaluate (built-in and plugin-supplied)

        Returns:
            EngineResult with raw findings and isolated failures
        """
        ordered_units = sorted(units, key=lambda u: u.path)
        ordered_rules = list(rules)
        rule_order = {rule.rule_id: i for i, rule in enumerate(ordered_rules)}
        ordered_rules.sort(key=lambda r: r.rule_id)

        start = time.monotonic()
        index = ProgramIndex(ordered_units)
        collector = FindingCollector()

        logger.info(
            f"Evaluating {len(ordered_rules)} rules over {len(ordered_units)} units "
            f"({self.mode.name.lower()})"
        )

        if self.mode == ExecutionMode.PARALLEL and len(ordered_units) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="solsec-rule") as pool:
                futures = [
                    pool.submit(self._run_unit, unit, ordered_rules, index, collector)
                    for unit in ordered_units
                ]
                for future in futures:
                    future.result()
        else:
            for unit in ordered_units:
                self._run_unit(unit, ordered_rules, index, collector)

        failures = sorted(collector.failures, key=lambda f: (f.unit_path, f.rule_id))
        findings = list(collector.findings)
        stats = {
            "units": len(ordered_units),
            "rules": len(ordered_rules),
            "raw_findings": len(findings),
            "rule_failures": len(failures),
            "duration_seconds": round(time.monotonic() - start, 3),
        }
        logger.info(f"Rule pass produced {len(findings)} raw findings, {len(failures)} failures")

        return EngineResult(findings=findings, failures=failures, rule_order=rule_order, stats=stats)

    def _run_unit(
        self,
        unit: ScanUnit,
        rules: List[Rule],
        index: ProgramIndex,
        collector: FindingCollector
    ) -> None:
        """Evaluate all rules against one unit."""
        for rule in rules:
            try:
                if not rule.applies_to(unit):
                    continue
                produced = rule.evaluate(unit, index)
                findings, invalid = self._validate(produced)
                if invalid:
                    raise TypeError(f"evaluate() returned {invalid} non-Finding value(s)")
            except Exception as e:
                failure = RuleFailure(
                    rule_id=rule.rule_id,
                    unit_path=unit.path,
                    error_kind=type(e).__name__,
                    message=str(e),
                )
                collector.add_failure(failure)
                logger.warning(f"Rule {rule.rule_id} failed on {unit.path}: {type(e).__name__}: {e}")
                if self._audit_logger:
                    self._audit_logger.log_failure(failure.to_diagnostic().to_dict())
                continue

            collector.extend(findings)
            if self._audit_logger:
                self._audit_logger.log_rule(rule.rule_id, unit.path, len(findings))

    @staticmethod
    def _validate(produced: Any) -> Tuple[List[Finding], int]:
        if produced is None:
            return [], 0
        items = list(produced)
        findings = [f for f in items if isinstance(f, Finding)]
        return findings, len(items) - len(findings)
