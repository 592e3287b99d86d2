"""Result aggregation and deduplication."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
import logging
import threading

from .diagnostics import Diagnostic, RuleFailure
from .finding import Finding, Location, canonical_json, normalize_path
from .severity import Severity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregatedReport:
    """
    Deduplicated, ordered, immutable finding set.

    Findings are ordered severity descending, then location path ascending,
    then rule id ascending. Consumers (fail-on-critical gates, report diffing)
    rely on this order.
    """
    findings: Tuple[Finding, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def summary(self) -> Dict[str, int]:
        """Counts per severity plus total."""
        counts = {severity.value: 0 for severity in Severity.descending()}
        for finding in self.findings:
            counts[finding.severity.value] += 1
        counts["total"] = len(self.findings)
        return counts

    @property
    def by_rule(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for finding in self.findings:
            counts[finding.rule_id] = counts.get(finding.rule_id, 0) + 1
        return dict(sorted(counts.items()))

    @property
    def critical_count(self) -> int:
        return self.summary[Severity.CRITICAL.value]

    @property
    def has_critical(self) -> bool:
        return self.critical_count > 0

    def get_findings_by_severity(self, severity: Severity) -> List[Finding]:
        return [f for f in self.findings if f.severity == severity]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": dict(sorted(self.metadata.items())),
            "summary": self.summary,
            "by_rule": self.by_rule,
            "findings": [f.to_dict() for f in self.findings],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


def critical_present(report: AggregatedReport, fail_on_critical: bool) -> bool:
    """Signal used by the caller to decide a non-zero exit code."""
    return bool(fail_on_critical) and report.has_critical


def presentation_key(finding: Finding) -> Tuple:
    """Total order: severity desc, path asc, rule id asc, then stable tie-breakers."""
    loc = finding.location
    return (
        -finding.severity.rank,
        normalize_path(loc.path),
        finding.rule_id,
        loc.start_line if loc.start_line is not None else -1,
        loc.symbol or "",
        finding.id,
    )


class ResultAggregator:
    """
    Aggregates raw findings into an AggregatedReport.

    Two raw findings are duplicates iff they share ``rule_id`` and their
    normalized locations resolve to the same place:
    - equal content fingerprints (moved lines) within the same symbol, or
    - overlapping line ranges when both carry one, else
    - equal symbols when both carry one, else
    - both are file-level findings.
    Any other combination is not a duplicate. Groups are connected components
    of that relation, so the result does not depend on input order.
    """

    def __init__(self, rule_order: Optional[Mapping[str, int]] = None):
        self._rule_order: Dict[str, int] = dict(rule_order or {})
        self._raw: List[Finding] = []
        self._diagnostics: List[Diagnostic] = []

    def add_finding(self, finding: Finding) -> None:
        """Add a raw finding."""
        self._raw.append(finding)

    def add_findings(self, findings: Iterable[Finding]) -> int:
        """Add multiple raw findings, returning how many were added."""
        before = len(self._raw)
        self._raw.extend(findings)
        return len(self._raw) - before

    def add_diagnostic(self, diagnostic: Diagnostic) -> None:
        self._diagnostics.append(diagnostic)

    def add_failures(self, failures: Iterable[RuleFailure]) -> None:
        for failure in failures:
            self._diagnostics.append(failure.to_diagnostic())

    def build_report(self, metadata: Optional[Dict[str, Any]] = None) -> AggregatedReport:
        """Deduplicate and rank everything added so far."""
        return self.aggregate(self._raw, self._diagnostics, metadata)

    def aggregate(
        self,
        raw: Iterable[Finding],
        diagnostics: Iterable[Diagnostic] = (),
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AggregatedReport:
        """
        Pure aggregation of a raw finding set.

        Args:
            raw: Raw findings (order irrelevant)
            diagnostics: Isolated failures to report alongside findings
            metadata: Report metadata (target, kind, statistics)

        Returns:
            AggregatedReport
        """
        ordered = sorted(raw, key=self._canonical_key)
        merged = [self._merge(group) for group in self._group(ordered)]
        merged.sort(key=presentation_key)

        unique_diagnostics = sorted(set(diagnostics), key=Diagnostic.sort_key)

        if len(merged) < len(ordered):
            logger.debug(f"Merged {len(ordered)} raw findings into {len(merged)}")

        return AggregatedReport(
            findings=tuple(merged),
            diagnostics=tuple(unique_diagnostics),
            metadata=dict(metadata or {}),
        )

    def _group(self, findings: List[Finding]) -> List[List[Finding]]:
        """Partition findings into duplicate groups (union-find per bucket)."""
        buckets: Dict[Tuple[str, str], List[int]] = {}
        for i, finding in enumerate(findings):
            key = (finding.rule_id, normalize_path(finding.location.path))
            buckets.setdefault(key, []).append(i)

        parent = list(range(len(findings)))

        def find(i: int) -> int:
            while parent[i] != i:
                parent[i] = parent[parent[i]]
                i = parent[i]
            return i

        for members in buckets.values():
            for a_pos, a in enumerate(members):
                for b in members[a_pos + 1:]:
                    if self.is_duplicate(findings[a], findings[b]):
                        ra, rb = find(a), find(b)
                        if ra != rb:
                            parent[max(ra, rb)] = min(ra, rb)

        groups: Dict[int, List[Finding]] = {}
        for i, finding in enumerate(findings):
            groups.setdefault(find(i), []).append(finding)
        return [groups[root] for root in sorted(groups)]

    @staticmethod
    def is_duplicate(a: Finding, b: Finding) -> bool:
        """Check whether two findings describe the same issue."""
        if a.rule_id != b.rule_id:
            return False
        la, lb = a.location.normalized(), b.location.normalized()
        if la.path != lb.path:
            return False
        if a.fingerprint and a.fingerprint == b.fingerprint:
            if not (la.symbol and lb.symbol) or la.symbol == lb.symbol:
                return True
        if la.has_range and lb.has_range:
            return la.overlaps(lb)
        if la.symbol and lb.symbol:
            return la.symbol == lb.symbol
        # Conservative: only two file-level findings collapse
        return not (la.has_range or lb.has_range or la.symbol or lb.symbol)

    def _merge(self, group: List[Finding]) -> Finding:
        """Merge a duplicate group into one new finding."""
        representative = min(group, key=self._representative_key)

        evidence: Dict[str, Dict[str, Any]] = {}
        occurrences = set()
        for finding in group:
            for item in finding.evidence:
                evidence.setdefault(canonical_json(item), item)
            occurrences.update(finding.occurrences)

        return replace(
            representative,
            severity=max(f.severity for f in group),
            evidence=tuple(evidence[k] for k in sorted(evidence)),
            occurrences=tuple(sorted(occurrences, key=_occurrence_key)),
        )

    def _representative_key(self, finding: Finding) -> Tuple:
        return (
            -finding.severity.rank,
            self._rule_order.get(finding.rule_id, len(self._rule_order)),
            finding.location.sort_key(),
            finding.id,
            canonical_json(finding.to_dict()),
        )

    @staticmethod
    def _canonical_key(finding: Finding) -> Tuple:
        return (
            finding.rule_id,
            finding.location.sort_key(),
            finding.id,
            canonical_json(finding.to_dict()),
        )


def _occurrence_key(location: Location) -> Tuple:
    return location.sort_key() + (location.path,)


def aggregate(
    raw: Iterable[Finding],
    diagnostics: Iterable[Diagnostic] = (),
    rule_order: Optional[Mapping[str, int]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AggregatedReport:
    """Deduplicate and rank raw findings. Pure and order independent."""
    return ResultAggregator(rule_order=rule_order).aggregate(raw, diagnostics, metadata)


class FindingCollector:
    """
    Append-only, thread-safe accumulator for findings and failures.

    Parallel rule workers and fuzz workers append here; aggregation runs
    afterwards on a snapshot, single-threaded.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._findings: List[Finding] = []
        self._failures: List[RuleFailure] = []
        self._diagnostics: List[Diagnostic] = []

    def add(self, finding: Finding) -> None:
        with self._lock:
            self._findings.append(finding)

    def extend(self, findings: Iterable[Finding]) -> None:
        items = list(findings)
        with self._lock:
            self._findings.extend(items)

    def add_failure(self, failure: RuleFailure) -> None:
        with self._lock:
            self._failures.append(failure)

    def add_diagnostic(self, diagnostic: Diagnostic) -> None:
        with self._lock:
            self._diagnostics.append(diagnostic)

    @property
    def findings(self) -> Tuple[Finding, ...]:
        with self._lock:
            return tuple(self._findings)

    @property
    def failures(self) -> Tuple[RuleFailure, ...]:
        with self._lock:
            return tuple(self._failures)

    @property
    def diagnostics(self) -> Tuple[Diagnostic, ...]:
        with self._lock:
            return tuple(self._diagnostics)

    def __len__(self) -> int:
        with self._lock:
            return len(self._findings)
