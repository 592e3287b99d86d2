"""Base class for detection rules."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ...results import Finding, Location, Severity
from ..index import ProgramIndex
from ..source_model import ScanUnit


# Names that usually denote an account allowed to authorize an instruction
AUTHORITY_NAMES = (
    "authority",
    "owner",
    "admin",
    "signer",
    "payer",
    "creator",
    "initializer",
    "manager",
    "operator",
    "governor",
)


class Rule(ABC):
    """
    A static detection rule.

    Rules are pure with respect to the unit and index they receive: they read
    the parsed representation and return findings, never mutating shared
    state. Built-in rules and plugin-supplied rules share this contract.
    """

    languages: Tuple[str, ...] = ("rust",)

    def __init__(
        self,
        severity: Optional[Severity] = None,
        options: Optional[Dict[str, Any]] = None
    ):
        self._severity_override = Severity.parse(severity) if severity else None
        self.options = dict(options or {})

    @property
    @abstractmethod
    def rule_id(self) -> str:
        """Stable rule identifier (e.g., 'SOL-001')."""
        pass

    @property
    @abstractmethod
    def title(self) -> str:
        """Short human-readable rule name."""
        pass

    @property
    @abstractmethod
    def default_severity(self) -> Severity:
        """Severity used when no override is configured."""
        pass

    @property
    def description(self) -> str:
        return ""

    @property
    def remediation(self) -> str:
        return ""

    @property
    def severity(self) -> Severity:
        return self._severity_override or self.default_severity

    @property
    def severity_overridden(self) -> bool:
        return self._severity_override is not None

    def applies_to(self, unit: ScanUnit) -> bool:
        """Whether this rule should run on the unit."""
        return unit.language in self.languages

    @abstractmethod
    def evaluate(self, unit: ScanUnit, index: ProgramIndex) -> List[Finding]:
        """
        Evaluate the rule against one unit.

        Args:
            unit: Unit to analyze (read-only)
            index: Whole-program index (read-only)

        Returns:
            Findings produced for this unit
        """
        pass

    def option_list(self, key: str) -> List[str]:
        value = self.options.get(key, [])
        if isinstance(value, str):
            return [value]
        return [str(v) for v in value]

    def make_finding(
        self,
        unit: ScanUnit,
        line: int,
        message: str,
        end_line: Optional[int] = None,
        symbol: Optional[str] = None,
        severity: Optional[Severity] = None,
        evidence: Optional[Iterable[Dict[str, Any]]] = None,
        snippet: Optional[str] = None,
    ) -> Finding:
        """Build a finding for this rule at a unit location."""
        if snippet is None:
            snippet = unit.snippet(line, end_line)
        if self._severity_override:
            severity = self._severity_override
        return Finding.create(
            rule_id=self.rule_id,
            severity=severity or self.default_severity,
            location=Location(path=unit.path, start_line=line, end_line=end_line, symbol=symbol),
            message=message,
            description=self.description,
            remediation=self.remediation,
            evidence=evidence,
            snippet=snippet,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.rule_id})"
