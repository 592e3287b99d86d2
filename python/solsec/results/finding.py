"""Finding data model shared by the rule engine and the fuzz orchestrator."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Optional, Tuple
import hashlib
import json
import posixpath
import re

from .severity import Severity


_WHITESPACE = re.compile(r"\s+")


def normalize_path(path: str) -> str:
    """Normalize a file path for comparison: POSIX separators, no './' prefix."""
    if not path:
        return ""
    normalized = posixpath.normpath(str(path).replace("\\", "/"))
    if normalized == ".":
        return ""
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def content_fingerprint(snippet: Optional[str]) -> str:
    """Whitespace-insensitive fingerprint of a code snippet or message."""
    if not snippet:
        return ""
    collapsed = _WHITESPACE.sub("", snippet)
    if not collapsed:
        return ""
    return hashlib.sha256(collapsed.encode()).hexdigest()[:16]


def canonical_json(value: Any) -> str:
    """Stable JSON encoding used for ids, evidence ordering and comparison."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


@dataclass(frozen=True)
class Location:
    """Where a finding was detected."""
    path: str
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    symbol: Optional[str] = None

    def __post_init__(self):
        if self.start_line is not None and self.end_line is None:
            object.__setattr__(self, "end_line", self.start_line)
        if self.end_line is not None and self.start_line is None:
            object.__setattr__(self, "start_line", self.end_line)

    @property
    def has_range(self) -> bool:
        return self.start_line is not None

    def normalized(self) -> "Location":
        """Copy with normalized path and whitespace-free symbol."""
        symbol = _WHITESPACE.sub("", self.symbol) if self.symbol else None
        return Location(
            path=normalize_path(self.path),
            start_line=self.start_line,
            end_line=self.end_line,
            symbol=symbol or None,
        )

    def overlaps(self, other: "Location") -> bool:
        """Check if the two line ranges intersect."""
        if not (self.has_range and other.has_range):
            return False
        return self.start_line <= other.end_line and other.start_line <= self.end_line

    def sort_key(self) -> Tuple[str, int, int, str]:
        return (
            normalize_path(self.path),
            self.start_line if self.start_line is not None else -1,
            self.end_line if self.end_line is not None else -1,
            self.symbol or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "symbol": self.symbol,
        }

    def __str__(self) -> str:
        text = self.path or "<unknown>"
        if self.has_range:
            if self.end_line != self.start_line:
                text += f":{self.start_line}-{self.end_line}"
            else:
                text += f":{self.start_line}"
        if self.symbol:
            text += f" ({self.symbol})"
        return text


def make_finding_id(rule_id: str, location: Location, fingerprint: str) -> str:
    """Deterministic id from rule id, location and content fingerprint."""
    loc = location.normalized()
    key = "|".join([
        rule_id,
        loc.path,
        str(loc.start_line or ""),
        str(loc.end_line or ""),
        loc.symbol or "",
        fingerprint,
    ])
    return hashlib.sha256(key.encode()).hexdigest()[:16]


@dataclass(frozen=True)
class Finding:
    """
    One detected issue.

    Findings are immutable. Deduplication never mutates a finding; it builds a
    new one whose ``occurrences`` reference every merged original location.
    """
    id: str
    rule_id: str
    severity: Severity
    location: Location
    message: str
    description: str = ""
    remediation: str = ""
    evidence: Tuple[Dict[str, Any], ...] = ()
    fingerprint: str = ""
    occurrences: Tuple[Location, ...] = ()
    source: str = "static"

    def __post_init__(self):
        if not isinstance(self.severity, Severity):
            object.__setattr__(self, "severity", Severity.parse(self.severity))
        if not isinstance(self.evidence, tuple):
            object.__setattr__(self, "evidence", tuple(self.evidence))
        if not self.occurrences:
            object.__setattr__(self, "occurrences", (self.location,))
        elif not isinstance(self.occurrences, tuple):
            object.__setattr__(self, "occurrences", tuple(self.occurrences))

    def __hash__(self) -> int:
        return hash(self.id)

    @classmethod
    def create(
        cls,
        rule_id: str,
        severity: Severity,
        location: Location,
        message: str,
        description: str = "",
        remediation: str = "",
        evidence: Optional[Iterable[Dict[str, Any]]] = None,
        snippet: Optional[str] = None,
        source: str = "static",
    ) -> "Finding":
        """
        Build a finding with a deterministic id.

        Args:
            rule_id: Rule or strategy that produced the finding
            severity: Finding severity
            location: Where the issue was found
            message: One-line summary
            description: Longer explanation
            remediation: How to fix it
            evidence: Structured evidence payloads
            snippet: Matched code or violation text, used for the fingerprint
            source: "static" or "fuzz"

        Returns:
            New Finding
        """
        fingerprint = content_fingerprint(snippet)
        return cls(
            id=make_finding_id(rule_id, location, fingerprint),
            rule_id=rule_id,
            severity=severity,
            location=location,
            message=message,
            description=description,
            remediation=remediation,
            evidence=tuple(evidence or ()),
            fingerprint=fingerprint,
            source=source,
        )

    def with_severity(self, severity: Severity) -> "Finding":
        return replace(self, severity=severity)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "severity": self.severity.value,
            "location": self.location.to_dict(),
            "message": self.message,
            "description": self.description,
            "remediation": self.remediation,
            "evidence": list(self.evidence),
            "fingerprint": self.fingerprint,
            "occurrences": [o.to_dict() for o in self.occurrences],
            "source": self.source,
        }
