"""Severity taxonomy for findings."""

from enum import Enum
from typing import List


class Severity(Enum):
    """Finding severity, totally ordered from INFO to CRITICAL."""
    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Numeric rank (higher = more severe)."""
        return _RANKS[self]

    def __lt__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: str) -> "Severity":
        """Parse a severity name, accepting common aliases."""
        if isinstance(value, Severity):
            return value
        name = str(value).strip().lower()
        name = _ALIASES.get(name, name)
        for severity in cls:
            if severity.value == name:
                return severity
        raise ValueError(f"Unknown severity: {value!r}")

    @classmethod
    def descending(cls) -> List["Severity"]:
        """All severities, most severe first."""
        return sorted(cls, key=lambda s: s.rank, reverse=True)


_RANKS = {
    Severity.INFO: 0,
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}

_ALIASES = {
    "informational": "info",
    "information": "info",
    "note": "info",
    "moderate": "medium",
    "warning": "medium",
    "severe": "high",
}
