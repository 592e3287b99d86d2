"""Structured diagnostics for isolated, non-fatal failures."""

from dataclasses import dataclass
from typing import Any, Dict, Tuple


# Diagnostic kinds
RULE_FAILURE = "rule_failure"
PLUGIN_LOAD_ERROR = "plugin_load_error"
TARGET_UNREACHABLE = "target_unreachable"
CAMPAIGN_TIMEOUT = "campaign_timeout"
JOB_FAILED = "job_failed"


@dataclass(frozen=True)
class Diagnostic:
    """A recovered failure reported alongside findings."""
    kind: str
    source: str
    subject: str
    message: str

    def sort_key(self) -> Tuple[str, str, str, str]:
        return (self.kind, self.source, self.subject, self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "source": self.source,
            "subject": self.subject,
            "message": self.message,
        }


@dataclass(frozen=True)
class RuleFailure:
    """One rule could not evaluate one unit."""
    rule_id: str
    unit_path: str
    error_kind: str
    message: str = ""

    def to_diagnostic(self) -> Diagnostic:
        return Diagnostic(
            kind=RULE_FAILURE,
            source=self.rule_id,
            subject=self.unit_path,
            message=f"{self.error_kind}: {self.message}" if self.message else self.error_kind,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "unit_path": self.unit_path,
            "error_kind": self.error_kind,
            "message": self.message,
        }
