"""Finding model, diagnostics and aggregation."""

from .severity import Severity
from .finding import (
    Finding,
    Location,
    canonical_json,
    content_fingerprint,
    make_finding_id,
    normalize_path,
)
from .diagnostics import (
    Diagnostic,
    RuleFailure,
    RULE_FAILURE,
    PLUGIN_LOAD_ERROR,
    TARGET_UNREACHABLE,
    CAMPAIGN_TIMEOUT,
    JOB_FAILED,
)
from .result_aggregator import (
    AggregatedReport,
    FindingCollector,
    ResultAggregator,
    aggregate,
    critical_present,
    presentation_key,
)

__all__ = [
    "Severity",
    "Finding",
    "Location",
    "canonical_json",
    "content_fingerprint",
    "make_finding_id",
    "normalize_path",
    "Diagnostic",
    "RuleFailure",
    "RULE_FAILURE",
    "PLUGIN_LOAD_ERROR",
    "TARGET_UNREACHABLE",
    "CAMPAIGN_TIMEOUT",
    "JOB_FAILED",
    "AggregatedReport",
    "FindingCollector",
    "ResultAggregator",
    "aggregate",
    "critical_present",
    "presentation_key",
]
