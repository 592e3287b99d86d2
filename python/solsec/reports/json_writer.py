"""JSON report writer."""

import json
from typing import Any, Dict

from .. import __version__
from ..results import AggregatedReport


class JSONWriter:
    """Writes aggregated reports to JSON format."""

    def __init__(self, pretty_print: bool = True, include_evidence: bool = True):
        self.pretty_print = pretty_print
        self.include_evidence = include_evidence

    def _format_report(self, report: AggregatedReport) -> Dict[str, Any]:
        """Format the report for JSON output."""
        data = report.to_dict()
        data["metadata"] = {
            "tool": "solsec",
            "version": __version__,
            **data["metadata"],
        }

        if not self.include_evidence:
            for finding in data["findings"]:
                finding.pop("evidence", None)

        data["by_severity"] = {
            severity: [f["id"] for f in data["findings"] if f["severity"] == severity]
            for severity in data["summary"]
            if severity != "total"
        }
        return data

    def to_string(self, report: AggregatedReport) -> str:
        """Convert the report to a JSON string."""
        data = self._format_report(report)
        if self.pretty_print:
            return json.dumps(data, indent=2, sort_keys=True, default=str) + "\n"
        return json.dumps(data, sort_keys=True, default=str)
