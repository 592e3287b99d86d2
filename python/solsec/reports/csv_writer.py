"""CSV report writer, one row per finding and one per diagnostic."""

import csv
import io

from ..results import AggregatedReport


COLUMNS = [
    "record",
    "id",
    "rule_id",
    "severity",
    "path",
    "start_line",
    "end_line",
    "symbol",
    "message",
    "source",
    "occurrences",
]


class CSVWriter:
    """Writes aggregated reports to CSV format."""

    def to_string(self, report: AggregatedReport) -> str:
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=COLUMNS, lineterminator="\n")
        writer.writeheader()

        for finding in report.findings:
            loc = finding.location
            writer.writerow({
                "record": "finding",
                "id": finding.id,
                "rule_id": finding.rule_id,
                "severity": finding.severity.value,
                "path": loc.path,
                "start_line": "" if loc.start_line is None else loc.start_line,
                "end_line": "" if loc.end_line is None else loc.end_line,
                "symbol": loc.symbol or "",
                "message": finding.message,
                "source": finding.source,
                "occurrences": len(finding.occurrences),
            })

        # Diagnostics reuse the columns: kind as rule_id, subject as path
        for diagnostic in report.diagnostics:
            writer.writerow({
                "record": "diagnostic",
                "rule_id": diagnostic.kind,
                "path": diagnostic.subject,
                "message": diagnostic.message,
                "source": diagnostic.source,
            })

        return buffer.getvalue()
