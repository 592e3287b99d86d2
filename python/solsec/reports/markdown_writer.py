"""Markdown report writer."""

from typing import List

from .. import __version__
from ..results import AggregatedReport, Severity, canonical_json
from .html_writer import format_value


class MarkdownWriter:
    """Writes aggregated reports to Markdown format."""

    def __init__(self, include_toc: bool = True, include_evidence: bool = True):
        self.include_toc = include_toc
        self.include_evidence = include_evidence

    def _render(self, report: AggregatedReport) -> str:
        """Render Markdown report."""
        lines: List[str] = []
        summary = report.summary
        metadata = report.metadata

        # Header
        lines.append(f"# solsec {metadata.get('kind', 'scan')} report")
        lines.append("")
        lines.append(f"**Target:** `{metadata.get('target', 'N/A')}`")
        lines.append("")

        # Table of Contents
        if self.include_toc and report.findings:
            lines.append("## Table of Contents")
            lines.append("")
            lines.append("- [Summary](#summary)")
            lines.append("- [Findings](#findings)")
            for i, finding in enumerate(report.findings, 1):
                lines.append(f"  - [{finding.rule_id}: {finding.message}](#finding-{i})")
            lines.append("- [Diagnostics](#diagnostics)")
            lines.append("")

        # Summary
        lines.append("## Summary")
        lines.append("")
        lines.append("| Severity | Count |")
        lines.append("|----------|-------|")
        for severity in Severity.descending():
            lines.append(f"| {severity.value.capitalize()} | {summary[severity.value]} |")
        lines.append(f"| **Total** | **{summary['total']}** |")
        lines.append("")

        if report.by_rule:
            lines.append("| Rule | Findings |")
            lines.append("|------|----------|")
            for rule_id, count in report.by_rule.items():
                lines.append(f"| {rule_id} | {count} |")
            lines.append("")

        # Findings
        lines.append("## Findings")
        lines.append("")

        if not report.findings:
            lines.append("**No findings.**")
            lines.append("")
        else:
            for i, finding in enumerate(report.findings, 1):
                lines.append(f"### {self._severity_marker(finding.severity)} Finding {i}: {finding.rule_id}")
                lines.append(f"<a id=\"finding-{i}\"></a>")
                lines.append("")
                lines.append(f"**{finding.message}**")
                lines.append("")
                lines.append("| Property | Value |")
                lines.append("|----------|-------|")
                lines.append(f"| Severity | {finding.severity.value.upper()} |")
                lines.append(f"| Location | `{finding.location}` |")
                lines.append(f"| Source | {finding.source} |")
                lines.append(f"| Id | `{finding.id}` |")
                lines.append("")

                if finding.description:
                    lines.append(finding.description)
                    lines.append("")

                if len(finding.occurrences) > 1:
                    lines.append("**Occurrences:**")
                    for occurrence in finding.occurrences:
                        lines.append(f"- `{occurrence}`")
                    lines.append("")

                if self.include_evidence and finding.evidence:
                    lines.append("**Evidence:**")
                    lines.append("```json")
                    for item in finding.evidence:
                        lines.append(canonical_json(item))
                    lines.append("```")
                    lines.append("")

                if finding.remediation:
                    lines.append("**Remediation:**")
                    lines.append(f"> {finding.remediation}")
                    lines.append("")
                lines.append("---")
                lines.append("")

        # Diagnostics
        lines.append("## Diagnostics")
        lines.append("")
        if report.diagnostics:
            lines.append("| Kind | Source | Subject | Message |")
            lines.append("|------|--------|---------|---------|")
            for d in report.diagnostics:
                lines.append(
                    f"| {d.kind} | {_cell(d.source)} | `{_cell(d.subject)}` | {_cell(d.message)} |"
                )
        else:
            lines.append("No diagnostics recorded.")
        lines.append("")

        if metadata:
            lines.append("## Run Details")
            lines.append("")
            for key, value in sorted(metadata.items()):
                lines.append(f"- **{key}:** `{format_value(value)}`")
            lines.append("")

        # Footer
        lines.append("---")
        lines.append(f"*Report generated by solsec {__version__}*")
        lines.append("")

        return "\n".join(lines)

    def _severity_marker(self, severity: Severity) -> str:
        """Get a marker for a severity level."""
        markers = {
            Severity.CRITICAL: "🔴",
            Severity.HIGH: "🟠",
            Severity.MEDIUM: "🟡",
            Severity.LOW: "🟢",
            Severity.INFO: "🔵",
        }
        return markers.get(severity, "⚪")

    def to_string(self, report: AggregatedReport) -> str:
        """Render the report to a Markdown string."""
        return self._render(report)


def _cell(text: str) -> str:
    return str(text).replace("|", "\\|").replace("\n", " ")
