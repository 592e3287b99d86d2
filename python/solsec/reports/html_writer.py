"""HTML report writer using Jinja2 templates."""

from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .. import __version__
from ..results import AggregatedReport, Severity, canonical_json


# Inline template used when no template directory is configured
DEFAULT_HTML_TEMPLATE = '''<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{{ title }}</title>
    <style>
        * { box-sizing: border-box; margin: 0; padding: 0; }
        body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; background: #f5f5f5; }
        .container { max-width: 1200px; margin: 0 auto; padding: 20px; }
        header { background: #14142b; color: white; padding: 30px 0; margin-bottom: 30px; }
        header h1 { text-align: center; }
        .summary { display: grid; grid-template-columns: repeat(auto-fit, minmax(160px, 1fr)); gap: 20px; margin-bottom: 30px; }
        .card { background: white; border-radius: 8px; padding: 20px; box-shadow: 0 2px 4px rgba(0,0,0,0.1); }
        .card h3 { margin-bottom: 10px; color: #666; font-size: 0.9em; text-transform: uppercase; }
        .card .value { font-size: 2em; font-weight: bold; }
        .critical { color: #d32f2f; }
        .high { color: #f57c00; }
        .medium { color: #fbc02d; }
        .low { color: #388e3c; }
        .info { color: #1976d2; }
        .finding { background: white; border-radius: 8px; margin-bottom: 20px; overflow: hidden; box-shadow: 0 2px 4px rgba(0,0,0,0.1); }
        .finding-header { padding: 15px 20px; display: flex; justify-content: space-between; align-items: center; }
        .finding-header.critical { background: #ffebee; border-left: 4px solid #d32f2f; }
        .finding-header.high { background: #fff3e0; border-left: 4px solid #f57c00; }
        .finding-header.medium { background: #fffde7; border-left: 4px solid #fbc02d; }
        .finding-header.low { background: #e8f5e9; border-left: 4px solid #388e3c; }
        .finding-header.info { background: #e3f2fd; border-left: 4px solid #1976d2; }
        .finding-body { padding: 20px; border-top: 1px solid #eee; }
        .badge { padding: 4px 12px; border-radius: 20px; font-size: 0.8em; font-weight: bold; text-transform: uppercase; color: white; }
        .badge.critical { background: #d32f2f; }
        .badge.high { background: #f57c00; }
        .badge.medium { background: #fbc02d; color: #333; }
        .badge.low { background: #388e3c; }
        .badge.info { background: #1976d2; }
        .detail-grid { display: grid; grid-template-columns: repeat(2, 1fr); gap: 15px; margin-bottom: 15px; }
        .detail-item label { display: block; font-size: 0.8em; color: #666; margin-bottom: 4px; }
        .detail-item code { background: #f5f5f5; padding: 4px 8px; border-radius: 4px; font-size: 0.9em; }
        pre { background: #14142b; color: #fff; padding: 15px; border-radius: 4px; overflow-x: auto; margin-top: 10px; }
        .remediation { background: #e3f2fd; padding: 15px; border-radius: 4px; margin-top: 15px; }
        .remediation h4 { color: #1565c0; margin-bottom: 8px; }
        table { width: 100%; border-collapse: collapse; background: white; }
        th, td { text-align: left; padding: 8px 12px; border-bottom: 1px solid #eee; font-size: 0.9em; }
        h2 { margin: 30px 0 20px; }
        footer { text-align: center; padding: 30px; color: #666; font-size: 0.9em; }
    </style>
</head>
<body>
    <header>
        <div class="container">
            <h1>{{ title }}</h1>
            <p style="text-align:center; opacity:0.8; margin-top:10px;">Target: {{ target }}</p>
        </div>
    </header>

    <div class="container">
        <div class="summary">
            <div class="card">
                <h3>Total Findings</h3>
                <div class="value">{{ summary.total }}</div>
            </div>
            {% for severity in severities %}
            <div class="card">
                <h3>{{ severity|capitalize }}</h3>
                <div class="value {{ severity }}">{{ summary[severity] }}</div>
            </div>
            {% endfor %}
        </div>

        <h2>Findings</h2>
        {% for finding in findings %}
        <div class="finding" id="finding-{{ finding.id }}">
            <div class="finding-header {{ finding.severity }}">
                <div><strong>{{ finding.rule_id }}</strong> - {{ finding.message }}</div>
                <span class="badge {{ finding.severity }}">{{ finding.severity|upper }}</span>
            </div>
            <div class="finding-body">
                <div class="detail-grid">
                    <div class="detail-item">
                        <label>Location</label>
                        <code>{{ finding.location }}</code>
                    </div>
                    <div class="detail-item">
                        <label>Source</label>
                        <code>{{ finding.source }}</code>
                    </div>
                </div>

                {% if finding.description %}
                <p>{{ finding.description }}</p>
                {% endif %}

                {% if finding.occurrences|length > 1 %}
                <div class="detail-item" style="margin-top:15px;">
                    <label>Occurrences</label>
                    <ul style="margin-left:20px; margin-top:5px;">
                    {% for occurrence in finding.occurrences %}
                        <li><code>{{ occurrence }}</code></li>
                    {% endfor %}
                    </ul>
                </div>
                {% endif %}

                {% if finding.evidence %}
                <div class="detail-item" style="margin-top:15px;">
                    <label>Evidence</label>
                    {% for item in finding.evidence %}
                    <pre>{{ item }}</pre>
                    {% endfor %}
                </div>
                {% endif %}

                {% if finding.remediation %}
                <div class="remediation">
                    <h4>Remediation</h4>
                    <p>{{ finding.remediation }}</p>
                </div>
                {% endif %}
            </div>
        </div>
        {% else %}
        <div class="card" style="text-align:center; padding:40px;">
            <p style="color:#388e3c; font-size:1.2em;">No findings</p>
        </div>
        {% endfor %}

        <h2>Diagnostics</h2>
        {% if diagnostics %}
        <table>
            <tr><th>Kind</th><th>Source</th><th>Subject</th><th>Message</th></tr>
            {% for diagnostic in diagnostics %}
            <tr>
                <td>{{ diagnostic.kind }}</td>
                <td>{{ diagnostic.source }}</td>
                <td><code>{{ diagnostic.subject }}</code></td>
                <td>{{ diagnostic.message }}</td>
            </tr>
            {% endfor %}
        </table>
        {% else %}
        <div class="card"><p>No diagnostics recorded.</p></div>
        {% endif %}

        {% if metadata %}
        <h2>Run Details</h2>
        <table>
            {% for key, value in metadata %}
            <tr><th>{{ key }}</th><td><code>{{ value }}</code></td></tr>
            {% endfor %}
        </table>
        {% endif %}
    </div>

    <footer>
        <p>Generated by solsec {{ version }}</p>
    </footer>
</body>
</html>
'''


def format_value(value: Any) -> str:
    """Render a metadata value as stable text."""
    if isinstance(value, (dict, list, tuple)):
        return canonical_json(value)
    if value is None:
        return "-"
    return str(value)


class HTMLWriter:
    """Writes aggregated reports to HTML format."""

    def __init__(
        self,
        template_dir: Optional[str] = None,
        template_name: str = "report.html.jinja2"
    ):
        self.template_dir = template_dir
        self.template_name = template_name

    def _template(self):
        if self.template_dir:
            env = Environment(
                loader=FileSystemLoader(self.template_dir),
                autoescape=select_autoescape(["html", "xml", "jinja2"])
            )
            return env.get_template(self.template_name)
        env = Environment(autoescape=select_autoescape(["html", "xml"]))
        return env.from_string(DEFAULT_HTML_TEMPLATE)

    def _render(self, report: AggregatedReport) -> str:
        """Render HTML report."""
        metadata = report.metadata
        kind = metadata.get("kind", "scan")

        data = {
            "title": f"solsec {kind} report",
            "target": metadata.get("target", "N/A"),
            "summary": report.summary,
            "severities": [s.value for s in Severity.descending()],
            "findings": self._findings(report),
            "diagnostics": [d.to_dict() for d in report.diagnostics],
            "metadata": [(k, format_value(v)) for k, v in sorted(metadata.items())],
            "version": __version__,
        }
        return self._template().render(**data)

    @staticmethod
    def _findings(report: AggregatedReport) -> List[Dict[str, Any]]:
        return [
            {
                "id": f.id,
                "rule_id": f.rule_id,
                "severity": f.severity.value,
                "message": f.message,
                "description": f.description,
                "remediation": f.remediation,
                "location": str(f.location),
                "source": f.source,
                "occurrences": [str(o) for o in f.occurrences],
                "evidence": [canonical_json(item) for item in f.evidence],
            }
            for f in report.findings
        ]

    def to_string(self, report: AggregatedReport) -> str:
        """Render the report to an HTML string."""
        return self._render(report)
