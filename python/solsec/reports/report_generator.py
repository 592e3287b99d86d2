"""Multi-format report synthesis."""

from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Optional
import logging

from ..results import AggregatedReport
from .csv_writer import CSVWriter
from .html_writer import HTMLWriter
from .json_writer import JSONWriter
from .markdown_writer import MarkdownWriter

logger = logging.getLogger(__name__)


class ReportFormat(Enum):
    """Supported report formats."""
    JSON = "json"
    HTML = "html"
    MARKDOWN = "markdown"
    CSV = "csv"

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self]

    @property
    def is_document(self) -> bool:
        """Human-readable document form rather than structured data."""
        return self in (ReportFormat.HTML, ReportFormat.MARKDOWN)

    @classmethod
    def parse(cls, value) -> "ReportFormat":
        if isinstance(value, ReportFormat):
            return value
        name = str(value).strip().lower()
        if name == "md":
            name = "markdown"
        for fmt in cls:
            if fmt.value == name:
                return fmt
        raise ValueError(f"Unsupported report format: {value!r}")


_EXTENSIONS = {
    ReportFormat.JSON: "json",
    ReportFormat.HTML: "html",
    ReportFormat.MARKDOWN: "md",
    ReportFormat.CSV: "csv",
}


class ReportSynthesizer:
    """
    Renders an AggregatedReport into one or more formats.

    Supported formats:
    - JSON: Machine-readable with full details
    - HTML: Styled document (Jinja2)
    - Markdown: Human-readable documentation
    - CSV: One row per finding

    Rendering is pure: no timestamps or random ids are emitted, so the same
    report rendered twice yields identical text.
    """

    def __init__(self, template_dir: Optional[str] = None):
        self.template_dir = template_dir

        self._writers = {
            ReportFormat.JSON: JSONWriter(),
            ReportFormat.HTML: HTMLWriter(template_dir=template_dir),
            ReportFormat.MARKDOWN: MarkdownWriter(),
            ReportFormat.CSV: CSVWriter(),
        }

    def render(
        self,
        report: AggregatedReport,
        formats: Iterable = (ReportFormat.JSON,)
    ) -> Dict[ReportFormat, str]:
        """
        Render the report in each requested format.

        Args:
            report: Aggregated report
            formats: ReportFormat members or their names

        Returns:
            Dict mapping format to rendered text; only requested formats are computed
        """
        requested = []
        for fmt in formats:
            fmt = ReportFormat.parse(fmt)
            if fmt not in requested:
                requested.append(fmt)

        rendered = {}
        for fmt in sorted(requested, key=lambda f: f.value):
            rendered[fmt] = self._writers[fmt].to_string(report)
            logger.debug(f"Rendered {fmt.value} report ({len(rendered[fmt])} chars)")
        return rendered

    def write(
        self,
        rendered: Dict[ReportFormat, str],
        output_dir: str,
        base_name: str = "solsec-report"
    ) -> Dict[ReportFormat, str]:
        """
        Persist rendered artifacts.

        Args:
            rendered: Output of ``render``
            output_dir: Directory to write into (created if missing)
            base_name: File name without extension

        Returns:
            Dict mapping format to output path
        """
        directory = Path(output_dir).expanduser()
        directory.mkdir(parents=True, exist_ok=True)

        paths = {}
        for fmt, text in rendered.items():
            path = directory / f"{base_name}.{fmt.extension}"
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(text)
            paths[fmt] = str(path)
            logger.info(f"Wrote {fmt.value} report to {path}")
        return paths

    def to_string(self, report: AggregatedReport, format: str = "json") -> str:
        """Render a single format to a string."""
        fmt = ReportFormat.parse(format)
        return self.render(report, [fmt])[fmt]
