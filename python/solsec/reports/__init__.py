"""Report generation components."""

from .report_generator import ReportFormat, ReportSynthesizer
from .json_writer import JSONWriter
from .html_writer import HTMLWriter
from .markdown_writer import MarkdownWriter
from .csv_writer import CSVWriter

__all__ = [
    "ReportFormat",
    "ReportSynthesizer",
    "JSONWriter",
    "HTMLWriter",
    "MarkdownWriter",
    "CSVWriter",
]
