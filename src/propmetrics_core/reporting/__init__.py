"""Report formatting and the end-to-end report service."""
from .formatter import Table, format_percent
from .service import ReportService, RunResult, run_report

__all__ = ["ReportService", "RunResult", "Table", "format_percent", "run_report"]
