"""Reporting package — console table and CSV output."""

from .console_table import render_table, print_table
from .csv_export import export_csv, report_path, ReportWriteError

__all__ = [
    "render_table",
    "print_table",
    "export_csv",
    "report_path",
    "ReportWriteError",
]
