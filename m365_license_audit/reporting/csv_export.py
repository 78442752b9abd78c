"""
CSV exporter — Writes the candidate list to a dated, comma-separated file.
"""

from __future__ import annotations

import contextlib
import csv
import logging
import os
from datetime import date
from pathlib import Path
from typing import Optional

from ..models import Candidate, REPORT_COLUMNS
from ..config import DEFAULT_REPORT_PREFIX

logger = logging.getLogger("m365_license_audit.reporting")


class ReportWriteError(Exception):
    """Raised when the report file cannot be written."""
    def __init__(self, path: Path, reason: str):
        self.path = path
        super().__init__(f"Cannot write report to {path}: {reason}")


def report_path(
    output_dir: Path,
    run_date: Optional[date] = None,
    prefix: str = DEFAULT_REPORT_PREFIX,
) -> Path:
    """Report filename is prefix + ISO calendar date + .csv."""
    run_date = run_date or date.today()
    return Path(output_dir) / f"{prefix}{run_date.isoformat()}.csv"


def export_csv(
    candidates: list[Candidate],
    output_dir: Path,
    run_date: Optional[date] = None,
    prefix: str = DEFAULT_REPORT_PREFIX,
) -> Optional[Path]:
    """
    Write one row per candidate under a header row, overwriting any report
    from the same day.

    Returns:
        The created CSV path, or None when there are no candidates (no file
        is written in that case).
    """
    if not candidates:
        logger.info("No candidates — report file not written.")
        return None

    path = report_path(output_dir, run_date, prefix)
    # Only a complete report is moved to the dated path
    partial = path.with_name(path.name + ".partial")
    try:
        with open(partial, "w", newline="", encoding="utf-8") as fh:
            writer = csv.DictWriter(fh, fieldnames=REPORT_COLUMNS)
            writer.writeheader()
            for c in candidates:
                writer.writerow(c.to_row())
        os.replace(partial, path)
    except OSError as e:
        with contextlib.suppress(OSError):
            partial.unlink()
        raise ReportWriteError(path, e.strerror or str(e)) from e

    logger.info(f"Wrote {len(candidates)} rows to {path}")
    return path
