"""
Console table — Renders candidates as an auto-sized, fixed-column text table.
"""

from __future__ import annotations

from ..models import Candidate, REPORT_COLUMNS


def render_table(candidates: list[Candidate]) -> str:
    """Return the table as a single string, rows in candidate order."""
    rows = [[row[col] for col in REPORT_COLUMNS] for row in (c.to_row() for c in candidates)]
    widths = [len(col) for col in REPORT_COLUMNS]
    for row in rows:
        for i, value in enumerate(row):
            widths[i] = max(widths[i], len(value))

    def fmt(values: list[str]) -> str:
        return "  ".join(f"{v:<{w}s}" for v, w in zip(values, widths)).rstrip()

    lines = [
        fmt(REPORT_COLUMNS),
        "  ".join("-" * w for w in widths),
    ]
    lines.extend(fmt(row) for row in rows)
    return "\n".join(lines)


def print_table(candidates: list[Candidate]) -> None:
    print()
    for line in render_table(candidates).splitlines():
        print(f"  {line}")
    print()
