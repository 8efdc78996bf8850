"""
Cycle payout report (.xlsx).

Creates a 3-tab workbook for one payout cycle:
  Tab 1: "Creator Payouts"    - one row per creator (from CyclePayoutResult)
  Tab 2: "Video Audit"        - one row per billed unit (pair or unpaired video)
  Tab 3: "Recompute Failures" - creators whose payout could not be computed

File naming: "Cycle {cycle_id} Payout Summary {start} to {end}.xlsx"

Formatting:
  - Bold header rows on all tabs
  - Auto-fit column widths (with min/max constraints)
  - Freeze top row (header) on all tabs
  - Currency format for money columns ($#,##0.00)
  - Comma-separated number format for view counts (#,##0)
"""

import os
import logging
from datetime import datetime
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

import config
from models.schemas import CyclePayoutResult, PayoutCycle, PayoutLine, RecomputeFailure

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
MIN_COL_WIDTH = 10      # Minimum column width (characters)
MAX_COL_WIDTH = 50      # Maximum column width (avoid super-wide columns)
HEADER_FONT = Font(bold=True)
CURRENCY_FORMAT = '$#,##0.00'
NUMBER_FORMAT = '#,##0'


# ===========================================================================
# Public API
# ===========================================================================

def generate_cycle_report(
    cycle: PayoutCycle,
    results: list[CyclePayoutResult],
    failures: Optional[list[RecomputeFailure]] = None,
    output_dir: Optional[str] = None,
) -> str:
    """
    Generate the .xlsx payout report for one cycle.

    Args:
        cycle:      The cycle the results belong to
        results:    One CyclePayoutResult per successfully computed creator
        failures:   Creators that could not be recomputed (Tab 3)
        output_dir: Directory to save the file (defaults to config.OUTPUT_DIR)

    Returns:
        Absolute file path of the generated .xlsx report.
    """
    if output_dir is None:
        output_dir = config.OUTPUT_DIR
    if failures is None:
        failures = []

    os.makedirs(output_dir, exist_ok=True)

    filename = (
        f"Cycle {cycle.id} Payout Summary "
        f"{cycle.start_date.date().isoformat()} to {cycle.end_date.date().isoformat()}.xlsx"
    )
    filepath = os.path.join(output_dir, filename)

    logger.info(f"Generating report: {filepath}")

    wb = Workbook()

    ws1 = wb.active
    ws1.title = "Creator Payouts"
    _build_creator_payouts_tab(ws1, results)

    ws2 = wb.create_sheet("Video Audit")
    _build_video_audit_tab(ws2, results)

    ws3 = wb.create_sheet("Recompute Failures")
    _build_failures_tab(ws3, failures)

    wb.save(filepath)
    logger.info(
        f"Report saved: {filepath} "
        f"({len(results)} creators, {len(failures)} failures)"
    )

    return filepath


# ===========================================================================
# Tab 1: Creator Payouts
# ===========================================================================

# (header, number format) per column; None leaves the cell unformatted
CREATOR_COLUMNS = [
    ("Creator ID", None),
    ("Paired Units", NUMBER_FORMAT),
    ("Unpaired Videos", NUMBER_FORMAT),
    ("Eligible Views", NUMBER_FORMAT),
    ("Base Pay", CURRENCY_FORMAT),
    ("Bonus Pay", CURRENCY_FORMAT),
    ("Total", CURRENCY_FORMAT),
    ("IG Rate", CURRENCY_FORMAT),
    ("TT Rate", CURRENCY_FORMAT),
    ("Default Rate", CURRENCY_FORMAT),
]


def _build_creator_payouts_tab(
    ws: Worksheet,
    results: list[CyclePayoutResult],
) -> None:
    """One row per creator, sorted by Total descending, then Creator ID."""
    rows = [
        [
            r.creator_id,
            r.paired_count,
            r.unpaired_count,
            r.eligible_views,
            float(r.base_pay),
            float(r.bonus_pay),
            float(r.total_amount),
            float(r.ig_rate),
            float(r.tt_rate),
            float(r.default_rate),
        ]
        for r in sorted(results, key=lambda r: (-r.total_amount, r.creator_id))
    ]
    _write_sheet(ws, CREATOR_COLUMNS, rows)


# ===========================================================================
# Tab 2: Video Audit
# ===========================================================================

AUDIT_COLUMNS = [
    ("Creator ID", None),
    ("Kind", None),
    ("Match Type", None),
    ("Posted At", None),
    ("Instagram ID", None),
    ("Instagram Views", NUMBER_FORMAT),
    ("TikTok ID", None),
    ("TikTok Views", NUMBER_FORMAT),
    ("Chosen Views", NUMBER_FORMAT),
    ("Tier Threshold", NUMBER_FORMAT),
    ("Base Pay", CURRENCY_FORMAT),
    ("Bonus Pay", CURRENCY_FORMAT),
    ("From Previous Cycle", None),
]


def _build_video_audit_tab(
    ws: Worksheet,
    results: list[CyclePayoutResult],
) -> None:
    """
    One row per billed unit (a pair or a single unpaired video).

    Unpaired rows leave the other platform's columns empty. Sorted by
    Creator ID, then the earliest posted_at of the unit.
    """
    units = [(r.creator_id, line) for r in results for line in r.lines]
    units.sort(key=lambda item: (item[0], _line_posted_at(item[1]) or datetime.max))

    rows = []
    for creator_id, line in units:
        ig = line.instagram_video
        tt = line.tiktok_video
        rows.append([
            creator_id,
            line.kind,
            line.match_type,
            _format_datetime(_line_posted_at(line)),
            ig.id if ig else None,
            ig.views if ig else None,
            tt.id if tt else None,
            tt.views if tt else None,
            line.chosen_views,
            line.tier.view_threshold if line.tier else None,
            float(line.base_pay),
            float(line.bonus_pay),
            "yes" if line.from_previous_cycle else None,
        ])
    _write_sheet(ws, AUDIT_COLUMNS, rows)


# ===========================================================================
# Tab 3: Recompute Failures
# ===========================================================================

FAILURE_COLUMNS = [("Creator ID", None), ("Cycle ID", None), ("Error", None)]


def _build_failures_tab(
    ws: Worksheet,
    failures: list[RecomputeFailure],
) -> None:
    rows = [[f.creator_id, f.cycle_id, f.error] for f in failures]
    _write_sheet(ws, FAILURE_COLUMNS, rows)


# ===========================================================================
# Sheet writer
# ===========================================================================

def _write_sheet(
    ws: Worksheet,
    columns: list[tuple[str, Optional[str]]],
    rows: list[list],
) -> None:
    """
    Write a bold, frozen header row and the data rows.

    Number formats are applied per column as rows are written; column widths
    track the longest rendered value, clamped to [MIN_COL_WIDTH, MAX_COL_WIDTH].
    """
    headers = [name for name, _ in columns]
    formats = [fmt for _, fmt in columns]
    widths = [len(name) for name in headers]

    ws.append(headers)
    for cell in ws[1]:
        cell.font = HEADER_FONT
        cell.alignment = Alignment(horizontal="center", vertical="center")
    ws.freeze_panes = "A2"

    for row_idx, values in enumerate(rows, start=2):
        ws.append(values)
        for col_idx, value in enumerate(values, start=1):
            if value is None:
                continue
            fmt = formats[col_idx - 1]
            if fmt is not None:
                ws.cell(row=row_idx, column=col_idx).number_format = fmt
            widths[col_idx - 1] = max(widths[col_idx - 1], len(str(value)))

    for col_idx, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(col_idx)].width = min(
            max(width + 2, MIN_COL_WIDTH), MAX_COL_WIDTH
        )


# ===========================================================================
# Data helpers
# ===========================================================================

def _line_posted_at(line: PayoutLine) -> Optional[datetime]:
    """Earliest posted_at among the line's videos."""
    stamps = [v.posted_at for v in line.videos if v.posted_at is not None]
    return min(stamps) if stamps else None


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.strftime("%Y-%m-%d %H:%M:%S")
