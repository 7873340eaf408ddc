"""
exporter.py - Export Layer for resolved days

Outputs:
  - CSV: flat (staff, block, value, source, client_id, reason) per slot
  - CSV: approvals queue, one row per ApprovalRequest
  - Excel (.xlsx): staff × slot grid plus Approvals / Lunch / Training sheets
  - Day report (.txt): metrics, approvals, lunch and training issues and
    the explainer summary

Usage:
  from daily_resolution.exporter import export_to_csv, export_to_excel, export_day_report
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from daily_resolution.engine import calculate_day_metrics
from daily_resolution.explainer import format_explainer_report
from daily_resolution.models import ResolutionResult
from daily_resolution.schedule_config import SLOT_ORDER

logger = logging.getLogger(__name__)

SLOT_FIELDS = ["staff_id", "staff", "status", "block", "value", "source", "client_id", "reason"]
APPROVAL_FIELDS = [
    "id", "type", "status", "client_id", "client_name", "block",
    "proposed_sub_id", "proposed_sub_name", "original_staff_id",
    "cancel_timing", "linked_client_ids", "reason", "skip_reason",
]


def _slot_rows(result: ResolutionResult) -> List[Dict[str, Any]]:
    rows = []
    for entry in result.schedule:
        for slot in entry.slots:
            rows.append({
                "staff_id": entry.staff_id,
                "staff": entry.staff_name,
                "status": entry.status.value,
                "block": slot.block,
                "value": slot.value,
                "source": slot.source.value,
                "client_id": slot.client_id or "",
                "reason": slot.reason or "",
            })
    return rows


def _approval_rows(result: ResolutionResult) -> List[Dict[str, Any]]:
    rows = []
    for a in result.approvals:
        rows.append({
            "id": a.id,
            "type": a.type.value,
            "status": a.status.value,
            "client_id": a.client_id,
            "client_name": a.client_name,
            "block": a.block,
            "proposed_sub_id": a.proposed_sub_id or "",
            "proposed_sub_name": a.proposed_sub_name or "",
            "original_staff_id": a.original_staff_id or "",
            "cancel_timing": a.cancel_timing or "",
            "linked_client_ids": ",".join(a.linked_client_ids),
            "reason": a.reason,
            "skip_reason": a.skip_reason or "",
        })
    return rows


# ---------------------------------------------------------------------------
# CSV Export
# ---------------------------------------------------------------------------

def export_to_csv(result: ResolutionResult, output_path: Path) -> None:
    """
    Export the assembled schedule to flat CSV, one row per staff slot.

    Args:
        result:      Output of engine.resolve_day()
        output_path: .csv file path
    """
    import csv
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=SLOT_FIELDS)
        writer.writeheader()
        for row in _slot_rows(result):
            writer.writerow(row)

    logger.info(f"CSV exported → {output_path}")


def export_approvals_csv(result: ResolutionResult, output_path: Path) -> None:
    """Export the approval queue (proposals, confirmations, cancellation decisions)."""
    import csv
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=APPROVAL_FIELDS)
        writer.writeheader()
        for row in _approval_rows(result):
            writer.writerow(row)

    logger.info(f"Approvals CSV exported → {output_path} ({len(result.approvals)} rows)")


# ---------------------------------------------------------------------------
# Excel Export
# ---------------------------------------------------------------------------

def export_to_excel(
    result: ResolutionResult,
    output_path: Path,
    slot_order: Optional[List[str]] = None,
) -> None:
    """
    Export the day to a formatted workbook.

    Sheets:
      Schedule   rows=staff, columns=slot (AM, LUNCH_1, LUNCH_2, PM)
      Approvals  one row per approval request
      Lunch      lunch coverage errors
      Training   proposed training session updates

    Args:
        result:      Output of engine.resolve_day()
        output_path: .xlsx file path
        slot_order:  Column order for the grid (defaults to time order)
    """
    import pandas as pd

    output_path.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(_slot_rows(result), columns=SLOT_FIELDS)

    if df.empty:
        grid = pd.DataFrame(columns=slot_order or SLOT_ORDER)
    else:
        grid = df.pivot_table(
            index="staff",
            columns="block",
            values="value",
            aggfunc=lambda x: "; ".join(x),
        )
        grid.columns.name = None
        order = slot_order or SLOT_ORDER
        available = [s for s in order if s in grid.columns]
        rest = [s for s in grid.columns if s not in order]
        grid = grid[available + rest]

    approvals = pd.DataFrame(_approval_rows(result), columns=APPROVAL_FIELDS)
    lunch = pd.DataFrame(
        [{"client_id": e.client_id, "client": e.client_name, "lunch_slot": e.lunch_slot, "reason": e.reason}
         for e in result.lunch_errors],
        columns=["client_id", "client", "lunch_slot", "reason"],
    )
    training = pd.DataFrame(
        [{"session_id": u.session_id, "new_status": u.new_status.value, "reason": u.reason}
         for u in result.training_updates],
        columns=["session_id", "new_status", "reason"],
    )

    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        grid.to_excel(writer, sheet_name="Schedule")
        _format_excel_grid(writer, "Schedule")
        for sheet_name, frame in (("Approvals", approvals), ("Lunch", lunch), ("Training", training)):
            frame.to_excel(writer, sheet_name=sheet_name, index=False)
            _format_excel_grid(writer, sheet_name)

    logger.info(f"Excel exported → {output_path}")


def _format_excel_grid(writer: Any, sheet_name: str) -> None:
    """Header styling, column widths and alternate row shading."""
    from openpyxl.styles import Alignment, Font, PatternFill

    ws = writer.sheets[sheet_name]
    header_fill = PatternFill("solid", fgColor="1F4E79")
    header_font = Font(bold=True, color="FFFFFF")

    for cell in ws[1]:
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = Alignment(horizontal="center")

    for col in ws.columns:
        max_len = max((len(str(c.value)) for c in col if c.value), default=8)
        ws.column_dimensions[col[0].column_letter].width = min(max_len + 2, 40)

    alt = PatternFill("solid", fgColor="EBF3FB")
    for i, row in enumerate(ws.iter_rows(min_row=2), start=2):
        if i % 2 == 0:
            for cell in row:
                cell.fill = alt


# ---------------------------------------------------------------------------
# Day Report
# ---------------------------------------------------------------------------

def export_day_report(
    result: ResolutionResult,
    output_path: Path,
    explainer: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Export the day report (text format) and return its text.

    Includes:
      - Staff status counts and slot counts by source
      - Approvals by type with pending / blocked totals
      - Every approval request, lunch coverage error and training update
      - The explainer summary, when a report dict is passed

    Args:
        result:      Output of engine.resolve_day()
        output_path: .txt file path
        explainer:   Output of explainer.build_explainer_report()
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    metrics = calculate_day_metrics(result)
    sep = "=" * 70
    rule = "─" * 70

    lines = [
        sep,
        f"  DAILY RESOLUTION REPORT: {metrics['date']} ({metrics['day_key'] or 'weekend'})",
        sep,
        "",
        f"  Staff scheduled:       {metrics['staff']}",
        f"  Out / Partial:         {metrics['out']} / {metrics['partial']}",
        f"  Unfilled slots:        {metrics['unfilled']}",
        f"  Pending approvals:     {metrics['pending']}",
        f"  Blocked approvals:     {metrics['blocked']}",
        f"  Lunch errors:          {metrics['lunch_errors']}",
        f"  Training updates:      {metrics['training_updates']}",
        "",
        rule,
        "  Slots by Source",
        rule,
    ]
    for source, count in metrics["slots_by_source"].items():
        lines.append(f"  {source:<16} {count:>4}")

    lines += ["", rule, "  Approvals", rule]
    if result.approvals:
        for a in result.approvals:
            lines.append(f"  {a}")
    else:
        lines.append("  (none)")

    lines += ["", rule, "  Lunch Coverage Errors", rule]
    if result.lunch_errors:
        for e in result.lunch_errors:
            lines.append(f"  {e.client_name:<24} {e.lunch_slot:<7} {e.reason}")
    else:
        lines.append("  (none)")

    lines += ["", rule, "  Training Session Updates", rule]
    if result.training_updates:
        for u in result.training_updates:
            lines.append(f"  {u.session_id:<16} {u.new_status.value:<10} {u.reason}")
    else:
        lines.append("  (none)")

    lines.append("")
    if explainer is not None:
        lines.append(format_explainer_report(explainer))
    lines.append(sep)

    report_text = "\n".join(lines)
    with open(output_path, "w") as f:
        f.write(report_text)

    logger.info(f"Day report exported → {output_path}")
    return report_text
