"""
Portfolio export: Excel (openpyxl) and CSV.

Both renderers take the dict produced by
``report_service.portfolio_report`` and return in-memory bytes; nothing
is written to disk.
"""

import csv
import io
import logging
from datetime import datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

logger = logging.getLogger(__name__)

RAG_FILLS = {
    "GREEN": PatternFill(start_color="27AE60", end_color="27AE60", fill_type="solid"),
    "YELLOW": PatternFill(start_color="F39C12", end_color="F39C12", fill_type="solid"),
    "RED": PatternFill(start_color="E74C3C", end_color="E74C3C", fill_type="solid"),
}
WHITE_FONT = Font(color="FFFFFF", bold=True)
HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

# (header, metrics key)
PROJECT_COLUMNS = [
    ("Project", "project_name"),
    ("Status", "status"),
    ("Priority", "priority"),
    ("Health", "health"),
    ("Tasks", "total_tasks"),
    ("Completed", "completed_tasks"),
    ("Overdue", "overdue_tasks"),
    ("Completion %", "task_completion_rate"),
    ("Budget", "total_budget"),
    ("Spent", "spent_budget"),
    ("Utilization %", "budget_utilization"),
    ("Schedule %", "schedule_performance"),
    ("Start", "start_date"),
    ("End", "end_date"),
]
HEALTH_COLUMN = 4


def _apply_header_style(ws, row: int, col_count: int) -> None:
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    """Size columns to their content (capped at 60 chars)."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value is not None:
                max_len = max(max_len, min(len(str(cell.value)), 60))
        ws.column_dimensions[col_letter].width = max(max_len + 4, 12)


def export_portfolio_xlsx(portfolio: dict, organization_name: str) -> bytes:
    """Two sheets: a summary with the health distribution, and one row per project."""
    wb = Workbook()
    summary = portfolio["summary"]

    # ── Sheet 1: Summary ──────────────────────────────────────────────
    ws = wb.active
    ws.title = "Summary"
    ws.merge_cells("A1:D1")
    ws["A1"] = f"Portfolio Report: {organization_name}"
    ws["A1"].font = Font(size=16, bold=True)
    ws["A2"] = f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}"
    ws["A2"].font = Font(size=10, italic=True, color="666666")

    row = 4
    ws.cell(row=row, column=1, value="Metric")
    ws.cell(row=row, column=2, value="Value")
    _apply_header_style(ws, row, 2)
    for label, key in [
        ("Projects", "total_projects"),
        ("Active projects", "active_projects"),
        ("Tasks", "total_tasks"),
        ("Completed tasks", "completed_tasks"),
        ("Overdue tasks", "overdue_tasks"),
        ("Completion %", "task_completion_rate"),
        ("Total budget", "total_budget"),
        ("Spent", "spent_budget"),
        ("Utilization %", "budget_utilization"),
    ]:
        row += 1
        ws.cell(row=row, column=1, value=label).border = THIN_BORDER
        ws.cell(row=row, column=2, value=summary.get(key)).border = THIN_BORDER

    row += 2
    ws.cell(row=row, column=1, value="Health")
    ws.cell(row=row, column=2, value="Projects")
    _apply_header_style(ws, row, 2)
    for health, count in summary["health_distribution"].items():
        row += 1
        rag_cell = ws.cell(row=row, column=1, value=health)
        rag_cell.fill = RAG_FILLS[health]
        rag_cell.font = WHITE_FONT
        rag_cell.alignment = Alignment(horizontal="center")
        rag_cell.border = THIN_BORDER
        ws.cell(row=row, column=2, value=count).border = THIN_BORDER
    _auto_width(ws)

    # ── Sheet 2: Projects ─────────────────────────────────────────────
    ws2 = wb.create_sheet("Projects")
    for col, (header, _) in enumerate(PROJECT_COLUMNS, 1):
        ws2.cell(row=1, column=col, value=header)
    _apply_header_style(ws2, 1, len(PROJECT_COLUMNS))

    for i, project in enumerate(portfolio["projects"], 2):
        for col, (_, key) in enumerate(PROJECT_COLUMNS, 1):
            cell = ws2.cell(row=i, column=col, value=project.get(key))
            cell.border = THIN_BORDER
        health_cell = ws2.cell(row=i, column=HEALTH_COLUMN)
        health_cell.fill = RAG_FILLS.get(project.get("health"), PatternFill())
        health_cell.font = WHITE_FONT
        health_cell.alignment = Alignment(horizontal="center")
    ws2.freeze_panes = "A2"
    _auto_width(ws2)

    buf = io.BytesIO()
    wb.save(buf)
    logger.info("Portfolio xlsx generated: projects=%d", len(portfolio["projects"]))
    return buf.getvalue()


def export_portfolio_csv(portfolio: dict) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow([header for header, _ in PROJECT_COLUMNS])
    for project in portfolio["projects"]:
        writer.writerow(["" if project.get(key) is None else project.get(key) for _, key in PROJECT_COLUMNS])
    return buf.getvalue()
