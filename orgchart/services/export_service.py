"""
Export service — write a department's position forest to CSV, Excel, or JSON.

All export functions return a BytesIO buffer ready to be sent as
a Flask response with the appropriate content type.  Rows follow the
forest in pre-order, so reading down the sheet walks the chart.
"""

import csv
import io
import json
import logging
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from orgchart.models.organization import TreeNode
from orgchart.services.identifiers import normalize

logger = logging.getLogger(__name__)

# Excel header styling constants.
_HEADER_FONT = Font(bold=True, color="FFFFFF")
_HEADER_FILL = PatternFill(start_color="2B579A", end_color="2B579A", fill_type="solid")
_HEADER_ALIGN = Alignment(horizontal="center", wrap_text=True)
_ORPHAN_FONT = Font(italic=True, color="9C5700")

_HEADERS = [
    "Level",
    "Title",
    "Position Code",
    "Position ID",
    "Reports To ID",
    "Department Head",
    "Orphan Root",
]

# Spaces per level when indenting titles in CSV output.
_INDENT = "    "


def flatten_forest(forest: list[TreeNode], head_position_id: Any = None) -> list[dict[str, Any]]:
    """
    Flatten a forest into one row per node, pre-order.

    Rows from an orphan tree carry ``orphan_root=True`` on the tree's
    root only.
    """
    head_key = normalize(head_position_id)
    rows: list[dict[str, Any]] = []
    for tree in forest:
        for node, depth in tree.walk():
            rows.append({
                "level": depth,
                "title": node.position.title,
                "code": node.position.code,
                "id": node.id,
                "reports_to_id": node.position.parent_key,
                "is_head": bool(head_key) and node.id == head_key,
                "orphan_root": node.is_orphan_root,
            })
    return rows


# =========================================================================
# CSV
# =========================================================================

def export_tree_csv(forest: list[TreeNode], head_position_id: Any = None) -> io.BytesIO:
    """
    Export a position forest to CSV.

    Titles are indented by level so the hierarchy survives a plain
    spreadsheet view.

    Returns:
        BytesIO buffer containing the CSV data.
    """
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(_HEADERS)

    for row in flatten_forest(forest, head_position_id):
        writer.writerow([
            row["level"],
            f"{_INDENT * row['level']}{row['title']}",
            row["code"],
            row["id"],
            row["reports_to_id"],
            _yes_no(row["is_head"]),
            _yes_no(row["orphan_root"]),
        ])

    # Convert to bytes for Flask response.
    buffer = io.BytesIO()
    buffer.write(output.getvalue().encode("utf-8-sig"))
    buffer.seek(0)
    return buffer


# =========================================================================
# Excel
# =========================================================================

def export_tree_xlsx(forest: list[TreeNode], head_position_id: Any = None) -> io.BytesIO:
    """
    Export a position forest to an Excel workbook.

    Titles use cell indentation instead of leading spaces; orphan roots
    are set in italics.

    Returns:
        BytesIO buffer containing the .xlsx data.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Org Chart"
    _write_header_row(ws, _HEADERS)

    for row_idx, row in enumerate(flatten_forest(forest, head_position_id), start=2):
        ws.cell(row=row_idx, column=1, value=row["level"])
        title = ws.cell(row=row_idx, column=2, value=row["title"])
        title.alignment = Alignment(indent=min(row["level"], 15))
        if row["orphan_root"]:
            title.font = _ORPHAN_FONT
        ws.cell(row=row_idx, column=3, value=row["code"])
        ws.cell(row=row_idx, column=4, value=row["id"])
        ws.cell(row=row_idx, column=5, value=row["reports_to_id"] or None)
        ws.cell(row=row_idx, column=6, value=_yes_no(row["is_head"]))
        ws.cell(row=row_idx, column=7, value=_yes_no(row["orphan_root"]))

    ws.freeze_panes = "A2"
    _auto_fit_columns(ws)

    buffer = io.BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return buffer


# =========================================================================
# JSON
# =========================================================================

def export_tree_json(
    forest: list[TreeNode],
    department_id: Any = None,
    head_position_id: Any = None,
) -> io.BytesIO:
    """
    Export a position forest as nested JSON.

    Returns:
        BytesIO buffer containing UTF-8 JSON.
    """
    document = {
        "department_id": normalize(department_id) or None,
        "head_position_id": normalize(head_position_id) or None,
        "position_count": sum(tree.size() for tree in forest),
        "orphan_tree_count": sum(1 for tree in forest if tree.is_orphan_root),
        "trees": [tree.to_dict() for tree in forest],
    }
    buffer = io.BytesIO(json.dumps(document, indent=2).encode("utf-8"))
    buffer.seek(0)
    return buffer


# =========================================================================
# Internal helpers
# =========================================================================

def _write_header_row(ws, headers: list[str]) -> None:
    """Write a styled header row to an Excel worksheet."""
    for col_idx, header in enumerate(headers, start=1):
        cell = ws.cell(row=1, column=col_idx, value=header)
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = _HEADER_ALIGN


def _auto_fit_columns(ws) -> None:
    """Auto-fit column widths based on content (approximate)."""
    for col in ws.columns:
        max_length = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value:
                max_length = max(max_length, len(str(cell.value)))
        ws.column_dimensions[col_letter].width = min(max_length + 4, 40)


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else ""
