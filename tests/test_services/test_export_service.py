"""
Tests for export_service — CSV, Excel, and JSON renditions of a forest.
"""

import csv
import io
import json

from openpyxl import load_workbook

from orgchart.services import export_service
from orgchart.services.tree_builder import build_forest
from tests.conftest import make_position


def _forest():
    """Head A over B over C, plus orphan D."""
    records = [
        make_position("A", title="Director"),
        make_position("B", "A", title="Manager"),
        make_position("C", "B", title="Analyst"),
        make_position("D", "GONE", title="Contractor"),
    ]
    return build_forest(records, "D1", "A")


class TestFlatten:
    def test_rows_in_preorder_with_levels(self):
        rows = export_service.flatten_forest(_forest(), "A")

        assert [(r["id"], r["level"]) for r in rows] == [
            ("A", 0), ("B", 1), ("C", 2), ("D", 0),
        ]
        assert rows[0]["is_head"] and not rows[1]["is_head"]
        assert rows[3]["orphan_root"]
        assert rows[3]["reports_to_id"] == "GONE"


class TestCsvExport:
    def test_csv_indents_titles(self):
        buffer = export_service.export_tree_csv(_forest(), "A")
        text = buffer.getvalue().decode("utf-8-sig")
        rows = list(csv.reader(io.StringIO(text)))

        assert rows[0][0] == "Level"
        assert rows[1][1] == "Director"
        assert rows[3][1] == "        Analyst"
        assert rows[1][5] == "Yes"
        assert rows[4][6] == "Yes"
        assert len(rows) == 5


class TestExcelExport:
    def test_workbook_contents(self):
        buffer = export_service.export_tree_xlsx(_forest(), "A")
        ws = load_workbook(buffer).active

        assert ws.title == "Org Chart"
        assert ws.cell(row=1, column=1).value == "Level"
        assert ws.cell(row=1, column=1).font.bold
        assert ws.cell(row=4, column=2).value == "Analyst"
        assert ws.cell(row=4, column=2).alignment.indent == 2
        assert ws.cell(row=5, column=7).value == "Yes"
        assert ws.max_row == 5


class TestJsonExport:
    def test_nested_document(self):
        buffer = export_service.export_tree_json(_forest(), "D1", {"_id": "A"})
        document = json.loads(buffer.getvalue())

        assert document["department_id"] == "D1"
        assert document["head_position_id"] == "A"
        assert document["position_count"] == 4
        assert document["orphan_tree_count"] == 1
        assert document["trees"][0]["children"][0]["id"] == "B"

    def test_empty_forest(self):
        document = json.loads(export_service.export_tree_json([], "D1").getvalue())
        assert document["trees"] == []
        assert document["head_position_id"] is None
