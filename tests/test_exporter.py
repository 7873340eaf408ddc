"""
Tests for CSV / Excel / text exports of a resolved day
"""

import csv
import sys
from datetime import date
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from daily_resolution.engine import resolve_day
from daily_resolution.explainer import build_explainer_report
from daily_resolution.exporter import (
    APPROVAL_FIELDS,
    SLOT_FIELDS,
    export_approvals_csv,
    export_day_report,
    export_to_csv,
    export_to_excel,
)
from daily_resolution.models import (
    Client,
    DayInputs,
    ExceptionType,
    ScheduleException,
    StaffMember,
    TemplateAssignment,
)

TODAY = date(2026, 3, 2)


@pytest.fixture
def inputs():
    staff = [
        StaffMember(id="s1", name="Alice Adams"),
        StaffMember(id="s2", name="Ben Brooks"),
        StaffMember(id="s3", name="Cara Cole", sub_eligible=True),
    ]
    clients = [Client(id="c1", name="Noah North"), Client(id="c2", name="Mia Moore")]
    template = [
        TemplateAssignment(weekday="mon", block=block, staff_id=staff_id, client_id=client_id)
        for staff_id, client_id in (("s1", "c1"), ("s2", "c2"))
        for block in ("AM", "PM")
    ]
    return DayInputs(staff=staff, clients=clients, template=template)


@pytest.fixture
def exceptions():
    return [ScheduleException(type=ExceptionType.STAFF, entity_id="s1")]


@pytest.fixture
def result(inputs, exceptions):
    return resolve_day(inputs, exceptions, [], TODAY)


def read_csv(path):
    with open(path, newline="") as f:
        return list(csv.DictReader(f))


class TestCsvExport:
    """Test flat CSV exports"""

    def test_one_row_per_slot(self, result, tmp_path):
        path = tmp_path / "out" / "day.csv"
        export_to_csv(result, path)
        rows = read_csv(path)
        assert len(rows) == 3 * 4
        assert list(rows[0].keys()) == SLOT_FIELDS
        assert rows[0]["staff"] == "Alice Adams"
        assert rows[0]["status"] == "OUT"
        assert rows[0]["block"] == "AM"

    def test_approvals(self, result, tmp_path):
        path = tmp_path / "approvals.csv"
        export_approvals_csv(result, path)
        rows = read_csv(path)
        assert list(rows[0].keys()) == APPROVAL_FIELDS
        assert [r["id"] for r in rows] == [a.id for a in result.approvals]
        assert rows[0]["proposed_sub_name"] == "Cara Cole"


class TestExcelExport:
    """Test the workbook layout"""

    def test_sheets(self, result, tmp_path):
        from openpyxl import load_workbook

        path = tmp_path / "day.xlsx"
        export_to_excel(result, path)
        wb = load_workbook(path)
        assert wb.sheetnames == ["Schedule", "Approvals", "Lunch", "Training"]
        header = [c.value for c in wb["Schedule"][1]]
        assert header == ["staff", "AM", "LUNCH_1", "LUNCH_2", "PM"]

    def test_weekend_exports(self, inputs, tmp_path):
        from openpyxl import load_workbook

        weekend = resolve_day(inputs, [], [], date(2026, 3, 7))
        path = tmp_path / "weekend.xlsx"
        export_to_excel(weekend, path)
        assert load_workbook(path).sheetnames == ["Schedule", "Approvals", "Lunch", "Training"]


class TestDayReport:
    """Test the text report"""

    def test_report_text(self, inputs, exceptions, result, tmp_path):
        path = tmp_path / "report.txt"
        explainer = build_explainer_report(result, inputs, exceptions)
        text = export_day_report(result, path, explainer=explainer)
        assert path.read_text() == text
        assert "DAILY RESOLUTION REPORT: 2026-03-02 (mon)" in text
        assert "DAILY SCHEDULE EXPLAINER" in text
        assert "proposed=Cara Cole" in text

    def test_report_without_explainer(self, inputs, tmp_path):
        weekend = resolve_day(inputs, [], [], date(2026, 3, 7))
        text = export_day_report(weekend, tmp_path / "weekend.txt")
        assert "(weekend)" in text
        assert "DAILY SCHEDULE EXPLAINER" not in text
