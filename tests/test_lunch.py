"""
Tests for the lunch coverage resolver (sub-slot assignment, grouping,
restrictions and the peer exception)
"""

import sys
from pathlib import Path

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from daily_resolution.lunch import (
    REASON_EXCLUSION,
    REASON_GROUPING,
    REASON_NO_STAFF,
    resolve_lunch,
)
from daily_resolution.models import (
    Client,
    ExceptionType,
    ScheduleException,
    ServiceWindow,
    StaffMember,
    TemplateAssignment,
)
from daily_resolution.schedule_config import AM, PM


def am(staff_id, client_id, end=None):
    return TemplateAssignment(weekday="mon", block=AM, staff_id=staff_id, client_id=client_id, end_minute=end)


def pm(staff_id, client_id):
    return TemplateAssignment(weekday="mon", block=PM, staff_id=staff_id, client_id=client_id)


class TestSlotAssignment:
    """Test who eats when"""

    def test_pm_staff_eat_first_am_only_staff_eat_second(self):
        staff = [StaffMember(id="s1", name="Alice"), StaffMember(id="s2", name="Ben")]
        clients = [Client(id="c1", name="Noah"), Client(id="c2", name="Mia")]
        plan = resolve_lunch([am("s1", "c1"), pm("s1", "c1"), am("s2", "c2")], staff, clients, "mon", [])
        assert plan.eating == {"s1": "first", "s2": "second"}

    def test_no_lunch_staff_work_through(self):
        staff = [StaffMember(id="s1", name="Alice", no_lunch=True)]
        clients = [Client(id="c1", name="Noah")]
        plan = resolve_lunch([am("s1", "c1"), pm("s1", "c1")], staff, clients, "mon", [])
        assert plan.eating == {"s1": None}
        assert plan.errors == []

    def test_session_ending_before_lunch_needs_nobody(self):
        staff = [StaffMember(id="s1", name="Alice")]
        clients = [Client(id="c1", name="Noah")]
        plan = resolve_lunch([am("s1", "c1", end=660)], staff, clients, "mon", [])
        assert plan.needs == []
        assert plan.errors == []

    def test_declared_schedule_disabled_day(self):
        staff = [StaffMember(id="s1", name="Alice")]
        clients = [Client(id="c1", name="Noah", schedule={"mon": ServiceWindow(enabled=False)})]
        plan = resolve_lunch([am("s1", "c1"), pm("s1", "c1")], staff, clients, "mon", [])
        assert plan.needs == []

    def test_absent_client_needs_nobody(self):
        staff = [StaffMember(id="s1", name="Alice")]
        clients = [Client(id="c1", name="Noah")]
        exc = ScheduleException(type=ExceptionType.CLIENT, entity_id="c1")
        plan = resolve_lunch([am("s1", "c1"), pm("s1", "c1")], staff, clients, "mon", [exc])
        assert plan.needs == []


class TestLunchCoverage:
    """Test pairing and coverage errors"""

    def test_single_staff_ungroupable_client_errors(self):
        staff = [StaffMember(id="s1", name="Alice")]
        clients = [Client(id="c1", name="Noah", can_be_grouped=False)]
        plan = resolve_lunch([am("s1", "c1"), pm("s1", "c1")], staff, clients, "mon", [])
        assert len(plan.errors) == 1
        error = plan.errors[0]
        assert error.client_id == "c1"
        assert error.client_name == "Noah"
        assert error.lunch_slot == "first"
        assert error.reason == REASON_NO_STAFF
        assert error.reason.startswith("No legal lunch coverage available")

    def test_groupable_clients_cover_each_other(self):
        staff = [StaffMember(id="s1", name="Alice"), StaffMember(id="s2", name="Ben")]
        clients = [
            Client(id="c1", name="Noah", can_be_grouped=True),
            Client(id="c2", name="Mia", can_be_grouped=True),
        ]
        plan = resolve_lunch([am("s1", "c1"), pm("s1", "c1"), am("s2", "c2")], staff, clients, "mon", [])
        assert plan.errors == []
        assert plan.covering("first", "s2") == ["c2", "c1"]
        assert plan.covering("second", "s1") == ["c1", "c2"]

    def test_ungroupable_clients_error_in_both_slots(self):
        staff = [StaffMember(id="s1", name="Alice"), StaffMember(id="s2", name="Ben")]
        clients = [Client(id="c1", name="Noah"), Client(id="c2", name="Mia")]
        plan = resolve_lunch([am("s1", "c1"), pm("s1", "c1"), am("s2", "c2")], staff, clients, "mon", [])
        assert [(e.client_id, e.lunch_slot, e.reason) for e in plan.errors] == [
            ("c1", "first", REASON_GROUPING),
            ("c2", "second", REASON_GROUPING),
        ]

    def test_excluded_coverer(self):
        staff = [StaffMember(id="s1", name="Alice"), StaffMember(id="s2", name="Ben")]
        clients = [
            Client(id="c1", name="Noah", can_be_grouped=True, excluded_staff_ids=["s2"]),
            Client(id="c2", name="Mia", can_be_grouped=True),
        ]
        plan = resolve_lunch([am("s1", "c1"), pm("s1", "c1"), am("s2", "c2")], staff, clients, "mon", [])
        first = [e for e in plan.errors if e.lunch_slot == "first"]
        assert [(e.client_id, e.reason) for e in first] == [("c1", REASON_EXCLUSION)]

    def test_no_sub_client_still_groupable(self):
        staff = [StaffMember(id="s1", name="Alice"), StaffMember(id="s2", name="Ben")]
        clients = [
            Client(id="c1", name="Noah", can_be_grouped=True, allow_sub=False),
            Client(id="c2", name="Mia", can_be_grouped=True),
        ]
        plan = resolve_lunch([am("s1", "c1"), pm("s1", "c1"), am("s2", "c2")], staff, clients, "mon", [])
        assert plan.errors == []
        assert plan.covering("first", "s2") == ["c2", "c1"]

    def test_peer_list_still_restricts_no_sub_client(self):
        staff = [StaffMember(id="s1", name="Alice"), StaffMember(id="s2", name="Ben")]
        clients = [
            Client(id="c1", name="Noah", can_be_grouped=True, allow_sub=False, allowed_lunch_peer_ids=["c9"]),
            Client(id="c2", name="Mia", can_be_grouped=True),
        ]
        plan = resolve_lunch([am("s1", "c1"), pm("s1", "c1"), am("s2", "c2")], staff, clients, "mon", [])
        first = [e for e in plan.errors if e.lunch_slot == "first"]
        assert [(e.client_id, e.reason) for e in first] == [("c1", REASON_GROUPING)]

    def test_sibling_peer_exception(self):
        """Two allow_sub=False siblings listing each other as lunch peers are covered."""
        staff = [StaffMember(id="staff-1", name="Staff A"), StaffMember(id="staff-2", name="Staff B")]
        clients = [
            Client(id="client-1", name="Sibling A", focus_staff_ids=["staff-1"], allow_sub=False,
                   can_be_grouped=True, allowed_lunch_peer_ids=["client-2"]),
            Client(id="client-2", name="Sibling B", focus_staff_ids=["staff-2"], allow_sub=False,
                   can_be_grouped=True, allowed_lunch_peer_ids=["client-1"]),
        ]
        template = [am("staff-1", "client-1"), am("staff-2", "client-2"), pm("staff-2", "client-2")]
        plan = resolve_lunch(template, staff, clients, "mon", [])
        assert plan.errors == []
        assert plan.eating == {"staff-1": "second", "staff-2": "first"}
        assert plan.covering("first", "staff-1") == ["client-1", "client-2"]


class TestPmOnlyStaff:
    """Test staff whose day starts in the PM block"""

    def test_arriving_at_pm_start_is_not_on_site(self):
        staff = [StaffMember(id="s1", name="Alice"), StaffMember(id="s2", name="Ben")]
        clients = [Client(id="c1", name="Noah", can_be_grouped=True), Client(id="c2", name="Mia")]
        plan = resolve_lunch([am("s1", "c1"), pm("s2", "c2")], staff, clients, "mon", [])
        assert plan.eating == {"s1": "second"}
        assert [(e.client_id, e.lunch_slot, e.reason) for e in plan.errors] == [
            ("c1", "second", REASON_NO_STAFF),
        ]

    def test_arriving_by_noon_covers_second_slot(self):
        staff = [StaffMember(id="s1", name="Alice"), StaffMember(id="s2", name="Ben")]
        clients = [Client(id="c1", name="Noah", can_be_grouped=True), Client(id="c2", name="Mia")]
        early_pm = TemplateAssignment(weekday="mon", block=PM, staff_id="s2", client_id="c2", start_minute=720)
        plan = resolve_lunch([am("s1", "c1"), early_pm], staff, clients, "mon", [])
        assert plan.eating == {"s1": "second", "s2": "first"}
        assert plan.errors == []
        assert plan.covering("second", "s2") == ["c1"]
