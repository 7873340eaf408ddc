"""
Tests for the training session impactor
"""

import sys
from datetime import date
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from daily_resolution.models import (
    Client,
    ExceptionType,
    ScheduleException,
    StaffMember,
    TrainingSession,
    TrainingStatus,
)
from daily_resolution.training import impact_training, new_hire_training_slots, todays_sessions

TODAY = date(2026, 3, 2)


def out(entity_id, exc_type=ExceptionType.STAFF):
    return ScheduleException(type=exc_type, entity_id=entity_id)


@pytest.fixture
def staff():
    return [
        StaffMember(id="s1", name="Alice Adams"),
        StaffMember(id="s2", name="Ben Brooks"),
        StaffMember(id="s7", name="Gus Green", hire_date=date(2026, 2, 16)),
    ]


@pytest.fixture
def clients():
    return [Client(id="c1", name="Noah North")]


@pytest.fixture
def session():
    return TrainingSession(
        id="t1", trainee_id="s7", client_id="c1", trainer_id="s1",
        scheduled_date=TODAY, scheduled_block="PM",
    )


class TestImpact:
    """Test blocked / disrupted transitions"""

    def test_no_impact_when_everyone_present(self, staff, clients, session):
        assert impact_training([session], staff, clients, "mon", [], TODAY) == []

    def test_trainee_out_blocks(self, staff, clients, session):
        [update] = impact_training([session], staff, clients, "mon", [out("s7")], TODAY)
        assert update.session_id == "t1"
        assert update.new_status == TrainingStatus.BLOCKED
        assert update.reason == "Trainee Gus Green is unavailable (marked OUT)"

    def test_client_out_blocks(self, staff, clients, session):
        [update] = impact_training([session], staff, clients, "mon", [out("c1", ExceptionType.CLIENT)], TODAY)
        assert update.new_status == TrainingStatus.BLOCKED
        assert update.reason == "Training client Noah North is unavailable"

    def test_trainer_out_disrupts(self, staff, clients, session):
        [update] = impact_training([session], staff, clients, "mon", [out("s1")], TODAY)
        assert update.new_status == TrainingStatus.DISRUPTED
        assert update.reason == "Assigned trainer Alice Adams is unavailable"

    def test_preferred_trainer_used_when_no_trainer(self, staff, clients, session):
        session.trainer_id = None
        session.preferred_trainer_id = "s2"
        [update] = impact_training([session], staff, clients, "mon", [out("s2")], TODAY)
        assert update.reason == "Assigned trainer Ben Brooks is unavailable"

    def test_trainee_checked_before_trainer(self, staff, clients, session):
        [update] = impact_training([session], staff, clients, "mon", [out("s1"), out("s7")], TODAY)
        assert update.new_status == TrainingStatus.BLOCKED


class TestSessionSelection:
    """Test which sessions are considered today"""

    def test_other_dates_and_statuses_ignored(self, session):
        other_day = TrainingSession(id="t2", trainee_id="s7", client_id="c1",
                                    scheduled_date=date(2026, 3, 3), scheduled_block="AM")
        completed = TrainingSession(id="t3", trainee_id="s7", client_id="c1",
                                    scheduled_date=TODAY, scheduled_block="AM", status="completed")
        paused = TrainingSession(id="t4", trainee_id="s7", client_id="c1",
                                 scheduled_date=TODAY, scheduled_block="AM", plan_status="paused")
        no_block = TrainingSession(id="t5", trainee_id="s7", client_id="c1", scheduled_date=TODAY)
        selected = todays_sessions([no_block, paused, completed, other_day, session], TODAY)
        assert [s.id for s in selected] == ["t1"]

    def test_new_hire_slots(self, staff, session):
        staff_by_id = {s.id: s for s in staff}
        assert new_hire_training_slots([session], staff_by_id, TODAY) == {("c1", "PM")}

    def test_new_hire_override_clears_slot(self, staff, session):
        staff[2].new_hire_override = True
        assert new_hire_training_slots([session], {s.id: s for s in staff}, TODAY) == set()

    def test_non_new_hire_track_ignored(self, staff, session):
        session.training_track = "skill_up"
        assert new_hire_training_slots([session], {s.id: s for s in staff}, TODAY) == set()
