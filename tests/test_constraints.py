"""
Tests for input validation and result constraint checks
"""

import sys
from datetime import date
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from daily_resolution.constraints import (
    ConstraintChecker,
    ConstraintSeverity,
    ConstraintViolation,
    InputValidationError,
    collect_input_errors,
    validate_inputs,
)
from daily_resolution.engine import resolve_day
from daily_resolution.models import (
    ApprovalRequest,
    ApprovalType,
    Client,
    ClientCancelLink,
    DayInputs,
    ExceptionType,
    ResolutionResult,
    ScheduleException,
    StaffMember,
    TemplateAssignment,
    TrainingSession,
)

TODAY = date(2026, 3, 2)


@pytest.fixture
def inputs():
    return DayInputs(
        staff=[
            StaffMember(id="s1", name="Alice Adams"),
            StaffMember(id="s2", name="Ben Brooks"),
            StaffMember(id="s3", name="Cara Cole", sub_eligible=True),
        ],
        clients=[Client(id="c1", name="Noah North"), Client(id="c2", name="Mia Moore")],
        template=[
            TemplateAssignment(weekday="mon", block="AM", staff_id="s1", client_id="c1"),
            TemplateAssignment(weekday="mon", block="PM", staff_id="s1", client_id="c1"),
            TemplateAssignment(weekday="mon", block="AM", staff_id="s2", client_id="c2"),
        ],
    )


class TestInputValidation:
    """Test collect_input_errors / validate_inputs"""

    def test_clean_inputs(self, inputs):
        assert collect_input_errors(inputs) == []
        validate_inputs(inputs)

    def test_unknown_template_staff(self, inputs):
        inputs.template.append(TemplateAssignment(weekday="mon", block="AM", staff_id="ghost", client_id="c1"))
        assert collect_input_errors(inputs) == ["Template assignment #3: unknown staff id 'ghost'"]

    def test_invalid_block(self, inputs):
        inputs.template[0].block = "EVENING"
        assert collect_input_errors(inputs) == ["Template assignment #0: invalid block 'EVENING'"]

    def test_duplicate_ids(self, inputs):
        inputs.staff.append(StaffMember(id="s1", name="Alice Again"))
        assert "Duplicate staff ids: ['s1']" in collect_input_errors(inputs)

    def test_unknown_exception_entity(self, inputs):
        errors = collect_input_errors(inputs, [ScheduleException(type=ExceptionType.STAFF, entity_id="ghost")])
        assert errors == ["Exception: unknown staff id 'ghost'"]

    def test_training_and_links_checked(self, inputs):
        inputs.training_sessions.append(TrainingSession(id="t1", trainee_id="s9", client_id="c1", scheduled_block="AM"))
        inputs.cancel_links.append(ClientCancelLink(client_id="c1", linked_client_id="c9"))
        errors = collect_input_errors(inputs)
        assert "Training session 't1': unknown trainee id 's9'" in errors
        assert "Cancel link: unknown client id 'c9'" in errors

    def test_validate_raises_value_error(self, inputs):
        inputs.template[0].client_id = "c9"
        with pytest.raises(InputValidationError) as exc_info:
            validate_inputs(inputs)
        assert isinstance(exc_info.value, ValueError)
        assert "1 input error(s)" in str(exc_info.value)


class TestResultChecks:
    """Test ConstraintChecker on resolved days"""

    def test_resolved_day_has_no_hard_violations(self, inputs):
        result = resolve_day(inputs, [ScheduleException(type=ExceptionType.STAFF, entity_id="s1")], [], TODAY)
        hard, soft = ConstraintChecker(inputs).check_all(result)
        assert hard == []
        assert {v.constraint_type for v in soft} >= {"UNFILLED_SLOT"}

    def test_double_booking_detected(self, inputs):
        proposals = [
            ApprovalRequest(id=f"sub-{cid}-AM-s3", type=ApprovalType.SUB_STAFFING, client_id=cid,
                            client_name=name, block="AM", reason="", proposed_sub_id="s3",
                            proposed_sub_name="Cara Cole")
            for cid, name in (("c1", "Noah North"), ("c2", "Mia Moore"))
        ]
        result = ResolutionResult(resolution_date=TODAY, day_key="mon", approvals=proposals)
        violations = ConstraintChecker(inputs).check_double_booking(result)
        assert len(violations) == 1
        assert violations[0].constraint_type == "DOUBLE_BOOKING"

    def test_cancellation_exclusive(self, inputs):
        decisions = [
            ApprovalRequest(id="cancel-c1-AM", type=ApprovalType.CANCELLATION, client_id="c1",
                            client_name="Noah North", block="AM", reason=""),
            ApprovalRequest(id="cancel-skip-c1-AM", type=ApprovalType.CANCEL_SKIPPED, client_id="c1",
                            client_name="Noah North", block="AM", reason=""),
        ]
        result = ResolutionResult(resolution_date=TODAY, day_key="mon", approvals=decisions)
        hard, _ = ConstraintChecker(inputs).check_all(result)
        assert [v.constraint_type for v in hard] == ["CANCELLATION_EXCLUSIVE"]

    def test_excluded_proposal_flagged(self, inputs):
        inputs.clients[0].excluded_staff_ids = ["s3"]
        approval = ApprovalRequest(id="sub-c1-AM-s3", type=ApprovalType.SUB_STAFFING, client_id="c1",
                                   client_name="Noah North", block="AM", reason="",
                                   proposed_sub_id="s3", proposed_sub_name="Cara Cole")
        result = ResolutionResult(resolution_date=TODAY, day_key="mon", approvals=[approval])
        violations = ConstraintChecker(inputs).check_excluded_staff(result)
        assert [v.constraint_type for v in violations] == ["EXCLUDED_STAFF"]

    def test_violation_str(self):
        v = ConstraintViolation(
            severity=ConstraintSeverity.SOFT,
            constraint_type="UNFILLED_SLOT",
            description="No coverage resolved",
            block="AM",
            staff="Alice Adams",
        )
        assert str(v) == "[SOFT] UNFILLED_SLOT | block=AM | staff=Alice Adams | → No coverage resolved"
