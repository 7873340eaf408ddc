"""
Tests for the coverage resolver (gap detection, sub / lead search,
approved subs, all-day confirmations)
"""

import sys
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from daily_resolution.coverage import (
    REASON_NEW_HIRE_TRAINING,
    REASON_NO_CANDIDATES,
    detect_gaps,
    resolve_coverage,
)
from daily_resolution.models import (
    ApprovalStatus,
    ApprovalType,
    ApprovedSub,
    Client,
    ExceptionType,
    ScheduleException,
    SlotSource,
    StaffMember,
    TemplateAssignment,
)
from daily_resolution.schedule_config import AM, PM


def out(entity_id, exc_type=ExceptionType.STAFF):
    return ScheduleException(type=exc_type, entity_id=entity_id)


def both_blocks(staff_id, client_id):
    return [
        TemplateAssignment(weekday="mon", block=AM, staff_id=staff_id, client_id=client_id),
        TemplateAssignment(weekday="mon", block=PM, staff_id=staff_id, client_id=client_id),
    ]


@pytest.fixture
def staff():
    return [
        StaffMember(id="s1", name="Alice Adams"),
        StaffMember(id="s2", name="Ben Brooks", sub_eligible=True),
        StaffMember(id="s3", name="Cara Cole", sub_eligible=True),
        StaffMember(id="s6", name="Fay Fox", role="BCBA", sub_eligible=True),
    ]


@pytest.fixture
def clients():
    return [
        Client(id="c1", name="Noah North"),
        Client(id="c2", name="Mia Moore"),
    ]


@pytest.fixture
def template():
    return both_blocks("s1", "c1") + both_blocks("s2", "c2")


class TestGapDetection:
    """Test detect_gaps"""

    def test_gaps_ordered_am_first(self, staff, clients, template):
        gaps = detect_gaps(
            template,
            {s.id: s for s in staff},
            {c.id: c for c in clients},
            "mon",
            [out("s1"), out("s2")],
        )
        assert [(g.block, g.client_id) for g in gaps] == [(AM, "c1"), (AM, "c2"), (PM, "c1"), (PM, "c2")]

    def test_client_out_is_not_a_gap(self, staff, clients, template):
        gaps = detect_gaps(
            template,
            {s.id: s for s in staff},
            {c.id: c for c in clients},
            "mon",
            [out("s1"), out("c1", ExceptionType.CLIENT)],
        )
        assert gaps == []


class TestSubSearch:
    """Test sub proposals"""

    def test_sub_proposal_fields(self, staff, clients, template):
        outcome = resolve_coverage(template, staff, clients, "mon", [out("s1")])
        proposal = outcome.proposals[("c1", AM)]
        assert proposal.id == "sub-c1-AM-s3"
        assert proposal.type == ApprovalType.SUB_STAFFING
        assert proposal.status == ApprovalStatus.PENDING
        assert proposal.proposed_sub_id == "s3"
        assert proposal.proposed_sub_name == "Cara Cole"
        assert proposal.original_staff_id == "s1"
        assert proposal.client_name == "Noah North"
        assert outcome.proposals[("c1", PM)].proposed_sub_id == "s3"

    def test_busy_staff_not_proposed(self, staff, clients, template):
        # s2 is sub-eligible but is running c2's session
        outcome = resolve_coverage(template, staff, clients, "mon", [out("s1")])
        proposed = {a.proposed_sub_id for a in outcome.proposals.values()}
        assert "s2" not in proposed

    def test_non_direct_roles_never_proposed(self, staff, clients, template):
        outcome = resolve_coverage(template, staff, clients, "mon", [out("s1"), out("s3")])
        assert outcome.proposals == {}
        assert [(g.client_id, g.block) for g in outcome.exhausted] == [("c1", AM), ("c1", PM)]

    def test_focus_staff_before_name_order(self, staff, clients, template):
        staff.append(StaffMember(id="s9", name="Zed Zane", sub_eligible=True))
        clients[0].focus_staff_ids = ["s9"]
        outcome = resolve_coverage(template, staff, clients, "mon", [out("s1")])
        assert outcome.proposals[("c1", AM)].proposed_sub_id == "s9"

    def test_excluded_staff_skipped(self, staff, clients, template):
        clients[0].excluded_staff_ids = ["s3"]
        outcome = resolve_coverage(template, staff, clients, "mon", [out("s1")])
        assert outcome.proposals == {}
        assert all(g.exhausted_reason == REASON_NO_CANDIDATES for g in outcome.exhausted)

    def test_one_proposal_per_staff_per_block(self, staff, clients, template):
        outcome = resolve_coverage(template, staff, clients, "mon", [out("s1"), out("s2")])
        am = [a.proposed_sub_id for (cid, block), a in outcome.proposals.items() if block == AM]
        assert am == ["s3"]
        assert ("c2", AM) in {(g.client_id, g.block) for g in outcome.exhausted}


class TestLeadSearch:
    """Test lead fallback and reserve threshold"""

    def test_lead_reserve_when_few_leads(self, staff, clients, template):
        staff.append(StaffMember(id="l1", name="Evan Ellis", role="Lead RBT", lead_level=1))
        clients[0].lead_rbts_allowed = True
        outcome = resolve_coverage(template, staff, clients, "mon", [out("s1"), out("s3")])
        proposal = outcome.proposals[("c1", AM)]
        assert proposal.type == ApprovalType.LEAD_RESERVE
        assert proposal.id == "lead-c1-AM-l1"
        assert proposal.reason == "Using lead would leave only 0 leads available (below reserve threshold of 4)"

    def test_lead_staffing_above_threshold(self, staff, clients, template):
        for i, letter in enumerate("ABCDE"):
            staff.append(StaffMember(id=f"l{i}", name=f"Lead {letter}", role="Lead RBT", lead_level=1))
        clients[0].lead_rbts_allowed = True
        outcome = resolve_coverage(template, staff, clients, "mon", [out("s1"), out("s3")])
        proposal = outcome.proposals[("c1", AM)]
        assert proposal.type == ApprovalType.LEAD_STAFFING
        assert proposal.proposed_sub_name == "Lead A"
        assert proposal.reason == "Lead RBT assignment requires approval"

    def test_leads_not_used_in_sub_stage(self, staff, clients, template):
        staff.append(StaffMember(id="l1", name="Evan Ellis", role="Lead RBT", sub_eligible=True))
        outcome = resolve_coverage(template, staff, clients, "mon", [out("s1"), out("s3")])
        assert outcome.proposals == {}


class TestApprovedSubs:
    """Test that approved subs are applied instead of re-proposed"""

    def test_approved_sub_applied(self, staff, clients, template):
        approved = [ApprovedSub(client_id="c1", sub_staff_id="s3", block=AM)]
        outcome = resolve_coverage(template, staff, clients, "mon", [out("s1")], approved)
        applied = outcome.applied[("c1", AM)]
        assert applied.staff_id == "s3"
        assert applied.source == SlotSource.SUB
        assert ("c1", AM) not in outcome.proposals
        assert outcome.proposals[("c1", PM)].proposed_sub_id == "s3"

    def test_unavailable_approved_sub_falls_back_to_search(self, staff, clients, template):
        staff.append(StaffMember(id="s9", name="Zed Zane", sub_eligible=True))
        approved = [ApprovedSub(client_id="c1", sub_staff_id="s9", block=AM)]
        outcome = resolve_coverage(template, staff, clients, "mon", [out("s1"), out("s9")], approved)
        assert ("c1", AM) not in outcome.applied
        assert outcome.proposals[("c1", AM)].proposed_sub_id == "s3"

    def test_approved_sub_in_own_session_holds_slot(self, staff, clients, template):
        approved = [ApprovedSub(client_id="c1", sub_staff_id="s2", block=AM)]
        outcome = resolve_coverage(template, staff, clients, "mon", [out("s1")], approved)
        assert outcome.held == {("c1", AM): "s2"}
        assert ("c1", AM) not in outcome.applied
        assert ("c1", AM) not in outcome.proposals
        assert outcome.proposals[("c1", PM)].proposed_sub_id == "s3"
        assert outcome.exhausted == []

    def test_applied_both_blocks_gives_all_day(self, staff, clients, template):
        approved = [
            ApprovedSub(client_id="c1", sub_staff_id="s3", block=AM),
            ApprovedSub(client_id="c1", sub_staff_id="s3", block=PM),
        ]
        outcome = resolve_coverage(template, staff, clients, "mon", [out("s1")], approved)
        ids = [a.id for a in outcome.all_day]
        assert ids == ["all-day-c1-s3", "all-day-c2-s2"]


class TestAllDayAndProtection:
    """Test all-day confirmations and protected slots"""

    def test_all_day_emitted_regardless_of_flag(self, staff, clients, template):
        assert not clients[1].allow_all_day_same_staff
        outcome = resolve_coverage(template, staff, clients, "mon", [out("s1")])
        assert len(outcome.all_day) == 1
        approval = outcome.all_day[0]
        assert approval.type == ApprovalType.ALL_DAY_STAFFING
        assert approval.block == "ALL_DAY"
        assert approval.reason == "All-day staffing: Ben Brooks assigned to Mia Moore for both AM and PM"

    def test_approvals_order_proposals_then_all_day(self, staff, clients, template):
        outcome = resolve_coverage(template, staff, clients, "mon", [out("s1")])
        assert [a.id for a in outcome.approvals] == ["sub-c1-AM-s3", "sub-c1-PM-s3", "all-day-c2-s2"]

    def test_protected_slot_not_substituted(self, staff, clients, template):
        outcome = resolve_coverage(
            template, staff, clients, "mon", [out("s1")], protected_slots={("c1", PM)}
        )
        assert ("c1", PM) not in outcome.proposals
        assert [(g.client_id, g.block, g.exhausted_reason) for g in outcome.exhausted] == [
            ("c1", PM, REASON_NEW_HIRE_TRAINING)
        ]
