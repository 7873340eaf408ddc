"""
assembler.py - Schedule Assembler

Merges template, coverage, cancellation and lunch outcomes into one
StaffSchedule per direct-service staff member (ordered by name, then id).
Each schedule has four slots in time order: AM, LUNCH_1, LUNCH_2, PM.

Source tags:
  template   the slot runs as authored
  sub / lead an applied substitution (or lunch pickup of another client)
  cancel     the client's session is pending cancellation
  unfilled   nothing resolved the slot; client_id is kept so the gap is visible
"""

import logging
from typing import Dict, List, Optional, Sequence

from daily_resolution.coverage import CoverageOutcome
from daily_resolution.eligibility import is_available, is_client_available
from daily_resolution.lunch import LunchPlan
from daily_resolution.models import (
    ApprovalRequest,
    ApprovalType,
    CANCELLATION_FAMILY,
    Client,
    LunchCoverageError,
    ScheduleException,
    ScheduleSlot,
    SlotSource,
    StaffMember,
    StaffSchedule,
    StaffStatus,
    TemplateAssignment,
)
from daily_resolution.schedule_config import (
    AM,
    BLOCK_WINDOWS,
    CANCEL_TIMING_DESCRIPTIONS,
    LUNCH_SLOT_FIRST,
    LUNCH_SLOT_SECOND,
    LUNCH_SLOTS,
    NON_DIRECT_ROLES,
    PM,
    VALUE_LUNCH,
    VALUE_OPEN,
    VALUE_OUT,
)

logger = logging.getLogger(__name__)


class _Context:
    """Lookups shared by every slot builder for one run."""

    def __init__(
        self,
        staff: Sequence[StaffMember],
        clients: Sequence[Client],
        assignments: Sequence[TemplateAssignment],
        weekday: str,
        exceptions: Sequence[ScheduleException],
        coverage: CoverageOutcome,
        decisions: Sequence[ApprovalRequest],
        lunch: LunchPlan,
    ):
        self.staff_by_id = {s.id: s for s in staff}
        self.clients_by_id = {c.id: c for c in clients}
        self.weekday = weekday
        self.exceptions = exceptions
        self.coverage = coverage
        self.lunch = lunch

        self.assignments_by_staff: Dict[str, Dict[str, List[TemplateAssignment]]] = {}
        for a in assignments:
            self.assignments_by_staff.setdefault(a.staff_id, {}).setdefault(a.block, []).append(a)
        for blocks in self.assignments_by_staff.values():
            for items in blocks.values():
                items.sort(key=lambda a: (a.client_id is None, a.client_id or ""))

        self.decision_by_client: Dict[str, ApprovalRequest] = {
            d.client_id: d for d in decisions if d.type in CANCELLATION_FAMILY
        }
        self.covering_by_staff: Dict[str, Dict[str, str]] = {}
        for (client_id, block), cov in coverage.applied.items():
            self.covering_by_staff.setdefault(cov.staff_id, {})[block] = client_id
        self.proposed_by_staff: Dict[str, Dict[str, ApprovalRequest]] = {}
        for (_client_id, block), approval in coverage.proposals.items():
            self.proposed_by_staff.setdefault(approval.proposed_sub_id, {})[block] = approval
        self.lunch_errors: Dict[tuple, LunchCoverageError] = {
            (e.client_id, e.lunch_slot): e for e in lunch.errors
        }

    def client_name(self, client_id: str) -> str:
        return self.clients_by_id[client_id].name


# ---------------------------------------------------------------------------
# Service blocks
# ---------------------------------------------------------------------------

def _out_slot(ctx: _Context, block: str, a: TemplateAssignment) -> ScheduleSlot:
    """Slot of a staff member who is out while their client is present."""
    key = (a.client_id, block)
    start, end = a.window()
    applied = ctx.coverage.applied.get(key)
    if applied is not None:
        sub = ctx.staff_by_id[applied.staff_id]
        return ScheduleSlot(block, VALUE_OUT, applied.source, a.client_id,
                            f"Covered by {sub.name}", start, end)

    proposal = ctx.coverage.proposals.get(key)
    if proposal is not None:
        return ScheduleSlot(block, VALUE_OUT, SlotSource.UNFILLED, a.client_id,
                            f"Awaiting {proposal.type.value} approval for {proposal.proposed_sub_name}",
                            start, end)

    held = ctx.coverage.held.get(key)
    if held is not None:
        return ScheduleSlot(block, VALUE_OUT, SlotSource.UNFILLED, a.client_id,
                            f"Approved sub {ctx.staff_by_id[held].name} is already in session", start, end)

    decision = ctx.decision_by_client.get(a.client_id)
    if decision is not None and decision.type == ApprovalType.CANCELLATION:
        reason = CANCEL_TIMING_DESCRIPTIONS.get(decision.cancel_timing, decision.reason)
        return ScheduleSlot(block, VALUE_OUT, SlotSource.CANCEL, a.client_id, reason, start, end)
    if decision is not None:
        return ScheduleSlot(block, VALUE_OUT, SlotSource.UNFILLED, a.client_id,
                            decision.skip_reason or decision.reason, start, end)

    return ScheduleSlot(block, VALUE_OUT, SlotSource.UNFILLED, a.client_id,
                        "No coverage resolved", start, end)


def build_block_slot(ctx: _Context, staff: StaffMember, block: str) -> ScheduleSlot:
    available = is_available(staff, ctx.weekday, block, ctx.exceptions)
    window_start, window_end = BLOCK_WINDOWS[block]

    covering = ctx.covering_by_staff.get(staff.id, {}).get(block)
    if covering is not None:
        applied = ctx.coverage.applied[(covering, block)]
        original = ctx.staff_by_id[applied.original_staff_id]
        return ScheduleSlot(block, ctx.client_name(covering), applied.source, covering,
                            f"Covering for {original.name}", window_start, window_end)

    for a in ctx.assignments_by_staff.get(staff.id, {}).get(block, []):
        if not a.client_id:
            continue
        start, end = a.window()
        client = ctx.clients_by_id[a.client_id]
        if not is_client_available(client, block, ctx.exceptions, (start, end)):
            return ScheduleSlot(block, VALUE_OPEN, SlotSource.UNFILLED, a.client_id,
                                "Client unavailable", start, end)
        if not is_available(staff, ctx.weekday, block, ctx.exceptions, (start, end)):
            return _out_slot(ctx, block, a)
        return ScheduleSlot(block, client.name, SlotSource.TEMPLATE, a.client_id, None, start, end)

    if not available:
        return ScheduleSlot(block, VALUE_OUT, SlotSource.TEMPLATE, None, None, window_start, window_end)

    proposal = ctx.proposed_by_staff.get(staff.id, {}).get(block)
    reason = None
    if proposal is not None:
        reason = f"Proposed for {proposal.client_name} ({proposal.type.value}, pending)"
    return ScheduleSlot(block, VALUE_OPEN, SlotSource.TEMPLATE, None, reason, window_start, window_end)


# ---------------------------------------------------------------------------
# Lunch sub-slots
# ---------------------------------------------------------------------------

def build_lunch_slot(ctx: _Context, staff: StaffMember, slot: str) -> ScheduleSlot:
    block = LUNCH_SLOTS[slot][0]
    start, end = BLOCK_WINDOWS[block]

    if staff.id not in ctx.lunch.eating:
        return ScheduleSlot(block, "", SlotSource.TEMPLATE, None, None, start, end)

    if ctx.lunch.eating[staff.id] == slot:
        own = [n.client_id for n in ctx.lunch.needs if n.staff_id == staff.id]
        for client_id in own:
            error = ctx.lunch_errors.get((client_id, slot))
            if error is not None:
                return ScheduleSlot(block, VALUE_LUNCH, SlotSource.UNFILLED, client_id, error.reason, start, end)
        return ScheduleSlot(block, VALUE_LUNCH, SlotSource.TEMPLATE, None, None, start, end)

    group = ctx.lunch.covering(slot, staff.id)
    if not group:
        return ScheduleSlot(block, VALUE_OPEN, SlotSource.TEMPLATE, None, None, start, end)

    own = {n.client_id for n in ctx.lunch.needs if n.staff_id == staff.id}
    others = [cid for cid in group if cid not in own]
    value = " + ".join(ctx.client_name(cid) for cid in group)
    if not others:
        return ScheduleSlot(block, value, SlotSource.TEMPLATE, group[0], None, start, end)
    return ScheduleSlot(block, value, SlotSource.SUB, others[0], "Lunch coverage", start, end)


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

def staff_status(staff: StaffMember, weekday: str, exceptions: Sequence[ScheduleException]) -> StaffStatus:
    out_blocks = [b for b in (AM, PM) if not is_available(staff, weekday, b, exceptions)]
    if len(out_blocks) == 2:
        return StaffStatus.OUT
    if out_blocks:
        return StaffStatus.PARTIAL
    return StaffStatus.ACTIVE


def assemble_schedule(
    staff: Sequence[StaffMember],
    clients: Sequence[Client],
    assignments: Sequence[TemplateAssignment],
    weekday: str,
    exceptions: Sequence[ScheduleException],
    coverage: CoverageOutcome,
    decisions: Sequence[ApprovalRequest],
    lunch: LunchPlan,
) -> List[StaffSchedule]:
    ctx = _Context(staff, clients, assignments, weekday, exceptions, coverage, decisions, lunch)
    roster = sorted(
        (s for s in staff if s.active and s.role not in NON_DIRECT_ROLES),
        key=lambda s: (s.name, s.id),
    )

    schedule: List[StaffSchedule] = []
    for member in roster:
        slots = [
            build_block_slot(ctx, member, AM),
            build_lunch_slot(ctx, member, LUNCH_SLOT_FIRST),
            build_lunch_slot(ctx, member, LUNCH_SLOT_SECOND),
            build_block_slot(ctx, member, PM),
        ]
        schedule.append(StaffSchedule(
            staff_id=member.id,
            staff_name=member.name,
            status=staff_status(member, weekday, exceptions),
            slots=slots,
        ))

    unfilled = sum(1 for s in schedule for slot in s.slots if slot.source == SlotSource.UNFILLED)
    logger.info(f"Assembled {len(schedule)} staff schedules ({unfilled} unfilled slots)")
    return schedule


def unfilled_slots(schedule: Sequence[StaffSchedule]) -> List[Dict[str, Optional[str]]]:
    """Flat list of unfilled slots, by staff order then time order."""
    rows: List[Dict[str, Optional[str]]] = []
    for entry in schedule:
        for slot in entry.slots:
            if slot.source == SlotSource.UNFILLED:
                rows.append({
                    "staff_id": entry.staff_id,
                    "staff_name": entry.staff_name,
                    "block": slot.block,
                    "client_id": slot.client_id,
                    "reason": slot.reason,
                })
    return rows
