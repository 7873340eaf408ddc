"""
lunch.py - Lunch Coverage Resolver

The lunch window (11:30 – 12:30) is split into two 30-minute sub-slots:

  first   11:30 – 12:00   eaten by staff who continue into PM
  second  12:00 – 12:30   eaten by staff whose day ends at the AM/lunch boundary

no_lunch staff never eat and can cover both sub-slots.

Every client whose AM session reaches 11:30 stays on site over lunch. In each
sub-slot, a client whose own staff is eating (or away) must be picked up by a
staff member who is present and not eating then. The coverer already
supervises its own lunch client(s); the newcomer must be groupable with all of
them:

  can_add_to_group   can_be_grouped, peer lists, slot bans, disallowed combos,
                     group-size allowances

allow_sub only governs substitution; it never blocks lunch coverage. Sibling
clients share lunch through their allowed_lunch_peer_ids lists.

Staff who only work PM are on site from their first PM session start. They
count for lunch only when that start falls inside the lunch window, and cover
only the sub-slots that begin after they arrive.

Clients with no legal coverer produce a LunchCoverageError for that sub-slot.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from daily_resolution.coverage import AppliedCoverage, SlotKey
from daily_resolution.eligibility import (
    can_add_to_group,
    is_available,
    is_client_available,
    is_restricted_for_lunch,
)
from daily_resolution.models import (
    Client,
    LunchCoverageError,
    ScheduleException,
    StaffMember,
    TemplateAssignment,
)
from daily_resolution.schedule_config import (
    AM,
    BLOCK_WINDOWS,
    LUNCH_END,
    LUNCH_FIRST_START,
    LUNCH_SLOT_FIRST,
    LUNCH_SLOT_SECOND,
    LUNCH_SLOTS,
    NON_DIRECT_ROLES,
    PM,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Error reasons, most specific last
# ---------------------------------------------------------------------------
REASON_NO_STAFF = "No legal lunch coverage available: no eligible staff free during this slot"
REASON_EXCLUSION = "No legal lunch coverage available: all free staff are excluded from this client"
REASON_GROUPING = "No legal lunch coverage available: grouping disallowed with every available lunch group"

_REASON_RANK = {REASON_NO_STAFF: 0, REASON_EXCLUSION: 1, REASON_GROUPING: 2}


@dataclass
class LunchNeed:
    client_id: str
    staff_id: str


@dataclass
class LunchPlan:
    """Who eats when, who supervises whom, and what could not be covered."""
    eating: Dict[str, Optional[str]] = field(default_factory=dict)         # staff_id → slot (None = works through)
    groups: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)  # slot → {staff_id: [client_id]}
    needs: List[LunchNeed] = field(default_factory=list)
    errors: List[LunchCoverageError] = field(default_factory=list)

    def covering(self, slot: str, staff_id: str) -> List[str]:
        return self.groups.get(slot, {}).get(staff_id, [])


# ---------------------------------------------------------------------------
# Lunch needs
# ---------------------------------------------------------------------------

def client_am_end(client: Client, weekday: str, assignment: TemplateAssignment) -> Optional[int]:
    """
    End of the client's AM session today.

    A declared weekday ServiceWindow wins; a disabled day means no session.
    Otherwise the assignment's own window is used.
    """
    declared = client.schedule.get(weekday)
    if declared is not None:
        if not declared.enabled:
            return None
        if declared.am_end is not None:
            return declared.am_end
        if declared.am_start is None:
            return None
    return assignment.window()[1]


def client_needs_lunch_coverage(client: Client, weekday: str, assignment: TemplateAssignment) -> bool:
    am_end = client_am_end(client, weekday, assignment)
    return am_end is not None and am_end >= LUNCH_FIRST_START


def collect_lunch_needs(
    assignments: Sequence[TemplateAssignment],
    staff_by_id: Dict[str, StaffMember],
    clients_by_id: Dict[str, Client],
    weekday: str,
    exceptions: Sequence[ScheduleException],
    applied: Dict[SlotKey, AppliedCoverage],
) -> List[LunchNeed]:
    """AM clients that are on site over lunch, paired with whoever delivers their AM session."""
    needs: Dict[str, LunchNeed] = {}
    for a in assignments:
        if a.block != AM or not a.client_id or a.client_id in needs:
            continue
        client = clients_by_id[a.client_id]
        if not client_needs_lunch_coverage(client, weekday, a):
            continue
        if not is_client_available(client, AM, exceptions, a.window()):
            continue
        if not is_client_available(client, AM, exceptions, (LUNCH_FIRST_START, LUNCH_END)):
            continue

        cov = applied.get((a.client_id, AM))
        if cov is not None:
            needs[a.client_id] = LunchNeed(client_id=a.client_id, staff_id=cov.staff_id)
        elif is_available(staff_by_id[a.staff_id], weekday, AM, exceptions, a.window()):
            needs[a.client_id] = LunchNeed(client_id=a.client_id, staff_id=a.staff_id)
    return [needs[cid] for cid in sorted(needs)]


def pm_staff_arrivals(
    assignments: Sequence[TemplateAssignment],
    staff_by_id: Dict[str, StaffMember],
    clients_by_id: Dict[str, Client],
    weekday: str,
    exceptions: Sequence[ScheduleException],
    applied: Dict[SlotKey, AppliedCoverage],
) -> Dict[str, int]:
    """Staff continuing into PM, mapped to the minute they are first on site today."""
    arrivals: Dict[str, int] = {}
    pm_staff: Set[str] = set()
    for a in assignments:
        start = a.window()[0]
        if a.client_id and not is_client_available(clients_by_id[a.client_id], a.block, exceptions, a.window()):
            continue
        if not is_available(staff_by_id[a.staff_id], weekday, a.block, exceptions, a.window()):
            continue
        arrivals[a.staff_id] = min(arrivals.get(a.staff_id, start), start)
        if a.block == PM:
            pm_staff.add(a.staff_id)
    for (_client_id, block), cov in applied.items():
        start = BLOCK_WINDOWS[block][0]
        arrivals[cov.staff_id] = min(arrivals.get(cov.staff_id, start), start)
        if block == PM:
            pm_staff.add(cov.staff_id)
    return {sid: arrivals[sid] for sid in pm_staff}


def assign_lunch_slots(
    needs: Sequence[LunchNeed],
    pm_arrivals: Dict[str, int],
    staff_by_id: Dict[str, StaffMember],
) -> Dict[str, Optional[str]]:
    """
    Staff continuing into PM eat first; staff done at the boundary eat second.
    PM staff arriving at or after 12:30 are not on site over lunch.
    """
    eating: Dict[str, Optional[str]] = {}
    arriving = {sid for sid, start in pm_arrivals.items() if start < LUNCH_END}
    present = sorted({n.staff_id for n in needs} | arriving)
    for staff_id in present:
        staff = staff_by_id[staff_id]
        if staff.role in NON_DIRECT_ROLES:
            continue
        if staff.no_lunch:
            eating[staff_id] = None
        elif staff_id in pm_arrivals:
            eating[staff_id] = LUNCH_SLOT_FIRST
        else:
            eating[staff_id] = LUNCH_SLOT_SECOND
    return eating


# ---------------------------------------------------------------------------
# Pairing
# ---------------------------------------------------------------------------

def _coverage_failure(
    client: Client,
    need: LunchNeed,
    coverer: StaffMember,
    group: List[Client],
    original_by_client: Dict[str, str],
    slot: str,
) -> Optional[str]:
    """None if `coverer` may take `client` into `group`, else the failure reason."""
    if is_restricted_for_lunch(client, coverer, need.staff_id):
        return REASON_EXCLUSION
    for member in group:
        if is_restricted_for_lunch(member, coverer, original_by_client.get(member.id)):
            return REASON_EXCLUSION
    if not can_add_to_group(group, client, slot):
        return REASON_GROUPING
    return None


def _assign_slot(
    slot: str,
    needs: Sequence[LunchNeed],
    eating: Dict[str, Optional[str]],
    pm_arrivals: Dict[str, int],
    staff_by_id: Dict[str, StaffMember],
    clients_by_id: Dict[str, Client],
    weekday: str,
    exceptions: Sequence[ScheduleException],
) -> Tuple[Dict[str, List[str]], List[LunchCoverageError]]:
    block = LUNCH_SLOTS[slot][0]
    slot_start = BLOCK_WINDOWS[block][0]
    present = {
        sid for sid in eating
        if is_available(staff_by_id[sid], weekday, block, exceptions)
        and pm_arrivals.get(sid, slot_start) <= slot_start
    }
    coverers = sorted(
        (sid for sid in present if eating[sid] != slot),
        key=lambda sid: (staff_by_id[sid].name, sid),
    )
    original_by_client = {n.client_id: n.staff_id for n in needs}

    groups: Dict[str, List[str]] = {sid: [] for sid in coverers}
    waiting: List[LunchNeed] = []
    for need in needs:
        if need.staff_id in groups:
            groups[need.staff_id].append(need.client_id)
        else:
            waiting.append(need)

    errors: List[LunchCoverageError] = []
    for need in waiting:
        client = clients_by_id[need.client_id]
        reason = REASON_NO_STAFF
        placed = False
        for sid in coverers:
            group = [clients_by_id[cid] for cid in groups[sid]]
            failure = _coverage_failure(client, need, staff_by_id[sid], group, original_by_client, slot)
            if failure is None:
                groups[sid].append(client.id)
                placed = True
                logger.debug(f"Lunch {slot}: {sid} covers {client.id}")
                break
            if _REASON_RANK[failure] > _REASON_RANK[reason]:
                reason = failure
        if not placed:
            errors.append(LunchCoverageError(
                client_id=client.id,
                client_name=client.name,
                lunch_slot=slot,
                reason=reason,
            ))
    return {sid: cids for sid, cids in groups.items() if cids}, errors


def resolve_lunch(
    assignments: Sequence[TemplateAssignment],
    staff: Sequence[StaffMember],
    clients: Sequence[Client],
    weekday: str,
    exceptions: Sequence[ScheduleException],
    applied: Optional[Dict[SlotKey, AppliedCoverage]] = None,
) -> LunchPlan:
    """Plan lunch sub-slots and coverage for one day."""
    staff_by_id = {s.id: s for s in staff}
    clients_by_id = {c.id: c for c in clients}
    applied = applied or {}

    plan = LunchPlan()
    plan.needs = collect_lunch_needs(assignments, staff_by_id, clients_by_id, weekday, exceptions, applied)
    pm_arrivals = pm_staff_arrivals(assignments, staff_by_id, clients_by_id, weekday, exceptions, applied)
    plan.eating = assign_lunch_slots(plan.needs, pm_arrivals, staff_by_id)

    for slot in (LUNCH_SLOT_FIRST, LUNCH_SLOT_SECOND):
        groups, errors = _assign_slot(
            slot, plan.needs, plan.eating, pm_arrivals, staff_by_id, clients_by_id, weekday, exceptions
        )
        plan.groups[slot] = groups
        plan.errors.extend(errors)

    if plan.errors:
        logger.warning(f"Lunch coverage: {len(plan.errors)} client slot(s) without legal coverage")
    logger.info(f"Lunch: {len(plan.needs)} clients on site, {len(plan.eating)} staff present")
    return plan
