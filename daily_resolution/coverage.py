"""
coverage.py - Coverage Resolver

For every AM/PM assignment whose staff is out while the client is present,
try in strict order:

  1. an ApprovedSub already on file for (client, block)  → applied directly
  2. a free sub-eligible staff member or allowed Float   → sub_staffing (pending)
  3. a free eligible Lead RBT                            → lead_staffing / lead_reserve
  4. nothing left                                        → handed to cancellations

"Free" means the candidate is available for the block, is not already
delivering a session to a present client in that block, and has not been
proposed or applied elsewhere earlier in the same run.

Every staff member who ends up with the same client in AM and PM (template
as authored, or after applied subs) gets an all_day_staffing approval.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from daily_resolution.eligibility import (
    is_available,
    is_client_available,
    is_eligible_float,
    is_eligible_lead,
    is_eligible_sub,
    staff_priority,
)
from daily_resolution.models import (
    ApprovalRequest,
    ApprovalStatus,
    ApprovalType,
    ApprovedSub,
    Client,
    ScheduleException,
    SlotSource,
    StaffMember,
    TemplateAssignment,
)
from daily_resolution.schedule_config import (
    ALL_DAY,
    AM,
    LEAD_RESERVE_THRESHOLD,
    NON_DIRECT_ROLES,
    PM,
    PRIORITY_ORDER,
    PRIORITY_SUB,
    ROLE_LEAD,
    SERVICE_BLOCKS,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exhaustion reasons
# ---------------------------------------------------------------------------
REASON_NO_CANDIDATES = "no_candidates"
REASON_NEW_HIRE_TRAINING = "new_hire_training"

SlotKey = Tuple[str, str]   # (client_id, block)


@dataclass
class CoverageGap:
    """A present client whose assigned staff is out for the block."""
    client_id: str
    block: str
    original_staff_id: str
    exhausted_reason: Optional[str] = None


@dataclass
class AppliedCoverage:
    client_id: str
    block: str
    staff_id: str
    source: SlotSource
    original_staff_id: str


@dataclass
class CoverageOutcome:
    gaps: List[CoverageGap] = field(default_factory=list)
    applied: Dict[SlotKey, AppliedCoverage] = field(default_factory=dict)
    proposals: Dict[SlotKey, ApprovalRequest] = field(default_factory=dict)
    exhausted: List[CoverageGap] = field(default_factory=list)
    held: Dict[SlotKey, str] = field(default_factory=dict)   # approved sub already in session elsewhere
    all_day: List[ApprovalRequest] = field(default_factory=list)

    @property
    def approvals(self) -> List[ApprovalRequest]:
        """Sub and lead proposals in resolution order, then all-day confirmations."""
        return list(self.proposals.values()) + list(self.all_day)


# ---------------------------------------------------------------------------
# Gap detection
# ---------------------------------------------------------------------------

def detect_gaps(
    assignments: Sequence[TemplateAssignment],
    staff_by_id: Dict[str, StaffMember],
    clients_by_id: Dict[str, Client],
    weekday: str,
    exceptions: Sequence[ScheduleException],
) -> List[CoverageGap]:
    """Assignments whose staff is out while the client is present, AM first then by client id."""
    gaps: List[CoverageGap] = []
    for a in assignments:
        if not a.client_id:
            continue
        window = a.window()
        client = clients_by_id[a.client_id]
        if not is_client_available(client, a.block, exceptions, window):
            continue
        if is_available(staff_by_id[a.staff_id], weekday, a.block, exceptions, window):
            continue
        gaps.append(CoverageGap(client_id=a.client_id, block=a.block, original_staff_id=a.staff_id))
    gaps.sort(key=lambda g: (SERVICE_BLOCKS.index(g.block), g.client_id, g.original_staff_id))
    return gaps


def busy_staff_by_block(
    assignments: Sequence[TemplateAssignment],
    staff_by_id: Dict[str, StaffMember],
    clients_by_id: Dict[str, Client],
    weekday: str,
    exceptions: Sequence[ScheduleException],
) -> Dict[str, Set[str]]:
    """Staff already delivering a session to a present client, per block."""
    busy: Dict[str, Set[str]] = {block: set() for block in SERVICE_BLOCKS}
    for a in assignments:
        if not a.client_id:
            continue
        window = a.window()
        if not is_available(staff_by_id[a.staff_id], weekday, a.block, exceptions, window):
            continue
        if not is_client_available(clients_by_id[a.client_id], a.block, exceptions, window):
            continue
        busy[a.block].add(a.staff_id)
    return busy


# ---------------------------------------------------------------------------
# Candidate search
# ---------------------------------------------------------------------------

def _direct_service_staff(staff: Sequence[StaffMember]) -> List[StaffMember]:
    return [s for s in staff if s.active and s.role not in NON_DIRECT_ROLES]


def tier_order_candidates(client: Client, candidates: Sequence[StaffMember]) -> List[StaffMember]:
    """
    Order substitutes: focus, trained, float, sub-eligible. Within a tier,
    by name then id so identical input always proposes the same person.
    """
    def tier_key(s: StaffMember) -> Tuple[int, str, str]:
        tier = staff_priority(client, s) or PRIORITY_SUB
        return (PRIORITY_ORDER[tier], s.name, s.id)

    return sorted(candidates, key=tier_key)


def find_sub_candidates(
    client: Client,
    staff: Sequence[StaffMember],
    weekday: str,
    block: str,
    exceptions: Sequence[ScheduleException],
    busy: Set[str],
) -> List[StaffMember]:
    pool = [
        s for s in _direct_service_staff(staff)
        if s.role != ROLE_LEAD
        and s.id not in busy
        and (
            is_eligible_sub(client, s, weekday, block, exceptions)
            or is_eligible_float(client, s, weekday, block, exceptions)
        )
    ]
    return tier_order_candidates(client, pool)


def find_lead_candidates(
    client: Client,
    staff: Sequence[StaffMember],
    weekday: str,
    block: str,
    exceptions: Sequence[ScheduleException],
    busy: Set[str],
) -> List[StaffMember]:
    pool = [
        s for s in _direct_service_staff(staff)
        if s.id not in busy and is_eligible_lead(client, s, weekday, block, exceptions)
    ]
    return sorted(pool, key=lambda s: (s.name, s.id))


def count_free_leads(
    staff: Sequence[StaffMember],
    weekday: str,
    block: str,
    exceptions: Sequence[ScheduleException],
    busy: Set[str],
) -> int:
    return sum(
        1 for s in _direct_service_staff(staff)
        if s.role == ROLE_LEAD
        and s.id not in busy
        and is_available(s, weekday, block, exceptions)
    )


# ---------------------------------------------------------------------------
# Approval builders
# ---------------------------------------------------------------------------

def sub_approval(client: Client, block: str, sub: StaffMember, original: StaffMember) -> ApprovalRequest:
    tier = staff_priority(client, sub) or PRIORITY_SUB
    return ApprovalRequest(
        id=f"sub-{client.id}-{block}-{sub.id}",
        type=ApprovalType.SUB_STAFFING,
        client_id=client.id,
        client_name=client.name,
        block=block,
        proposed_sub_id=sub.id,
        proposed_sub_name=sub.name,
        original_staff_id=original.id,
        reason=f"{original.name} is out; {sub.name} ({tier}) proposed to cover {client.name} {block}",
        status=ApprovalStatus.PENDING,
    )


def lead_approval(
    client: Client,
    block: str,
    lead: StaffMember,
    original: StaffMember,
    free_leads: int,
) -> ApprovalRequest:
    if free_leads <= LEAD_RESERVE_THRESHOLD:
        approval_type = ApprovalType.LEAD_RESERVE
        reason = (
            f"Using lead would leave only {free_leads - 1} leads available "
            f"(below reserve threshold of {LEAD_RESERVE_THRESHOLD})"
        )
    else:
        approval_type = ApprovalType.LEAD_STAFFING
        reason = "Lead RBT assignment requires approval"
    return ApprovalRequest(
        id=f"lead-{client.id}-{block}-{lead.id}",
        type=approval_type,
        client_id=client.id,
        client_name=client.name,
        block=block,
        proposed_sub_id=lead.id,
        proposed_sub_name=lead.name,
        original_staff_id=original.id,
        reason=reason,
        status=ApprovalStatus.PENDING,
    )


def all_day_approval(client: Client, staff: StaffMember) -> ApprovalRequest:
    return ApprovalRequest(
        id=f"all-day-{client.id}-{staff.id}",
        type=ApprovalType.ALL_DAY_STAFFING,
        client_id=client.id,
        client_name=client.name,
        block=ALL_DAY,
        proposed_sub_id=staff.id,
        proposed_sub_name=staff.name,
        original_staff_id=staff.id,
        reason=f"All-day staffing: {staff.name} assigned to {client.name} for both AM and PM",
        status=ApprovalStatus.PENDING,
    )


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

def _approved_sub_for(approved_subs: Sequence[ApprovedSub], client_id: str, block: str) -> Optional[ApprovedSub]:
    matches = [a for a in approved_subs if a.client_id == client_id and a.block == block]
    if not matches:
        return None
    return sorted(matches, key=lambda a: a.sub_staff_id)[0]


def resolve_coverage(
    assignments: Sequence[TemplateAssignment],
    staff: Sequence[StaffMember],
    clients: Sequence[Client],
    weekday: str,
    exceptions: Sequence[ScheduleException],
    approved_subs: Sequence[ApprovedSub] = (),
    protected_slots: Optional[Set[SlotKey]] = None,
) -> CoverageOutcome:
    """
    Run the substitution search for one day.

    Args:
        assignments:     The day's template assignments (already filtered to weekday)
        staff, clients:  Full rosters for the day
        weekday:         Day key ('mon'..'fri')
        exceptions:      Same-day exceptions
        approved_subs:   Human-confirmed substitutions from an earlier run
        protected_slots: (client_id, block) pairs that must not be substituted
                         (new-hire training); they go straight to cancellation

    Returns:
        CoverageOutcome with applied subs, pending proposals, exhausted gaps
        and all-day confirmations.
    """
    staff_by_id = {s.id: s for s in staff}
    clients_by_id = {c.id: c for c in clients}
    protected_slots = protected_slots or set()

    outcome = CoverageOutcome()
    outcome.gaps = detect_gaps(assignments, staff_by_id, clients_by_id, weekday, exceptions)
    busy = busy_staff_by_block(assignments, staff_by_id, clients_by_id, weekday, exceptions)

    for gap in outcome.gaps:
        client = clients_by_id[gap.client_id]
        original = staff_by_id[gap.original_staff_id]
        key = (gap.client_id, gap.block)
        taken = busy[gap.block]

        if key in outcome.applied or key in outcome.proposals:
            continue

        # 1. approved sub on file
        approved = _approved_sub_for(approved_subs, gap.client_id, gap.block)
        if approved is not None:
            sub = staff_by_id[approved.sub_staff_id]
            if sub.id not in taken and is_available(sub, weekday, gap.block, exceptions):
                source = SlotSource.LEAD if sub.role == ROLE_LEAD else SlotSource.SUB
                outcome.applied[key] = AppliedCoverage(
                    client_id=client.id,
                    block=gap.block,
                    staff_id=sub.id,
                    source=source,
                    original_staff_id=original.id,
                )
                taken.add(sub.id)
                logger.debug(f"{client.id} {gap.block}: applied approved sub {sub.id}")
                continue
            if sub.id in taken and is_available(sub, weekday, gap.block, exceptions):
                outcome.held[key] = sub.id
                logger.warning(
                    f"Approved sub {sub.id} for {client.id} {gap.block} is already in session; "
                    "slot left unfilled for review"
                )
                continue
            logger.warning(f"Approved sub {sub.id} for {client.id} {gap.block} is unavailable; searching again")

        if key in protected_slots:
            gap.exhausted_reason = REASON_NEW_HIRE_TRAINING
            outcome.exhausted.append(gap)
            logger.debug(f"{client.id} {gap.block}: new-hire training slot, not substitutable")
            continue

        # 2. sub-eligible staff / floats
        subs = find_sub_candidates(client, staff, weekday, gap.block, exceptions, taken)
        if subs:
            sub = subs[0]
            outcome.proposals[key] = sub_approval(client, gap.block, sub, original)
            taken.add(sub.id)
            logger.debug(f"{client.id} {gap.block}: proposing sub {sub.id} of {len(subs)} candidates")
            continue

        # 3. leads
        leads = find_lead_candidates(client, staff, weekday, gap.block, exceptions, taken)
        if leads:
            lead = leads[0]
            free_leads = count_free_leads(staff, weekday, gap.block, exceptions, taken)
            outcome.proposals[key] = lead_approval(client, gap.block, lead, original, free_leads)
            taken.add(lead.id)
            logger.debug(f"{client.id} {gap.block}: proposing lead {lead.id} ({free_leads} free leads)")
            continue

        # 4. exhausted
        gap.exhausted_reason = REASON_NO_CANDIDATES
        outcome.exhausted.append(gap)
        logger.debug(f"{client.id} {gap.block}: coverage exhausted")

    outcome.all_day = build_all_day_approvals(
        assignments, staff_by_id, clients_by_id, weekday, exceptions, outcome.applied
    )

    logger.info(
        f"Coverage: {len(outcome.gaps)} gaps, {len(outcome.applied)} applied, "
        f"{len(outcome.proposals)} proposed, {len(outcome.exhausted)} exhausted, "
        f"{len(outcome.held)} held"
    )
    return outcome


def realized_client_by_staff(
    assignments: Sequence[TemplateAssignment],
    staff_by_id: Dict[str, StaffMember],
    clients_by_id: Dict[str, Client],
    weekday: str,
    exceptions: Sequence[ScheduleException],
    applied: Dict[SlotKey, AppliedCoverage],
) -> Dict[str, Dict[str, str]]:
    """block → {staff_id: client_id} for sessions that actually happen (template + applied subs)."""
    realized: Dict[str, Dict[str, str]] = {block: {} for block in SERVICE_BLOCKS}
    for a in sorted(assignments, key=lambda a: (a.block, a.staff_id, a.client_id or "")):
        if not a.client_id:
            continue
        window = a.window()
        if not is_available(staff_by_id[a.staff_id], weekday, a.block, exceptions, window):
            continue
        if not is_client_available(clients_by_id[a.client_id], a.block, exceptions, window):
            continue
        realized[a.block].setdefault(a.staff_id, a.client_id)
    for (client_id, block), cov in sorted(applied.items()):
        realized[block].setdefault(cov.staff_id, client_id)
    return realized


def build_all_day_approvals(
    assignments: Sequence[TemplateAssignment],
    staff_by_id: Dict[str, StaffMember],
    clients_by_id: Dict[str, Client],
    weekday: str,
    exceptions: Sequence[ScheduleException],
    applied: Dict[SlotKey, AppliedCoverage],
) -> List[ApprovalRequest]:
    """One all_day_staffing confirmation per staff with the same client AM and PM."""
    realized = realized_client_by_staff(assignments, staff_by_id, clients_by_id, weekday, exceptions, applied)
    pairs = sorted(
        (client_id, staff_id)
        for staff_id, client_id in realized[AM].items()
        if realized[PM].get(staff_id) == client_id
    )
    return [all_day_approval(clients_by_id[c], staff_by_id[s]) for c, s in pairs]
