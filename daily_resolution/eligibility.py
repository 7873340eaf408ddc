"""
eligibility.py - Staff/Client Eligibility Rules

Stateless predicates answering "can staff S cover client C in block B today?".
Every later stage (coverage, cancellations, lunch, training) asks these
functions; none of them re-derives eligibility on its own.

Availability:
  is_available, is_client_available

Coverage eligibility:
  is_excluded, is_eligible_sub, is_eligible_float, is_eligible_lead,
  staff_priority

Protection windows:
  is_protected_by_tenure, tenure_protection, is_protected_by_new_hire

Lunch grouping:
  is_restricted_for_lunch, can_group_clients, can_add_to_group
"""

from datetime import date, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from daily_resolution.models import (
    Client,
    ClientLocation,
    ExceptionMode,
    ExceptionType,
    ScheduleException,
    StaffMember,
)
from daily_resolution.schedule_config import (
    BLOCK_WINDOWS,
    LUNCH_SLOT_FIRST,
    LUNCH_SLOT_SECOND,
    MAX_LUNCH_GROUP_SIZE,
    PRIORITY_FLOAT,
    PRIORITY_FOCUS,
    PRIORITY_LEAD,
    PRIORITY_SUB,
    PRIORITY_TRAINED,
    PROTECTION_DAYS,
    ROLE_FLOAT,
    ROLE_LEAD,
)


def block_window(block: str) -> Tuple[int, int]:
    try:
        return BLOCK_WINDOWS[block]
    except KeyError:
        raise ValueError(f"Unknown block '{block}'. Expected one of {sorted(BLOCK_WINDOWS)}")


def _exceptions_for(
    exceptions: Iterable[ScheduleException],
    exc_type: ExceptionType,
    entity_id: str,
) -> List[ScheduleException]:
    return [e for e in exceptions if e.type == exc_type and e.entity_id == entity_id]


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------

def is_available(
    staff: StaffMember,
    weekday: str,
    block: str,
    exceptions: Sequence[ScheduleException],
    window: Optional[Tuple[int, int]] = None,
) -> bool:
    """
    True if the staff member can work the block.

    An overlapping "out" exception always wins. An overlapping "in" exception
    makes the staff available regardless of declared weekly availability.
    Without either, the weekday's DayWindow must be available and overlap the
    block (no declaration means unrestricted).
    """
    if not staff.active:
        return False
    start, end = window or block_window(block)

    own = _exceptions_for(exceptions, ExceptionType.STAFF, staff.id)
    if any(e.mode == ExceptionMode.OUT and e.overlaps(start, end) for e in own):
        return False
    if any(e.mode == ExceptionMode.IN and e.overlaps(start, end) for e in own):
        return True

    declared = staff.availability.get(weekday)
    if declared is None:
        return True
    if not declared.available:
        return False
    avail_start = declared.start_minute if declared.start_minute is not None else start
    avail_end = declared.end_minute if declared.end_minute is not None else end
    return avail_start < end and start < avail_end


def is_client_available(
    client: Client,
    block: str,
    exceptions: Sequence[ScheduleException],
    window: Optional[Tuple[int, int]] = None,
) -> bool:
    """False for inactive clients, cancelled days and overlapping "out" exceptions."""
    if not client.active:
        return False
    start, end = window or block_window(block)
    for exc in _exceptions_for(exceptions, ExceptionType.CLIENT, client.id):
        if exc.mode == ExceptionMode.CANCELLED:
            return False
        if exc.mode == ExceptionMode.OUT and exc.overlaps(start, end):
            return False
    return True


# ---------------------------------------------------------------------------
# Coverage eligibility
# ---------------------------------------------------------------------------

def is_excluded(client: Client, staff: StaffMember) -> bool:
    """Staff is on the client's exclusion list or no longer trained on the client."""
    return staff.id in client.excluded_staff_ids or staff.id in client.no_longer_trained_ids


def is_eligible_sub(
    client: Client,
    staff: StaffMember,
    weekday: str,
    block: str,
    exceptions: Sequence[ScheduleException],
) -> bool:
    return (
        client.allow_sub
        and staff.sub_eligible
        and not is_excluded(client, staff)
        and is_available(staff, weekday, block, exceptions)
    )


def is_eligible_float(
    client: Client,
    staff: StaffMember,
    weekday: str,
    block: str,
    exceptions: Sequence[ScheduleException],
) -> bool:
    """Float RBTs need the client's opt-in; a non-empty allow-list must name them."""
    if staff.role != ROLE_FLOAT or not client.float_rbts_allowed:
        return False
    if client.allowed_float_rbt_ids and staff.id not in client.allowed_float_rbt_ids:
        return False
    return not is_excluded(client, staff) and is_available(staff, weekday, block, exceptions)


def is_eligible_lead(
    client: Client,
    staff: StaffMember,
    weekday: str,
    block: str,
    exceptions: Sequence[ScheduleException],
) -> bool:
    """Lead RBTs need the client's opt-in; an empty allow-list admits any lead."""
    if staff.role != ROLE_LEAD or not client.lead_rbts_allowed:
        return False
    if client.allowed_lead_rbt_ids and staff.id not in client.allowed_lead_rbt_ids:
        return False
    return not is_excluded(client, staff) and is_available(staff, weekday, block, exceptions)


def staff_priority(client: Client, staff: StaffMember) -> Optional[str]:
    """
    Tier a substitute belongs to for this client, or None if not a candidate.

    focus > trained > float > sub > lead. Availability is not checked here.
    """
    if is_excluded(client, staff):
        return None
    if staff.id in client.focus_staff_ids:
        return PRIORITY_FOCUS
    if staff.id in client.trained_staff_ids:
        return PRIORITY_TRAINED
    if staff.role == ROLE_FLOAT and client.float_rbts_allowed:
        return PRIORITY_FLOAT
    if staff.role == ROLE_LEAD and client.lead_rbts_allowed:
        return PRIORITY_LEAD
    if client.allow_sub and staff.sub_eligible:
        return PRIORITY_SUB
    return None


# ---------------------------------------------------------------------------
# Protection windows
# ---------------------------------------------------------------------------

def _within_protection(start: Optional[date], today: date) -> bool:
    if start is None:
        return False
    return (today - start).days < PROTECTION_DAYS


def tenure_protection(
    client: Client,
    today: date,
    locations: Sequence[ClientLocation] = (),
) -> Optional[Tuple[date, str]]:
    """
    Return (protected_until, location_type) for the latest protection window
    covering the client today, or None.
    """
    windows: List[Tuple[date, str]] = []
    if _within_protection(client.service_start_date, today):
        windows.append((client.service_start_date + timedelta(days=PROTECTION_DAYS), "new client"))
    for loc in locations:
        if loc.client_id == client.id and _within_protection(loc.service_start_date, today):
            windows.append((loc.service_start_date + timedelta(days=PROTECTION_DAYS), loc.location_type))
    if not windows:
        return None
    return max(windows)


def is_protected_by_tenure(
    client: Client,
    today: date,
    locations: Sequence[ClientLocation] = (),
) -> bool:
    return tenure_protection(client, today, locations) is not None


def is_protected_by_new_hire(staff: StaffMember, today: date) -> bool:
    if staff.new_hire_override:
        return False
    return _within_protection(staff.hire_date, today)


# ---------------------------------------------------------------------------
# Lunch grouping
# ---------------------------------------------------------------------------

def is_restricted_for_lunch(
    client: Client,
    staff: StaffMember,
    original_staff_id: Optional[str] = None,
) -> bool:
    """
    Staff may not supervise this client over lunch.

    Exclusions apply to everyone. The lunch allow-list only constrains staff
    other than the client's own.
    """
    if is_excluded(client, staff):
        return True
    if staff.id in client.lunch_coverage_excluded_staff_ids:
        return True
    if staff.id != original_staff_id:
        if client.lunch_coverage_staff_ids and staff.id not in client.lunch_coverage_staff_ids:
            return True
    return False


def can_group_clients(a: Client, b: Client, slot: Optional[str] = None) -> bool:
    if not a.can_be_grouped or not b.can_be_grouped:
        return False
    if a.allowed_lunch_peer_ids and b.id not in a.allowed_lunch_peer_ids:
        return False
    if b.allowed_lunch_peer_ids and a.id not in b.allowed_lunch_peer_ids:
        return False

    if slot == LUNCH_SLOT_FIRST:
        if b.id in a.no_first_lunch_peer_ids or a.id in b.no_first_lunch_peer_ids:
            return False
    elif slot == LUNCH_SLOT_SECOND:
        if b.id in a.no_second_lunch_peer_ids or a.id in b.no_second_lunch_peer_ids:
            return False

    combos = {f"{a.id},{b.id}", f"{b.id},{a.id}"}
    if combos & set(a.disallowed_group_combos) or combos & set(b.disallowed_group_combos):
        return False
    return True


def can_add_to_group(group: Sequence[Client], client: Client, slot: Optional[str] = None) -> bool:
    """
    Whether `client` may join an existing lunch group.

    A group of 3 needs every member to allow groups of 3, and likewise for 4.
    """
    if not group:
        return True
    members = list(group) + [client]
    size = len(members)
    if size > MAX_LUNCH_GROUP_SIZE:
        return False
    if size == 3 and not all(c.allow_groups_of_3 for c in members):
        return False
    if size == 4 and not all(c.allow_groups_of_4 for c in members):
        return False
    return all(can_group_clients(existing, client, slot) for existing in group)
