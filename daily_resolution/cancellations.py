"""
cancellations.py - Cancellation Decision System

Clients whose coverage was exhausted get exactly one decision each, all of
their affected blocks aggregated:

  1. Protection   30-day location/client tenure, or a new-hire training
                  session on the slot         → cancel_protected (blocked)
  2. Skip         one-time pass while cancel_skip_used is False:
                    a) attends 2 sessions/week
                    b) 5+ consecutive absent days and back fewer than 3 days
                                              → cancel_skipped (pending)
  3. Fairness     everyone else               → cancellation (pending),
                  never-cancelled first, then oldest last_canceled_date,
                  tie-break by client id

Cancellation/skip counters are inputs only; advancing them after a day is
committed belongs to the caller.
"""

import logging
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from daily_resolution.coverage import REASON_NEW_HIRE_TRAINING, CoverageGap
from daily_resolution.eligibility import tenure_protection
from daily_resolution.models import (
    ApprovalRequest,
    ApprovalStatus,
    ApprovalType,
    Client,
    ClientCancelLink,
    ClientLocation,
    TemplateAssignment,
)
from daily_resolution.schedule_config import (
    ABSENCE_RETURN_DAYS,
    ABSENCE_SKIP_DAYS,
    ALL_DAY,
    AM,
    CANCEL_TIMING_DESCRIPTIONS,
    PM,
    SERVICE_BLOCKS,
    TWICE_WEEKLY_SESSIONS,
    cancel_timing_for,
)

logger = logging.getLogger(__name__)

NEW_HIRE_PROTECTION_REASON = (
    "Protected for new hire training session. Cancelling would disrupt trainee onboarding."
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


def sessions_per_week(client: Client, template: Sequence[TemplateAssignment] = ()) -> int:
    """Declared sessions/week, or the number of template weekdays the client appears on."""
    if client.sessions_per_week is not None:
        return client.sessions_per_week
    return len({a.weekday for a in template if a.client_id == client.id})


def linked_client_ids(client_id: str, cancel_links: Sequence[ClientCancelLink]) -> List[str]:
    linked = set()
    for link in cancel_links:
        if link.client_id == client_id:
            linked.add(link.linked_client_id)
        elif link.linked_client_id == client_id:
            linked.add(link.client_id)
    return sorted(linked)


def decision_block(client: Client, blocks: Sequence[str]) -> str:
    if client.cancel_all_day_only or (AM in blocks and PM in blocks):
        return ALL_DAY
    return blocks[0]


def skip_reason_for(client: Client, template: Sequence[TemplateAssignment] = ()) -> Optional[str]:
    """Reason for a one-time skip, or None when the client does not qualify."""
    if client.cancel_skip_used:
        return None
    if client.consecutive_absent_days >= ABSENCE_SKIP_DAYS and client.days_back_since_absence < ABSENCE_RETURN_DAYS:
        remaining = ABSENCE_RETURN_DAYS - client.days_back_since_absence
        return (
            f"{ABSENCE_SKIP_DAYS}-consecutive-days absent skip applied "
            f"({_plural(remaining, 'more attendance day')} needed)"
        )
    weekly = sessions_per_week(client, template)
    if weekly == TWICE_WEEKLY_SESSIONS:
        return f"{TWICE_WEEKLY_SESSIONS}-sessions/week skip applied (attends {_plural(weekly, 'session')} per week)"
    return None


def fairness_key(client: Client) -> Tuple[int, date, str]:
    """Never-cancelled clients first, then oldest last_canceled_date, then id."""
    if client.last_canceled_date is None:
        return (0, date.min, client.id)
    return (1, client.last_canceled_date, client.id)


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------

def _group_gaps(gaps: Sequence[CoverageGap]) -> Dict[str, List[CoverageGap]]:
    grouped: Dict[str, List[CoverageGap]] = {}
    for gap in gaps:
        grouped.setdefault(gap.client_id, []).append(gap)
    for client_gaps in grouped.values():
        client_gaps.sort(key=lambda g: SERVICE_BLOCKS.index(g.block))
    return grouped


def decide_cancellations(
    exhausted: Sequence[CoverageGap],
    clients_by_id: Dict[str, Client],
    today: date,
    locations: Sequence[ClientLocation] = (),
    cancel_links: Sequence[ClientCancelLink] = (),
    template: Sequence[TemplateAssignment] = (),
) -> List[ApprovalRequest]:
    """
    Turn exhausted coverage gaps into cancellation-family approvals.

    Returns protected decisions, then skips (both by client id), then
    cancellations in fairness order.
    """
    protected: List[ApprovalRequest] = []
    skipped: List[ApprovalRequest] = []
    to_cancel: List[Tuple[Client, List[CoverageGap]]] = []

    for client_id, gaps in sorted(_group_gaps(exhausted).items()):
        client = clients_by_id[client_id]
        blocks: List[str] = []
        for g in gaps:
            if g.block not in blocks:
                blocks.append(g.block)
        block = decision_block(client, blocks)
        original_staff_id = gaps[0].original_staff_id

        tenure = tenure_protection(client, today, locations)
        if tenure is not None:
            until, location_type = tenure
            protected.append(ApprovalRequest(
                id=f"cancel-protected-{client.id}-{block}",
                type=ApprovalType.CANCEL_PROTECTED,
                client_id=client.id,
                client_name=client.name,
                block=block,
                original_staff_id=original_staff_id,
                reason=(
                    f"Not for cancel until {until.isoformat()} due to {location_type} "
                    "sessions less than 30 days old."
                ),
                status=ApprovalStatus.BLOCKED,
            ))
            logger.debug(f"{client.id}: tenure protected until {until}")
            continue

        if any(g.exhausted_reason == REASON_NEW_HIRE_TRAINING for g in gaps):
            protected.append(ApprovalRequest(
                id=f"cancel-protected-{client.id}-{block}",
                type=ApprovalType.CANCEL_PROTECTED,
                client_id=client.id,
                client_name=client.name,
                block=block,
                original_staff_id=original_staff_id,
                reason=NEW_HIRE_PROTECTION_REASON,
                status=ApprovalStatus.BLOCKED,
            ))
            logger.debug(f"{client.id}: protected by new-hire training")
            continue

        skip_reason = skip_reason_for(client, template)
        if skip_reason is not None:
            skipped.append(ApprovalRequest(
                id=f"cancel-skip-{client.id}-{block}",
                type=ApprovalType.CANCEL_SKIPPED,
                client_id=client.id,
                client_name=client.name,
                block=block,
                original_staff_id=original_staff_id,
                reason=f"{client.name} skipped for cancellation",
                skip_reason=skip_reason,
                status=ApprovalStatus.PENDING,
                linked_client_ids=linked_client_ids(client.id, cancel_links),
            ))
            logger.debug(f"{client.id}: {skip_reason}")
            continue

        to_cancel.append((client, gaps))

    cancellations: List[ApprovalRequest] = []
    for client, gaps in sorted(to_cancel, key=lambda item: fairness_key(item[0])):
        blocks = [g.block for g in gaps]
        block = decision_block(client, blocks)
        timing = cancel_timing_for(
            [AM, PM] if block == ALL_DAY else [block],
            client.can_be_grouped,
        )
        last = client.last_canceled_date.isoformat() if client.last_canceled_date else "Never"
        cancellations.append(ApprovalRequest(
            id=f"cancel-{client.id}-{block}",
            type=ApprovalType.CANCELLATION,
            client_id=client.id,
            client_name=client.name,
            block=block,
            original_staff_id=gaps[0].original_staff_id,
            reason=(
                f"{client.name} selected for cancellation (last cancelled: {last}). "
                f"{CANCEL_TIMING_DESCRIPTIONS[timing]}"
            ),
            status=ApprovalStatus.PENDING,
            cancel_timing=timing,
            linked_client_ids=linked_client_ids(client.id, cancel_links),
        ))

    logger.info(
        f"Cancellations: {len(protected)} protected, {len(skipped)} skipped, "
        f"{len(cancellations)} pending cancellation"
    )
    return protected + skipped + cancellations
