"""
engine.py - Daily Schedule Resolution Engine

resolve_day() is a pure, synchronous function: the full day's inputs go in,
the full result comes out. No I/O, no clock reads, no shared state; inputs
are never mutated, so identical inputs always give an identical (==) result.

Pipeline:
  0. validate inputs (fail fast on unknown ids / bad blocks)
  1. map weekday index → day key (weekends resolve to an empty result)
  2. new-hire training slots           (training.new_hire_training_slots)
  3. coverage search                   (coverage.resolve_coverage)
  4. cancellation decisions            (cancellations.decide_cancellations)
  5. lunch sub-slots and coverage      (lunch.resolve_lunch)
  6. training session impact           (training.impact_training)
  7. per-staff schedule                (assembler.assemble_schedule)

Approvals are returned in a fixed order: sub/lead proposals (AM then PM,
by client id), all-day confirmations, protected, skipped, then cancellations
in fairness order.
"""

import logging
from datetime import date
from typing import Any, Dict, Optional, Sequence

from daily_resolution.assembler import assemble_schedule
from daily_resolution.cancellations import decide_cancellations
from daily_resolution.constraints import InputValidationError, validate_inputs
from daily_resolution.coverage import resolve_coverage
from daily_resolution.lunch import resolve_lunch
from daily_resolution.models import (
    ApprovalStatus,
    ApprovedSub,
    DayInputs,
    ResolutionResult,
    ScheduleException,
    SlotSource,
)
from daily_resolution.schedule_config import day_key_from_index, weekday_index_for
from daily_resolution.training import impact_training, new_hire_training_slots

logger = logging.getLogger(__name__)


def resolve_day(
    inputs: DayInputs,
    exceptions: Sequence[ScheduleException],
    approved_subs: Sequence[ApprovedSub],
    today: date,
    weekday_index: Optional[int] = None,
) -> ResolutionResult:
    """
    Resolve one calendar day.

    Args:
        inputs:        Staff, clients, weekly template, locations, training
                       sessions and cancel links
        exceptions:    Same-day staff/client exceptions
        approved_subs: Substitutions a human already approved
        today:         Resolution date (protection windows are measured from it)
        weekday_index: 0=Sunday..6=Saturday; defaults to today's weekday

    Returns:
        ResolutionResult. Saturday/Sunday give an empty result with day_key None.

    Raises:
        InputValidationError: on references to unknown staff/client ids,
        duplicate ids or invalid blocks.
    """
    validate_inputs(inputs, exceptions, approved_subs)

    if weekday_index is None:
        weekday_index = weekday_index_for(today)
    if weekday_index not in range(7):
        raise InputValidationError(f"weekday_index must be 0..6, got {weekday_index}")

    day_key = day_key_from_index(weekday_index)
    if day_key is None:
        logger.info(f"{today}: weekday index {weekday_index} is a weekend; nothing to resolve")
        return ResolutionResult(resolution_date=today, day_key=None)

    assignments = [a for a in inputs.template if a.weekday == day_key]
    staff_by_id = {s.id: s for s in inputs.staff}
    clients_by_id = {c.id: c for c in inputs.clients}
    logger.info(f"Resolving {today} ({day_key}): {len(assignments)} assignments, {len(exceptions)} exceptions")

    protected_slots = new_hire_training_slots(inputs.training_sessions, staff_by_id, today)

    coverage = resolve_coverage(
        assignments,
        inputs.staff,
        inputs.clients,
        day_key,
        exceptions,
        approved_subs,
        protected_slots=protected_slots,
    )

    decisions = decide_cancellations(
        coverage.exhausted,
        clients_by_id,
        today,
        locations=inputs.locations,
        cancel_links=inputs.cancel_links,
        template=inputs.template,
    )

    lunch = resolve_lunch(
        assignments,
        inputs.staff,
        inputs.clients,
        day_key,
        exceptions,
        applied=coverage.applied,
    )

    training_updates = impact_training(
        inputs.training_sessions,
        inputs.staff,
        inputs.clients,
        day_key,
        exceptions,
        today,
    )

    schedule = assemble_schedule(
        inputs.staff,
        inputs.clients,
        assignments,
        day_key,
        exceptions,
        coverage,
        decisions,
        lunch,
    )

    return ResolutionResult(
        resolution_date=today,
        day_key=day_key,
        schedule=schedule,
        approvals=coverage.approvals + decisions,
        lunch_errors=list(lunch.errors),
        training_updates=training_updates,
    )


# ---------------------------------------------------------------------------
# Day metrics (summary counts for reports)
# ---------------------------------------------------------------------------

def calculate_day_metrics(result: ResolutionResult) -> Dict[str, Any]:
    """
    Summary counts for a resolved day.

    Returns dict with:
        staff, out, partial            staff counts by status
        slots_by_source                {source: count} over all slots
        approvals_by_type              {approval type: count}
        pending, blocked               approval counts by status
        unfilled, lunch_errors, training_updates
    """
    slots_by_source: Dict[str, int] = {s.value: 0 for s in SlotSource}
    status_counts: Dict[str, int] = {}
    for entry in result.schedule:
        status_counts[entry.status.value] = status_counts.get(entry.status.value, 0) + 1
        for slot in entry.slots:
            slots_by_source[slot.source.value] += 1

    approvals_by_type: Dict[str, int] = {}
    for a in result.approvals:
        approvals_by_type[a.type.value] = approvals_by_type.get(a.type.value, 0) + 1

    return {
        "date": result.resolution_date.isoformat(),
        "day_key": result.day_key,
        "staff": len(result.schedule),
        "out": status_counts.get("OUT", 0),
        "partial": status_counts.get("PARTIAL", 0),
        "slots_by_source": slots_by_source,
        "approvals_by_type": approvals_by_type,
        "pending": sum(1 for a in result.approvals if a.status == ApprovalStatus.PENDING),
        "blocked": sum(1 for a in result.approvals if a.status == ApprovalStatus.BLOCKED),
        "unfilled": slots_by_source[SlotSource.UNFILLED.value],
        "lunch_errors": len(result.lunch_errors),
        "training_updates": len(result.training_updates),
    }
