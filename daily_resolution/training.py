"""
training.py - Training Session Impactor

Proposes status transitions for today's planned training sessions once the
day's exceptions are known. Session records are owned by the caller; this
module never changes them.

  trainee unavailable                   → blocked
  client unavailable                    → blocked
  trainer (or preferred trainer) out    → disrupted  (session can still run
                                                      unsupervised or move)

Also reports the (client, block) slots a new-hire trainee is working on today.
Those slots are not handed to a substitute.
"""

import logging
from datetime import date
from typing import Dict, List, Optional, Sequence, Set, Tuple

from daily_resolution.eligibility import (
    is_available,
    is_client_available,
    is_protected_by_new_hire,
)
from daily_resolution.models import (
    Client,
    ScheduleException,
    StaffMember,
    TrainingSession,
    TrainingSessionUpdate,
    TrainingStatus,
)
from daily_resolution.schedule_config import (
    SERVICE_BLOCKS,
    TRAINING_PLAN_ACTIVE,
    TRAINING_STATUS_PLANNED,
    TRAINING_TRACK_NEW_HIRE,
)

logger = logging.getLogger(__name__)


def todays_sessions(sessions: Sequence[TrainingSession], today: date) -> List[TrainingSession]:
    """Planned sessions on an active (or unset) plan with a block, dated today or undated."""
    selected = [
        s for s in sessions
        if s.status == TRAINING_STATUS_PLANNED
        and s.plan_status in (TRAINING_PLAN_ACTIVE, None)
        and s.scheduled_block is not None
        and (s.scheduled_date is None or s.scheduled_date == today)
    ]
    return sorted(selected, key=lambda s: s.id)


def new_hire_training_slots(
    sessions: Sequence[TrainingSession],
    staff_by_id: Dict[str, StaffMember],
    today: date,
) -> Set[Tuple[str, str]]:
    """(client_id, block) pairs where a new-hire-protected trainee trains today."""
    slots: Set[Tuple[str, str]] = set()
    for s in todays_sessions(sessions, today):
        if s.training_track != TRAINING_TRACK_NEW_HIRE or s.scheduled_block not in SERVICE_BLOCKS:
            continue
        trainee = staff_by_id.get(s.trainee_id)
        if trainee is not None and is_protected_by_new_hire(trainee, today):
            slots.add((s.client_id, s.scheduled_block))
    return slots


def _check_session(
    session: TrainingSession,
    staff_by_id: Dict[str, StaffMember],
    clients_by_id: Dict[str, Client],
    weekday: str,
    exceptions: Sequence[ScheduleException],
) -> Optional[TrainingSessionUpdate]:
    block = session.scheduled_block
    trainee = staff_by_id[session.trainee_id]
    if not is_available(trainee, weekday, block, exceptions):
        return TrainingSessionUpdate(
            session_id=session.id,
            new_status=TrainingStatus.BLOCKED,
            reason=f"Trainee {trainee.name} is unavailable (marked OUT)",
        )

    client = clients_by_id[session.client_id]
    if not is_client_available(client, block, exceptions):
        return TrainingSessionUpdate(
            session_id=session.id,
            new_status=TrainingStatus.BLOCKED,
            reason=f"Training client {client.name} is unavailable",
        )

    trainer_id = session.trainer_id or session.preferred_trainer_id
    if trainer_id:
        trainer = staff_by_id[trainer_id]
        if not is_available(trainer, weekday, block, exceptions):
            return TrainingSessionUpdate(
                session_id=session.id,
                new_status=TrainingStatus.DISRUPTED,
                reason=f"Assigned trainer {trainer.name} is unavailable",
            )
    return None


def impact_training(
    sessions: Sequence[TrainingSession],
    staff: Sequence[StaffMember],
    clients: Sequence[Client],
    weekday: str,
    exceptions: Sequence[ScheduleException],
    today: date,
) -> List[TrainingSessionUpdate]:
    staff_by_id = {s.id: s for s in staff}
    clients_by_id = {c.id: c for c in clients}

    updates: List[TrainingSessionUpdate] = []
    for session in todays_sessions(sessions, today):
        update = _check_session(session, staff_by_id, clients_by_id, weekday, exceptions)
        if update is not None:
            updates.append(update)
            logger.debug(f"Training {session.id}: {update.new_status.value} ({update.reason})")

    logger.info(f"Training: {len(updates)} session update(s) proposed")
    return updates
