"""
constraints.py - Input Validation & Result Checks

Input validation (fail fast, raises InputValidationError):
  - duplicate staff / client ids
  - template assignments, approved subs, training sessions, locations or
    cancel links referencing unknown staff / client ids
  - blocks other than AM / PM on assignments and approved subs

Result checks (reported, never raised):

Hard constraints (must NOT occur):
  - DOUBLE_BOOKING: a staff member proposed twice in a block, or while in session
  - EXCLUDED_STAFF: staff placed on a client that excludes them
  - CANCELLATION_EXCLUSIVE: more than one cancellation-family decision per client
  - UNKNOWN_REFERENCE: an approval naming a client/staff not in today's inputs

Soft constraints (surface to a human):
  - UNFILLED_SLOT: slots no stage could resolve
  - LUNCH_UNCOVERED: lunch sub-slots without legal coverage
  - BLOCKED_APPROVAL: decisions the system refuses to take on its own

Usage:
  validate_inputs(inputs, exceptions, approved_subs)
  checker = ConstraintChecker(inputs)
  hard, soft = checker.check_all(result)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from daily_resolution.models import (
    ApprovalStatus,
    ApprovedSub,
    CANCELLATION_FAMILY,
    DayInputs,
    ExceptionType,
    ResolutionResult,
    ScheduleException,
    SlotSource,
    STAFFING_PROPOSALS,
)
from daily_resolution.schedule_config import BLOCK_WINDOWS, SERVICE_BLOCKS

logger = logging.getLogger(__name__)


class InputValidationError(ValueError):
    """Malformed engine input. Raised before any resolution work starts."""


class ConstraintSeverity(Enum):
    HARD = "hard"
    SOFT = "soft"


@dataclass
class ConstraintViolation:
    severity: ConstraintSeverity
    constraint_type: str
    description: str
    block: Optional[str] = None
    staff: Optional[str] = None
    client: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.severity.value.upper()}] {self.constraint_type}"]
        if self.block:
            parts.append(f"block={self.block}")
        if self.staff:
            parts.append(f"staff={self.staff}")
        if self.client:
            parts.append(f"client={self.client}")
        parts.append(f"→ {self.description}")
        return " | ".join(parts)


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

def _duplicates(ids: Sequence[str]) -> List[str]:
    seen: Set[str] = set()
    dupes: Set[str] = set()
    for i in ids:
        if i in seen:
            dupes.add(i)
        seen.add(i)
    return sorted(dupes)


def collect_input_errors(
    inputs: DayInputs,
    exceptions: Sequence[ScheduleException] = (),
    approved_subs: Sequence[ApprovedSub] = (),
) -> List[str]:
    """All structural problems in the inputs, as human-readable strings."""
    errors: List[str] = []
    staff_ids = {s.id for s in inputs.staff}
    client_ids = {c.id for c in inputs.clients}

    dupes = _duplicates([s.id for s in inputs.staff])
    if dupes:
        errors.append(f"Duplicate staff ids: {dupes}")
    dupes = _duplicates([c.id for c in inputs.clients])
    if dupes:
        errors.append(f"Duplicate client ids: {dupes}")

    for i, a in enumerate(inputs.template):
        if a.block not in SERVICE_BLOCKS:
            errors.append(f"Template assignment #{i}: invalid block '{a.block}'")
        if a.staff_id not in staff_ids:
            errors.append(f"Template assignment #{i}: unknown staff id '{a.staff_id}'")
        if a.client_id is not None and a.client_id not in client_ids:
            errors.append(f"Template assignment #{i}: unknown client id '{a.client_id}'")

    for sub in approved_subs:
        if sub.block not in SERVICE_BLOCKS:
            errors.append(f"Approved sub for '{sub.client_id}': invalid block '{sub.block}'")
        if sub.client_id not in client_ids:
            errors.append(f"Approved sub: unknown client id '{sub.client_id}'")
        if sub.sub_staff_id not in staff_ids:
            errors.append(f"Approved sub for '{sub.client_id}': unknown staff id '{sub.sub_staff_id}'")

    for exc in exceptions:
        known = staff_ids if exc.type == ExceptionType.STAFF else client_ids
        if exc.entity_id not in known:
            errors.append(f"Exception: unknown {exc.type.value} id '{exc.entity_id}'")

    for session in inputs.training_sessions:
        for role, staff_id in (
            ("trainee", session.trainee_id),
            ("trainer", session.trainer_id),
            ("preferred trainer", session.preferred_trainer_id),
        ):
            if staff_id is not None and staff_id not in staff_ids:
                errors.append(f"Training session '{session.id}': unknown {role} id '{staff_id}'")
        if session.client_id not in client_ids:
            errors.append(f"Training session '{session.id}': unknown client id '{session.client_id}'")
        if session.scheduled_block is not None and session.scheduled_block not in BLOCK_WINDOWS:
            errors.append(f"Training session '{session.id}': invalid block '{session.scheduled_block}'")

    for loc in inputs.locations:
        if loc.client_id not in client_ids:
            errors.append(f"Client location '{loc.id}': unknown client id '{loc.client_id}'")

    for link in inputs.cancel_links:
        for client_id in (link.client_id, link.linked_client_id):
            if client_id not in client_ids:
                errors.append(f"Cancel link: unknown client id '{client_id}'")

    return errors


def validate_inputs(
    inputs: DayInputs,
    exceptions: Sequence[ScheduleException] = (),
    approved_subs: Sequence[ApprovedSub] = (),
) -> None:
    """Raise InputValidationError listing every structural problem found."""
    errors = collect_input_errors(inputs, exceptions, approved_subs)
    if errors:
        for e in errors:
            logger.error(e)
        raise InputValidationError(
            f"{len(errors)} input error(s): " + "; ".join(errors)
        )


# ---------------------------------------------------------------------------
# Result checks
# ---------------------------------------------------------------------------

class ConstraintChecker:
    """
    Audits a ResolutionResult against the day's inputs.

    The engine produces data, not exceptions; this checker is what a caller
    (or the dry run) uses to decide whether a result is safe to publish.
    """

    def __init__(self, inputs: DayInputs):
        self.inputs = inputs
        self._staff_by_id = {s.id: s for s in inputs.staff}
        self._clients_by_id = {c.id: c for c in inputs.clients}

    # -----------------------------------------------------------------------
    # HARD: Double-booking check
    # -----------------------------------------------------------------------

    def check_double_booking(self, result: ResolutionResult) -> List[ConstraintViolation]:
        """Hard: nobody is proposed twice in a block, or proposed while already in a session."""
        violations = []
        in_session: Set[Tuple[str, str]] = set()
        for entry in result.schedule:
            for slot in entry.slots:
                if slot.block in SERVICE_BLOCKS and slot.client_id and slot.source in (
                    SlotSource.TEMPLATE, SlotSource.SUB, SlotSource.LEAD
                ):
                    in_session.add((entry.staff_id, slot.block))

        proposed: Dict[Tuple[str, str], str] = {}
        for approval in result.approvals:
            if approval.type not in STAFFING_PROPOSALS or not approval.proposed_sub_id:
                continue
            key = (approval.proposed_sub_id, approval.block)
            if key in proposed or key in in_session:
                other = proposed.get(key, "their own session")
                violations.append(ConstraintViolation(
                    severity=ConstraintSeverity.HARD,
                    constraint_type="DOUBLE_BOOKING",
                    description=f"{approval.proposed_sub_name} proposed for {approval.client_name} "
                                f"while committed to {other}",
                    block=approval.block,
                    staff=approval.proposed_sub_name,
                    client=approval.client_name,
                ))
            proposed[key] = approval.client_name
        return violations

    # -----------------------------------------------------------------------
    # HARD: Exclusions
    # -----------------------------------------------------------------------

    def check_excluded_staff(self, result: ResolutionResult) -> List[ConstraintViolation]:
        """Hard: no staff on a client that excludes them (sessions, proposals or lunch)."""
        violations = []
        for entry in result.schedule:
            for slot in entry.slots:
                if slot.source not in (SlotSource.SUB, SlotSource.LEAD) or not slot.client_id:
                    continue
                client = self._clients_by_id.get(slot.client_id)
                if client and entry.staff_id in client.excluded_staff_ids:
                    violations.append(ConstraintViolation(
                        severity=ConstraintSeverity.HARD,
                        constraint_type="EXCLUDED_STAFF",
                        description=f"{entry.staff_name} is excluded from {client.name}",
                        block=slot.block,
                        staff=entry.staff_name,
                        client=client.name,
                    ))
        for approval in result.approvals:
            client = self._clients_by_id.get(approval.client_id)
            if client and approval.proposed_sub_id and approval.proposed_sub_id in client.excluded_staff_ids:
                violations.append(ConstraintViolation(
                    severity=ConstraintSeverity.HARD,
                    constraint_type="EXCLUDED_STAFF",
                    description=f"Proposed {approval.proposed_sub_name} is excluded from {client.name}",
                    block=approval.block,
                    staff=approval.proposed_sub_name,
                    client=client.name,
                ))
        return violations

    # -----------------------------------------------------------------------
    # HARD: One cancellation-family decision per client
    # -----------------------------------------------------------------------

    def check_cancellation_exclusive(self, result: ResolutionResult) -> List[ConstraintViolation]:
        violations = []
        counts: Dict[str, int] = {}
        for approval in result.approvals:
            if approval.type in CANCELLATION_FAMILY:
                counts[approval.client_id] = counts.get(approval.client_id, 0) + 1
        for client_id, n in sorted(counts.items()):
            if n > 1:
                violations.append(ConstraintViolation(
                    severity=ConstraintSeverity.HARD,
                    constraint_type="CANCELLATION_EXCLUSIVE",
                    description=f"{n} cancellation decisions for one client",
                    client=client_id,
                ))
        return violations

    # -----------------------------------------------------------------------
    # HARD: Approval references
    # -----------------------------------------------------------------------

    def check_references(self, result: ResolutionResult) -> List[ConstraintViolation]:
        violations = []
        for approval in result.approvals:
            missing = []
            if approval.client_id not in self._clients_by_id:
                missing.append(f"client '{approval.client_id}'")
            for staff_id in (approval.proposed_sub_id, approval.original_staff_id):
                if staff_id and staff_id not in self._staff_by_id:
                    missing.append(f"staff '{staff_id}'")
            if missing:
                violations.append(ConstraintViolation(
                    severity=ConstraintSeverity.HARD,
                    constraint_type="UNKNOWN_REFERENCE",
                    description=f"Approval {approval.id} references unknown {', '.join(missing)}",
                    client=approval.client_id,
                ))
        return violations

    # -----------------------------------------------------------------------
    # SOFT: Unfilled, lunch, blocked
    # -----------------------------------------------------------------------

    def check_unfilled(self, result: ResolutionResult) -> List[ConstraintViolation]:
        """Soft: flag unresolved slots for a human."""
        violations = []
        for entry in result.schedule:
            for slot in entry.slots:
                if slot.source == SlotSource.UNFILLED:
                    violations.append(ConstraintViolation(
                        severity=ConstraintSeverity.SOFT,
                        constraint_type="UNFILLED_SLOT",
                        description=slot.reason or "Slot could not be resolved",
                        block=slot.block,
                        staff=entry.staff_name,
                        client=slot.client_id,
                    ))
        return violations

    def check_lunch(self, result: ResolutionResult) -> List[ConstraintViolation]:
        return [
            ConstraintViolation(
                severity=ConstraintSeverity.SOFT,
                constraint_type="LUNCH_UNCOVERED",
                description=err.reason,
                block=err.lunch_slot,
                client=err.client_name,
            )
            for err in result.lunch_errors
        ]

    def check_blocked(self, result: ResolutionResult) -> List[ConstraintViolation]:
        return [
            ConstraintViolation(
                severity=ConstraintSeverity.SOFT,
                constraint_type="BLOCKED_APPROVAL",
                description=a.reason,
                block=a.block,
                client=a.client_name,
            )
            for a in result.approvals
            if a.status == ApprovalStatus.BLOCKED
        ]

    # -----------------------------------------------------------------------
    # Run all checks
    # -----------------------------------------------------------------------

    def check_all(
        self,
        result: ResolutionResult,
    ) -> Tuple[List[ConstraintViolation], List[ConstraintViolation]]:
        """
        Run all hard and soft checks.

        Returns:
            (hard_violations, soft_violations)
        """
        hard: List[ConstraintViolation] = []
        soft: List[ConstraintViolation] = []

        hard.extend(self.check_double_booking(result))
        hard.extend(self.check_excluded_staff(result))
        hard.extend(self.check_cancellation_exclusive(result))
        hard.extend(self.check_references(result))
        soft.extend(self.check_unfilled(result))
        soft.extend(self.check_lunch(result))
        soft.extend(self.check_blocked(result))

        if hard:
            logger.warning(f"{len(hard)} hard constraint violation(s)")
        return hard, soft
