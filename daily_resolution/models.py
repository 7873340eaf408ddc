"""
models.py - Records consumed and produced by the resolution engine

Inputs (immutable for a run):
  StaffMember, Client, ClientLocation, ClientCancelLink, TemplateAssignment,
  ScheduleException, ApprovedSub, TrainingSession, DayInputs

Outputs (generated fresh every run, never persisted here):
  ApprovalRequest, LunchCoverageError, TrainingSessionUpdate,
  ScheduleSlot, StaffSchedule, ResolutionResult

Enum members carry their wire value, e.g. ApprovalType.SUB_STAFFING.value
== "sub_staffing".
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Tuple

from daily_resolution.schedule_config import (
    AM,
    AM_BLOCK_END,
    AM_BLOCK_START,
    PM_BLOCK_END,
    PM_BLOCK_START,
)


class ExceptionType(Enum):
    STAFF = "staff"
    CLIENT = "client"


class ExceptionMode(Enum):
    OUT = "out"
    IN = "in"
    CANCELLED = "cancelled"


class ApprovalType(Enum):
    SUB_STAFFING = "sub_staffing"
    LEAD_STAFFING = "lead_staffing"
    LEAD_RESERVE = "lead_reserve"
    ALL_DAY_STAFFING = "all_day_staffing"
    CANCELLATION = "cancellation"
    CANCEL_PROTECTED = "cancel_protected"
    CANCEL_SKIPPED = "cancel_skipped"


CANCELLATION_FAMILY = {
    ApprovalType.CANCELLATION,
    ApprovalType.CANCEL_PROTECTED,
    ApprovalType.CANCEL_SKIPPED,
}

STAFFING_PROPOSALS = {
    ApprovalType.SUB_STAFFING,
    ApprovalType.LEAD_STAFFING,
    ApprovalType.LEAD_RESERVE,
}


class ApprovalStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    BLOCKED = "blocked"


class SlotSource(Enum):
    TEMPLATE = "template"
    SUB = "sub"
    LEAD = "lead"
    CANCEL = "cancel"
    UNFILLED = "unfilled"


class StaffStatus(Enum):
    OUT = "OUT"
    PARTIAL = "PARTIAL"
    ACTIVE = "ACTIVE"


class TrainingStatus(Enum):
    BLOCKED = "blocked"
    DISRUPTED = "disrupted"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass
class DayWindow:
    """Declared weekly availability for one weekday. Missing bounds are open."""
    available: bool = True
    start_minute: Optional[int] = None
    end_minute: Optional[int] = None


@dataclass
class ServiceWindow:
    """A client's session times for one weekday."""
    enabled: bool = True
    am_start: Optional[int] = None
    am_end: Optional[int] = None
    pm_start: Optional[int] = None
    pm_end: Optional[int] = None

    @classmethod
    def from_span(cls, start: int, end: int) -> "ServiceWindow":
        """Single start/end session split on the 12:30 PM boundary."""
        in_am = start < PM_BLOCK_START
        in_pm = end > PM_BLOCK_START
        return cls(
            enabled=True,
            am_start=start if in_am else None,
            am_end=min(end, PM_BLOCK_START) if in_am else None,
            pm_start=max(start, PM_BLOCK_START) if in_pm else None,
            pm_end=end if in_pm else None,
        )


@dataclass
class StaffMember:
    id: str
    name: str
    role: str = "RBT"
    lead_level: Optional[int] = None
    active: bool = True
    sub_eligible: bool = False
    availability: Dict[str, DayWindow] = field(default_factory=dict)
    hire_date: Optional[date] = None
    new_hire_override: bool = False
    bt_certification_date: Optional[date] = None
    rbt_certification_date: Optional[date] = None
    no_crisis_coverage: bool = False
    no_lunch: bool = False
    no_late_lunches: bool = False


@dataclass
class Client:
    id: str
    name: str
    active: bool = True
    schedule: Dict[str, ServiceWindow] = field(default_factory=dict)
    allow_sub: bool = True
    float_rbts_allowed: bool = False
    allowed_float_rbt_ids: List[str] = field(default_factory=list)
    lead_rbts_allowed: bool = False
    allowed_lead_rbt_ids: List[str] = field(default_factory=list)
    excluded_staff_ids: List[str] = field(default_factory=list)
    no_longer_trained_ids: List[str] = field(default_factory=list)
    focus_staff_ids: List[str] = field(default_factory=list)
    trained_staff_ids: List[str] = field(default_factory=list)
    allow_all_day_same_staff: bool = False
    sessions_per_week: Optional[int] = None
    last_canceled_date: Optional[date] = None
    cancel_skip_used: bool = False
    last_skipped_date: Optional[date] = None
    consecutive_absent_days: int = 0
    days_back_since_absence: int = 0
    cancel_all_day_only: bool = False
    can_be_grouped: bool = False
    allowed_lunch_peer_ids: List[str] = field(default_factory=list)
    no_first_lunch_peer_ids: List[str] = field(default_factory=list)
    no_second_lunch_peer_ids: List[str] = field(default_factory=list)
    allow_groups_of_3: bool = False
    allow_groups_of_4: bool = False
    disallowed_group_combos: List[str] = field(default_factory=list)
    lunch_coverage_staff_ids: List[str] = field(default_factory=list)
    lunch_coverage_excluded_staff_ids: List[str] = field(default_factory=list)
    service_start_date: Optional[date] = None


@dataclass
class ClientLocation:
    id: str
    client_id: str
    location_type: str = "clinic"
    display_name: Optional[str] = None
    service_start_date: Optional[date] = None


@dataclass
class ClientCancelLink:
    client_id: str
    linked_client_id: str


@dataclass
class TemplateAssignment:
    weekday: str
    block: str
    staff_id: str
    client_id: Optional[str] = None
    start_minute: Optional[int] = None
    end_minute: Optional[int] = None
    locked: bool = False

    def window(self) -> Tuple[int, int]:
        if self.block == AM:
            default = (AM_BLOCK_START, AM_BLOCK_END)
        else:
            default = (PM_BLOCK_START, PM_BLOCK_END)
        start = self.start_minute if self.start_minute is not None else default[0]
        end = self.end_minute if self.end_minute is not None else default[1]
        return start, end


@dataclass
class ScheduleException:
    type: ExceptionType
    entity_id: str
    mode: ExceptionMode = ExceptionMode.OUT
    all_day: bool = True
    start_minute: Optional[int] = None
    end_minute: Optional[int] = None
    id: Optional[str] = None

    def overlaps(self, start: int, end: int) -> bool:
        """True if this exception's time span touches [start, end)."""
        if self.all_day or self.start_minute is None or self.end_minute is None:
            return True
        return self.start_minute < end and start < self.end_minute


@dataclass
class ApprovedSub:
    client_id: str
    sub_staff_id: str
    block: str


@dataclass
class TrainingSession:
    id: str
    trainee_id: str
    client_id: str
    trainer_id: Optional[str] = None
    preferred_trainer_id: Optional[str] = None
    scheduled_date: Optional[date] = None
    scheduled_block: Optional[str] = None
    status: str = "planned"
    plan_status: Optional[str] = "active"
    training_track: str = "new_hire"


@dataclass
class DayInputs:
    """Everything the persistence layer supplies for one resolution run."""
    staff: List[StaffMember]
    clients: List[Client]
    template: List[TemplateAssignment]
    locations: List[ClientLocation] = field(default_factory=list)
    training_sessions: List[TrainingSession] = field(default_factory=list)
    cancel_links: List[ClientCancelLink] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

@dataclass
class ApprovalRequest:
    id: str
    type: ApprovalType
    client_id: str
    client_name: str
    block: str
    reason: str
    status: ApprovalStatus = ApprovalStatus.PENDING
    proposed_sub_id: Optional[str] = None
    proposed_sub_name: Optional[str] = None
    original_staff_id: Optional[str] = None
    skip_reason: Optional[str] = None
    cancel_timing: Optional[str] = None
    linked_client_ids: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        parts = [f"[{self.status.value.upper()}] {self.type.value}", f"client={self.client_name}", f"block={self.block}"]
        if self.proposed_sub_name:
            parts.append(f"proposed={self.proposed_sub_name}")
        parts.append(f"→ {self.skip_reason or self.reason}")
        return " | ".join(parts)


@dataclass
class LunchCoverageError:
    client_id: str
    client_name: str
    lunch_slot: str
    reason: str


@dataclass
class TrainingSessionUpdate:
    session_id: str
    new_status: TrainingStatus
    reason: str


@dataclass
class ScheduleSlot:
    block: str
    value: str
    source: SlotSource
    client_id: Optional[str] = None
    reason: Optional[str] = None
    start_minute: Optional[int] = None
    end_minute: Optional[int] = None


@dataclass
class StaffSchedule:
    staff_id: str
    staff_name: str
    status: StaffStatus
    slots: List[ScheduleSlot] = field(default_factory=list)

    def slot(self, block: str) -> Optional[ScheduleSlot]:
        for s in self.slots:
            if s.block == block:
                return s
        return None


@dataclass
class ResolutionResult:
    resolution_date: date
    day_key: Optional[str]
    schedule: List[StaffSchedule] = field(default_factory=list)
    approvals: List[ApprovalRequest] = field(default_factory=list)
    lunch_errors: List[LunchCoverageError] = field(default_factory=list)
    training_updates: List[TrainingSessionUpdate] = field(default_factory=list)

    def approvals_of(self, approval_type: ApprovalType) -> List[ApprovalRequest]:
        return [a for a in self.approvals if a.type == approval_type]
