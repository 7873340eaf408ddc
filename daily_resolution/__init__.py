"""
Daily Schedule Resolution Engine

Modules:
- engine: resolve_day() pipeline and day metrics
- eligibility: availability, exclusion, sub/float/lead eligibility, protection
- coverage: gap detection and substitute / lead search
- cancellations: protection, skip rules and fairness-ordered cancellation
- lunch: lunch sub-slots and group coverage
- training: training session impact
- assembler: per-staff schedule
- config: CSV loaders
- constraints: input validation and result checks
- explainer / exporter / dry_run: reporting and CLI
"""

from .config import (
    load_day_inputs,
    load_exceptions,
    load_approved_subs,
    get_config,
)

from .constraints import (
    ConstraintChecker,
    InputValidationError,
    validate_inputs,
)

from .engine import (
    resolve_day,
    calculate_day_metrics,
)

from .models import (
    ApprovalRequest,
    ApprovalStatus,
    ApprovalType,
    ApprovedSub,
    Client,
    DayInputs,
    ResolutionResult,
    ScheduleException,
    StaffMember,
    TemplateAssignment,
    TrainingSession,
)

__all__ = [
    "load_day_inputs",
    "load_exceptions",
    "load_approved_subs",
    "get_config",
    "ConstraintChecker",
    "InputValidationError",
    "validate_inputs",
    "resolve_day",
    "calculate_day_metrics",
    "ApprovalRequest",
    "ApprovalStatus",
    "ApprovalType",
    "ApprovedSub",
    "Client",
    "DayInputs",
    "ResolutionResult",
    "ScheduleException",
    "StaffMember",
    "TemplateAssignment",
    "TrainingSession",
]
