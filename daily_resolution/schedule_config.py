"""
schedule_config.py - Time Blocks, Policy Windows & Role Configuration

All minute values are minutes after midnight.

TIME BLOCKS
───────────
  AM       07:30 – 11:30   (450 – 690)
  LUNCH_1  11:30 – 12:00   (690 – 720)   "first" lunch sub-slot
  LUNCH_2  12:00 – 12:30   (720 – 750)   "second" lunch sub-slot
  PM       12:30 – 16:30   (750 – 990)

  A client "reaches lunch" when its AM session ends at or after 11:30.
  Staff continuing into PM eat in LUNCH_1 and cover in LUNCH_2; staff whose
  day ends at the AM/lunch boundary eat in LUNCH_2 and cover in LUNCH_1.

POLICY WINDOWS
──────────────
  PROTECTION_DAYS          new clients / locations cannot be cancelled, and
                           new hires are protected, for this many days
  LEAD_RESERVE_THRESHOLD   a lead proposal becomes "lead_reserve" when the
                           free lead count is at or below this number
  ABSENCE_SKIP_DAYS        consecutive absent days that earn a one-time skip
  ABSENCE_RETURN_DAYS      attendance days after return before the skip lapses

CANCEL TIMING
─────────────
  Groupable clients are cancelled on the inner boundaries (until 11:30 /
  from 12:30); non-groupable clients lose the lunch window too (until 12:30 /
  from 11:30).
"""

from typing import Dict, List, Optional, Tuple

# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------
AM = "AM"
PM = "PM"
LUNCH_1 = "LUNCH_1"
LUNCH_2 = "LUNCH_2"
ALL_DAY = "ALL_DAY"

SERVICE_BLOCKS: List[str] = [AM, PM]
SLOT_ORDER: List[str] = [AM, LUNCH_1, LUNCH_2, PM]

AM_BLOCK_START = 450     # 7:30 AM
AM_BLOCK_END = 690       # 11:30 AM
PM_BLOCK_START = 750     # 12:30 PM
PM_BLOCK_END = 990       # 4:30 PM

LUNCH_FIRST_START = 690  # 11:30 AM
LUNCH_SECOND_START = 720 # 12:00 PM
LUNCH_END = 750          # 12:30 PM

BLOCK_WINDOWS: Dict[str, Tuple[int, int]] = {
    AM:      (AM_BLOCK_START, AM_BLOCK_END),
    LUNCH_1: (LUNCH_FIRST_START, LUNCH_SECOND_START),
    LUNCH_2: (LUNCH_SECOND_START, LUNCH_END),
    PM:      (PM_BLOCK_START, PM_BLOCK_END),
}

LUNCH_SLOT_FIRST = "first"
LUNCH_SLOT_SECOND = "second"

# lunch slot -> (block it occupies, display label)
LUNCH_SLOTS: Dict[str, Tuple[str, str]] = {
    LUNCH_SLOT_FIRST:  (LUNCH_1, "11:30"),
    LUNCH_SLOT_SECOND: (LUNCH_2, "12:00"),
}

# ---------------------------------------------------------------------------
# Policy windows
# ---------------------------------------------------------------------------
PROTECTION_DAYS = 30
LEAD_RESERVE_THRESHOLD = 4
ABSENCE_SKIP_DAYS = 5
ABSENCE_RETURN_DAYS = 3
TWICE_WEEKLY_SESSIONS = 2

MAX_LUNCH_GROUP_SIZE = 4

# ---------------------------------------------------------------------------
# Weekdays (0 = Sunday .. 6 = Saturday)
# ---------------------------------------------------------------------------
WEEKDAY_KEYS: Dict[int, str] = {
    1: "mon",
    2: "tue",
    3: "wed",
    4: "thu",
    5: "fri",
}
WEEKDAY_NAMES: Dict[str, str] = {
    "mon": "Monday", "tue": "Tuesday", "wed": "Wednesday",
    "thu": "Thursday", "fri": "Friday",
}

# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------
ROLE_LEAD = "Lead RBT"
ROLE_FLOAT = "Float"
ROLE_BCBA = "BCBA"
ROLE_ADMIN = "Admin"
NON_DIRECT_ROLES = {ROLE_BCBA, ROLE_ADMIN}

# Candidate tiers for substitution; lower sorts first
PRIORITY_FOCUS = "focus"
PRIORITY_TRAINED = "trained"
PRIORITY_FLOAT = "float"
PRIORITY_SUB = "sub"
PRIORITY_LEAD = "lead"
PRIORITY_ORDER: Dict[str, int] = {
    PRIORITY_FOCUS: 0,
    PRIORITY_TRAINED: 1,
    PRIORITY_FLOAT: 2,
    PRIORITY_SUB: 3,
    PRIORITY_LEAD: 4,
}

# ---------------------------------------------------------------------------
# Training
# ---------------------------------------------------------------------------
TRAINING_STATUS_PLANNED = "planned"
TRAINING_PLAN_ACTIVE = "active"
TRAINING_TRACK_NEW_HIRE = "new_hire"

# ---------------------------------------------------------------------------
# Cancel timing: (groupable, blocks) -> timing code
# ---------------------------------------------------------------------------
CANCEL_TIMING_ALL_DAY = "all_day"
CANCEL_TIMING_UNTIL_1130 = "until_1130"
CANCEL_TIMING_UNTIL_1230 = "until_1230"
CANCEL_TIMING_AT_1130 = "at_1130"
CANCEL_TIMING_AT_1230 = "at_1230"

CANCEL_TIMING_DESCRIPTIONS: Dict[str, str] = {
    CANCEL_TIMING_ALL_DAY:    "Cancelled all day",
    CANCEL_TIMING_UNTIL_1130: "Cancelled until 11:30 AM",
    CANCEL_TIMING_UNTIL_1230: "Cancelled until 12:30 PM",
    CANCEL_TIMING_AT_1130:    "Cancelled at 11:30 AM",
    CANCEL_TIMING_AT_1230:    "Cancelled at 12:30 PM",
}

# ---------------------------------------------------------------------------
# Display values used by the assembler
# ---------------------------------------------------------------------------
VALUE_OUT = "OUT"
VALUE_OPEN = "OPEN"
VALUE_LUNCH = "LUNCH"
VALUE_UNFILLED = "UNFILLED"


def day_key_from_index(weekday_index: int) -> Optional[str]:
    """Map 0=Sunday..6=Saturday to mon..fri; weekends have no day key."""
    return WEEKDAY_KEYS.get(weekday_index)


def weekday_index_for(d) -> int:
    """Sunday-based weekday index of a date (date.weekday() is Monday-based)."""
    return (d.weekday() + 1) % 7


def minutes_to_label(minute: int) -> str:
    """690 -> '11:30'."""
    return f"{minute // 60:02d}:{minute % 60:02d}"


def label_to_minutes(label: str) -> int:
    """'11:30' -> 690. Raises ValueError on malformed input."""
    hours, _, mins = str(label).strip().partition(":")
    return int(hours) * 60 + int(mins or 0)


def cancel_timing_for(blocks: List[str], can_be_grouped: bool) -> str:
    """Timing code for a cancellation covering the given service blocks."""
    if AM in blocks and PM in blocks:
        return CANCEL_TIMING_ALL_DAY
    if can_be_grouped:
        return CANCEL_TIMING_UNTIL_1130 if AM in blocks else CANCEL_TIMING_AT_1230
    return CANCEL_TIMING_UNTIL_1230 if AM in blocks else CANCEL_TIMING_AT_1130
