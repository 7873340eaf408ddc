"""
config.py - Configuration Module for the Daily Schedule Resolution Engine

Loads the CSV collections a caller hands to resolve_day():

  staff.csv              roster with weekly availability (required)
  clients.csv            clients with session times and policy flags (required)
  template.csv           weekly template assignments (required)
  exceptions.csv         same-day staff / client exceptions
  approved_subs.csv      substitutions a human already approved
  training_sessions.csv  planned training sessions
  client_locations.csv   client service locations (tenure protection)
  cancel_links.csv       linked-cancellation pairs (siblings)

Re-exports schedule_config constants for callers that only import config.

CSV conventions:
  - yes/no columns accept yes/no/true/false/1/0/y
  - id lists are comma, semicolon or pipe separated
  - weekday columns (mon..fri) hold "HH:MM-HH:MM", "no" (unavailable) or blank
  - disallowed_group_combos pairs are written "c1+c2;c3+c4"
"""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from daily_resolution.models import (
    ApprovedSub,
    Client,
    ClientCancelLink,
    ClientLocation,
    DayInputs,
    DayWindow,
    ExceptionMode,
    ExceptionType,
    ScheduleException,
    ServiceWindow,
    StaffMember,
    TemplateAssignment,
    TrainingSession,
)

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_DIR = PROJECT_ROOT / "config"

STAFF_FILE = "staff.csv"
CLIENTS_FILE = "clients.csv"
TEMPLATE_FILE = "template.csv"
EXCEPTIONS_FILE = "exceptions.csv"
APPROVED_SUBS_FILE = "approved_subs.csv"
TRAINING_FILE = "training_sessions.csv"
LOCATIONS_FILE = "client_locations.csv"
CANCEL_LINKS_FILE = "cancel_links.csv"


# ---------------------------------------------------------------------------
# Re-export from schedule_config
# ---------------------------------------------------------------------------
from daily_resolution.schedule_config import (    # noqa: E402
    ABSENCE_RETURN_DAYS,
    ABSENCE_SKIP_DAYS,
    BLOCK_WINDOWS,
    CANCEL_TIMING_DESCRIPTIONS,
    LEAD_RESERVE_THRESHOLD,
    LUNCH_SLOTS,
    MAX_LUNCH_GROUP_SIZE,
    PRIORITY_ORDER,
    PROTECTION_DAYS,
    SERVICE_BLOCKS,
    TWICE_WEEKLY_SESSIONS,
    WEEKDAY_KEYS,
    label_to_minutes,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _text(value: Any) -> str:
    if value is None:
        return ""
    s = str(value).strip()
    return "" if s.lower() == "nan" else s


def _optional(value: Any) -> Optional[str]:
    s = _text(value)
    return s or None


def _parse_yes_no(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    s = _text(value).lower()
    if not s:
        return default
    return s in ("yes", "true", "1", "y")


def _parse_id_list(raw: Any) -> List[str]:
    """
    Parse an id list cell.
    Handles:
      - comma-separated:  "s1,s2"
      - semicolon-sep:    "s1;s2"
      - pipe-sep:         "s1|s2"
    """
    s = _text(raw).strip('"').strip("'")
    if not s:
        return []
    s = s.replace(";", ",").replace("|", ",")
    return [p.strip() for p in s.split(",") if p.strip()]


def _parse_combos(raw: Any) -> List[str]:
    """'c1+c2;c3+c4' -> ['c1,c2', 'c3,c4']"""
    s = _text(raw)
    combos = []
    for pair in s.split(";"):
        ids = [p.strip() for p in pair.split("+") if p.strip()]
        if len(ids) == 2:
            combos.append(f"{ids[0]},{ids[1]}")
        elif ids:
            logger.warning(f"Ignoring malformed group combo '{pair}'")
    return combos


def _parse_date(value: Any) -> Optional[date]:
    s = _text(value)
    if not s:
        return None
    return datetime.strptime(s[:10], "%Y-%m-%d").date()


def _parse_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    s = _text(value)
    if not s:
        return default
    return int(float(s))


def _parse_minutes(value: Any) -> Optional[int]:
    s = _text(value)
    return label_to_minutes(s) if s else None


def _parse_span(value: Any) -> Optional[Tuple[int, int]]:
    """'07:30-16:30' -> (450, 990). Blank -> None."""
    s = _text(value)
    if not s:
        return None
    start, sep, end = s.partition("-")
    if not sep:
        raise ValueError(f"Expected 'HH:MM-HH:MM', got '{s}'")
    return label_to_minutes(start), label_to_minutes(end)


def _read_csv(path: Path) -> Any:
    import pandas as pd
    return pd.read_csv(path, dtype=str, keep_default_na=False)


def _required(config_dir: Optional[Path], filename: str) -> Path:
    path = (config_dir or DEFAULT_CONFIG_DIR) / filename
    if not path.exists():
        raise FileNotFoundError(f"{filename} not found: {path}")
    return path


def _optional_path(config_dir: Optional[Path], filename: str) -> Optional[Path]:
    path = (config_dir or DEFAULT_CONFIG_DIR) / filename
    if not path.exists():
        logger.warning(f"{filename} not found: {path}. Returning empty list.")
        return None
    return path


# ---------------------------------------------------------------------------
# Staff / clients / template (required)
# ---------------------------------------------------------------------------

def _availability(row: Any) -> Dict[str, Any]:
    windows: Dict[str, DayWindow] = {}
    for key in WEEKDAY_KEYS.values():
        cell = _text(row.get(key, ""))
        if not cell:
            continue
        if cell.lower() in ("no", "off", "false", "0"):
            windows[key] = DayWindow(available=False)
            continue
        span = _parse_span(cell)
        windows[key] = DayWindow(available=True, start_minute=span[0], end_minute=span[1])
    return windows


def load_staff(config_dir: Optional[Path] = None) -> List[StaffMember]:
    """
    Load staff from staff.csv.

    Expected columns:
      id, name, role, lead_level, active, sub_eligible, hire_date,
      new_hire_override, bt_certification_date, rbt_certification_date,
      no_crisis_coverage, no_lunch, no_late_lunches, mon..fri (availability)
    """
    path = _required(config_dir, STAFF_FILE)
    df = _read_csv(path)

    staff: List[StaffMember] = []
    for _, row in df.iterrows():
        staff.append(StaffMember(
            id=_text(row["id"]),
            name=_text(row["name"]),
            role=_text(row.get("role", "")) or "RBT",
            lead_level=_parse_int(row.get("lead_level")),
            active=_parse_yes_no(row.get("active"), default=True),
            sub_eligible=_parse_yes_no(row.get("sub_eligible")),
            availability=_availability(row),
            hire_date=_parse_date(row.get("hire_date")),
            new_hire_override=_parse_yes_no(row.get("new_hire_override")),
            bt_certification_date=_parse_date(row.get("bt_certification_date")),
            rbt_certification_date=_parse_date(row.get("rbt_certification_date")),
            no_crisis_coverage=_parse_yes_no(row.get("no_crisis_coverage")),
            no_lunch=_parse_yes_no(row.get("no_lunch")),
            no_late_lunches=_parse_yes_no(row.get("no_late_lunches")),
        ))

    logger.info(f"Loaded {len(staff)} staff from {path}")
    return staff


def _service_schedule(row: Any) -> Dict[str, ServiceWindow]:
    schedule: Dict[str, ServiceWindow] = {}
    for key in WEEKDAY_KEYS.values():
        cell = _text(row.get(key, ""))
        if not cell:
            continue
        if cell.lower() in ("no", "off", "false", "0"):
            schedule[key] = ServiceWindow(enabled=False)
            continue
        start, end = _parse_span(cell)
        schedule[key] = ServiceWindow.from_span(start, end)
    return schedule


def load_clients(config_dir: Optional[Path] = None) -> List[Client]:
    """
    Load clients from clients.csv.

    Expected columns (all but id/name optional):
      id, name, active, mon..fri, allow_sub, float_rbts_allowed,
      allowed_float_rbt_ids, lead_rbts_allowed, allowed_lead_rbt_ids,
      excluded_staff_ids, no_longer_trained_ids, focus_staff_ids,
      trained_staff_ids, allow_all_day_same_staff, sessions_per_week,
      last_canceled_date, cancel_skip_used, last_skipped_date,
      consecutive_absent_days, days_back_since_absence, cancel_all_day_only,
      can_be_grouped, allowed_lunch_peer_ids, no_first_lunch_peer_ids,
      no_second_lunch_peer_ids, allow_groups_of_3, allow_groups_of_4,
      disallowed_group_combos, lunch_coverage_staff_ids,
      lunch_coverage_excluded_staff_ids, service_start_date
    """
    path = _required(config_dir, CLIENTS_FILE)
    df = _read_csv(path)

    clients: List[Client] = []
    for _, row in df.iterrows():
        clients.append(Client(
            id=_text(row["id"]),
            name=_text(row["name"]),
            active=_parse_yes_no(row.get("active"), default=True),
            schedule=_service_schedule(row),
            allow_sub=_parse_yes_no(row.get("allow_sub"), default=True),
            float_rbts_allowed=_parse_yes_no(row.get("float_rbts_allowed")),
            allowed_float_rbt_ids=_parse_id_list(row.get("allowed_float_rbt_ids")),
            lead_rbts_allowed=_parse_yes_no(row.get("lead_rbts_allowed")),
            allowed_lead_rbt_ids=_parse_id_list(row.get("allowed_lead_rbt_ids")),
            excluded_staff_ids=_parse_id_list(row.get("excluded_staff_ids")),
            no_longer_trained_ids=_parse_id_list(row.get("no_longer_trained_ids")),
            focus_staff_ids=_parse_id_list(row.get("focus_staff_ids")),
            trained_staff_ids=_parse_id_list(row.get("trained_staff_ids")),
            allow_all_day_same_staff=_parse_yes_no(row.get("allow_all_day_same_staff")),
            sessions_per_week=_parse_int(row.get("sessions_per_week")),
            last_canceled_date=_parse_date(row.get("last_canceled_date")),
            cancel_skip_used=_parse_yes_no(row.get("cancel_skip_used")),
            last_skipped_date=_parse_date(row.get("last_skipped_date")),
            consecutive_absent_days=_parse_int(row.get("consecutive_absent_days"), 0),
            days_back_since_absence=_parse_int(row.get("days_back_since_absence"), 0),
            cancel_all_day_only=_parse_yes_no(row.get("cancel_all_day_only")),
            can_be_grouped=_parse_yes_no(row.get("can_be_grouped")),
            allowed_lunch_peer_ids=_parse_id_list(row.get("allowed_lunch_peer_ids")),
            no_first_lunch_peer_ids=_parse_id_list(row.get("no_first_lunch_peer_ids")),
            no_second_lunch_peer_ids=_parse_id_list(row.get("no_second_lunch_peer_ids")),
            allow_groups_of_3=_parse_yes_no(row.get("allow_groups_of_3")),
            allow_groups_of_4=_parse_yes_no(row.get("allow_groups_of_4")),
            disallowed_group_combos=_parse_combos(row.get("disallowed_group_combos")),
            lunch_coverage_staff_ids=_parse_id_list(row.get("lunch_coverage_staff_ids")),
            lunch_coverage_excluded_staff_ids=_parse_id_list(row.get("lunch_coverage_excluded_staff_ids")),
            service_start_date=_parse_date(row.get("service_start_date")),
        ))

    logger.info(f"Loaded {len(clients)} clients from {path}")
    return clients


def load_template(config_dir: Optional[Path] = None) -> List[TemplateAssignment]:
    """
    Load the weekly template from template.csv.

    Expected columns: weekday, block, staff_id, client_id, start, end, locked
    (start/end are optional "HH:MM" session times within the block).
    """
    path = _required(config_dir, TEMPLATE_FILE)
    df = _read_csv(path)

    template: List[TemplateAssignment] = []
    for _, row in df.iterrows():
        template.append(TemplateAssignment(
            weekday=_text(row["weekday"]).lower(),
            block=_text(row["block"]).upper(),
            staff_id=_text(row["staff_id"]),
            client_id=_optional(row.get("client_id")),
            start_minute=_parse_minutes(row.get("start")),
            end_minute=_parse_minutes(row.get("end")),
            locked=_parse_yes_no(row.get("locked")),
        ))

    logger.info(f"Loaded {len(template)} template assignments from {path}")
    return template


# ---------------------------------------------------------------------------
# Optional collections
# ---------------------------------------------------------------------------

def load_exceptions(
    config_dir: Optional[Path] = None,
    for_date: Optional[date] = None,
) -> List[ScheduleException]:
    """
    Load same-day exceptions from exceptions.csv.

    Expected columns: id, date, type (staff/client), entity_id,
    mode (out/in/cancelled), start, end. Blank start/end means all day.
    When for_date is given, rows whose date is set to another day are skipped.
    """
    path = _optional_path(config_dir, EXCEPTIONS_FILE)
    if path is None:
        return []
    df = _read_csv(path)

    exceptions: List[ScheduleException] = []
    for _, row in df.iterrows():
        row_date = _parse_date(row.get("date"))
        if for_date is not None and row_date is not None and row_date != for_date:
            continue
        start = _parse_minutes(row.get("start"))
        end = _parse_minutes(row.get("end"))
        exceptions.append(ScheduleException(
            type=ExceptionType(_text(row["type"]).lower()),
            entity_id=_text(row["entity_id"]),
            mode=ExceptionMode(_text(row.get("mode", "")).lower() or "out"),
            all_day=start is None or end is None,
            start_minute=start,
            end_minute=end,
            id=_optional(row.get("id")),
        ))

    logger.info(f"Loaded {len(exceptions)} exceptions from {path}")
    return exceptions


def load_approved_subs(
    config_dir: Optional[Path] = None,
    path: Optional[Path] = None,
) -> List[ApprovedSub]:
    """Load approved substitutions (columns: client_id, sub_staff_id, block)."""
    path = path or _optional_path(config_dir, APPROVED_SUBS_FILE)
    if path is None:
        return []
    if not path.exists():
        logger.warning(f"Approved subs file not found: {path}. Returning empty list.")
        return []
    df = _read_csv(path)

    subs = [
        ApprovedSub(
            client_id=_text(row["client_id"]),
            sub_staff_id=_text(row["sub_staff_id"]),
            block=_text(row["block"]).upper(),
        )
        for _, row in df.iterrows()
    ]
    logger.info(f"Loaded {len(subs)} approved subs from {path}")
    return subs


def load_training_sessions(config_dir: Optional[Path] = None) -> List[TrainingSession]:
    """
    Load training sessions from training_sessions.csv.

    Expected columns: id, trainee_id, client_id, trainer_id,
    preferred_trainer_id, scheduled_date, scheduled_block, status,
    plan_status, training_track
    """
    path = _optional_path(config_dir, TRAINING_FILE)
    if path is None:
        return []
    df = _read_csv(path)

    sessions: List[TrainingSession] = []
    for _, row in df.iterrows():
        block = _optional(row.get("scheduled_block"))
        sessions.append(TrainingSession(
            id=_text(row["id"]),
            trainee_id=_text(row["trainee_id"]),
            client_id=_text(row["client_id"]),
            trainer_id=_optional(row.get("trainer_id")),
            preferred_trainer_id=_optional(row.get("preferred_trainer_id")),
            scheduled_date=_parse_date(row.get("scheduled_date")),
            scheduled_block=block.upper() if block else None,
            status=_text(row.get("status", "")) or "planned",
            plan_status=_optional(row.get("plan_status")),
            training_track=_text(row.get("training_track", "")) or "new_hire",
        ))

    logger.info(f"Loaded {len(sessions)} training sessions from {path}")
    return sessions


def load_locations(config_dir: Optional[Path] = None) -> List[ClientLocation]:
    """Load client locations (columns: id, client_id, location_type, display_name, service_start_date)."""
    path = _optional_path(config_dir, LOCATIONS_FILE)
    if path is None:
        return []
    df = _read_csv(path)

    locations = [
        ClientLocation(
            id=_text(row["id"]),
            client_id=_text(row["client_id"]),
            location_type=_text(row.get("location_type", "")) or "clinic",
            display_name=_optional(row.get("display_name")),
            service_start_date=_parse_date(row.get("service_start_date")),
        )
        for _, row in df.iterrows()
    ]
    logger.info(f"Loaded {len(locations)} client locations from {path}")
    return locations


def load_cancel_links(config_dir: Optional[Path] = None) -> List[ClientCancelLink]:
    """Load linked-cancellation pairs (columns: client_id, linked_client_id)."""
    path = _optional_path(config_dir, CANCEL_LINKS_FILE)
    if path is None:
        return []
    df = _read_csv(path)

    links = [
        ClientCancelLink(client_id=_text(row["client_id"]), linked_client_id=_text(row["linked_client_id"]))
        for _, row in df.iterrows()
    ]
    logger.info(f"Loaded {len(links)} cancel links from {path}")
    return links


def load_day_inputs(config_dir: Optional[Path] = None) -> DayInputs:
    """Load every standing collection (everything except exceptions and approved subs)."""
    return DayInputs(
        staff=load_staff(config_dir),
        clients=load_clients(config_dir),
        template=load_template(config_dir),
        locations=load_locations(config_dir),
        training_sessions=load_training_sessions(config_dir),
        cancel_links=load_cancel_links(config_dir),
    )


# ---------------------------------------------------------------------------
# Full config dict
# ---------------------------------------------------------------------------

def get_config() -> Dict[str, Any]:
    return {
        "block_windows":           dict(BLOCK_WINDOWS),
        "service_blocks":          list(SERVICE_BLOCKS),
        "lunch_slots":             dict(LUNCH_SLOTS),
        "protection_days":         PROTECTION_DAYS,
        "lead_reserve_threshold":  LEAD_RESERVE_THRESHOLD,
        "absence_skip_days":       ABSENCE_SKIP_DAYS,
        "absence_return_days":     ABSENCE_RETURN_DAYS,
        "twice_weekly_sessions":   TWICE_WEEKLY_SESSIONS,
        "max_lunch_group_size":    MAX_LUNCH_GROUP_SIZE,
        "priority_order":          dict(PRIORITY_ORDER),
        "cancel_timing":           dict(CANCEL_TIMING_DESCRIPTIONS),
        "weekday_keys":            dict(WEEKDAY_KEYS),
    }


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    inputs = load_day_inputs()
    print(f"Loaded {len(inputs.staff)} staff, {len(inputs.clients)} clients, "
          f"{len(inputs.template)} template assignments")
    for s in inputs.staff:
        days = ", ".join(k for k, w in s.availability.items() if w.available) or "(any)"
        print(f"  {s.id:<6} {s.name:<22} {s.role:<9} | {days}")
