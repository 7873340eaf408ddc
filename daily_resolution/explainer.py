"""
explainer.py - Human-readable explanation of a resolved day

build_explainer_report() turns a ResolutionResult into a plain dict:

  summary               slot counts, substitutions, cancellations, pending
  substitutions         applied subs/leads with who they replaced and why
  all_day_staffing      same-staff AM+PM confirmations
  cancellations         client exceptions + cancellation-family decisions
  training_changes      proposed training session transitions
  pending_approvals     everything waiting on a human, with a proposed action
  lunch_issues          lunch sub-slots with no legal coverage
  slot_explanations     per-slot decision chain (AM / PM only)

format_explainer_report() renders the same dict as text for the console or
the dry-run report file.
"""

from typing import Any, Dict, List, Sequence

from daily_resolution.models import (
    ApprovalStatus,
    ApprovalType,
    CANCELLATION_FAMILY,
    DayInputs,
    ExceptionMode,
    ExceptionType,
    ResolutionResult,
    ScheduleException,
    SlotSource,
)
from daily_resolution.schedule_config import ALL_DAY, AM, PM, SERVICE_BLOCKS, VALUE_OUT, minutes_to_label

APPROVAL_TYPE_LABELS: Dict[ApprovalType, str] = {
    ApprovalType.SUB_STAFFING: "Substitute",
    ApprovalType.LEAD_STAFFING: "Lead RBT",
    ApprovalType.LEAD_RESERVE: "Lead RBT (reserve)",
    ApprovalType.ALL_DAY_STAFFING: "All-day staffing",
    ApprovalType.CANCELLATION: "Cancellation",
    ApprovalType.CANCEL_PROTECTED: "Protected from cancellation",
    ApprovalType.CANCEL_SKIPPED: "Cancellation skipped",
}

CANCEL_TYPES = {AM: "am_only", PM: "pm_only", ALL_DAY: "full_day"}


def _proposed_action(approval) -> str:
    if approval.type in (ApprovalType.SUB_STAFFING, ApprovalType.LEAD_STAFFING, ApprovalType.LEAD_RESERVE):
        return f"Assign {approval.proposed_sub_name} to {approval.client_name} ({approval.block})"
    if approval.type == ApprovalType.ALL_DAY_STAFFING:
        return f"Confirm {approval.proposed_sub_name} with {approval.client_name} all day"
    if approval.type == ApprovalType.CANCELLATION:
        return f"Cancel {approval.client_name} ({approval.block})"
    if approval.type == ApprovalType.CANCEL_SKIPPED:
        return f"Skip cancellation for {approval.client_name}; find other coverage"
    return f"Find coverage for {approval.client_name} manually"


def _out_reason(exceptions: Sequence[ScheduleException], staff_id: str) -> str:
    for exc in exceptions:
        if exc.type == ExceptionType.STAFF and exc.entity_id == staff_id and exc.mode == ExceptionMode.OUT:
            if exc.all_day or exc.end_minute is None:
                return "Out all day"
            return f"Out until {minutes_to_label(exc.end_minute)}"
    return "Out"


def build_explainer_report(
    result: ResolutionResult,
    inputs: DayInputs,
    exceptions: Sequence[ScheduleException] = (),
) -> Dict[str, Any]:
    staff_by_id = {s.id: s for s in inputs.staff}
    clients_by_id = {c.id: c for c in inputs.clients}
    sessions_by_id = {s.id: s for s in inputs.training_sessions}

    substitutions: List[Dict[str, Any]] = []
    slot_explanations: List[Dict[str, Any]] = []
    total = filled = unfilled = 0

    for entry in result.schedule:
        for slot in entry.slots:
            if slot.block not in SERVICE_BLOCKS:
                continue
            total += 1
            if slot.source == SlotSource.UNFILLED:
                unfilled += 1
            elif slot.source != SlotSource.CANCEL and slot.client_id and slot.value != VALUE_OUT:
                filled += 1

            client_name = clients_by_id[slot.client_id].name if slot.client_id else slot.value
            chain: List[str] = []
            if slot.source == SlotSource.TEMPLATE:
                chain.append("Template assignment" if slot.client_id else "No client assigned")
                reason = f"{entry.staff_name} is the template-assigned staff for {client_name}" if slot.client_id \
                    else f"{entry.staff_name} has no session this block"
            elif slot.source in (SlotSource.SUB, SlotSource.LEAD) and slot.value != VALUE_OUT:
                kind = "Lead RBT" if slot.source == SlotSource.LEAD else "substitute"
                chain += ["Template staff unavailable", "Approved substitution applied", f"{entry.staff_name} assigned as {kind}"]
                reason = slot.reason or f"{entry.staff_name} covering {client_name}"
                original = None
                for a in inputs.template:
                    if a.weekday == result.day_key and a.block == slot.block and a.client_id == slot.client_id:
                        original = staff_by_id.get(a.staff_id)
                        break
                substitutions.append({
                    "client_id": slot.client_id,
                    "client_name": client_name,
                    "block": slot.block,
                    "original_staff_id": original.id if original else None,
                    "original_staff_name": original.name if original else None,
                    "original_staff_out_reason": _out_reason(exceptions, original.id) if original else "Out",
                    "substitute_staff_id": entry.staff_id,
                    "substitute_staff_name": entry.staff_name,
                    "substitute_type": staff_by_id[entry.staff_id].role,
                    "approval_status": ApprovalStatus.APPROVED.value,
                })
            elif slot.source in (SlotSource.SUB, SlotSource.LEAD):
                chain += ["Template staff unavailable", "Covered by approved substitute"]
                reason = slot.reason or ""
            elif slot.source == SlotSource.CANCEL:
                chain += ["All staffing options exhausted", "Cancellation decision triggered"]
                reason = slot.reason or "No available staff for this slot"
            else:
                chain += ["Gap detected", "Awaiting approval or staff assignment"]
                reason = slot.reason or "Waiting for substitute approval"

            slot_explanations.append({
                "staff_id": entry.staff_id,
                "staff_name": entry.staff_name,
                "block": slot.block,
                "client_name": client_name,
                "assignment_chain": chain,
                "decision_reason": reason,
                "source": slot.source.value,
            })

    cancellations: List[Dict[str, Any]] = []
    seen_clients = set()
    for exc in exceptions:
        if exc.type != ExceptionType.CLIENT or exc.mode == ExceptionMode.IN:
            continue
        client = clients_by_id.get(exc.entity_id)
        if client is None or client.id in seen_clients:
            continue
        seen_clients.add(client.id)
        cancellations.append({
            "client_id": client.id,
            "client_name": client.name,
            "cancel_type": "full_day" if exc.all_day else "partial",
            "reason": "Client cancelled for the day" if exc.mode == ExceptionMode.CANCELLED else "Client marked as out",
            "protection_status": None,
            "skip_rule_applied": False,
            "last_canceled_date": client.last_canceled_date.isoformat() if client.last_canceled_date else None,
            "linked_siblings": [],
        })
    for approval in result.approvals:
        if approval.type not in CANCELLATION_FAMILY or approval.client_id in seen_clients:
            continue
        seen_clients.add(approval.client_id)
        client = clients_by_id[approval.client_id]
        cancellations.append({
            "client_id": client.id,
            "client_name": client.name,
            "cancel_type": CANCEL_TYPES.get(approval.block, "full_day"),
            "reason": approval.skip_reason or approval.reason,
            "protection_status": approval.reason if approval.type == ApprovalType.CANCEL_PROTECTED else None,
            "skip_rule_applied": approval.type == ApprovalType.CANCEL_SKIPPED,
            "last_canceled_date": client.last_canceled_date.isoformat() if client.last_canceled_date else None,
            "linked_siblings": [clients_by_id[c].name for c in approval.linked_client_ids if c in clients_by_id],
        })

    training_changes: List[Dict[str, Any]] = []
    for update in result.training_updates:
        session = sessions_by_id.get(update.session_id)
        trainee = staff_by_id.get(session.trainee_id) if session else None
        client = clients_by_id.get(session.client_id) if session else None
        training_changes.append({
            "session_id": update.session_id,
            "trainee_name": trainee.name if trainee else None,
            "client_name": client.name if client else None,
            "block": session.scheduled_block if session else None,
            "new_status": update.new_status.value,
            "reason": update.reason,
        })

    pending = [a for a in result.approvals if a.status != ApprovalStatus.APPROVED]
    pending_approvals = [
        {
            "id": a.id,
            "type": a.type.value,
            "type_label": APPROVAL_TYPE_LABELS[a.type],
            "client_name": a.client_name,
            "staff_name": a.proposed_sub_name,
            "block": a.block,
            "status": a.status.value,
            "reason": a.skip_reason or a.reason,
            "proposed_action": _proposed_action(a),
        }
        for a in pending
    ]

    all_day = [
        {
            "staff_id": a.proposed_sub_id,
            "staff_name": a.proposed_sub_name,
            "client_id": a.client_id,
            "client_name": a.client_name,
            "approval_status": a.status.value,
            "reason": a.reason,
        }
        for a in result.approvals_of(ApprovalType.ALL_DAY_STAFFING)
    ]

    return {
        "date": result.resolution_date.isoformat(),
        "day_key": result.day_key,
        "summary": {
            "total_slots": total,
            "filled_slots": filled,
            "unfilled_slots": unfilled,
            "substitution_count": len(substitutions),
            "cancellation_count": len(cancellations),
            "pending_approval_count": len(pending_approvals),
        },
        "substitutions": substitutions,
        "all_day_staffing": all_day,
        "cancellations": cancellations,
        "training_changes": training_changes,
        "pending_approvals": pending_approvals,
        "lunch_issues": [
            {"client_id": e.client_id, "client_name": e.client_name, "lunch_slot": e.lunch_slot, "reason": e.reason}
            for e in result.lunch_errors
        ],
        "slot_explanations": slot_explanations,
    }


def format_explainer_report(report: Dict[str, Any], width: int = 70) -> str:
    sep = "=" * width
    rule = "─" * width
    s = report["summary"]
    lines = [
        sep,
        f"  DAILY SCHEDULE EXPLAINER: {report['date']} ({report['day_key'] or 'weekend'})",
        sep,
        "",
        f"  Slots (AM/PM):         {s['total_slots']}  filled {s['filled_slots']}  unfilled {s['unfilled_slots']}",
        f"  Substitutions:         {s['substitution_count']}",
        f"  Cancellations:         {s['cancellation_count']}",
        f"  Pending approvals:     {s['pending_approval_count']}",
        "",
    ]

    def section(title: str, rows: List[str]) -> None:
        lines.extend([rule, f"  {title}", rule])
        lines.extend(rows or ["  (none)"])
        lines.append("")

    section("Substitutions", [
        f"  {r['block']:<3} {r['client_name']:<22} {r['original_staff_name'] or '?'} → {r['substitute_staff_name']}"
        f"  ({r['original_staff_out_reason']})"
        for r in report["substitutions"]
    ])
    section("Pending approvals", [
        f"  [{r['status']:<7}] {r['type_label']:<28} {r['block']:<7} {r['proposed_action']}"
        for r in report["pending_approvals"]
    ])
    section("Cancellations", [
        f"  {r['client_name']:<22} {r['cancel_type']:<9} {r['reason']}"
        for r in report["cancellations"]
    ])
    section("Lunch coverage issues", [
        f"  {r['client_name']:<22} {r['lunch_slot']:<7} {r['reason']}"
        for r in report["lunch_issues"]
    ])
    section("Training changes", [
        f"  {r['session_id']:<12} {r['new_status']:<9} {r['reason']}"
        for r in report["training_changes"]
    ])
    return "\n".join(lines)
