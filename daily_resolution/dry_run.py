"""
dry_run.py - Resolve one day from CSV inputs (never writes back to inputs)

Full orchestration:
  1. Load staff, clients, template, locations, training, cancel links
  2. Load same-day exceptions and approved subs, validate every reference
  3. Resolve the day (coverage → cancellations → lunch → training → schedule)
  4. Check result constraints (hard + soft)
  5. Export CSV, approvals CSV, Excel, day report, violations report
  6. Print summary to console

Usage:
  python -m daily_resolution.dry_run --date 2026-03-02
  python -m daily_resolution.dry_run --date 2026-03-02 --approved outputs/approved_subs.csv
"""

import argparse
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from daily_resolution.config import (
    load_approved_subs,
    load_day_inputs,
    load_exceptions,
)
from daily_resolution.constraints import ConstraintChecker, collect_input_errors
from daily_resolution.engine import calculate_day_metrics, resolve_day
from daily_resolution.explainer import build_explainer_report
from daily_resolution.exporter import (
    export_approvals_csv,
    export_day_report,
    export_to_csv,
    export_to_excel,
)
from daily_resolution.models import ApprovalStatus

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

OUTPUTS_DIR = PROJECT_ROOT / "outputs"


def run_dry_run(
    resolution_date: date,
    config_dir: Optional[Path] = None,
    output_dir: Path = OUTPUTS_DIR,
    weekday_index: Optional[int] = None,
    approved_path: Optional[Path] = None,
) -> Dict[str, Any]:
    """
    Resolve one day in dry-run mode.

    Args:
        resolution_date: Day to resolve
        config_dir:      Directory holding the input CSVs (default: config/)
        output_dir:      Directory for output files
        weekday_index:   0=Sunday..6=Saturday override (default: from the date)
        approved_path:   approved_subs.csv override

    Returns:
        Dict with result, metrics, violations, output paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    prefix = f"dry_run_{resolution_date}"
    sep = "=" * 70

    print(f"\n{sep}")
    print("  DRY RUN MODE - inputs are read, never written")
    print(f"  Date: {resolution_date}")
    print(f"{sep}\n")

    # ── 1. Load inputs ─────────────────────────────────────────────────────
    print("Step 1/5: Loading inputs...")
    inputs = load_day_inputs(config_dir)
    exceptions = load_exceptions(config_dir, for_date=resolution_date)
    approved_subs = load_approved_subs(config_dir, path=approved_path)
    print(f"  ✓ {len(inputs.staff)} staff | {len(inputs.clients)} clients | "
          f"{len(inputs.template)} template rows | {len(exceptions)} exceptions | "
          f"{len(approved_subs)} approved subs")

    # ── 2. Validate ────────────────────────────────────────────────────────
    print("\nStep 2/5: Validating inputs...")
    errors = collect_input_errors(inputs, exceptions, approved_subs)
    for err in errors:
        print(f"  ✗ INPUT ERROR: {err}")
    if errors:
        print("\n  ✗ Cannot proceed - fix input errors above.")
        sys.exit(1)
    print("  ✓ Inputs valid")

    # ── 3. Resolve ─────────────────────────────────────────────────────────
    print("\nStep 3/5: Resolving day...")
    result = resolve_day(inputs, exceptions, approved_subs, resolution_date, weekday_index=weekday_index)
    metrics = calculate_day_metrics(result)
    if result.day_key is None:
        print("  ✓ Weekend - nothing to resolve")
    else:
        print(f"  ✓ {metrics['staff']} staff schedules | {len(result.approvals)} approvals | "
              f"{metrics['lunch_errors']} lunch errors | {metrics['training_updates']} training updates")

    # ── 4. Constraint checking ─────────────────────────────────────────────
    print("\nStep 4/5: Checking constraints...")
    checker = ConstraintChecker(inputs)
    hard_violations, soft_violations = checker.check_all(result)
    h_count = len(hard_violations)
    s_count = len(soft_violations)
    status = "✓" if h_count == 0 else "✗"
    print(f"  {status} Hard violations: {h_count}")
    print(f"    Soft violations: {s_count}")

    # ── 5. Export ──────────────────────────────────────────────────────────
    print("\nStep 5/5: Exporting outputs...")
    csv_path = output_dir / f"{prefix}_schedule.csv"
    approvals_path = output_dir / f"{prefix}_approvals.csv"
    xlsx_path = output_dir / f"{prefix}_schedule.xlsx"
    report_path = output_dir / f"{prefix}_report.txt"
    violations_path = output_dir / f"{prefix}_violations.txt"

    explainer = build_explainer_report(result, inputs, exceptions)
    export_to_csv(result, csv_path)
    export_approvals_csv(result, approvals_path)
    export_to_excel(result, xlsx_path)
    export_day_report(result, report_path, explainer=explainer)

    with open(violations_path, "w") as f:
        f.write("=== Constraint Violations ===\n\n")
        f.write(f"HARD ({h_count}):\n")
        for v in hard_violations:
            f.write(f"  {v}\n")
        f.write(f"\nSOFT ({s_count}):\n")
        for v in soft_violations:
            f.write(f"  {v}\n")

    print(f"  ✓ CSV:       {csv_path.name}")
    print(f"  ✓ Approvals: {approvals_path.name}")
    print(f"  ✓ Excel:     {xlsx_path.name}")
    print(f"  ✓ Report:    {report_path.name}")
    print(f"  ✓ Violations:{violations_path.name}")

    # ── Summary ────────────────────────────────────────────────────────────
    print(f"\n{sep}")
    print("  SUMMARY")
    print(f"{sep}")
    print(f"  Date:              {resolution_date} ({result.day_key or 'weekend'})")
    print(f"  Staff scheduled:   {metrics['staff']} (out {metrics['out']}, partial {metrics['partial']})")
    print(f"  Unfilled slots:    {metrics['unfilled']}")
    print(f"  Pending approvals: {metrics['pending']}")
    print(f"  Blocked approvals: {metrics['blocked']}")
    print(f"  Hard violations:   {h_count}  {status}")
    print(f"  Soft violations:   {s_count}")

    pending = [a for a in result.approvals if a.status == ApprovalStatus.PENDING]
    if pending:
        print("\n  Pending approvals:")
        for a in pending:
            print(f"    {a}")

    print(f"\n{sep}\n")

    return {
        "result":          result,
        "metrics":         metrics,
        "explainer":       explainer,
        "hard_violations": hard_violations,
        "soft_violations": soft_violations,
        "outputs": {
            "csv":        csv_path,
            "approvals":  approvals_path,
            "excel":      xlsx_path,
            "report":     report_path,
            "violations": violations_path,
        },
    }


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(
        description="Dry-run daily schedule resolution (inputs are never modified)"
    )
    parser.add_argument("--date",          required=True, help="Resolution date YYYY-MM-DD")
    parser.add_argument("--weekday-index", type=int, default=None,
                        help="Override weekday (0=Sunday..6=Saturday)")
    parser.add_argument("--config-dir",    default=None, help="Input CSV directory (default: config/)")
    parser.add_argument("--output-dir",    default=None, help="Output directory (default: outputs/)")
    parser.add_argument("--approved",      default=None, help="Approved subs CSV (default: config/approved_subs.csv)")
    args = parser.parse_args()

    try:
        resolution_date = datetime.strptime(args.date, "%Y-%m-%d").date()
    except ValueError as e:
        print(f"Invalid date format: {e}")
        sys.exit(1)

    if args.weekday_index is not None and args.weekday_index not in range(7):
        print("Error: --weekday-index must be between 0 and 6")
        sys.exit(1)

    run_dry_run(
        resolution_date,
        config_dir=Path(args.config_dir) if args.config_dir else None,
        output_dir=Path(args.output_dir) if args.output_dir else OUTPUTS_DIR,
        weekday_index=args.weekday_index,
        approved_path=Path(args.approved) if args.approved else None,
    )


if __name__ == "__main__":
    main()
