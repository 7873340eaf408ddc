#!/usr/bin/env python3
"""
Dry Run - Resolve one day from config/ CSVs without touching the inputs

Usage:
  python scripts/run_dry_run.py --date 2026-03-02

Outputs to outputs/ directory.
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from daily_resolution.dry_run import main

if __name__ == "__main__":
    main()
