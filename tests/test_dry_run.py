"""
Tests for the dry-run driver against the bundled sample configuration
"""

import shutil
import sys
from datetime import date
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from daily_resolution.config import DEFAULT_CONFIG_DIR
from daily_resolution.dry_run import run_dry_run


class TestDryRun:
    """Test the five-step dry run"""

    def test_sample_day_outputs(self, tmp_path):
        summary = run_dry_run(date(2026, 3, 2), output_dir=tmp_path)
        assert summary["result"].day_key == "mon"
        assert summary["hard_violations"] == []
        for path in summary["outputs"].values():
            assert path.exists()
            assert path.name.startswith("dry_run_2026-03-02")
        assert "DAILY RESOLUTION REPORT" in summary["outputs"]["report"].read_text()

    def test_weekend_override(self, tmp_path):
        summary = run_dry_run(date(2026, 3, 2), output_dir=tmp_path, weekday_index=0)
        assert summary["result"].day_key is None
        assert summary["metrics"]["staff"] == 0

    def test_input_errors_exit(self, tmp_path):
        config_dir = tmp_path / "config"
        shutil.copytree(DEFAULT_CONFIG_DIR, config_dir)
        with open(config_dir / "template.csv", "a") as f:
            f.write("mon,AM,ghost,c1,,,no\n")
        with pytest.raises(SystemExit):
            run_dry_run(date(2026, 3, 2), config_dir=config_dir, output_dir=tmp_path / "out")
