"""Tests for config validation via Pydantic schemas.

Verifies that:
- Valid production config passes validation
- Missing keys fall back to defaults
- Band thresholds must be ordered in their direction
- Out-of-range history windows and unknown log levels are rejected
"""

import sys
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
from schemas import Bands, ViewerConfig


ROOT = Path(__file__).resolve().parent.parent


class TestViewerConfigValidation:
    def test_production_config_passes(self):
        """The actual config.yaml should pass validation."""
        with open(ROOT / "config.yaml") as f:
            cfg = yaml.safe_load(f)
        vc = ViewerConfig(**cfg)
        assert vc.data.history_days == 14
        assert vc.thresholds.confidence.favorable == 70
        assert vc.thresholds.pe_ratio.higher_is_better is False

    def test_empty_config_uses_defaults(self):
        """An empty config should use all defaults and pass."""
        vc = ViewerConfig()
        assert vc.data.base_url.endswith("/data")
        assert vc.data.data_dir is None
        assert vc.thresholds.satellite_min == 50
        assert vc.thresholds.entry_timing.caution == 50
        assert vc.thresholds.framework_score.favorable == 5
        assert vc.display.max_events == 3
        assert vc.display.trend_points == 5
        assert vc.output.dashboard_file == "index.html"
        assert vc.logging.level == "INFO"

    def test_partial_section_keeps_other_defaults(self):
        vc = ViewerConfig(data={"history_days": 7})
        assert vc.data.history_days == 7
        assert vc.data.base_url.endswith("/data")

    def test_unordered_bands_rejected(self):
        with pytest.raises(ValidationError, match="must be >= caution"):
            Bands(favorable=40, caution=60)

    def test_unordered_lower_is_better_bands_rejected(self):
        with pytest.raises(ValidationError, match="must be <= caution"):
            Bands(favorable=40, caution=20, higher_is_better=False)

    def test_history_days_bounds(self):
        with pytest.raises(ValidationError):
            ViewerConfig(data={"history_days": 0})
        with pytest.raises(ValidationError):
            ViewerConfig(data={"history_days": 1000})

    def test_satellite_min_bounds(self):
        with pytest.raises(ValidationError):
            ViewerConfig(thresholds={"satellite_min": 120})

    def test_log_level_normalized(self):
        assert ViewerConfig(logging={"level": "debug"}).logging.level == "DEBUG"

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError, match="Unknown log level"):
            ViewerConfig(logging={"level": "LOUD"})

    def test_trend_points_minimum(self):
        with pytest.raises(ValidationError):
            ViewerConfig(display={"trend_points": 1})
