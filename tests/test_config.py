"""
Tests for Pipeline Settings
"""

import json
import logging
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from pipeline.config import PROJECT_ROOT, PipelineSettings, load_settings
from pipeline.errors import SettingsError


class TestLoadSettings:
    """Tests for load_settings."""

    def test_missing_file_means_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "missing.json", environ={})

        assert settings.run_timeout_seconds == 60.0
        assert settings.auto_tune is True
        assert settings.filter_rules == {}

    def test_file_values(self, tmp_path):
        path = tmp_path / "pipeline.json"
        path.write_text(json.dumps({
            "store_dir": str(tmp_path / "store"),
            "run_timeout_seconds": 5,
            "filter_rules": {"relevance_threshold": 0.5},
            "unknown_setting": True
        }))

        settings = load_settings(path, environ={})

        assert settings.store_dir == str(tmp_path / "store")
        assert settings.run_timeout_seconds == 5
        assert settings.filter_rules == {"relevance_threshold": 0.5}

    def test_relative_store_dir_resolved(self, tmp_path):
        path = tmp_path / "pipeline.json"
        path.write_text(json.dumps({"store_dir": "data/custom"}))

        settings = load_settings(path, environ={})

        assert settings.store_dir == str(PROJECT_ROOT / "data" / "custom")

    def test_environment_overrides(self, tmp_path):
        settings = load_settings(tmp_path / "missing.json", environ={
            "SIGNAL_PIPELINE_TIMEOUT": "12.5",
            "SIGNAL_PIPELINE_AUTO_TUNE": "off",
            "SIGNAL_PIPELINE_SIGNAL_URL": "https://signals.example/api",
            "SIGNAL_PIPELINE_STORE_DIR": str(tmp_path)
        })

        assert settings.run_timeout_seconds == 12.5
        assert settings.auto_tune is False
        assert settings.signal_url == "https://signals.example/api"
        assert settings.store_dir == str(tmp_path)

    def test_config_path_from_environment(self, tmp_path):
        path = tmp_path / "other.json"
        path.write_text(json.dumps({"schedule_interval_seconds": 30}))

        settings = load_settings(environ={"SIGNAL_PIPELINE_CONFIG": str(path)})

        assert settings.schedule_interval_seconds == 30

    def test_bad_environment_value(self, tmp_path):
        with pytest.raises(SettingsError):
            load_settings(tmp_path / "missing.json", environ={"SIGNAL_PIPELINE_TIMEOUT": "soon"})

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "pipeline.json"
        path.write_text(json.dumps({"run_timeout_seconds": 0}))

        with pytest.raises(SettingsError, match="run_timeout_seconds"):
            load_settings(path, environ={})

    def test_wrong_typed_value_keeps_default(self, tmp_path, caplog):
        path = tmp_path / "pipeline.json"
        path.write_text(json.dumps({
            "run_timeout_seconds": "fast",
            "schedule_interval_seconds": 30
        }))

        with caplog.at_level(logging.ERROR, logger="pipeline.config"):
            settings = load_settings(path, environ={})

        assert settings.run_timeout_seconds == 60.0
        assert settings.schedule_interval_seconds == 30
        assert "run_timeout_seconds" in caplog.text

    def test_unreadable_file_means_defaults(self, tmp_path):
        path = tmp_path / "pipeline.json"
        path.write_text("[1, 2")

        assert load_settings(path, environ={}).max_run_history == 500

    def test_non_object_file_means_defaults(self, tmp_path):
        path = tmp_path / "pipeline.json"
        path.write_text("[1, 2]")

        assert load_settings(path, environ={}).min_category_signals == 3

    def test_shipped_config_loads(self):
        settings = load_settings(PROJECT_ROOT / "config" / "pipeline.json", environ={})

        assert settings.signal_file


class TestPipelineSettings:
    """Tests for PipelineSettings validation."""

    def test_validate_collects_errors(self):
        settings = PipelineSettings(schedule_interval_seconds=-1, max_digest_history=0)

        with pytest.raises(SettingsError) as excinfo:
            settings.validate()

        assert "schedule_interval_seconds" in str(excinfo.value)
        assert "max_digest_history" in str(excinfo.value)

    def test_from_dict_checks_types(self):
        settings = PipelineSettings.from_dict({
            "auto_tune": "yes",
            "max_run_history": 2.5,
            "max_trend_history": 20.0,
            "min_category_signals": True,
            "signal_url": 42,
            "filter_rules": [0.5],
            "store_dir": "store",
            "stop_timeout_seconds": 3
        })

        assert settings.auto_tune is True
        assert settings.max_run_history == 500
        assert settings.max_trend_history == 20
        assert settings.min_category_signals == 3
        assert settings.signal_url is None
        assert settings.filter_rules == {}
        assert settings.store_dir == "store"
        assert settings.stop_timeout_seconds == 3.0
        settings.validate()

    def test_to_dict(self):
        assert PipelineSettings().to_dict()["auto_tune"] is True
