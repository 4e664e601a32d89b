"""
Unit tests for Config class.

Tests runtime configuration defaults, environment variable overrides and
validation.
"""

import os
from unittest.mock import patch

import pytest

from posqa.core.config import Config
from posqa.core.exceptions import ValidationError


@pytest.fixture
def make_config(tmp_path):
    def _make(**kwargs):
        kwargs.setdefault("artifacts_dir", tmp_path / "artifacts")
        kwargs.setdefault("logs_dir", tmp_path / "logs")
        kwargs.setdefault("config_file", tmp_path / "config.properties")
        return Config(**kwargs)

    return _make


class TestConfig:
    """Test cases for Config class."""

    @patch.dict(os.environ, {}, clear=True)
    def test_default_config_creation(self, make_config):
        config = make_config()

        assert config.ci_mode is False
        assert config.headless_mode is None
        assert config.workers == 1
        assert config.log_level == "INFO"
        assert config.log_format == "text"

    @patch.dict(os.environ, {"CI": "true"}, clear=True)
    def test_ci_mode_detection(self, make_config):
        config = make_config()

        assert config.ci_mode is True
        assert config.log_format == "json"
        assert config.get_effective_headless_mode() is True

    @patch.dict(os.environ, {"POSQA_HEADLESS": "false", "CI": "true"}, clear=True)
    def test_headless_env_overrides_ci(self, make_config):
        config = make_config()

        assert config.get_effective_headless_mode() is False

    @patch.dict(os.environ, {"POSQA_LOG_LEVEL": "warn"}, clear=True)
    def test_log_level_normalised(self, make_config):
        assert make_config().log_level == "WARNING"

    @patch.dict(os.environ, {"POSQA_LOG_LEVEL": "chatty"}, clear=True)
    def test_unknown_log_level_falls_back_to_info(self, make_config):
        assert make_config().log_level == "INFO"

    @patch.dict(os.environ, {"POSQA_WORKERS": "4"}, clear=True)
    def test_workers_from_environment(self, make_config):
        assert make_config().workers == 4

    @patch.dict(os.environ, {"POSQA_WORKERS": "lots"}, clear=True)
    def test_malformed_workers_ignored(self, make_config):
        assert make_config().workers == 1

    @patch.dict(os.environ, {}, clear=True)
    def test_workers_clamped(self, make_config):
        assert make_config(workers=0).workers == 1

    def test_artifact_override(self, make_config, tmp_path):
        with patch.dict(os.environ, {"POSQA_ARTIFACTS_DIR": str(tmp_path / "elsewhere")}):
            config = make_config()

        assert config.artifacts_dir == tmp_path / "elsewhere"
        assert config.artifacts_dir.is_dir()

    def test_property_file_overrides(self, make_config, tmp_path):
        env = {
            "POSQA_CONFIG_FILE": str(tmp_path / "a.properties"),
            "POSQA_ENV_FILE": str(tmp_path / "b.properties"),
            "POSQA_PLATFORM_FILE": str(tmp_path / "c.properties"),
        }
        with patch.dict(os.environ, env):
            config = make_config()

        assert config.config_file == tmp_path / "a.properties"
        assert config.environment_file == tmp_path / "b.properties"
        assert config.platform_file == tmp_path / "c.properties"

    def test_log_paths(self, make_config, tmp_path):
        config = make_config()

        assert config.get_log_file_path() == tmp_path / "logs" / "posqa.log"
        assert config.get_debug_log_dir().is_dir()

    def test_to_dict(self, make_config):
        data = make_config().to_dict()

        assert data["workers"] == 1
        assert isinstance(data["artifacts_dir"], str)
        assert "config_file" in data

    def test_validate_missing_property_file(self, make_config):
        config = make_config()

        with pytest.raises(ValidationError) as exc_info:
            config.validate()

        assert any("Property file not found" in v for v in exc_info.value.violations)

    def test_validate_collects_violations(self, make_config, tmp_path):
        config = make_config()
        config.log_format = "xml"
        config.workers = 0

        with pytest.raises(ValidationError) as exc_info:
            config.validate()

        assert len(exc_info.value.violations) == 3

    def test_validate_ok(self, temp_config):
        temp_config.validate()
