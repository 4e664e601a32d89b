"""
Unit tests for main CLI interface.

Tests argument parsing, scenario module loading and the run, config and
appium commands with sessions and Xray mocked out.
"""

import json
import textwrap
from unittest.mock import MagicMock, patch

import pytest

from posqa.cli import _mask, create_main_parser, load_scenarios, main
from posqa.core.exceptions import ConfigurationError
from posqa.core.platform import SessionKind


PASSING_MODULE = textwrap.dedent(
    """
    from posqa.execution.models import Scenario


    def open_till(ctx):
        ctx.soft.assert_is_not_none(ctx.page)


    SCENARIOS = [Scenario("Open till", open_till, test_key="POS-1")]
    """
)

FAILING_MODULE = textwrap.dedent(
    """
    from posqa.execution.models import Scenario


    def refund(ctx):
        raise AssertionError("refund total mismatch")


    SCENARIOS = [Scenario("Refund", refund)]
    """
)


@pytest.fixture(autouse=True)
def no_platform_env(monkeypatch):
    monkeypatch.delenv("PLATFORM", raising=False)
    monkeypatch.delenv("platform", raising=False)


@pytest.fixture
def write_module(tmp_path):
    def _write(source, name="scenarios.py"):
        path = tmp_path / name
        path.write_text(source)
        return str(path)

    return _write


class TestParser:
    """Test cases for the argument parser."""

    def test_run_arguments(self):
        args = create_main_parser().parse_args(
            ["run", "smoke.py", "--workers", "4", "--platform", "mobile", "--no-xray"]
        )

        assert args.module == "smoke.py"
        assert args.workers == 4
        assert args.platform == "MOBILE"
        assert args.no_xray is True

    def test_unknown_platform_rejected(self):
        with pytest.raises(SystemExit):
            create_main_parser().parse_args(["run", "smoke.py", "--platform", "desktop"])

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage: posqa" in capsys.readouterr().out


class TestLoadScenarios:
    """Test cases for load_scenarios."""

    def test_loads_scenarios(self, write_module):
        scenarios = load_scenarios(write_module(PASSING_MODULE))

        assert [s.name for s in scenarios] == ["Open till"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_scenarios(str(tmp_path / "nope.py"))

    def test_empty_list(self, write_module):
        with pytest.raises(ConfigurationError):
            load_scenarios(write_module("SCENARIOS = []\n"))

    def test_wrong_entry_type(self, write_module):
        with pytest.raises(ConfigurationError) as exc_info:
            load_scenarios(write_module("SCENARIOS = ['not a scenario']\n"))

        assert "is not a Scenario" in str(exc_info.value)


class TestMask:
    """Test cases for secret masking."""

    @pytest.mark.parametrize("key", ["qa.password", "xray.clientsecret", "jira.token", "accesskey"])
    def test_secrets_masked(self, key):
        assert _mask(key, "hunter2") == "****"

    def test_plain_values_shown(self):
        assert _mask("browser", "chromium") == "chromium"


class TestRunCommand:
    """Test cases for the run command."""

    @pytest.fixture
    def run_env(self, temp_config, registry):
        with patch("posqa.cli.Config.from_env", return_value=temp_config), patch(
            "posqa.cli.setup_logging"
        ), patch(
            "posqa.cli.SessionRegistry.from_properties", return_value=registry
        ), patch("posqa.cli.XrayReporter") as mock_reporter:
            yield mock_reporter

    def test_passing_run(self, run_env, write_module, temp_config, capsys):
        result = main(["run", write_module(PASSING_MODULE), "--workers", "2"])

        assert result == 0
        reports = list(temp_config.reports_dir.glob("report-run-*.json"))
        assert len(reports) == 1
        data = json.loads(reports[0].read_text())
        assert data["summary"]["passed"] == 1
        run_env.return_value.publish.assert_called_once()
        assert "1/1 passed" in capsys.readouterr().out

    def test_failing_run(self, run_env, write_module, capsys):
        result = main(["run", write_module(FAILING_MODULE)])

        assert result == 1
        assert "refund total mismatch" in capsys.readouterr().out

    def test_no_xray(self, run_env, write_module):
        main(["run", write_module(PASSING_MODULE), "--no-xray"])

        run_env.assert_not_called()

    def test_report_dir_override(self, run_env, write_module, tmp_path):
        main(["run", write_module(PASSING_MODULE), "--report-dir", str(tmp_path / "custom")])

        assert list((tmp_path / "custom").glob("report-run-*.html"))

    def test_platform_override(self, run_env, write_module, fake_factories):
        result = main(["run", write_module(FAILING_MODULE), "--platform", "api"])

        assert result == 1
        assert fake_factories[SessionKind.API].created

    def test_invalid_module(self, run_env, write_module, capsys):
        assert main(["run", write_module("SCENARIOS = []\n")]) == 1
        assert "ConfigurationError" in capsys.readouterr().out

    def test_invalid_configuration(self, temp_config, write_module, capsys):
        temp_config.config_file = temp_config.config_file.with_name("missing.properties")

        with patch("posqa.cli.Config.from_env", return_value=temp_config), patch(
            "posqa.cli.setup_logging"
        ):
            assert main(["run", write_module(PASSING_MODULE)]) == 1

        assert "Property file not found" in capsys.readouterr().out


class TestConfigCommand:
    """Test cases for the config command."""

    def test_prints_masked_values(self, config_dir, temp_config, capsys):
        (config_dir / "config.properties").write_text("browser=chromium\napi_token=abc\n")
        temp_config.config_file = config_dir / "config.properties"

        with patch("posqa.cli.Config.from_env", return_value=temp_config):
            assert main(["config"]) == 0

        out = capsys.readouterr().out
        assert "browser = chromium" in out
        assert "api_token = ****" in out
        assert "Platform:" in out

    def test_single_key(self, temp_config, capsys):
        with patch("posqa.cli.Config.from_env", return_value=temp_config):
            assert main(["config", "--key", "browser"]) == 0

        assert capsys.readouterr().out.strip() == "chromium"

    def test_missing_key(self, temp_config, capsys):
        with patch("posqa.cli.Config.from_env", return_value=temp_config):
            assert main(["config", "--key", "device_name"]) == 1

        assert "device_name" in capsys.readouterr().out


class TestAppiumCommand:
    """Test cases for the appium command."""

    @pytest.fixture
    def server(self, temp_config):
        server = MagicMock()
        server.status_url = "http://127.0.0.1:4723/status"
        server.port = 4723
        with patch("posqa.cli.Config.from_env", return_value=temp_config), patch(
            "posqa.cli.AppiumServer", return_value=server
        ):
            yield server

    def test_status_ready(self, server, capsys):
        server.is_ready.return_value = True

        assert main(["appium", "status"]) == 0
        assert "ready" in capsys.readouterr().out

    def test_status_down(self, server):
        server.is_ready.return_value = False

        assert main(["appium", "status"]) == 1

    def test_start(self, server):
        assert main(["appium", "start"]) == 0
        server.ensure_running.assert_called_once()

    def test_stop(self, server, capsys):
        server.free_port.return_value = True

        assert main(["appium", "stop"]) == 0
        assert "Stopped Appium server on port 4723" in capsys.readouterr().out
