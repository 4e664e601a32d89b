"""
Pytest configuration and shared fixtures for harness tests.

Provides property sets, a fake automation engine and fake session
factories so no browser, device or Appium server is ever started.
"""

import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from posqa.core.config import Config
from posqa.core.platform import SessionKind
from posqa.core.properties import PropertySet
from posqa.session.base import SessionFactory
from posqa.session.models import ApiHandles, MobileHandles, WebHandles
from posqa.session.registry import SessionRegistry


class FakeFactory(SessionFactory):
    """Session factory that hands out MagicMock handles and records calls."""

    def __init__(self, kind: SessionKind, needs_engine: bool = False, fail_with=None):
        super().__init__()
        self.kind = kind
        self.needs_engine = needs_engine
        self.fail_with = fail_with
        self.created = []
        self.closed = []
        self.threads = []
        self._lock = threading.Lock()

    def create(self, binding, engine=None):
        handle = MagicMock(name=f"{self.kind.value}-{binding.context_id}")
        with self._lock:
            self.created.append(binding.context_id)
            self.threads.append(threading.current_thread().name)

        if self.kind is SessionKind.WEB:
            binding.web = WebHandles(page=handle)
        elif self.kind is SessionKind.API:
            binding.api = ApiHandles(request_context=handle)
        else:
            binding.mobile = MobileHandles(driver=handle)

        if self.fail_with is not None:
            raise self.fail_with

    def teardown_steps(self, binding):
        handles = binding.handles(self.kind)
        if handles is None:
            return []
        handle = {
            SessionKind.WEB: lambda: handles.page,
            SessionKind.API: lambda: handles.request_context,
            SessionKind.MOBILE: lambda: handles.driver,
        }[self.kind]()

        def close():
            with self._lock:
                self.closed.append(binding.context_id)
            handle.close()

        return [(f"{self.kind.value}.close", close)]


@pytest.fixture
def make_properties():
    """Build a PropertySet from keyword values plus optional env overlay."""

    def _make(env_values=None, environment=None, **values):
        return PropertySet(values, env_values or {}, environment=environment)

    return _make


@pytest.fixture
def properties(make_properties):
    return make_properties(
        browser="chromium",
        default_platform="web",
        timeout="30000",
        headless_mode="true",
    )


@pytest.fixture
def fake_engine():
    return MagicMock(name="engine")


@pytest.fixture
def fake_factories():
    return {
        SessionKind.WEB: FakeFactory(SessionKind.WEB, needs_engine=True),
        SessionKind.API: FakeFactory(SessionKind.API, needs_engine=True),
        SessionKind.MOBILE: FakeFactory(SessionKind.MOBILE),
    }


@pytest.fixture
def appium_server():
    return MagicMock(name="appium_server")


@pytest.fixture
def registry(fake_factories, fake_engine, appium_server):
    return SessionRegistry(
        fake_factories.values(),
        appium_server=appium_server,
        engine_starter=lambda: fake_engine,
    )


@pytest.fixture
def failing_factory():
    """Build a FakeFactory whose create raises ``error``."""

    def _make(kind, error, needs_engine=False):
        return FakeFactory(kind, needs_engine=needs_engine, fail_with=error)

    return _make


@pytest.fixture
def temp_config(tmp_path):
    """Configuration rooted in a temporary directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir(exist_ok=True)
    (config_dir / "config.properties").write_text("browser=chromium\n")
    return Config(
        project_root=tmp_path,
        artifacts_dir=tmp_path / "artifacts",
        logs_dir=tmp_path / "logs",
        reports_dir=tmp_path / "reports",
        config_file=config_dir / "config.properties",
        environment_file=config_dir / "environment.properties",
        platform_file=config_dir / "platform.properties",
    )


@pytest.fixture
def config_dir(tmp_path) -> Path:
    """Directory with a main, environment and platform properties file."""
    directory = tmp_path / "config"
    directory.mkdir(exist_ok=True)
    (directory / "config.properties").write_text(
        "# main settings\n"
        "Browser = chrome\n"
        "env=qa\n"
        "default_platform=web\n"
        "timeout: 15000\n"
        "headless_mode=true\n"
    )
    (directory / "environment.properties").write_text(
        "qa.url=https://qa.example.com\n"
        "qa.username=cashier\n"
        "prod.url=https://pos.example.com\n"
    )
    (directory / "platform.properties").write_text("platform=hybrid\n")
    return directory
