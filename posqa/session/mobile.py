"""
Appium driver sessions.

Builds capabilities for local (emulator/simulator) or remote (Sauce Labs)
runs on Android or iOS from the property set and opens one driver per
execution context.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from appium import webdriver
from appium.options.android import UiAutomator2Options
from appium.options.common import AppiumOptions
from appium.options.ios import XCUITestOptions

from ..core.platform import SessionKind
from ..core.properties import ConfigCache
from .base import SessionFactory
from .models import MobileHandles, SessionBinding, TeardownStep


ANDROID = "android"
IOS = "ios"


class MobileDriverFactory(SessionFactory):
    """Creates an Appium driver for a binding."""

    kind = SessionKind.MOBILE

    def __init__(
        self,
        cache: ConfigCache,
        driver_constructor: Optional[Callable[..., Any]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(logger)
        self.cache = cache
        self._connect = driver_constructor or webdriver.Remote

    # Configuration lookups

    def _optional(self, key: str) -> Optional[str]:
        value = self.cache.get_optional(key)
        if value is None or not value.strip():
            return None
        return value.strip()

    def _set_bool(self, options, key: str, capability: str) -> None:
        if self._optional(key) is not None:
            options.set_capability(capability, self.cache.get_bool(key))

    @property
    def device(self) -> str:
        device = self.cache.get("default_device").strip().lower()
        ios_name = (self._optional("ios") or IOS).lower()
        return IOS if device == ios_name else ANDROID

    @property
    def is_remote(self) -> bool:
        run_mode = self.cache.get("default_run_mode").strip().lower()
        remote_mode = (self._optional("remote_run_mode") or "remote").lower()
        return run_mode == remote_mode

    def server_url(self, device: Optional[str] = None) -> str:
        if self.is_remote:
            return self.cache.get("remote_server_url")
        device = device or self.device
        host = self._optional("ip_address") or "127.0.0.1"
        port = self.cache.get_int("ios_port" if device == IOS else "port")
        return f"http://{host}:{port}"

    # Capability building

    def build_options(self, scenario_name: Optional[str] = None) -> Tuple[Any, str]:
        """Build driver options and the Appium server URL for the configured device and run mode."""
        device = self.device
        if self.is_remote:
            options = self._remote_options(device, scenario_name)
        elif device == IOS:
            options = self._local_ios_options()
        else:
            options = self._local_android_options()
        return options, self.server_url(device)

    def _remote_options(self, device: str, scenario_name: Optional[str]) -> AppiumOptions:
        suffix = IOS if device == IOS else ANDROID
        caps: Dict[str, Any] = {
            "platformName": self.cache.get(f"platformname{suffix}"),
            "appium:app": self.cache.get(f"app_{suffix}"),
            "appium:deviceName": self.cache.get(f"devicename{suffix}"),
            "appium:automationName": self.cache.get(f"automation_name_{suffix}"),
        }
        if device == ANDROID:
            caps["appium:platformVersion"] = self.cache.get("platformversion")
            caps["appium:autoGrantPermissions"] = self.cache.get_bool(
                "android_auto_grant_permissions"
            )
        else:
            caps["appium:autoAcceptAlerts"] = self.cache.get_bool("ios_auto_accept_alerts")
            caps["appium:maxTypingFrequency"] = self.cache.get_int("ios_max_typing_frequency")

        caps["sauce:options"] = {
            "username": self.cache.get("username"),
            "accessKey": self.cache.get("accesskey"),
            "build": self.cache.get("appiumbuild"),
            "name": scenario_name or "posqa",
            "deviceOrientation": self.cache.get("deviceorientation"),
            "appiumVersion": self.cache.get("appiumversion"),
        }
        return AppiumOptions().load_capabilities(caps)

    def _local_android_options(self) -> UiAutomator2Options:
        options = UiAutomator2Options()
        options.set_capability("appium:deviceName", self.cache.get("android_simulator_name"))
        options.set_capability(
            "appium:app", self._optional("android_app_path") or self.cache.get("app_android")
        )
        options.set_capability("appium:autoGrantPermissions", True)
        self._set_bool(options, "android_no_reset", "appium:noReset")
        self._set_bool(options, "android_full_reset", "appium:fullReset")
        system_port = self._optional("android_system_port")
        if system_port is not None:
            options.set_capability("appium:systemPort", self.cache.get_int("android_system_port"))
        return options

    def _local_ios_options(self) -> XCUITestOptions:
        options = XCUITestOptions()
        options.set_capability("appium:deviceName", self.cache.get("ios_simulator_name"))
        options.set_capability(
            "appium:app", self._optional("ios_app_path") or self.cache.get("app_ios")
        )
        options.set_capability("appium:autoAcceptAlerts", True)
        options.set_capability(
            "appium:maxTypingFrequency", self.cache.get_int("ios_max_typing_frequency")
        )
        self._set_bool(options, "ios_no_reset", "appium:noReset")
        self._set_bool(options, "ios_full_reset", "appium:fullReset")
        if self._optional("ios_simulator_startup_timeout") is not None:
            options.set_capability(
                "appium:simulatorStartupTimeout",
                self.cache.get_int("ios_simulator_startup_timeout"),
            )
        return options

    # Lifecycle

    def create(self, binding: SessionBinding, engine: Any = None) -> None:
        device = self.device
        options, url = self.build_options(binding.label)
        binding.mobile = MobileHandles(
            platform_name=device, app_id=self._optional("app_package")
        )
        self.logger.info(
            f"Connecting {device} driver to {url} for context {binding.context_id}",
            extra={"context_id": binding.context_id},
        )
        driver = self._connect(command_executor=url, options=options)
        binding.mobile.driver = driver

        if device == IOS:
            selector = self._optional("ios_alert_selector")
            if selector:
                driver.update_settings({"acceptAlertButtonSelector": selector})

    def teardown_steps(self, binding: SessionBinding) -> List[TeardownStep]:
        handles = binding.mobile
        if handles is None or handles.driver is None:
            return []
        steps: List[TeardownStep] = []
        if handles.platform_name == ANDROID and handles.app_id:
            steps.append(
                ("mobile.terminate_app", lambda: handles.driver.terminate_app(handles.app_id))
            )
        steps.append(("mobile.driver", handles.driver.quit))
        return steps
