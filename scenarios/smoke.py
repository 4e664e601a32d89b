"""
Smoke scenarios for the POS web and API surfaces.

Run with ``posqa run scenarios/smoke.py``.
"""

from posqa.core.platform import PlatformMode
from posqa.execution.models import Scenario
from posqa.execution.retry import RetryPolicy
from posqa.pages.base import WebBasePage
from posqa.pages.login import LoginPage


def login_page_loads(ctx):
    login = LoginPage(ctx.page)
    ctx.soft.assert_true(login.is_visible(login.locators.lookup("username")), "username field shown")
    ctx.soft.assert_true(login.is_visible(login.locators.lookup("submit")), "login button shown")


def cashier_can_log_in(ctx):
    LoginPage(ctx.page).perform_login(
        ctx.properties.env("username"), ctx.properties.env("password")
    )
    assert WebBasePage(ctx.page).is_visible("#till"), "till screen not shown after login"


def health_endpoint(ctx):
    response = ctx.api.get("health")
    ctx.soft.assert_equal(response.status, 200, "health status")
    ctx.soft.assert_in("ok", response.text().lower(), "health body")


SCENARIOS = [
    Scenario("Login page loads", login_page_loads, tags=["smoke"], test_key="POS-1"),
    Scenario(
        "Cashier can log in",
        cashier_can_log_in,
        tags=["smoke", "login"],
        test_key="POS-2",
        retry=RetryPolicy.retrying(2),
    ),
    Scenario("API health", health_endpoint, tags=["smoke", "api"], platform=PlatformMode.API),
]
