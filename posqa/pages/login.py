"""Web login page."""

from ..core.catalog import Catalog
from .base import WebBasePage


LOGIN_LOCATORS = Catalog(
    "login_locators",
    {
        "username": "input[name='username'], input[type='email']",
        "password": "input[name='password'], input[type='password']",
        "submit": "button[type='submit']",
        "error": "[role='alert']",
    },
)


class LoginPage(WebBasePage):
    """Fills in credentials and submits the login form."""

    locators = LOGIN_LOCATORS

    def perform_login(self, username: str, password: str) -> None:
        self.fill(self.locators.lookup("username"), username)
        self.fill(self.locators.lookup("password"), password)
        self.click(self.locators.lookup("submit"))
        self.logger.info(f"Submitted login for user: {username}")

    def error_message(self) -> str:
        return self.text_of(self.locators.lookup("error"))
