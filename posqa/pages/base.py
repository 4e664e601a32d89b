"""
Base page objects for web and mobile screens.

Every interaction waits first using a WaitStrategy and a bounded timeout.
"""

import logging
from typing import Optional

from ..core.catalog import BUTTONS, Catalog
from ..core.exceptions import NotReadyError
from ..session.waits import (
    WaitStrategy,
    settle,
    wait_for_element,
    wait_for_locator,
    wait_until,
)


DEFAULT_TIMEOUT = 20.0


class WebBasePage:
    """Playwright page wrapper shared by web page objects."""

    def __init__(self, page, timeout: float = DEFAULT_TIMEOUT, buttons: Catalog = BUTTONS):
        self.page = page
        self.timeout = timeout
        self.buttons = buttons
        self.logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    def wait_for(
        self,
        selector: str,
        strategy: WaitStrategy = WaitStrategy.VISIBLE,
        timeout: Optional[float] = None,
    ):
        return wait_for_locator(
            self.page, selector, strategy, self.timeout if timeout is None else timeout
        )

    def click(self, selector: str, timeout: Optional[float] = None) -> None:
        self.wait_for(selector, WaitStrategy.CLICKABLE, timeout).click()
        self.logger.info(f"Clicked element with locator: {selector}")

    def click_button(self, key: str, timeout: Optional[float] = None) -> None:
        """Click a button by its catalog key, e.g. ``save``."""
        label = self.buttons.lookup(key)
        self.click(f"button:has-text('{label}')", timeout)

    def fill(self, selector: str, value: str, timeout: Optional[float] = None) -> None:
        self.wait_for(selector, WaitStrategy.VISIBLE, timeout).fill(value)
        self.logger.info(f"Filled field: {selector}")

    def text_of(self, selector: str, timeout: Optional[float] = None) -> str:
        return self.wait_for(selector, WaitStrategy.VISIBLE, timeout).inner_text().strip()

    def is_visible(self, selector: str, timeout: Optional[float] = None) -> bool:
        """True if the element becomes visible in time; never raises on timeout."""
        try:
            self.wait_for(selector, WaitStrategy.VISIBLE, timeout)
        except NotReadyError:
            self.logger.info(f"Element not visible: {selector}")
            return False
        return True


class MobileBasePage:
    """Appium driver wrapper shared by mobile screens."""

    def __init__(self, driver, properties=None, timeout: float = DEFAULT_TIMEOUT):
        self.driver = driver
        self.properties = properties
        self.timeout = timeout
        self.logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    def find(
        self,
        by: str,
        value: str,
        strategy: WaitStrategy = WaitStrategy.VISIBLE,
        timeout: Optional[float] = None,
    ):
        return wait_for_element(
            self.driver, by, value, strategy, self.timeout if timeout is None else timeout
        )

    def tap(self, by: str, value: str, timeout: Optional[float] = None) -> None:
        self.find(by, value, WaitStrategy.CLICKABLE, timeout).click()
        self.logger.info(f"Tapped element: {value}")

    def type_text(self, by: str, value: str, text: str, timeout: Optional[float] = None) -> None:
        element = self.find(by, value, WaitStrategy.VISIBLE, timeout)
        element.clear()
        element.send_keys(text)

    def is_displayed(self, by: str, value: str, timeout: Optional[float] = None) -> bool:
        def displayed():
            elements = self.driver.find_elements(by, value)
            return bool(elements) and elements[0].is_displayed()

        try:
            wait_until(
                displayed,
                self.timeout if timeout is None else timeout,
                description=f"'{value}' to be displayed",
            )
        except NotReadyError:
            return False
        return True

    def settle(self, strategy: WaitStrategy = WaitStrategy.UI_INTERACTION) -> float:
        return settle(strategy, self.properties)
