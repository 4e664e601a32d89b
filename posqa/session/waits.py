"""
Bounded waits.

Every wait takes an explicit timeout and raises NotReadyError when it
expires; nothing here blocks indefinitely.
"""

import logging
import time
from enum import Enum
from typing import Any, Callable, Optional, Tuple, Type

from ..core.exceptions import NotReadyError


logger = logging.getLogger(__name__)


class WaitStrategy(Enum):
    """How long and on what to wait before interacting with an element."""

    CLICKABLE = "clickable"
    PRESENCE = "presence"
    VISIBLE = "visible"
    NONE = "none"

    # Mobile settle waits
    APP_LAUNCH = "app_launch"
    UI_INTERACTION = "ui_interaction"
    NAVIGATION = "navigation"


# Property name and default (seconds) for each mobile settle wait
SETTLE_DELAYS = {
    WaitStrategy.APP_LAUNCH: ("wait_long", 5.0),
    WaitStrategy.UI_INTERACTION: ("wait_short", 0.5),
    WaitStrategy.NAVIGATION: ("wait_medium", 2.0),
}


def wait_until(
    condition: Callable[[], Any],
    timeout: float,
    interval: float = 0.5,
    description: str = "condition",
    ignored_exceptions: Tuple[Type[BaseException], ...] = (),
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """
    Poll ``condition`` until it returns a truthy value or ``timeout`` seconds pass.

    Exceptions listed in ``ignored_exceptions`` count as "not ready yet".

    Returns:
        The first truthy value returned by ``condition``

    Raises:
        NotReadyError: the deadline passed first
    """
    if timeout < 0:
        raise ValueError("timeout must not be negative")

    start = clock()
    deadline = start + timeout
    last_error: Optional[BaseException] = None

    while True:
        try:
            value = condition()
            if value:
                return value
        except ignored_exceptions as e:
            last_error = e

        remaining = deadline - clock()
        if remaining <= 0:
            break
        sleep(min(interval, remaining))

    elapsed = clock() - start
    message = f"Timed out after {timeout:.1f}s waiting for {description}"
    if last_error is not None:
        message += f" (last error: {last_error})"
    raise NotReadyError(
        message, description=description, timeout=timeout, elapsed=elapsed
    ) from last_error


def settle(strategy: WaitStrategy, properties=None, sleep: Callable[[float], None] = time.sleep) -> float:
    """Sleep for the configured settle delay of a mobile wait strategy."""
    if strategy not in SETTLE_DELAYS:
        return 0.0
    key, default = SETTLE_DELAYS[strategy]
    delay = properties.get_float(key, default) if properties is not None else default
    logger.debug(f"Settling {delay:.2f}s for {strategy.value}")
    sleep(delay)
    return delay


def wait_for_locator(page, selector: str, strategy: WaitStrategy, timeout: float):
    """
    Wait for a Playwright locator according to ``strategy``.

    Args:
        page: Playwright page
        selector: Selector for ``page.locator``
        strategy: PRESENCE, VISIBLE, CLICKABLE or NONE
        timeout: Timeout in seconds

    Returns:
        The Playwright locator
    """
    from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

    locator = page.locator(selector)
    if strategy is WaitStrategy.NONE or strategy in SETTLE_DELAYS:
        return locator

    timeout_ms = timeout * 1000
    start = time.monotonic()
    try:
        if strategy is WaitStrategy.PRESENCE:
            locator.wait_for(state="attached", timeout=timeout_ms)
        else:
            locator.wait_for(state="visible", timeout=timeout_ms)
    except PlaywrightTimeoutError as e:
        raise NotReadyError(
            f"Timed out after {timeout:.1f}s waiting for '{selector}' to be {strategy.value}",
            description=selector,
            timeout=timeout,
            elapsed=time.monotonic() - start,
        ) from e

    if strategy is WaitStrategy.CLICKABLE:
        remaining = max(0.0, timeout - (time.monotonic() - start))
        wait_until(
            locator.is_enabled,
            remaining,
            interval=0.1,
            description=f"'{selector}' to be clickable",
        )
    return locator


def wait_for_element(driver, by: str, value: str, strategy: WaitStrategy, timeout: float):
    """
    Wait for an Appium/Selenium element according to ``strategy``.

    Args:
        driver: Appium driver
        by: Locator strategy, e.g. ``AppiumBy.ACCESSIBILITY_ID``
        value: Locator value
        strategy: PRESENCE, VISIBLE, CLICKABLE or NONE
        timeout: Timeout in seconds
    """
    from selenium.common.exceptions import TimeoutException
    from selenium.webdriver.support import expected_conditions as EC
    from selenium.webdriver.support.ui import WebDriverWait

    locator = (by, value)
    if strategy is WaitStrategy.NONE or strategy in SETTLE_DELAYS:
        return driver.find_element(*locator)

    conditions = {
        WaitStrategy.CLICKABLE: EC.element_to_be_clickable,
        WaitStrategy.PRESENCE: EC.presence_of_element_located,
        WaitStrategy.VISIBLE: EC.visibility_of_element_located,
    }
    logger.debug(f"Applying wait strategy {strategy.value}, timeout {timeout}s, locator {locator}")
    start = time.monotonic()
    try:
        return WebDriverWait(driver, timeout).until(conditions[strategy](locator))
    except TimeoutException as e:
        raise NotReadyError(
            f"Timed out after {timeout:.1f}s waiting for {locator} to be {strategy.value}",
            description=f"{by}={value}",
            timeout=timeout,
            elapsed=time.monotonic() - start,
        ) from e
