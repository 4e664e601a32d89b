"""
Soft assertions.

A SoftAssert collects failures during a scenario instead of stopping at the
first one. ``assert_all`` raises a single SoftAssertionError listing every
recorded failure. Each scenario attempt gets its own instance.
"""

import logging
import threading
from typing import Any, Iterable, List, Optional

from ..core.exceptions import SoftAssertionError


class SoftAssert:
    """Collects assertion failures for later reporting."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._failures: List[str] = []
        self._lock = threading.Lock()

    @property
    def failures(self) -> List[str]:
        with self._lock:
            return list(self._failures)

    @property
    def has_failures(self) -> bool:
        return bool(self._failures)

    def __len__(self) -> int:
        return len(self._failures)

    def fail(self, message: str) -> None:
        with self._lock:
            self._failures.append(message)
        self.logger.warning(f"Soft assertion failed: {message}")

    def check(self, condition: Any, message: str) -> bool:
        """Record ``message`` when ``condition`` is falsy. Returns the outcome."""
        if condition:
            return True
        self.fail(message)
        return False

    def assert_true(self, condition: Any, message: str = "Expected condition to be true") -> bool:
        return self.check(condition, message)

    def assert_false(self, condition: Any, message: str = "Expected condition to be false") -> bool:
        return self.check(not condition, message)

    def assert_equal(self, actual: Any, expected: Any, message: Optional[str] = None) -> bool:
        return self.check(
            actual == expected,
            message or f"Expected {expected!r} but was {actual!r}",
        )

    def assert_not_equal(self, actual: Any, unexpected: Any, message: Optional[str] = None) -> bool:
        return self.check(
            actual != unexpected,
            message or f"Expected value different from {unexpected!r}",
        )

    def assert_in(self, member: Any, container: Iterable, message: Optional[str] = None) -> bool:
        return self.check(
            member in container,
            message or f"Expected {member!r} to be in {container!r}",
        )

    def assert_is_not_none(self, value: Any, message: str = "Expected a value but was None") -> bool:
        return self.check(value is not None, message)

    def assert_all(self) -> None:
        """Raise SoftAssertionError if any failure was recorded."""
        failures = self.failures
        if failures:
            raise SoftAssertionError(failures)

    def clear(self) -> None:
        with self._lock:
            self._failures.clear()
