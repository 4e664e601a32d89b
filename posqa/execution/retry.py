"""
Retry policy and retry bookkeeping.

The policy is an explicit per-scenario record. The tracker counts retries
per scenario key and holds back Xray reporting for attempts that are going
to be retried, so only the final outcome is published.
"""

import logging
import threading
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.platform import PlatformMode


DEFAULT_FRESH_SESSION_MODES = frozenset({PlatformMode.MOBILE, PlatformMode.HYBRID})


class RetryPolicy(BaseModel):
    """How many times a scenario may run and when it needs a fresh session."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = Field(False, description="Whether failed scenarios are retried")
    max_attempts: int = Field(1, ge=1, le=10, description="Total attempts including the first")
    fresh_session_on_retry: FrozenSet[PlatformMode] = Field(
        default=DEFAULT_FRESH_SESSION_MODES,
        description="Platform modes whose session is relaunched between attempts",
    )

    @classmethod
    def disabled(cls) -> "RetryPolicy":
        return cls(enabled=False, max_attempts=1)

    @classmethod
    def retrying(cls, max_attempts: int, **kwargs) -> "RetryPolicy":
        return cls(enabled=True, max_attempts=max_attempts, **kwargs)

    @property
    def effective_attempts(self) -> int:
        """Attempts that will actually run; a disabled policy runs once."""
        return self.max_attempts if self.enabled else 1

    def needs_fresh_session(self, mode: PlatformMode) -> bool:
        return mode in self.fresh_session_on_retry


class RetryTracker:
    """Thread-safe retry counts and Xray suppression flags keyed by scenario."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._retry_counts: Dict[str, int] = {}
        self._suppressed: Dict[str, bool] = {}
        self._lock = threading.Lock()

    def increment(self, key: str) -> int:
        if not key or not key.strip():
            return 0
        with self._lock:
            count = self._retry_counts.get(key, 0) + 1
            self._retry_counts[key] = count
        self.logger.debug(f"Retry count incremented for {key}: {count}")
        return count

    def retry_count(self, key: str) -> int:
        with self._lock:
            return self._retry_counts.get(key, 0)

    def suppress_xray(self, key: str) -> None:
        if key and key.strip():
            with self._lock:
                self._suppressed[key] = True
            self.logger.debug(f"Xray reporting suppressed for: {key}")

    def allow_xray(self, key: str) -> None:
        if key and key.strip():
            with self._lock:
                self._suppressed[key] = False
            self.logger.debug(f"Xray reporting allowed for: {key}")

    def is_xray_suppressed(self, key: str) -> bool:
        if not key or not key.strip():
            return False
        with self._lock:
            return self._suppressed.get(key, False)

    def clear(self, key: str) -> None:
        with self._lock:
            self._retry_counts.pop(key, None)
            self._suppressed.pop(key, None)

    def clear_all(self) -> None:
        with self._lock:
            retries, suppressed = len(self._retry_counts), len(self._suppressed)
            self._retry_counts.clear()
            self._suppressed.clear()
        self.logger.info(
            f"Cleared all retry data: {retries} retry entries, {suppressed} suppress entries"
        )

    def statistics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "tracked": len(self._retry_counts),
                "suppressed": sum(1 for v in self._suppressed.values() if v),
                "total_retries": sum(self._retry_counts.values()),
            }
