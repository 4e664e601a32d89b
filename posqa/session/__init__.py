"""Per-context automation sessions: web pages, API request contexts and mobile drivers."""

from .base import SessionFactory
from .models import (
    ApiHandles,
    MobileHandles,
    ReleaseReport,
    SessionBinding,
    SessionState,
    WebHandles,
)
from .registry import SessionRegistry
from .waits import WaitStrategy, settle, wait_until

__all__ = [
    "ApiHandles",
    "MobileHandles",
    "ReleaseReport",
    "SessionBinding",
    "SessionFactory",
    "SessionRegistry",
    "SessionState",
    "WaitStrategy",
    "WebHandles",
    "settle",
    "wait_until",
]
