"""
Data models for automation session bindings.

A binding ties one execution context to at most one handle of each kind.
Handles are filled in progressively while a binding is being acquired so
that a partially built binding can still be torn down.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

from ..core.platform import PlatformMode, SessionKind


class SessionState(Enum):
    """Lifecycle state of a context's binding."""

    UNBOUND = "unbound"
    ACQUIRING = "acquiring"
    BOUND = "bound"
    RELEASING = "releasing"


@dataclass
class WebHandles:
    """Browser, context and page created together for one context."""

    browser: Any = None
    context: Any = None
    page: Any = None
    browser_name: Optional[str] = None
    tracing: bool = False
    video_path: Optional[Path] = None


@dataclass
class ApiHandles:
    """Playwright API request context."""

    request_context: Any = None
    base_url: Optional[str] = None


@dataclass
class MobileHandles:
    """Appium driver for one device session."""

    driver: Any = None
    platform_name: Optional[str] = None
    app_id: Optional[str] = None


TeardownStep = Tuple[str, Callable[[], None]]


@dataclass
class SessionBinding:
    """Handles owned by one execution context."""

    context_id: str
    mode: PlatformMode
    label: Optional[str] = None
    state: SessionState = SessionState.UNBOUND
    engine: Any = None
    web: Optional[WebHandles] = None
    api: Optional[ApiHandles] = None
    mobile: Optional[MobileHandles] = None
    allows_mobile: bool = False
    acquired_order: List[SessionKind] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)

    def handles(self, kind: SessionKind):
        return {
            SessionKind.WEB: self.web,
            SessionKind.API: self.api,
            SessionKind.MOBILE: self.mobile,
        }[kind]

    def has(self, kind: SessionKind) -> bool:
        return kind in self.acquired_order and self.handles(kind) is not None

    @property
    def is_bound(self) -> bool:
        return self.state is SessionState.BOUND

    @property
    def kinds(self) -> List[str]:
        return [kind.value for kind in self.acquired_order]


@dataclass
class ReleaseReport:
    """Outcome of tearing down one context's binding."""

    context_id: str
    released: List[str] = field(default_factory=list)
    errors: List[Tuple[str, str]] = field(default_factory=list)
    artifacts: List[Path] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.errors
