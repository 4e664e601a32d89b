"""Platform mode selection for a scenario."""

import logging
import os
from enum import Enum
from typing import FrozenSet, Optional, Union

from .properties import PropertySet


logger = logging.getLogger(__name__)

PLATFORM_ENV_VARS = ("PLATFORM", "platform")


class SessionKind(Enum):
    """Kinds of automation handle a context can own."""

    WEB = "web"
    API = "api"
    MOBILE = "mobile"


class PlatformMode(Enum):
    """Which automation surfaces a scenario drives."""

    WEB = "WEB"
    MOBILE = "MOBILE"
    API = "API"
    HYBRID = "HYBRID"

    @classmethod
    def parse(cls, value: Union[str, "PlatformMode", None]) -> Optional["PlatformMode"]:
        """Parse a mode name case-insensitively; None for blank or unknown values."""
        if isinstance(value, PlatformMode):
            return value
        if value is None or not str(value).strip():
            return None
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None

    @property
    def required_kinds(self) -> FrozenSet[SessionKind]:
        """Handles created eagerly when a context is acquired in this mode."""
        return _REQUIRED[self]

    @property
    def uses_appium(self) -> bool:
        return self in (PlatformMode.MOBILE, PlatformMode.HYBRID)

    @property
    def allows_mobile(self) -> bool:
        return self.uses_appium

    @property
    def has_web(self) -> bool:
        return SessionKind.WEB in self.required_kinds


_REQUIRED = {
    PlatformMode.WEB: frozenset({SessionKind.WEB}),
    PlatformMode.API: frozenset({SessionKind.API}),
    PlatformMode.MOBILE: frozenset({SessionKind.MOBILE}),
    # The mobile driver is created lazily in hybrid mode
    PlatformMode.HYBRID: frozenset({SessionKind.WEB, SessionKind.API}),
}

DEFAULT_PLATFORM = PlatformMode.WEB


def resolve_platform_mode(
    properties: Optional[PropertySet] = None,
    override: Union[str, PlatformMode, None] = None,
    default: PlatformMode = DEFAULT_PLATFORM,
) -> PlatformMode:
    """
    Resolve the platform mode for a scenario.

    Priority: explicit override, ``PLATFORM`` environment variable, the
    ``platform`` property (platform file), the ``default_platform``
    property, then ``default``. Blank or unrecognised signals are skipped
    with a warning; this never raises.
    """
    candidates = [("override", override)]
    for name in PLATFORM_ENV_VARS:
        candidates.append((f"env:{name}", os.environ.get(name)))
    if properties is not None:
        candidates.append(("property:platform", properties.get("platform", None)))
        candidates.append(
            ("property:default_platform", properties.get("default_platform", None))
        )

    for source, raw in candidates:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            continue
        mode = PlatformMode.parse(raw)
        if mode is not None:
            logger.debug(f"Platform mode {mode.value} resolved from {source}")
            return mode
        logger.warning(f"Ignoring unknown platform '{raw}' from {source}")

    logger.debug(f"No platform signal found, using default {default.value}")
    return default
