"""Scenario execution: retries, soft assertions and the threaded runner."""

from .assertions import SoftAssert
from .models import (
    Attachment,
    AttemptRecord,
    Scenario,
    ScenarioResult,
    ScenarioStatus,
)
from .retry import RetryPolicy, RetryTracker
from .runner import ScenarioContext, ScenarioRunner

__all__ = [
    "Attachment",
    "AttemptRecord",
    "RetryPolicy",
    "RetryTracker",
    "Scenario",
    "ScenarioContext",
    "ScenarioResult",
    "ScenarioRunner",
    "ScenarioStatus",
    "SoftAssert",
]
