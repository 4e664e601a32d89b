"""
POS QA harness

Runs web, API and mobile test scenarios for point-of-sale applications with
per-context Playwright and Appium sessions, retries and Xray reporting.
"""

__version__ = "0.1.0"
__author__ = "POS QA Team"

from .core.config import Config
from .core.exceptions import POSQAError
from .core.logging_config import setup_logging
from .core.platform import PlatformMode
from .execution.models import Scenario
from .execution.retry import RetryPolicy
from .execution.runner import ScenarioRunner
from .session.registry import SessionRegistry

__all__ = [
    "Config",
    "POSQAError",
    "PlatformMode",
    "RetryPolicy",
    "Scenario",
    "ScenarioRunner",
    "SessionRegistry",
    "setup_logging",
]
