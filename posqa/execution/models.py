"""
Data models for scenario execution.

Defines the scenario record run by the ScenarioRunner and the Pydantic
models describing attempts and results.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, validator

from ..core.platform import PlatformMode
from .retry import RetryPolicy


class ScenarioStatus(Enum):
    """Scenario execution status."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class Scenario:
    """A named test body plus the metadata needed to run and report it."""

    name: str
    body: Callable[..., None]
    tags: List[str] = field(default_factory=list)
    test_key: Optional[str] = None
    platform: Optional[PlatformMode] = None
    retry: RetryPolicy = field(default_factory=RetryPolicy.disabled)
    defect_key: Optional[str] = None

    @property
    def key(self) -> str:
        """Identifier used for retry tracking and Xray suppression."""
        return self.test_key or self.name


class Attachment(BaseModel):
    """A file attached to a scenario result."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Attachment name")
    path: str = Field(..., description="Path of the stored file")
    mime_type: str = Field("application/octet-stream", description="MIME type")
    attempt: int = Field(1, ge=1, description="Attempt the attachment belongs to")


class AttemptRecord(BaseModel):
    """Outcome of one attempt of a scenario."""

    model_config = ConfigDict(extra="forbid")

    attempt: int = Field(..., ge=1, description="Attempt number, starting at 1")
    status: ScenarioStatus = Field(..., description="Attempt status")
    duration: float = Field(..., ge=0, description="Attempt duration in seconds")
    error_kind: Optional[str] = Field(None, description="Exception class name")
    error_message: Optional[str] = Field(None, description="Error message if failed")


class ScenarioResult(BaseModel):
    """Final result of a scenario after all attempts."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Scenario name")
    context_id: str = Field(..., description="Execution context the scenario ran in")
    platform: PlatformMode = Field(..., description="Resolved platform mode")
    status: ScenarioStatus = Field(..., description="Status of the final attempt")
    started_at: datetime = Field(..., description="Start of the first attempt")
    completed_at: datetime = Field(..., description="End of the final attempt")
    duration: float = Field(..., ge=0, description="Total duration in seconds")
    attempts: List[AttemptRecord] = Field(default_factory=list, description="Every attempt")
    error_kind: Optional[str] = Field(None, description="Exception class of the final failure")
    error_message: Optional[str] = Field(None, description="Message of the final failure")
    attachments: List[Attachment] = Field(default_factory=list, description="Attachments")
    tags: List[str] = Field(default_factory=list, description="Scenario tags")
    test_key: Optional[str] = Field(None, description="Xray test key")
    defect_key: Optional[str] = Field(None, description="Jira defect linked to a failure")

    @validator("name")
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Scenario name cannot be empty")
        return v.strip()

    @property
    def is_success(self) -> bool:
        return self.status == ScenarioStatus.PASSED

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    def to_summary(self) -> Dict[str, Any]:
        """Create a summary dictionary for logging."""
        return {
            "scenario": self.name,
            "status": self.status.value,
            "platform": self.platform.value,
            "attempts": self.attempt_count,
            "duration": self.duration,
            "error_kind": self.error_kind,
        }
