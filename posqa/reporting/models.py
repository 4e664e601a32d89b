"""
Pydantic models for suite reports.

A SuiteReport collects the ScenarioResults of one run together with a
summary that the report generator and Xray reporter consume.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, validator

from ..execution.models import ScenarioResult, ScenarioStatus


class ReportFormat(Enum):
    """Report output formats."""

    JSON = "json"
    HTML = "html"


class SuiteSummary(BaseModel):
    """Summary of scenario results."""

    model_config = ConfigDict(extra="forbid")

    total: int = Field(..., ge=0, description="Number of scenarios")
    passed: int = Field(..., ge=0, description="Scenarios that passed")
    failed: int = Field(..., ge=0, description="Scenarios that failed an assertion")
    errors: int = Field(..., ge=0, description="Scenarios that raised another error")
    skipped: int = Field(0, ge=0, description="Scenarios that were skipped")
    retried: int = Field(0, ge=0, description="Scenarios that needed more than one attempt")
    duration: float = Field(..., ge=0, description="Wall-clock duration in seconds")
    success_rate: float = Field(0.0, ge=0, le=100, description="Pass percentage")

    @classmethod
    def from_results(cls, results: List[ScenarioResult], duration: float) -> "SuiteSummary":
        total = len(results)
        passed = sum(1 for r in results if r.status == ScenarioStatus.PASSED)
        return cls(
            total=total,
            passed=passed,
            failed=sum(1 for r in results if r.status == ScenarioStatus.FAILED),
            errors=sum(1 for r in results if r.status == ScenarioStatus.ERROR),
            skipped=sum(1 for r in results if r.status == ScenarioStatus.SKIPPED),
            retried=sum(1 for r in results if r.attempt_count > 1),
            duration=duration,
            success_rate=(passed / total * 100) if total > 0 else 0.0,
        )

    @property
    def all_passed(self) -> bool:
        return self.passed == self.total


class SuiteReport(BaseModel):
    """Complete report for one run."""

    model_config = ConfigDict(extra="forbid")

    run_id: str = Field(..., description="Run identifier")
    started_at: datetime = Field(..., description="Run start time")
    completed_at: datetime = Field(..., description="Run completion time")
    platform: Optional[str] = Field(None, description="Platform mode override, if any")
    environment: Optional[str] = Field(None, description="Active environment overlay")
    summary: SuiteSummary = Field(..., description="Result summary")
    scenarios: List[ScenarioResult] = Field(default_factory=list, description="Scenario results")
    configuration: Dict[str, Any] = Field(default_factory=dict, description="Run configuration")

    @validator("run_id")
    def validate_run_id(cls, v):
        if not v or not v.strip():
            raise ValueError("Run ID cannot be empty")
        return v.strip()

    @classmethod
    def build(
        cls,
        run_id: str,
        results: List[ScenarioResult],
        started_at: datetime,
        completed_at: Optional[datetime] = None,
        **kwargs,
    ) -> "SuiteReport":
        completed_at = completed_at or datetime.now()
        duration = max(0.0, (completed_at - started_at).total_seconds())
        return cls(
            run_id=run_id,
            started_at=started_at,
            completed_at=completed_at,
            summary=SuiteSummary.from_results(results, duration),
            scenarios=results,
            **kwargs,
        )

    @property
    def failures(self) -> List[ScenarioResult]:
        return [s for s in self.scenarios if not s.is_success]
