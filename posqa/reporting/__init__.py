"""Suite reports, attachments and Xray publishing."""

from .attachments import ArtifactStore, ReportSink, capture_screenshot
from .generator import ReportGenerator
from .models import ReportFormat, SuiteReport, SuiteSummary
from .xray import (
    ExecutionPayloadBuilder,
    SharedExecutionKey,
    XrayClient,
    XrayConfig,
    XrayReporter,
)

__all__ = [
    "ArtifactStore",
    "ExecutionPayloadBuilder",
    "ReportFormat",
    "ReportGenerator",
    "ReportSink",
    "SharedExecutionKey",
    "SuiteReport",
    "SuiteSummary",
    "XrayClient",
    "XrayConfig",
    "XrayReporter",
    "capture_screenshot",
]
