"""
Xray Cloud result publishing.

The XrayClient talks to the Xray Cloud and Jira REST APIs with aiohttp and
raises XrayError on any non-success response. The XrayReporter sits on top
of it, shares one test execution key per run and never lets a publishing
failure escape: Xray problems are logged, the run's outcome is unchanged.
"""

import asyncio
import base64
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import BaseModel, ConfigDict, Field

from ..core.crypto import reveal
from ..core.exceptions import ConfigurationError, XrayError
from ..core.properties import PropertySet
from ..execution.models import ScenarioResult, ScenarioStatus
from ..execution.retry import RetryTracker


XRAY_AUTH_ENDPOINT = "https://xray.cloud.getxray.app/api/oauth/token"
XRAY_EXECUTION_ENDPOINT = "https://xray.cloud.getxray.app/api/v2/import/execution"
TEST_EXECUTION_KEY_FILE = Path("target") / "testexecution.key"
MAX_COMMENT_LENGTH = 2000
EVIDENCE_MIME_TYPES = ("video/webm", "video/mp4", "image/png")
# Tried in order when linking a new execution to its test plan
PREFERRED_LINK_TYPES = ("Parent-Child", "Relates")

XRAY_STATUSES = {
    ScenarioStatus.PASSED: "PASSED",
    ScenarioStatus.FAILED: "FAILED",
    ScenarioStatus.ERROR: "FAILED",
    ScenarioStatus.SKIPPED: "TODO",
}


class XrayConfig(BaseModel):
    """Connection settings for Xray Cloud and Jira."""

    model_config = ConfigDict(extra="forbid")

    client_id: Optional[str] = Field(None, description="Xray API client id")
    client_secret: Optional[str] = Field(None, description="Xray API client secret")
    auth_endpoint: str = Field(XRAY_AUTH_ENDPOINT, description="Xray authentication URL")
    execution_endpoint: str = Field(XRAY_EXECUTION_ENDPOINT, description="Xray result import URL")
    jira_url: Optional[str] = Field(None, description="Jira base URL")
    jira_email: Optional[str] = Field(None, description="Jira account email")
    jira_token: Optional[str] = Field(None, description="Jira API token")
    project_key: Optional[str] = Field(None, description="Jira project for new executions")
    execution_key: Optional[str] = Field(None, description="Existing test execution to report into")
    test_plan_key: Optional[str] = Field(None, description="Test plan new executions are linked to")
    attach_evidence: bool = Field(True, description="Upload video and screenshot evidence")
    timeout: float = Field(30.0, gt=0, description="Request timeout in seconds")

    @classmethod
    def from_properties(cls, properties: PropertySet) -> "XrayConfig":
        def value(key: str) -> Optional[str]:
            found = properties.get(key, None)
            if found is None:
                found = properties.env(key, None)
            if not found or not found.strip():
                return None
            return reveal(found.strip(), key=key)

        return cls(
            client_id=value("xray.clientid") or value("xray.clientid.encrypted"),
            client_secret=value("xray.clientsecret") or value("xray.clientsecret.encrypted"),
            auth_endpoint=value("xray.authendpoint") or XRAY_AUTH_ENDPOINT,
            execution_endpoint=value("xray.executionendpoint") or XRAY_EXECUTION_ENDPOINT,
            jira_url=value("jira.url"),
            jira_email=value("jira.email") or value("jira.email.encrypted"),
            jira_token=value("jira.token") or value("jira.token.encrypted"),
            project_key=value("jira.project.key"),
            execution_key=value("execid"),
            test_plan_key=value("test.plan.key"),
            attach_evidence=properties.get_bool("xray_attach_evidence", True),
            timeout=properties.get_float("xray_timeout", 30.0),
        )


class XrayClient:
    """Async client for the Xray Cloud import API and Jira issue creation."""

    def __init__(self, config: XrayConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self._token: Optional[str] = None

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.config.timeout)

    async def authenticate(self) -> str:
        """Exchange client credentials for a bearer token."""
        if not self.config.client_id or not self.config.client_secret:
            raise XrayError("Xray client id and secret are not configured", operation="authenticate")

        credentials = {
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }
        async with aiohttp.ClientSession(timeout=self._timeout()) as session:
            async with session.post(self.config.auth_endpoint, json=credentials) as response:
                body = await response.text()
                if response.status != 200:
                    raise XrayError(
                        f"Xray authentication failed with status {response.status}: {body}",
                        operation="authenticate",
                        status=response.status,
                    )

        # The token comes back as a JSON string literal
        self._token = body.strip().strip('"')
        self.logger.info("Authenticated with Xray")
        return self._token

    async def create_test_execution(self, summary: str, description: str = "") -> str:
        """Create a Jira "Test Execution" issue and return its key."""
        config = self.config
        if not (config.jira_url and config.jira_email and config.jira_token and config.project_key):
            raise XrayError(
                "Jira url, credentials and project key are required to create a test execution",
                operation="create_test_execution",
            )

        payload = {
            "fields": {
                "project": {"key": config.project_key},
                "summary": summary,
                "description": description,
                "issuetype": {"name": "Test Execution"},
            }
        }
        url = f"{config.jira_url.rstrip('/')}/rest/api/2/issue"
        auth = aiohttp.BasicAuth(config.jira_email, config.jira_token)
        async with aiohttp.ClientSession(timeout=self._timeout(), auth=auth) as session:
            async with session.post(url, json=payload) as response:
                if response.status not in (200, 201):
                    body = await response.text()
                    raise XrayError(
                        f"Failed to create test execution, status {response.status}: {body}",
                        operation="create_test_execution",
                        status=response.status,
                    )
                data = await response.json()

        key = data.get("key")
        if not key:
            raise XrayError(
                "Jira response did not contain an issue key", operation="create_test_execution"
            )
        self.logger.info(f"Created test execution {key}")
        return key

    async def link_issues(self, inward_key: str, outward_key: str, link_type: str = "Relates") -> None:
        """Create a Jira issue link of ``link_type`` between two issues."""
        config = self.config
        if not (config.jira_url and config.jira_email and config.jira_token):
            raise XrayError(
                "Jira url and credentials are required to link issues", operation="link_issues"
            )

        payload = {
            "type": {"name": link_type},
            "inwardIssue": {"key": inward_key},
            "outwardIssue": {"key": outward_key},
        }
        url = f"{config.jira_url.rstrip('/')}/rest/api/2/issueLink"
        auth = aiohttp.BasicAuth(config.jira_email, config.jira_token)
        async with aiohttp.ClientSession(timeout=self._timeout(), auth=auth) as session:
            async with session.post(url, json=payload) as response:
                if response.status not in (200, 201):
                    body = await response.text()
                    raise XrayError(
                        f"Failed to link {inward_key} and {outward_key} as {link_type}, "
                        f"status {response.status}: {body}",
                        operation="link_issues",
                        status=response.status,
                    )
        self.logger.info(f"Linked {inward_key} and {outward_key} ({link_type})")

    async def import_results(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Import execution results; authenticates first when needed."""
        token = self._token or await self.authenticate()
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        async with aiohttp.ClientSession(timeout=self._timeout()) as session:
            async with session.post(
                self.config.execution_endpoint, json=payload, headers=headers
            ) as response:
                if response.status != 200:
                    body = await response.text()
                    raise XrayError(
                        f"Xray import failed with status {response.status}: {body}",
                        operation="import_results",
                        status=response.status,
                    )
                return await response.json()


class ExecutionPayloadBuilder:
    """Builds the body of an Xray execution result import."""

    def __init__(
        self,
        execution_key: Optional[str] = None,
        attach_evidence: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        self.execution_key = execution_key
        self.attach_evidence = attach_evidence
        self.logger = logger or logging.getLogger(__name__)
        self._tests: List[Dict[str, Any]] = []

    def with_execution_key(self, key: str) -> "ExecutionPayloadBuilder":
        self.execution_key = key
        return self

    def add_test(
        self,
        test_key: str,
        status: str,
        comment: Optional[str] = None,
        defects: Optional[List[str]] = None,
        evidence: Optional[List[Dict[str, str]]] = None,
    ) -> "ExecutionPayloadBuilder":
        entry: Dict[str, Any] = {"testKey": test_key, "status": status}
        if comment and comment.strip():
            entry["comment"] = comment[:MAX_COMMENT_LENGTH]
        defects = [d.strip() for d in defects or [] if d and d.strip()]
        if defects:
            entry["defects"] = defects
        if evidence:
            entry["evidence"] = list(evidence)
        self._tests.append(entry)
        return self

    def add_result(self, result: ScenarioResult) -> "ExecutionPayloadBuilder":
        if result.is_success:
            comment = f"Passed after {result.attempt_count} attempt(s)"
            defects = None
        else:
            comment = f"{result.error_kind}: {result.error_message}"
            defects = [result.defect_key] if result.defect_key else None
        evidence = self.evidence_for(result) if self.attach_evidence else None
        return self.add_test(
            result.test_key, XRAY_STATUSES[result.status], comment, defects, evidence
        )

    def evidence_for(self, result: ScenarioResult) -> List[Dict[str, str]]:
        """Base64 evidence entries for the result's videos and screenshots."""
        evidence = []
        for attachment in result.attachments:
            if attachment.mime_type not in EVIDENCE_MIME_TYPES:
                continue
            path = Path(attachment.path)
            try:
                data = path.read_bytes()
            except OSError as e:
                self.logger.warning(f"Skipping evidence {path}: {e}")
                continue
            evidence.append(
                {
                    "data": base64.b64encode(data).decode("ascii"),
                    "filename": path.name,
                    "contentType": attachment.mime_type,
                }
            )
        return evidence

    def build(self) -> Dict[str, Any]:
        if not self.execution_key or not self.execution_key.strip():
            raise ValueError("Test execution key is required")
        if not self._tests:
            raise ValueError("At least one test result is required")

        return {"testExecutionKey": self.execution_key, "tests": [dict(t) for t in self._tests]}


class SharedExecutionKey:
    """
    One test execution key shared by every scenario in a run.

    The key is written to a file so a rerun of the same suite reports into
    the same execution.
    """

    def __init__(self, path: Path = TEST_EXECUTION_KEY_FILE, logger: Optional[logging.Logger] = None):
        self.path = Path(path)
        self.logger = logger or logging.getLogger(__name__)
        self._key: Optional[str] = None
        self._lock = threading.Lock()

    def get(self) -> Optional[str]:
        with self._lock:
            if self._key is None and self.path.exists():
                stored = self.path.read_text(encoding="utf-8").strip()
                self._key = stored or None
                if self._key:
                    self.logger.debug(f"Using stored test execution key: {self._key}")
            return self._key

    def set(self, key: str) -> None:
        with self._lock:
            self._key = key
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(key, encoding="utf-8")
        self.logger.info(f"Shared test execution key set: {key}")

    def reset(self, remove_file: bool = False) -> None:
        with self._lock:
            self._key = None
            if remove_file and self.path.exists():
                self.path.unlink()


class XrayReporter:
    """Publishes final scenario outcomes to Xray; failures are logged, never raised."""

    def __init__(
        self,
        properties: PropertySet,
        tracker: Optional[RetryTracker] = None,
        key_store: Optional[SharedExecutionKey] = None,
        client: Optional[XrayClient] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.properties = properties
        self.tracker = tracker or RetryTracker()
        self.key_store = key_store or SharedExecutionKey()
        self.logger = logger or logging.getLogger(__name__)
        try:
            self.config = XrayConfig.from_properties(properties)
        except ConfigurationError as e:
            if self.enabled:
                raise
            self.logger.debug(f"Ignoring Xray settings while reporting is disabled: {e}")
            self.config = XrayConfig()
        self.client = client or XrayClient(self.config)

    @property
    def enabled(self) -> bool:
        return self.properties.get_bool("xray_enabled", False)

    def reportable(self, results: List[ScenarioResult]) -> List[ScenarioResult]:
        return [
            r for r in results if r.test_key and not self.tracker.is_xray_suppressed(r.test_key)
        ]

    def publish(self, results: List[ScenarioResult]) -> Optional[str]:
        """
        Import results into the run's test execution.

        Returns:
            The execution key used, or None when nothing was published
        """
        if not self.enabled:
            self.logger.debug("Xray reporting disabled")
            return None

        reportable = self.reportable(results)
        if not reportable:
            self.logger.info("No scenarios with Xray test keys to publish")
            return None

        try:
            return asyncio.run(self._publish(reportable))
        except (XrayError, ValueError) as e:
            self.logger.error(f"Xray publishing failed: {e}")
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            self.logger.error(f"Could not reach Xray: {e}")
        except Exception as e:
            self.logger.error(f"Unexpected Xray publishing error: {type(e).__name__}: {e}")
        return None

    async def _publish(self, results: List[ScenarioResult]) -> str:
        key = self.config.execution_key or self.key_store.get()
        if not key:
            summary = f"Automated Test Execution - {results[0].started_at:%Y-%m-%d %H:%M:%S}"
            description = "Automated test execution created by posqa"
            if self.config.test_plan_key:
                description += f" - linked to test plan {self.config.test_plan_key}"
            key = await self.client.create_test_execution(summary, description)
            self.key_store.set(key)
            if self.config.test_plan_key:
                await self.link_to_test_plan(key, self.config.test_plan_key)

        builder = ExecutionPayloadBuilder(key, attach_evidence=self.config.attach_evidence)
        for result in results:
            builder.add_result(result)
        await self.client.import_results(builder.build())
        self.logger.info(f"Published {len(results)} result(s) to test execution {key}")
        return key

    async def link_to_test_plan(self, execution_key: str, test_plan_key: str) -> bool:
        """Link a new execution to its test plan; a failed link is logged, not raised."""
        for link_type in PREFERRED_LINK_TYPES:
            try:
                await self.client.link_issues(test_plan_key, execution_key, link_type)
                return True
            except (XrayError, aiohttp.ClientError) as e:
                self.logger.debug(f"Link type {link_type} rejected: {e}")
        self.logger.warning(f"Could not link test execution {execution_key} to test plan {test_plan_key}")
        return False
