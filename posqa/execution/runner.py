"""
Scenario runner.

Runs scenarios against sessions taken from the SessionRegistry, applying
each scenario's retry policy, capturing failure screenshots and always
releasing the scenario's session after its final attempt. ``run_all``
spreads scenarios over a thread pool with one scenario pinned to one
worker thread for its whole duration.
"""

import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..core.exceptions import SessionNotInitializedError
from ..core.logging_config import get_logger, log_performance
from ..core.platform import PlatformMode, SessionKind, resolve_platform_mode
from ..core.properties import PropertySet
from ..pages.login import LoginPage
from ..reporting.attachments import (
    ReportSink,
    capture_screenshot,
    safe_name,
    screenshot_name,
)
from ..session.registry import SessionRegistry
from ..session.models import ReleaseReport, SessionState
from .assertions import SoftAssert
from .models import Attachment, AttemptRecord, Scenario, ScenarioResult, ScenarioStatus
from .retry import RetryTracker

RECORDING_MIME_TYPES = {
    ".webm": "video/webm",
    ".mp4": "video/mp4",
    ".zip": "application/zip",
}


class ScenarioContext:
    """
    Everything a scenario body needs for one attempt.

    Handles are looked up through the registry by this context's id, so a
    body can only ever reach its own sessions.
    """

    def __init__(
        self,
        scenario: Scenario,
        context_id: str,
        mode: PlatformMode,
        attempt: int,
        registry: SessionRegistry,
        properties: PropertySet,
        sink: Optional[ReportSink] = None,
    ):
        self.scenario = scenario
        self.context_id = context_id
        self.mode = mode
        self.attempt = attempt
        self.registry = registry
        self.properties = properties
        self.sink = sink
        self.soft = SoftAssert(
            get_logger(__name__, scenario=scenario.name, context_id=context_id, attempt=attempt)
        )
        self.counters: Dict[str, int] = {}
        self.attachments: List[Attachment] = []
        self.data: Dict[str, Any] = {}
        self.started = time.monotonic()

    @property
    def page(self):
        return self.registry.page(self.context_id)

    @property
    def driver(self):
        return self.registry.driver(self.context_id)

    @property
    def api(self):
        return self.registry.request_context(self.context_id)

    def increment(self, counter: str, amount: int = 1) -> int:
        self.counters[counter] = self.counters.get(counter, 0) + amount
        return self.counters[counter]

    def attach(
        self, data: bytes, name: str, mime_type: str = "image/png", passed: bool = True
    ) -> Optional[Attachment]:
        if self.sink is None:
            return None
        attachment = self.sink.attach(
            data, name, mime_type, passed, scenario=self.scenario.name, attempt=self.attempt
        )
        if attachment is not None:
            self.attachments.append(attachment)
        return attachment


class ScenarioRunner:
    """Executes scenarios with retries against registry-managed sessions."""

    def __init__(
        self,
        registry: SessionRegistry,
        properties: PropertySet,
        sink: Optional[ReportSink] = None,
        tracker: Optional[RetryTracker] = None,
        platform: Optional[PlatformMode] = None,
        attach_all_screenshots: Optional[bool] = None,
        auto_login: Optional[bool] = None,
    ):
        self.registry = registry
        self.properties = properties
        self.sink = sink
        self.tracker = tracker or RetryTracker()
        self.platform = platform
        if attach_all_screenshots is None:
            attach_all_screenshots = properties.get_bool("attach_all_screenshots", False)
        self.attach_all_screenshots = attach_all_screenshots
        if auto_login is None:
            auto_login = properties.get_bool("auto_login", False)
        self.auto_login = auto_login
        self.logger = get_logger(__name__)
        self._abort = threading.Event()

    @property
    def aborted(self) -> bool:
        return self._abort.is_set()

    def abort(self) -> None:
        """Stop every scenario from starting another attempt."""
        self._abort.set()

    def resolve_mode(self, scenario: Scenario) -> PlatformMode:
        return resolve_platform_mode(self.properties, override=scenario.platform or self.platform)

    @staticmethod
    def new_context_id(scenario: Scenario) -> str:
        return f"{safe_name(scenario.name)}-{uuid.uuid4().hex[:12]}"

    def run(self, scenario: Scenario, context_id: Optional[str] = None) -> ScenarioResult:
        """
        Run one scenario to its final outcome.

        A failed attempt is retried while the policy allows. The session is
        kept between attempts unless the platform mode needs a fresh one,
        and is always released after the last attempt.
        """
        mode = self.resolve_mode(scenario)
        context_id = context_id or self.new_context_id(scenario)
        policy = scenario.retry
        max_attempts = policy.effective_attempts
        logger = get_logger(
            __name__, scenario=scenario.name, context_id=context_id, platform=mode.value
        )

        attempts: List[AttemptRecord] = []
        attachments: List[Attachment] = []
        last_error: Optional[BaseException] = None
        ctx: Optional[ScenarioContext] = None
        passed = False
        started_at = datetime.now()
        start = time.monotonic()

        logger.info(f"Running scenario: {scenario.name} ({mode.value})")
        try:
            for attempt in range(1, max_attempts + 1):
                if self._abort.is_set():
                    logger.warning(f"Run aborted, not starting attempt {attempt}")
                    self.tracker.allow_xray(scenario.key)
                    break
                ctx = ScenarioContext(
                    scenario, context_id, mode, attempt, self.registry, self.properties, self.sink
                )
                last_error = self._run_attempt(ctx)
                passed = last_error is None

                if not passed or self.attach_all_screenshots:
                    self._screenshot(ctx, passed)
                attachments.extend(ctx.attachments)

                record = AttemptRecord(
                    attempt=attempt,
                    status=self._status_for(last_error),
                    duration=time.monotonic() - ctx.started,
                    error_kind=type(last_error).__name__ if last_error else None,
                    error_message=str(last_error) if last_error else None,
                )
                attempts.append(record)

                if passed:
                    self.tracker.allow_xray(scenario.key)
                    break

                if attempt < max_attempts:
                    retry_count = self.tracker.increment(scenario.key)
                    self.tracker.suppress_xray(scenario.key)
                    logger.warning(
                        f"Attempt {attempt}/{max_attempts} failed, retrying ({retry_count}): {last_error}",
                        extra={"attempt": attempt, "status": record.status.value},
                    )
                    if policy.needs_fresh_session(mode):
                        report = self.registry.release(context_id)
                        attachments.extend(self._attach_recordings(ctx, report, passed))
                else:
                    self.tracker.allow_xray(scenario.key)
        finally:
            final_release = self.registry.release(context_id)
        if ctx is not None:
            attachments.extend(self._attach_recordings(ctx, final_release, passed))

        duration = time.monotonic() - start
        if attempts:
            final = attempts[-1]
            status, error_kind, error_message = final.status, final.error_kind, final.error_message
        else:
            status, error_kind, error_message = ScenarioStatus.SKIPPED, None, "Run aborted"
        result = ScenarioResult(
            name=scenario.name,
            context_id=context_id,
            platform=mode,
            status=status,
            started_at=started_at,
            completed_at=datetime.now(),
            duration=duration,
            attempts=attempts,
            error_kind=error_kind,
            error_message=error_message,
            attachments=attachments,
            tags=list(scenario.tags),
            test_key=scenario.test_key,
            defect_key=scenario.defect_key,
        )
        logger.info(
            f"Scenario {scenario.name} {result.status.value} after {len(attempts)} attempt(s)",
            extra={"status": result.status.value, "duration": duration},
        )
        return result

    def _run_attempt(self, ctx: ScenarioContext) -> Optional[Exception]:
        try:
            self.registry.acquire(ctx.context_id, ctx.mode, label=ctx.scenario.name)
            if self.auto_login and ctx.mode.has_web:
                self._login(ctx)
            ctx.scenario.body(ctx)
            ctx.soft.assert_all()
        except Exception as e:
            return e
        return None

    def _login(self, ctx: ScenarioContext) -> None:
        LoginPage(ctx.page).perform_login(
            self.properties.env("username"), self.properties.env("password")
        )

    @staticmethod
    def _status_for(error: Optional[BaseException]) -> ScenarioStatus:
        if error is None:
            return ScenarioStatus.PASSED
        if isinstance(error, AssertionError):
            return ScenarioStatus.FAILED
        return ScenarioStatus.ERROR

    def _screenshot(self, ctx: ScenarioContext, passed: bool) -> None:
        """Attach a screenshot of whatever the context has open; never raises."""
        if self.registry.state(ctx.context_id) is not SessionState.BOUND:
            return
        try:
            binding = self.registry.binding(ctx.context_id)
            page = binding.web.page if binding.has(SessionKind.WEB) else None
            driver = binding.mobile.driver if binding.has(SessionKind.MOBILE) else None
        except SessionNotInitializedError:
            return
        data = capture_screenshot(page=page, driver=driver)
        if data is None:
            return
        try:
            ctx.attach(data, screenshot_name(ctx.scenario.name, passed), "image/png", passed)
        except Exception as e:
            self.logger.error(f"Failed to attach screenshot for {ctx.scenario.name}: {e}")

    def _attach_recordings(
        self, ctx: ScenarioContext, report: ReleaseReport, passed: bool
    ) -> List[Attachment]:
        """Attach the video and trace files a released session left behind."""
        attached = []
        for path in report.artifacts:
            mime_type = RECORDING_MIME_TYPES.get(path.suffix.lower(), "application/octet-stream")
            try:
                attachment = ctx.attach(path.read_bytes(), path.stem, mime_type, passed)
            except Exception as e:
                self.logger.error(f"Failed to attach recording {path}: {e}")
                continue
            if attachment is not None:
                attached.append(attachment)
        return attached

    def run_all(self, scenarios: Sequence[Scenario], workers: int = 1) -> List[ScenarioResult]:
        """
        Run scenarios on a pool of ``workers`` threads.

        Results come back in input order. On an interrupt or any other abort
        no further attempt starts, pending scenarios are cancelled and each
        running worker releases its own session on its own thread. Whatever
        is still open once the workers have finished is then released
        before re-raising.
        """
        workers = max(1, workers)
        start = time.monotonic()
        self.logger.info(f"Running {len(scenarios)} scenario(s) with {workers} worker(s)")

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scenario")
        futures = [executor.submit(self.run, scenario) for scenario in scenarios]
        try:
            results = [future.result() for future in futures]
        except BaseException:
            self.logger.error("Scenario run aborted, waiting for workers to release their sessions")
            self.abort()
            for future in futures:
                future.cancel()
            executor.shutdown(wait=True, cancel_futures=True)
            self.registry.release_all()
            raise
        executor.shutdown(wait=True)

        log_performance(
            self.logger,
            "scenario_run",
            time.monotonic() - start,
            scenarios=len(results),
            failed=sum(1 for r in results if not r.is_success),
        )
        return results

    def shutdown(self) -> None:
        """Release remaining sessions and stop the shared Appium server."""
        self.registry.shutdown()
