"""
Session registry.

Owns the association between execution-context identifiers and their
automation handles. Every call takes the context id explicitly; there is no
thread-local state. Per context the binding moves through
UNBOUND -> ACQUIRING -> BOUND -> RELEASING -> UNBOUND, and handles are only
handed out while BOUND.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..core.exceptions import (
    ConfigurationError,
    NotReadyError,
    SessionAcquisitionError,
    SessionNotInitializedError,
)
from ..core.platform import PlatformMode, SessionKind
from ..core.properties import ConfigCache, PropertySet
from .base import SessionFactory
from .models import ReleaseReport, SessionBinding, SessionState


# Creation order; teardown runs in reverse
ACQUISITION_ORDER = [SessionKind.MOBILE, SessionKind.API, SessionKind.WEB]


def _start_playwright():
    from playwright.sync_api import sync_playwright

    return sync_playwright().start()


class SessionRegistry:
    """
    Creates, hands out and tears down per-context automation sessions.

    A registry lock guards the context map; a per-context lock serialises
    acquire and release for one context. Handles are never shared between
    contexts.
    """

    def __init__(
        self,
        factories: Iterable[SessionFactory],
        appium_server=None,
        engine_starter: Callable[[], Any] = _start_playwright,
        logger: Optional[logging.Logger] = None,
    ):
        self._factories: Dict[SessionKind, SessionFactory] = {f.kind: f for f in factories}
        self.appium_server = appium_server
        self._engine_starter = engine_starter
        self.logger = logger or logging.getLogger(__name__)

        self._bindings: Dict[str, SessionBinding] = {}
        self._context_locks: Dict[str, threading.RLock] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_properties(
        cls,
        properties: PropertySet,
        artifacts_dir: Path,
        logs_dir: Path,
        headless: Optional[bool] = None,
    ) -> "SessionRegistry":
        """Registry wired with the Playwright and Appium factories."""
        from .api import ApiSessionFactory
        from .appium_server import AppiumServer
        from .mobile import MobileDriverFactory
        from .web import WebSessionFactory

        cache = ConfigCache(properties)
        return cls(
            [
                WebSessionFactory(properties, artifacts_dir, headless=headless),
                ApiSessionFactory(properties),
                MobileDriverFactory(cache),
            ],
            appium_server=AppiumServer(properties, logs_dir),
        )

    # Bookkeeping

    def _context_lock(self, context_id: str) -> threading.RLock:
        with self._lock:
            return self._context_locks.setdefault(context_id, threading.RLock())

    def _factory(self, kind: SessionKind) -> SessionFactory:
        try:
            return self._factories[kind]
        except KeyError:
            raise ConfigurationError(
                f"No session factory registered for '{kind.value}' sessions"
            ) from None

    def state(self, context_id: str) -> SessionState:
        binding = self._bindings.get(context_id)
        return binding.state if binding is not None else SessionState.UNBOUND

    def active_contexts(self) -> List[str]:
        with self._lock:
            return [cid for cid, b in self._bindings.items() if b.is_bound]

    def __len__(self) -> int:
        return len(self._bindings)

    # Acquisition

    def acquire(
        self, context_id: str, mode: PlatformMode, label: Optional[str] = None
    ) -> SessionBinding:
        """
        Return the context's binding, creating the handles ``mode`` requires.

        Idempotent: a bound context is returned as is. If ``mode`` needs a
        kind the binding lacks, only that kind is created.

        Raises:
            ConfigurationError: a required property is missing or malformed
            SessionAcquisitionError: a handle could not be created
            NotReadyError: the Appium server did not become ready in time
        """
        with self._context_lock(context_id):
            binding = self._bindings.get(context_id)
            if binding is not None and binding.is_bound:
                missing = [k for k in ACQUISITION_ORDER if k in mode.required_kinds and not binding.has(k)]
                binding.allows_mobile = binding.allows_mobile or mode.allows_mobile
                if not missing and not (mode.uses_appium and not binding.mode.uses_appium):
                    return binding
                self.logger.info(
                    f"Widening context {context_id} from {binding.mode.value} to {mode.value}",
                    extra={"context_id": context_id},
                )
                binding.state = SessionState.ACQUIRING
                self._build(binding, missing, mode)
                return binding

            binding = SessionBinding(
                context_id=context_id,
                mode=mode,
                label=label,
                allows_mobile=mode.allows_mobile,
                state=SessionState.ACQUIRING,
            )
            with self._lock:
                self._bindings[context_id] = binding

            kinds = [k for k in ACQUISITION_ORDER if k in mode.required_kinds]
            self._build(binding, kinds, mode)
            return binding

    def _build(self, binding: SessionBinding, kinds: List[SessionKind], mode: PlatformMode) -> None:
        """Create ``kinds`` on an ACQUIRING binding, unwinding everything on failure."""
        context_id = binding.context_id
        start = time.monotonic()
        current = "appium"
        try:
            if mode.uses_appium and self.appium_server is not None:
                self.appium_server.ensure_running()
            for kind in kinds:
                current = kind.value
                self._create_kind(binding, kind)
        except Exception as e:
            self.logger.error(
                f"Failed to acquire {current} session for context {context_id}: {e}",
                extra={"context_id": context_id},
            )
            self._unwind(binding)
            if isinstance(e, (ConfigurationError, SessionAcquisitionError, NotReadyError)):
                raise
            raise SessionAcquisitionError(
                f"Could not create {current} session for context '{context_id}': {e}",
                context_id=context_id,
                kind=current,
            ) from e

        if mode.uses_appium and not binding.mode.uses_appium:
            binding.mode = PlatformMode.HYBRID
        binding.state = SessionState.BOUND
        self.logger.info(
            f"Context {context_id} bound ({', '.join(binding.kinds)}) in {time.monotonic() - start:.2f}s",
            extra={"context_id": context_id, "platform": binding.mode.value},
        )

    def _create_kind(self, binding: SessionBinding, kind: SessionKind) -> None:
        factory = self._factory(kind)
        engine = None
        if factory.needs_engine:
            if binding.engine is None:
                binding.engine = self._engine_starter()
            engine = binding.engine
        binding.acquired_order.append(kind)
        factory.create(binding, engine)

    def _unwind(self, binding: SessionBinding) -> None:
        binding.state = SessionState.RELEASING
        report = self._teardown(binding)
        for step, message in report.errors:
            self.logger.warning(f"Cleanup after failed acquisition: {step}: {message}")
        with self._lock:
            self._bindings.pop(binding.context_id, None)
        binding.state = SessionState.UNBOUND

    # Access

    def binding(self, context_id: str) -> SessionBinding:
        binding = self._bindings.get(context_id)
        if binding is None or not binding.is_bound:
            raise SessionNotInitializedError(context_id)
        return binding

    def page(self, context_id: str):
        binding = self.binding(context_id)
        if not binding.has(SessionKind.WEB) or binding.web.page is None:
            raise SessionNotInitializedError(context_id, SessionKind.WEB.value)
        return binding.web.page

    def request_context(self, context_id: str):
        binding = self.binding(context_id)
        if not binding.has(SessionKind.API) or binding.api.request_context is None:
            raise SessionNotInitializedError(context_id, SessionKind.API.value)
        return binding.api.request_context

    def driver(self, context_id: str):
        """
        Mobile driver for the context.

        In HYBRID mode the driver is created on first access.
        """
        binding = self.binding(context_id)
        if binding.has(SessionKind.MOBILE) and binding.mobile.driver is not None:
            return binding.mobile.driver
        if not binding.allows_mobile:
            raise SessionNotInitializedError(context_id, SessionKind.MOBILE.value)

        with self._context_lock(context_id):
            if not binding.has(SessionKind.MOBILE):
                binding.state = SessionState.ACQUIRING
                try:
                    self._create_kind(binding, SessionKind.MOBILE)
                except Exception as e:
                    # The rest of the binding stays usable; drop only the mobile part
                    self._discard_kind(binding, SessionKind.MOBILE)
                    binding.state = SessionState.BOUND
                    if isinstance(e, (ConfigurationError, SessionAcquisitionError, NotReadyError)):
                        raise
                    raise SessionAcquisitionError(
                        f"Could not create mobile session for context '{context_id}': {e}",
                        context_id=context_id,
                        kind=SessionKind.MOBILE.value,
                    ) from e
                binding.state = SessionState.BOUND
        return binding.mobile.driver

    def _discard_kind(self, binding: SessionBinding, kind: SessionKind) -> None:
        report = ReleaseReport(context_id=binding.context_id)
        self._run_steps(self._factory(kind).teardown_steps(binding), report)
        if kind in binding.acquired_order:
            binding.acquired_order.remove(kind)
        setattr(binding, kind.value, None)

    # Release

    def release(self, context_id: str) -> ReleaseReport:
        """
        Tear down every handle owned by the context and forget it.

        Each step is guarded independently; failures are logged and
        collected in the report, never raised. Unknown contexts are a no-op.
        """
        with self._context_lock(context_id):
            binding = self._bindings.get(context_id)
            if binding is None:
                report = ReleaseReport(context_id=context_id)
            else:
                binding.state = SessionState.RELEASING
                report = self._teardown(binding)
                with self._lock:
                    self._bindings.pop(context_id, None)
                binding.state = SessionState.UNBOUND

        with self._lock:
            self._context_locks.pop(context_id, None)

        if report.errors:
            self.logger.warning(
                f"Released context {context_id} with {len(report.errors)} teardown error(s)",
                extra={"context_id": context_id, "metadata": {"errors": report.errors}},
            )
        elif binding is not None:
            self.logger.info(
                f"Released context {context_id}: {', '.join(report.released) or 'nothing'}",
                extra={"context_id": context_id},
            )
        return report

    def release_all(self) -> List[ReleaseReport]:
        """Best-effort release of every known context."""
        with self._lock:
            context_ids = list(self._bindings)
        reports = []
        for context_id in context_ids:
            try:
                reports.append(self.release(context_id))
            except Exception as e:
                self.logger.error(f"Failed to release context {context_id}: {e}")
        return reports

    def _teardown(self, binding: SessionBinding) -> ReleaseReport:
        report = ReleaseReport(context_id=binding.context_id)
        for kind in reversed(binding.acquired_order):
            factory = self._factories.get(kind)
            if factory is None:
                continue
            try:
                steps = factory.teardown_steps(binding)
            except Exception as e:
                report.errors.append((kind.value, str(e)))
                continue
            self._run_steps(steps, report)
            artifacts = getattr(factory, "artifacts", None)
            if artifacts is not None:
                try:
                    report.artifacts.extend(artifacts(binding))
                except Exception as e:
                    self.logger.debug(f"Could not collect {kind.value} artifacts: {e}")

        if binding.engine is not None:
            self._run_steps([("engine", binding.engine.stop)], report)
            binding.engine = None
        return report

    def _run_steps(self, steps, report: ReleaseReport) -> None:
        for name, step in steps:
            try:
                step()
                report.released.append(name)
            except Exception as e:
                report.errors.append((name, str(e)))
                self.logger.warning(
                    f"Teardown step {name} failed for context {report.context_id}: {e}",
                    extra={"context_id": report.context_id},
                )

    def shutdown(self) -> None:
        """Release everything and stop the shared Appium server."""
        self.release_all()
        if self.appium_server is not None:
            try:
                self.appium_server.stop()
            except Exception as e:
                self.logger.error(f"Failed to stop Appium server: {e}")
