"""
Playwright browser sessions.

Launches a browser, context and page as one unit for an execution context
and tears them down page first, engine last.
"""

import logging
from pathlib import Path
from typing import Any, List, Optional, Tuple

from ..core.exceptions import ConfigurationError
from ..core.platform import SessionKind
from ..core.properties import PropertySet
from .base import SessionFactory
from .models import SessionBinding, TeardownStep, WebHandles


# browser property value -> (Playwright browser type, channel)
BROWSERS = {
    "chromium": ("chromium", None),
    "chrome": ("chromium", "chrome"),
    "edge": ("chromium", "msedge"),
    "firefox": ("firefox", None),
    "webkit": ("webkit", None),
    "safari": ("webkit", None),
}


def resolve_browser(name: str) -> Tuple[str, Optional[str]]:
    """Map a configured browser name onto a Playwright browser type and channel."""
    key = (name or "").strip().lower()
    if key not in BROWSERS:
        raise ConfigurationError(
            f"Unsupported browser: '{name}'. Must be one of {sorted(BROWSERS)}",
            key="browser",
        )
    return BROWSERS[key]


def _safe_name(value: str) -> str:
    return "".join(c if c.isalnum() or c in "-_." else "_" for c in value)[:120]


class WebSessionFactory(SessionFactory):
    """Creates browser + context + page for a binding."""

    kind = SessionKind.WEB
    needs_engine = True

    def __init__(
        self,
        properties: PropertySet,
        artifacts_dir: Path,
        headless: Optional[bool] = None,
        record_video: Optional[bool] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(logger)
        self.properties = properties
        self.artifacts_dir = Path(artifacts_dir)
        self._headless = headless
        self._record_video = record_video

    @property
    def headless(self) -> bool:
        if self._headless is not None:
            return self._headless
        return self.properties.get_bool("headless_mode", True)

    @property
    def record_video(self) -> bool:
        if self._record_video is not None:
            return self._record_video
        # Recordings are uploaded alongside Xray results
        return self.properties.get_bool(
            "record_video", self.properties.get_bool("xray_enabled", False)
        )

    @property
    def tracing(self) -> bool:
        return self.properties.get_bool("trace_enabled", False)

    def start_url(self) -> Optional[str]:
        """
        URL to open once the page exists.

        ``url_property_name`` names the environment key holding the URL
        (default ``url``). A missing URL is only an error when that name
        was configured explicitly.
        """
        explicit = "url_property_name" in self.properties
        url_key = self.properties.get("url_property_name", "url").strip()
        if not url_key:
            raise ConfigurationError(
                "Missing 'url_property_name' in config properties",
                key="url_property_name",
            )
        url = self.properties.env(url_key, None)
        if not url and explicit:
            raise ConfigurationError(
                f"Missing URL for property '{url_key}' in environment properties",
                key=url_key,
                source="environment",
            )
        return url or None

    def create(self, binding: SessionBinding, engine: Any = None) -> None:
        browser_name = self.properties.get("browser", "chromium")
        browser_type, channel = resolve_browser(browser_name)
        start_url = self.start_url()

        handles = WebHandles(browser_name=browser_name.strip().lower())
        binding.web = handles

        launch_options = {"headless": self.headless}
        if channel:
            launch_options["channel"] = channel
        self.logger.info(
            f"Launching {handles.browser_name} for context {binding.context_id}",
            extra={"context_id": binding.context_id, "metadata": launch_options},
        )
        handles.browser = getattr(engine, browser_type).launch(**launch_options)

        context_options = {}
        if self.record_video:
            video_dir = self.artifacts_dir / "videos"
            video_dir.mkdir(parents=True, exist_ok=True)
            context_options["record_video_dir"] = str(video_dir)
        handles.context = handles.browser.new_context(**context_options)
        handles.context.set_default_timeout(self.properties.get_int("timeout", 30000))

        if self.tracing:
            handles.context.tracing.start(screenshots=True, snapshots=True, sources=True)
            handles.tracing = True

        handles.page = handles.context.new_page()

        if start_url:
            self.logger.info(
                f"Navigating to {start_url}", extra={"context_id": binding.context_id}
            )
            handles.page.goto(start_url)

    def teardown_steps(self, binding: SessionBinding) -> List[TeardownStep]:
        handles = binding.web
        if handles is None:
            return []

        steps: List[TeardownStep] = []
        if handles.tracing and handles.context is not None:
            trace_path = self.artifacts_dir / "traces" / f"{_safe_name(binding.context_id)}.zip"

            def stop_tracing():
                trace_path.parent.mkdir(parents=True, exist_ok=True)
                handles.context.tracing.stop(path=str(trace_path))

            steps.append(("web.tracing", stop_tracing))

        if handles.page is not None:

            def close_page():
                video = getattr(handles.page, "video", None)
                if video:
                    handles.video_path = Path(video.path())
                handles.page.close()

            steps.append(("web.page", close_page))
        if handles.context is not None:
            steps.append(("web.context", handles.context.close))
        if handles.browser is not None:
            steps.append(("web.browser", handles.browser.close))
        return steps

    def artifacts(self, binding: SessionBinding) -> List[Path]:
        """Files produced by the session (trace and video) that exist on disk."""
        handles = binding.web
        if handles is None:
            return []
        paths = []
        if handles.tracing:
            paths.append(self.artifacts_dir / "traces" / f"{_safe_name(binding.context_id)}.zip")
        if handles.video_path is not None:
            paths.append(handles.video_path)
        return [p for p in paths if p.exists()]
