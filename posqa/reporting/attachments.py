"""
Report attachments and failure screenshots.

A ReportSink receives binary attachments for the scenario being run. The
ArtifactStore sink keeps them on disk under
``artifacts/<run_id>/<scenario>/``. Screenshot capture never raises: a
broken page or driver must not change a scenario's outcome.
"""

import logging
import re
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from ..execution.models import Attachment


MIME_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "application/json": ".json",
    "text/plain": ".txt",
    "text/html": ".html",
    "application/zip": ".zip",
    "video/webm": ".webm",
    "video/mp4": ".mp4",
}


def safe_name(name: str) -> str:
    """File-system friendly version of a scenario or attachment name."""
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    return cleaned[:100] or "unnamed"


class ReportSink:
    """Destination for scenario attachments."""

    def attach(
        self,
        data: bytes,
        name: str,
        mime_type: str,
        passed: bool,
        scenario: Optional[str] = None,
        attempt: int = 1,
    ) -> Optional[Attachment]:
        raise NotImplementedError


class ArtifactStore(ReportSink):
    """Writes attachments to the artifacts directory, one folder per scenario."""

    def __init__(self, artifacts_dir: Path, run_id: str, logger: Optional[logging.Logger] = None):
        self.run_dir = Path(artifacts_dir) / run_id
        self.run_id = run_id
        self.logger = logger or logging.getLogger(__name__)
        self._stored: List[Attachment] = []
        self._lock = threading.Lock()

    def scenario_dir(self, scenario: str) -> Path:
        return self.run_dir / safe_name(scenario)

    def attach(
        self,
        data: bytes,
        name: str,
        mime_type: str,
        passed: bool,
        scenario: Optional[str] = None,
        attempt: int = 1,
    ) -> Optional[Attachment]:
        directory = self.scenario_dir(scenario or "suite")
        suffix = MIME_EXTENSIONS.get(mime_type, ".bin")
        outcome = "passed" if passed else "failed"
        path = directory / f"{safe_name(name)}_attempt{attempt}_{outcome}{suffix}"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            self.logger.error(f"Failed to store attachment {name}: {e}")
            return None

        attachment = Attachment(name=name, path=str(path), mime_type=mime_type, attempt=attempt)
        with self._lock:
            self._stored.append(attachment)
        self.logger.debug(f"Stored attachment {path} ({len(data)} bytes)")
        return attachment

    @property
    def stored(self) -> List[Attachment]:
        with self._lock:
            return list(self._stored)


def capture_screenshot(page: Any = None, driver: Any = None) -> Optional[bytes]:
    """
    PNG screenshot from a Playwright page or an Appium driver.

    Returns None when nothing could be captured; errors are logged only.
    """
    logger = logging.getLogger(__name__)
    try:
        if page is not None:
            return page.screenshot(full_page=True)
        if driver is not None:
            return driver.get_screenshot_as_png()
    except Exception as e:
        logger.error(f"Screenshot failure: {e}")
        return None
    logger.debug("No page or driver available for screenshot")
    return None


def screenshot_name(scenario: str, passed: bool) -> str:
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{safe_name(scenario)}_{'success' if passed else 'failure'}_{timestamp}"
