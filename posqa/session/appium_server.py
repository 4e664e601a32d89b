"""
Local Appium server management.

One server process is shared by every mobile context in the run. It is
started on demand when the port does not already answer ``/status`` and
polled until ready or until the startup timeout passes.
"""

import asyncio
import logging
import os
import subprocess
import threading
from pathlib import Path
from typing import Callable, List, Optional

import aiohttp
import psutil

from ..core.exceptions import SessionAcquisitionError
from ..core.properties import PropertySet
from .waits import wait_until


class AppiumServer:
    """Starts, probes and stops a local Appium server subprocess."""

    def __init__(
        self,
        properties: PropertySet,
        logs_dir: Path,
        logger: Optional[logging.Logger] = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        self.properties = properties
        self.logs_dir = Path(logs_dir)
        self.logger = logger or logging.getLogger(__name__)
        self._popen = popen
        self._process: Optional[subprocess.Popen] = None
        self._log_files: List = []
        self._lock = threading.Lock()

    # Settings

    @property
    def device(self) -> str:
        return self.properties.get("default_device", "android").strip().lower()

    @property
    def host(self) -> str:
        return self.properties.get("ip_address", "127.0.0.1")

    @property
    def port(self) -> int:
        if self.device == "ios":
            return self.properties.get_int("ios_port", 4724)
        return self.properties.get_int("port", 4723)

    @property
    def status_url(self) -> str:
        return f"http://{self.host}:{self.port}/status"

    @property
    def startup_timeout(self) -> float:
        return self.properties.get_int("appium_startup_timeout", 60000) / 1000

    @property
    def poll_interval(self) -> float:
        return self.properties.get_int("appium_sleep_interval", 1000) / 1000

    @property
    def request_timeout(self) -> float:
        return self.properties.get_int("appium_connection_timeout", 2000) / 1000

    def command(self) -> List[str]:
        binary = os.getenv("APPIUM_MAIN_JS") or self.properties.get("appium_path", "appium")
        driver_key = "automation_name_ios" if self.device == "ios" else "automation_name_android"
        driver = self.properties.get(
            driver_key, "xcuitest" if self.device == "ios" else "uiautomator2"
        )
        return [
            binary,
            "--port",
            str(self.port),
            "--use-driver",
            driver.lower(),
            "--address",
            self.host,
        ]

    # Probing

    async def _probe(self) -> bool:
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.status_url) as response:
                    return response.status == 200
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError):
            return False

    def is_ready(self) -> bool:
        """Single ``/status`` probe."""
        return asyncio.run(self._probe())

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    # Lifecycle

    def ensure_running(self) -> None:
        """
        Make sure a server answers on the configured port.

        Raises:
            SessionAcquisitionError: the process could not be started or exited
            NotReadyError: the server did not answer within the startup timeout
        """
        with self._lock:
            if self.is_running:
                return
            if self.is_ready():
                self.logger.info(f"Reusing Appium server already listening at {self.status_url}")
                return

            self.free_port()
            command = self.command()
            self.logs_dir.mkdir(parents=True, exist_ok=True)
            stdout = open(self.logs_dir / "appium-server.log", "ab")
            stderr = open(self.logs_dir / "appium-server-error.log", "ab")
            self._log_files = [stdout, stderr]

            self.logger.info(f"Starting Appium server: {' '.join(command)}")
            try:
                self._process = self._popen(command, stdout=stdout, stderr=stderr)
            except OSError as e:
                self._close_logs()
                raise SessionAcquisitionError(
                    f"Could not start Appium server '{command[0]}': {e}", kind="appium"
                ) from e

            try:
                self.wait_until_ready()
            except Exception:
                self.logger.error("Appium server did not become ready, stopping it")
                self._stop_process()
                raise

    def wait_until_ready(self) -> None:
        def ready() -> bool:
            if self._process is not None and self._process.poll() is not None:
                raise SessionAcquisitionError(
                    f"Appium server exited with code {self._process.returncode} during startup",
                    kind="appium",
                )
            return self.is_ready()

        wait_until(
            ready,
            self.startup_timeout,
            interval=self.poll_interval,
            description=f"Appium server at {self.status_url}",
        )
        self.logger.info(f"Appium server ready at {self.status_url}")

    def stop(self, grace_period: float = 10.0) -> None:
        """Terminate the server started by this instance; kill it if it does not exit."""
        with self._lock:
            self._stop_process(grace_period)

    def _stop_process(self, grace_period: float = 10.0) -> None:
        process, self._process = self._process, None
        if process is not None:
            if process.poll() is None:
                process.terminate()
                try:
                    process.wait(timeout=grace_period)
                except subprocess.TimeoutExpired:
                    self.logger.warning("Appium server did not exit, killing it")
                    process.kill()
                    process.wait(timeout=grace_period)
            self.logger.info("Appium server stopped")
        self._close_logs()

    def _close_logs(self) -> None:
        for handle in self._log_files:
            try:
                handle.close()
            except OSError as e:
                self.logger.debug(f"Failed to close Appium log file: {e}")
        self._log_files = []

    def free_port(self) -> bool:
        """Kill any process listening on the server port. Returns True if one was killed."""
        try:
            connections = psutil.net_connections(kind="inet")
        except psutil.AccessDenied:
            self.logger.warning(f"Not permitted to inspect listeners on port {self.port}")
            return False

        killed = False
        for conn in connections:
            if not conn.laddr or conn.laddr.port != self.port or conn.pid is None:
                continue
            if conn.status != psutil.CONN_LISTEN:
                continue
            try:
                stale = psutil.Process(conn.pid)
                self.logger.warning(
                    f"Killing stale process {conn.pid} ({stale.name()}) on port {self.port}"
                )
                stale.kill()
                stale.wait(timeout=5)
                killed = True
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.TimeoutExpired) as e:
                self.logger.warning(f"Could not free port {self.port}: {e}")
        return killed
