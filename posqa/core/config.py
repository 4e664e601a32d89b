"""
Runtime configuration for the POS QA harness.

These settings control the harness itself: logging, output directories,
worker count and where the property files describing the application
under test are found. Application settings (URLs, devices, credentials)
live in those property files, see ``properties.py``.
"""

import os
from typing import Optional, Dict, Any
from dataclasses import dataclass, field
from pathlib import Path


VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]
LOG_FORMATS = ("text", "json")

# Environment variable -> path attribute
PATH_OVERRIDES = (
    ("POSQA_ARTIFACTS_DIR", "artifacts_dir"),
    ("POSQA_CONFIG_FILE", "config_file"),
    ("POSQA_ENV_FILE", "environment_file"),
    ("POSQA_PLATFORM_FILE", "platform_file"),
)


def _cwd_path(*parts: str):
    return lambda: Path.cwd().joinpath(*parts)


def _env_flag(name: str) -> Optional[bool]:
    value = os.getenv(name)
    return None if value is None else value.strip().lower() == "true"


@dataclass
class Config:
    """Harness settings with ``CI`` and ``POSQA_*`` environment overrides."""

    ci_mode: bool = False
    headless_mode: Optional[bool] = None
    workers: int = 1

    log_level: str = "INFO"
    log_format: str = "text"

    project_root: Path = field(default_factory=Path.cwd)
    artifacts_dir: Path = field(default_factory=_cwd_path("artifacts"))
    logs_dir: Path = field(default_factory=_cwd_path("logs"))
    reports_dir: Path = field(default_factory=_cwd_path("reports"))

    config_file: Path = field(default_factory=_cwd_path("config", "config.properties"))
    environment_file: Path = field(default_factory=_cwd_path("config", "environment.properties"))
    platform_file: Path = field(default_factory=_cwd_path("config", "platform.properties"))

    def __post_init__(self):
        if _env_flag("CI"):
            self.ci_mode = True

        headless = _env_flag("POSQA_HEADLESS")
        if headless is not None:
            self.headless_mode = headless

        self.log_level = self._normalise_level(os.getenv("POSQA_LOG_LEVEL") or self.log_level)
        if self.ci_mode and self.log_format == "text":
            self.log_format = "json"

        workers = os.getenv("POSQA_WORKERS")
        if workers is not None and workers.strip().isdigit():
            self.workers = int(workers)
        self.workers = max(1, self.workers)

        for env_name, attr in PATH_OVERRIDES:
            value = os.getenv(env_name)
            if value:
                setattr(self, attr, Path(value))

        for directory in (self.artifacts_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _normalise_level(level: str) -> str:
        level = level.strip().upper()
        if level == "WARN":
            return "WARNING"
        return level if level in VALID_LOG_LEVELS else "INFO"

    @property
    def is_ci_mode(self) -> bool:
        return self.ci_mode

    @property
    def debug_enabled(self) -> bool:
        return self.log_level == "DEBUG"

    def get_log_file_path(self) -> Path:
        return self.logs_dir / "posqa.log"

    def get_debug_log_dir(self) -> Path:
        debug_dir = self.logs_dir / "debug"
        debug_dir.mkdir(parents=True, exist_ok=True)
        return debug_dir

    def get_effective_headless_mode(self) -> Optional[bool]:
        """
        Headless override for browser sessions.

        ``None`` leaves the decision to the ``headless_mode`` property; CI
        runs are headless unless ``POSQA_HEADLESS`` says otherwise.
        """
        if self.headless_mode is not None:
            return self.headless_mode
        return True if self.ci_mode else None

    def to_dict(self) -> Dict[str, Any]:
        """Settings as plain values, for logs and the suite report."""
        return {
            key: str(value) if isinstance(value, Path) else value
            for key, value in vars(self).items()
        }

    @classmethod
    def from_env(cls) -> "Config":
        """Defaults rooted at the working directory, with environment overrides applied."""
        return cls()

    def validate(self) -> None:
        """
        Check the settings and that the main property file exists.

        Raises:
            ValidationError: listing every problem found
        """
        from .exceptions import ValidationError

        problems = []
        if self.log_level not in VALID_LOG_LEVELS:
            problems.append(f"Invalid log level: {self.log_level}. Must be one of {VALID_LOG_LEVELS}")
        if self.log_format not in LOG_FORMATS:
            problems.append(f"Invalid log format: {self.log_format}")
        if self.workers < 1:
            problems.append(f"Invalid worker count: {self.workers}")
        if not self.config_file.exists():
            problems.append(f"Property file not found: {self.config_file}")

        if problems:
            raise ValidationError(
                "Configuration validation failed: " + "; ".join(problems),
                validation_type="config",
                violations=problems,
            )
