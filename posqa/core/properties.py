"""
Property set describing the application under test.

Loads a ``.properties`` file plus the environment overlay and platform
files once, freezes the result, and exposes typed accessors that fail fast
with a ConfigurationError naming the offending key.
"""

import logging
import os
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Union

import javaproperties

from .exceptions import ConfigurationError


_MISSING = object()

TRUE_VALUES = frozenset({"true", "yes", "on", "1"})
FALSE_VALUES = frozenset({"false", "no", "off", "0"})

logger = logging.getLogger(__name__)


def parse_properties(text: str) -> Dict[str, str]:
    """
    Parse Java-style properties text with ``javaproperties``.

    Keys are lower-cased and values trimmed; escapes, ``\\uXXXX`` sequences,
    comments and line continuations follow the Java format.
    """
    try:
        parsed = javaproperties.loads(text)
    except ValueError as e:
        raise ConfigurationError(f"Malformed properties text: {e}") from e
    return {key.strip().lower(): value.strip() for key, value in parsed.items()}


def read_properties_file(path: Union[str, Path]) -> Dict[str, str]:
    """Read and parse a properties file, raising ConfigurationError on I/O failure."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read property file: {path}. {e}", source=str(path)
        ) from e
    values = parse_properties(text)
    logger.info(f"Loaded {len(values)} properties from: {path}")
    return values


def _coerce_bool(key: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ConfigurationError(
        f"Property '{key}' has value '{value}' which is not a boolean", key=key
    )


def _coerce_int(key: str, value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise ConfigurationError(
            f"Property '{key}' has value '{value}' which is not an integer", key=key
        ) from None


def _coerce_float(key: str, value: str) -> float:
    try:
        return float(value.strip())
    except ValueError:
        raise ConfigurationError(
            f"Property '{key}' has value '{value}' which is not a number", key=key
        ) from None


class PropertySet:
    """
    Immutable key/value configuration with typed accessors.

    Base values come from the main properties file with the platform file
    layered over them. Environment-specific values (URLs, credentials) live
    in a separate overlay whose keys are prefixed with the active
    environment name, e.g. ``qa.url``.
    """

    def __init__(
        self,
        values: Mapping[str, str],
        env_values: Optional[Mapping[str, str]] = None,
        environment: Optional[str] = None,
        source: Optional[str] = None,
    ):
        self._values = MappingProxyType({k.lower(): str(v) for k, v in values.items()})
        self._env_values = MappingProxyType(
            {k.lower(): str(v) for k, v in (env_values or {}).items()}
        )
        self._source = source
        if environment is None:
            environment = os.getenv("POSQA_ENV") or self._values.get("env")
        self._environment = environment.strip().lower() if environment else None

    @classmethod
    def load(
        cls,
        config_file: Union[str, Path],
        environment_file: Optional[Union[str, Path]] = None,
        platform_file: Optional[Union[str, Path]] = None,
        environment: Optional[str] = None,
    ) -> "PropertySet":
        """Load the property set from disk. Only the main file is required."""
        values = read_properties_file(config_file)

        if platform_file is not None and Path(platform_file).exists():
            values.update(read_properties_file(platform_file))
        elif platform_file is not None:
            logger.debug(f"Platform file not found, skipping: {platform_file}")

        env_values: Dict[str, str] = {}
        if environment_file is not None and Path(environment_file).exists():
            env_values = read_properties_file(environment_file)
        elif environment_file is not None:
            logger.debug(f"Environment file not found, skipping: {environment_file}")

        return cls(values, env_values, environment=environment, source=str(config_file))

    @classmethod
    def from_config(cls, config) -> "PropertySet":
        """Load the property set using the file locations in a Config."""
        return cls.load(
            config.config_file,
            environment_file=config.environment_file,
            platform_file=config.platform_file,
        )

    @property
    def environment(self) -> Optional[str]:
        """Name of the active environment overlay."""
        return self._environment

    @property
    def source(self) -> Optional[str]:
        return self._source

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._values)

    def get(self, key: str, default: Any = _MISSING) -> str:
        """Get a required string property, or ``default`` when given."""
        value = self._values.get(key.lower())
        if value is None:
            if default is not _MISSING:
                return default
            raise ConfigurationError(
                f"Property '{key}' is not found. Please check {self._source or 'config properties'}",
                key=key,
                source=self._source,
            )
        return value

    def get_int(self, key: str, default: Any = _MISSING) -> int:
        value = self.get(key, None if default is not _MISSING else _MISSING)
        if value is None:
            return default
        return _coerce_int(key, value)

    def get_float(self, key: str, default: Any = _MISSING) -> float:
        value = self.get(key, None if default is not _MISSING else _MISSING)
        if value is None:
            return default
        return _coerce_float(key, value)

    def get_bool(self, key: str, default: Any = _MISSING) -> bool:
        value = self.get(key, None if default is not _MISSING else _MISSING)
        if value is None:
            return default
        return _coerce_bool(key, value)

    def env(self, key: str, default: Any = _MISSING) -> str:
        """
        Get an environment-specific value.

        Looks up ``<environment>.<key>`` in the overlay, falling back to the
        bare key when no environment is active.
        """
        full_key = f"{self._environment}.{key}" if self._environment else key
        value = self._env_values.get(full_key.lower())
        if value is None:
            if default is not _MISSING:
                return default
            raise ConfigurationError(
                f"Environment property '{full_key.lower()}' not found in environment properties",
                key=full_key.lower(),
                source="environment",
            )
        return value

    def with_overrides(self, overrides: Mapping[str, Any]) -> "PropertySet":
        """Return a new property set with ``overrides`` layered over the base values."""
        merged = dict(self._values)
        merged.update({k.lower(): str(v) for k, v in overrides.items()})
        return PropertySet(
            merged,
            self._env_values,
            environment=self._environment,
            source=self._source,
        )


class ConfigCache:
    """
    Process-wide memo of resolved configuration values.

    Population is idempotent compute-on-miss: concurrent misses may compute
    the same value twice, but ``dict.setdefault`` keeps the first one and
    reads never take a lock.
    """

    def __init__(self, properties: PropertySet):
        self._properties = properties
        self._values: Dict[str, Any] = {}

    @property
    def properties(self) -> PropertySet:
        return self._properties

    def get(self, key: str, loader: Optional[Callable[[str], Any]] = None) -> Any:
        try:
            return self._values[key]
        except KeyError:
            pass
        value = (loader or self._properties.get)(key)
        return self._values.setdefault(key, value)

    def get_optional(self, key: str) -> Optional[str]:
        return self.get(f"opt:{key}", lambda _: self._properties.get(key, None))

    def get_int(self, key: str) -> int:
        return self.get(f"int:{key}", lambda _: self._properties.get_int(key))

    def get_bool(self, key: str) -> bool:
        return self.get(f"bool:{key}", lambda _: self._properties.get_bool(key))

    def clear(self) -> None:
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)
