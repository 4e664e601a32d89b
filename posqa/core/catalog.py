"""
Explicit semantic-key catalogs for labels and locators.

A catalog is validated once when it is built; lookups are a single dict
access and fail fast on an unknown key.
"""

from types import MappingProxyType
from typing import Dict, Iterator, Mapping

from .exceptions import CatalogKeyError, ValidationError


def _normalize(key: str) -> str:
    return key.strip().lower().replace(" ", "_").replace("-", "_")


class Catalog:
    """Immutable mapping from semantic key to value."""

    def __init__(self, name: str, entries: Mapping[str, str]):
        violations = []
        normalized: Dict[str, str] = {}
        for key, value in entries.items():
            if not isinstance(key, str) or not key.strip():
                violations.append(f"empty key in catalog '{name}'")
                continue
            if not isinstance(value, str) or not value.strip():
                violations.append(f"empty value for key '{key}'")
                continue
            norm = _normalize(key)
            if norm in normalized:
                violations.append(f"duplicate key '{key}'")
                continue
            normalized[norm] = value

        if violations:
            raise ValidationError(
                f"Invalid catalog '{name}': " + "; ".join(violations),
                validation_type="catalog",
                violations=violations,
            )

        self.name = name
        self._entries = MappingProxyType(normalized)

    def lookup(self, key: str) -> str:
        try:
            return self._entries[_normalize(key)]
        except KeyError:
            raise CatalogKeyError(self.name, key) from None

    __getitem__ = lookup

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and _normalize(key) in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Catalog({self.name!r}, {len(self)} entries)"


BUTTONS = Catalog(
    "buttons",
    {
        "save": "Save",
        "cancel": "Cancel",
        "add": "Add",
        "edit": "Edit",
        "delete": "Delete",
        "copy": "Copy",
        "confirm": "Confirm",
        "close": "Close",
        "search": "Search",
        "login": "Log In",
        "logout": "Log Out",
        "apply": "Apply",
        "next": "Next",
        "back": "Back",
    },
)
