"""Immutable configuration snapshot and its single-writer holder."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

__all__ = ["ConfigSnapshot", "SnapshotHolder"]

LOGGER = logging.getLogger(__name__)


def _frozen(mapping: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(slots=True, frozen=True)
class ConfigSnapshot:
    """Read-only view of the abbreviation map plus the engine flags.

    Snapshots are never patched: a refresh builds a new instance and the
    holder swaps it in wholesale.
    """

    abbreviations: Mapping[str, str] = field(default_factory=lambda: _frozen(None))
    enabled: bool = False
    case_sensitive: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.abbreviations, MappingProxyType):
            object.__setattr__(self, "abbreviations", _frozen(self.abbreviations))

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ConfigSnapshot":
        """Build a snapshot from the store payload shape."""

        raw = payload.get("abbreviations") or {}
        abbreviations = {str(key): str(value) for key, value in dict(raw).items() if key}
        return cls(
            abbreviations=abbreviations,
            enabled=bool(payload.get("enabled", True)),
            case_sensitive=bool(payload.get("case_sensitive", payload.get("caseSensitive", False))),
        )


ConfigSnapshot.EMPTY = ConfigSnapshot()  # type: ignore[attr-defined]


class SnapshotHolder:
    """Owns the current snapshot; replacement is an atomic reference swap.

    Readers call :attr:`current` once per event and work with that reference
    for the whole operation, so a rewrite never straddles two snapshots.
    """

    def __init__(self, initial: ConfigSnapshot | None = None) -> None:
        self._lock = threading.Lock()
        self._current: ConfigSnapshot = initial if initial is not None else ConfigSnapshot.EMPTY  # type: ignore[attr-defined]
        self._generation = 0

    @property
    def current(self) -> ConfigSnapshot:
        return self._current

    @property
    def generation(self) -> int:
        """Number of replacements since construction."""

        return self._generation

    @property
    def loaded(self) -> bool:
        return self._generation > 0

    def replace(self, snapshot: ConfigSnapshot) -> ConfigSnapshot:
        """Make ``snapshot`` current and return the previous one."""

        with self._lock:
            previous = self._current
            self._current = snapshot
            self._generation += 1
        LOGGER.debug(
            "Snapshot replaced (generation=%d, abbreviations=%d, enabled=%s)",
            self._generation,
            len(snapshot.abbreviations),
            snapshot.enabled,
        )
        return previous
