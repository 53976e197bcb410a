"""Configuration store collaborators.

The engine only ever talks to a store through :class:`ConfigStore`: an async
``get_config``, a push ``on_config_changed`` subscription and a
fire-and-forget ``record_usage``. Two implementations ship here:
:class:`MemoryConfigStore` (tests, embedding) and :class:`JsonConfigStore`
(the file used by the ``shorthand`` command).
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Protocol

from ..errors import ConfigError
from .options import EngineOptions
from .packs import read_pack, write_pack
from .validation import CONFIG_SCHEMA, abbreviation_problem, load_json_text, validate_payload

__all__ = [
    "ConfigPayload",
    "ConfigListener",
    "ConfigStore",
    "UsageRecord",
    "MemoryConfigStore",
    "JsonConfigStore",
    "DEFAULT_ABBREVIATIONS",
    "DEFAULT_CONFIG_PATH",
]

LOGGER = logging.getLogger(__name__)
DEFAULT_CONFIG_PATH = Path.home() / ".shorthand" / "config.json"
DEFAULT_ABBREVIATIONS: Mapping[str, str] = {"ty": "Thank you"}
_CONFIG_VERSION = 1

ConfigPayload = Dict[str, Any]
ConfigListener = Callable[[ConfigPayload], None]


class ConfigStore(Protocol):
    """Protocol implemented by configuration stores consumed by the runtime."""

    async def get_config(self) -> ConfigPayload:
        ...

    def on_config_changed(self, callback: ConfigListener) -> Callable[[], None]:
        ...

    def record_usage(self, trigger: str, expansion: str) -> None:
        ...

    def usage_stats(self) -> list["UsageRecord"]:
        ...

    def clear_usage_stats(self) -> None:
        ...


@dataclass(slots=True)
class UsageRecord:
    """Usage counter for one ``(trigger, expansion)`` pair."""

    trigger: str
    expansion: str
    count: int = 0
    last_used: str | None = None


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class _ObservableStore:
    """Shared listener + usage bookkeeping."""

    def __init__(self) -> None:
        self._abbreviations: dict[str, str] = {}
        self._enabled = True
        self._case_sensitive = False
        self._listeners: list[ConfigListener] = []
        self._usage: dict[tuple[str, str], UsageRecord] = {}

    # ------------------------------------------------------------------
    # Protocol surface
    # ------------------------------------------------------------------
    def snapshot_payload(self) -> ConfigPayload:
        return {
            "abbreviations": dict(self._abbreviations),
            "enabled": self._enabled,
            "case_sensitive": self._case_sensitive,
        }

    def on_config_changed(self, callback: ConfigListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def record_usage(self, trigger: str, expansion: str) -> None:
        key = (trigger, expansion)
        record = self._usage.get(key)
        if record is None:
            record = UsageRecord(trigger=trigger, expansion=expansion)
            self._usage[key] = record
        record.count += 1
        record.last_used = _utcnow_iso()
        self._usage_changed()

    def usage_stats(self) -> list[UsageRecord]:
        records = [UsageRecord(**asdict(record)) for record in self._usage.values()]
        records.sort(key=lambda record: (-record.count, record.trigger))
        return records

    def clear_usage_stats(self) -> None:
        self._usage.clear()
        self._usage_changed()

    # ------------------------------------------------------------------
    # Management operations
    # ------------------------------------------------------------------
    @property
    def abbreviations(self) -> dict[str, str]:
        return dict(self._abbreviations)

    def add_abbreviation(self, trigger: str, expansion: str) -> None:
        trigger = (trigger or "").strip()
        problem = abbreviation_problem(trigger, expansion)
        if problem is not None:
            raise ConfigError(f"Cannot add {trigger!r}: {problem}")
        self._abbreviations[trigger] = expansion
        self._changed()

    def remove_abbreviation(self, trigger: str) -> bool:
        if trigger not in self._abbreviations:
            return False
        del self._abbreviations[trigger]
        self._changed()
        return True

    def replace_abbreviations(self, abbreviations: Mapping[str, str]) -> None:
        self._abbreviations = {str(key): str(value) for key, value in abbreviations.items() if key}
        self._changed()

    def merge_abbreviations(self, abbreviations: Mapping[str, str]) -> int:
        for trigger, expansion in abbreviations.items():
            problem = abbreviation_problem(trigger, expansion)
            if problem is not None:
                raise ConfigError(f"Cannot merge {trigger!r}: {problem}")
        merged = 0
        for trigger, expansion in abbreviations.items():
            if trigger and self._abbreviations.get(trigger) != expansion:
                self._abbreviations[trigger] = expansion
                merged += 1
        if merged:
            self._changed()
        return merged

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)
        self._changed()

    def set_case_sensitive(self, case_sensitive: bool) -> None:
        self._case_sensitive = bool(case_sensitive)
        self._changed()

    def import_pack(self, path: Path | str) -> int:
        """Merge the abbreviations of a pack file; returns the number changed."""

        return self.merge_abbreviations(read_pack(path))

    def export_pack(self, path: Path | str) -> Path:
        return write_pack(path, self.abbreviations)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------
    def _changed(self) -> None:
        self._persist()
        payload = self.snapshot_payload()
        for listener in list(self._listeners):
            try:
                listener(payload)
            except Exception:
                LOGGER.exception("Config listener %r failed", listener)

    def _usage_changed(self) -> None:
        self._persist()

    def _persist(self) -> None:
        """Subclasses write their state somewhere durable."""


class MemoryConfigStore(_ObservableStore):
    """In-memory store; ``latency`` simulates a slow backing service."""

    def __init__(
        self,
        abbreviations: Mapping[str, str] | None = None,
        *,
        enabled: bool = True,
        case_sensitive: bool = False,
        latency: float = 0.0,
    ) -> None:
        super().__init__()
        self._abbreviations = dict(abbreviations or {})
        self._enabled = enabled
        self._case_sensitive = case_sensitive
        self._latency = latency

    async def get_config(self) -> ConfigPayload:
        if self._latency:
            await asyncio.sleep(self._latency)
        return self.snapshot_payload()


class JsonConfigStore(_ObservableStore):
    """Persistence adapter backed by a single JSON file.

    A missing file is treated as a first run: the default abbreviations are
    written out. Writes go through a temporary file and an atomic rename.
    """

    def __init__(self, path: Path | None = None, *, usage_flush_delay: float = 1.0) -> None:
        super().__init__()
        self._path = Path(path).expanduser() if path is not None else DEFAULT_CONFIG_PATH
        self._options_payload: dict[str, Any] = {}
        self._loaded = False
        self._usage_flush_delay = usage_flush_delay
        self._usage_dirty = False
        self._flush_task: asyncio.Task[None] | None = None

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    def load(self) -> ConfigPayload:
        """(Re)load the file, raising :class:`ConfigError` when it is unusable."""

        if not self._path.exists():
            LOGGER.info("No configuration at %s; writing defaults", self._path)
            self._abbreviations = dict(DEFAULT_ABBREVIATIONS)
            self._enabled = True
            self._case_sensitive = False
            self._loaded = True
            self._persist()
            return self.snapshot_payload()

        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read {self._path}: {exc}") from exc
        data, issues = load_json_text(text)
        if not issues:
            issues = validate_payload(data, CONFIG_SCHEMA)
        if issues:
            detail = "; ".join(str(issue) for issue in issues)
            LOGGER.warning("Configuration file %s is invalid: %s", self._path, detail)
            raise ConfigError(f"Invalid configuration {self._path}: {detail}")

        self._abbreviations = dict(data.get("abbreviations") or {})
        self._enabled = bool(data.get("enabled", True))
        self._case_sensitive = bool(data.get("case_sensitive", False))
        self._options_payload = dict(data.get("options") or {})
        self._usage = {
            (entry["trigger"], entry["expansion"]): UsageRecord(
                trigger=entry["trigger"],
                expansion=entry["expansion"],
                count=int(entry["count"]),
                last_used=entry.get("last_used"),
            )
            for entry in data.get("usage") or []
        }
        self._loaded = True
        LOGGER.debug(
            "Configuration loaded from %s: %d abbreviations, enabled=%s",
            self._path,
            len(self._abbreviations),
            self._enabled,
        )
        return self.snapshot_payload()

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    async def get_config(self) -> ConfigPayload:
        await self.flush_usage()
        return await asyncio.to_thread(self.load)

    def load_options(self, *, environ: Mapping[str, str] | None = None) -> EngineOptions:
        self._ensure_loaded()
        return EngineOptions.from_payload(self._options_payload).with_env_overrides(environ)

    def save_options(self, options: EngineOptions) -> None:
        self._ensure_loaded()
        self._options_payload = options.to_payload()
        self._persist()

    # Management operations load lazily so the CLI can mutate without a prior get_config().
    def add_abbreviation(self, trigger: str, expansion: str) -> None:
        self._ensure_loaded()
        super().add_abbreviation(trigger, expansion)

    def remove_abbreviation(self, trigger: str) -> bool:
        self._ensure_loaded()
        return super().remove_abbreviation(trigger)

    def merge_abbreviations(self, abbreviations: Mapping[str, str]) -> int:
        self._ensure_loaded()
        return super().merge_abbreviations(abbreviations)

    def set_enabled(self, enabled: bool) -> None:
        self._ensure_loaded()
        super().set_enabled(enabled)

    def set_case_sensitive(self, case_sensitive: bool) -> None:
        self._ensure_loaded()
        super().set_case_sensitive(case_sensitive)

    def usage_stats(self) -> list[UsageRecord]:
        self._ensure_loaded()
        return super().usage_stats()

    def record_usage(self, trigger: str, expansion: str) -> None:
        self._ensure_loaded()
        super().record_usage(trigger, expansion)

    def clear_usage_stats(self) -> None:
        self._ensure_loaded()
        super().clear_usage_stats()

    @property
    def abbreviations(self) -> dict[str, str]:
        self._ensure_loaded()
        return dict(self._abbreviations)

    # ------------------------------------------------------------------
    # Usage persistence
    # ------------------------------------------------------------------
    @property
    def usage_dirty(self) -> bool:
        return self._usage_dirty

    async def flush_usage(self) -> None:
        """Write pending usage counters now, off the event loop thread."""

        task, self._flush_task = self._flush_task, None
        if task is not None and not task.done():
            task.cancel()
        if not self._usage_dirty:
            return
        self._usage_dirty = False
        body = self._dump()
        await asyncio.to_thread(self._write, body)

    def _usage_changed(self) -> None:
        self._usage_dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._persist()
            return
        if self._flush_task is None or self._flush_task.done():
            self._flush_task = loop.create_task(self._flush_later())

    async def _flush_later(self) -> None:
        await asyncio.sleep(self._usage_flush_delay)
        self._flush_task = None
        try:
            await self.flush_usage()
        except OSError:
            LOGGER.warning("Failed to save usage statistics to %s", self._path, exc_info=True)

    def _serialize(self) -> Dict[str, Any]:
        data: Dict[str, Any] = self.snapshot_payload()
        data["version"] = _CONFIG_VERSION
        data["usage"] = [asdict(record) for record in self._usage.values()]
        if self._options_payload:
            data["options"] = self._options_payload
        return data

    def _dump(self) -> str:
        return json.dumps(self._serialize(), indent=2, ensure_ascii=False)

    def _persist(self) -> None:
        self._usage_dirty = False
        self._write(self._dump())

    def _write(self, body: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Configuration saved to %s", self._path)
