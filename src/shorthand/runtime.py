"""Wiring between the configuration store, the engine and the documents it serves."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Mapping

from .config.options import EngineOptions
from .config.snapshot import ConfigSnapshot, SnapshotHolder
from .config.store import ConfigStore, UsageRecord
from .engine.rewrite import RewriteEngine
from .events import ConfigReloaded, Event, EventBus
from .host.dom import Document
from .surfaces.registry import SurfaceRegistry
from .surfaces.scheduling import AsyncioScheduler, Scheduler
from .surfaces.topology import TopologyWatcher

__all__ = ["ShorthandRuntime"]

LOGGER = logging.getLogger(__name__)


class ShorthandRuntime:
    """Owns one snapshot holder shared by every attached document.

    Until :meth:`start` (or :meth:`reload`) succeeds the holder serves the
    empty, disabled snapshot, so no expansion fires on guessed defaults.
    """

    def __init__(
        self,
        store: ConfigStore,
        *,
        options: EngineOptions | None = None,
        scheduler: Scheduler | None = None,
        bus: EventBus[Event] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._options = options or EngineOptions()
        self._scheduler = scheduler or AsyncioScheduler()
        self.bus: EventBus[Event] = bus or EventBus()
        self.holder = SnapshotHolder()
        self.engine = RewriteEngine(
            self.holder,
            self._scheduler,
            options=self._options,
            bus=self.bus,
            record_usage=store.record_usage,
            clock=clock,
        )
        self.registry = SurfaceRegistry(self.engine, options=self._options, bus=self.bus)
        self.watcher = TopologyWatcher(
            self.registry,
            self._scheduler,
            delay_ms=self._options.rescan_debounce_ms,
            bus=self.bus,
        )
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def options(self) -> EngineOptions:
        return self._options

    @property
    def snapshot(self) -> ConfigSnapshot:
        return self.holder.current

    async def start(self) -> ConfigSnapshot:
        """Subscribe to store changes and load the first snapshot."""

        if self._unsubscribe is None:
            self._unsubscribe = self._store.on_config_changed(self._on_config_changed)
        return await self.reload()

    def attach(self, document: Document) -> int:
        """Track every surface of ``document`` and watch it for changes."""

        return self.watcher.watch(document)

    def detach(self, document: Document) -> None:
        self.watcher.unwatch(document)
        self.registry.release_subtree(document)
        self.engine.unwatch_document(document)

    async def reload(self) -> ConfigSnapshot:
        """Re-fetch configuration; on failure the last good snapshot stays current."""

        try:
            payload = await self._store.get_config()
            return self.apply_payload(payload)
        except Exception as exc:
            LOGGER.warning("Configuration reload failed; keeping current snapshot: %s", exc)
            return self.holder.current

    def apply_payload(self, payload: Mapping[str, Any]) -> ConfigSnapshot:
        snapshot = ConfigSnapshot.from_payload(payload)
        self.holder.replace(snapshot)
        self.bus.publish(
            ConfigReloaded(
                abbreviation_count=len(snapshot.abbreviations),
                enabled=snapshot.enabled,
                case_sensitive=snapshot.case_sensitive,
            )
        )
        return snapshot

    def update_options(self, options: EngineOptions) -> None:
        self._options = options
        self.engine.update_options(options)
        self.registry.update_options(options)

    def usage_stats(self) -> list[UsageRecord]:
        return self._store.usage_stats()

    def clear_usage_stats(self) -> None:
        self._store.clear_usage_stats()

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.watcher.disconnect()
        self.registry.release_all()
        self.engine.close()

    def _on_config_changed(self, payload: Mapping[str, Any]) -> None:
        try:
            self.apply_payload(payload)
        except Exception:
            LOGGER.exception("Ignoring malformed configuration push")
