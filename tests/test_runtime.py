"""Tests for the runtime wiring between store, engine and documents."""

from __future__ import annotations

import asyncio
from typing import Any

from shorthand.config.snapshot import ConfigSnapshot
from shorthand.config.store import ConfigPayload, MemoryConfigStore
from shorthand.events import ConfigReloaded
from shorthand.host.dom import Document
from shorthand.runtime import ShorthandRuntime

from tests.helpers import ManualScheduler, RecordingBus


class FlakyStore(MemoryConfigStore):
    """Memory store whose reads start failing once ``broken`` is set."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.broken = False

    async def get_config(self) -> ConfigPayload:
        if self.broken:
            raise ConnectionError("store unavailable")
        return await super().get_config()


def _runtime(store: MemoryConfigStore) -> tuple[ShorthandRuntime, RecordingBus]:
    bus = RecordingBus()
    return ShorthandRuntime(store, scheduler=ManualScheduler(), bus=bus), bus


def test_snapshot_is_empty_and_disabled_until_started() -> None:
    runtime, _ = _runtime(MemoryConfigStore({"ty": "Thank you"}))

    assert runtime.snapshot is ConfigSnapshot.EMPTY  # type: ignore[attr-defined]
    assert runtime.snapshot.enabled is False
    assert not runtime.holder.loaded


def test_start_loads_and_publishes() -> None:
    runtime, bus = _runtime(MemoryConfigStore({"ty": "Thank you"}, case_sensitive=True))

    snapshot = asyncio.run(runtime.start())

    assert dict(snapshot.abbreviations) == {"ty": "Thank you"}
    assert snapshot.case_sensitive is True
    assert bus.of_type(ConfigReloaded) == [
        ConfigReloaded(abbreviation_count=1, enabled=True, case_sensitive=True)
    ]


def test_failed_reload_keeps_last_snapshot() -> None:
    store = FlakyStore({"ty": "Thank you"})
    runtime, _ = _runtime(store)
    first = asyncio.run(runtime.start())

    store.broken = True
    second = asyncio.run(runtime.reload())

    assert second is first
    assert runtime.holder.generation == 1


def test_failed_first_load_stays_disabled() -> None:
    store = FlakyStore({"ty": "Thank you"})
    store.broken = True
    runtime, _ = _runtime(store)

    snapshot = asyncio.run(runtime.start())

    assert snapshot.enabled is False
    assert not runtime.holder.loaded


def test_store_changes_are_pushed() -> None:
    store = MemoryConfigStore({"ty": "Thank you"})
    runtime, bus = _runtime(store)
    asyncio.run(runtime.start())
    before = runtime.snapshot

    store.add_abbreviation("brb", "be right back")

    assert runtime.snapshot is not before
    assert dict(runtime.snapshot.abbreviations) == {"ty": "Thank you", "brb": "be right back"}
    assert dict(before.abbreviations) == {"ty": "Thank you"}
    assert len(bus.of_type(ConfigReloaded)) == 2


def test_start_twice_subscribes_once() -> None:
    store = MemoryConfigStore({"ty": "Thank you"})
    runtime, bus = _runtime(store)
    asyncio.run(runtime.start())
    asyncio.run(runtime.start())

    store.set_enabled(False)

    assert runtime.holder.generation == 3
    assert len(bus.of_type(ConfigReloaded)) == 3


def test_malformed_push_is_ignored() -> None:
    runtime, _ = _runtime(MemoryConfigStore({"ty": "Thank you"}))
    first = asyncio.run(runtime.start())

    runtime._on_config_changed({"abbreviations": 5})

    assert runtime.snapshot is first


def test_usage_stats_pass_through() -> None:
    store = MemoryConfigStore({"ty": "Thank you"})
    runtime, _ = _runtime(store)
    store.record_usage("ty", "Thank you")

    assert [record.trigger for record in runtime.usage_stats()] == ["ty"]

    runtime.clear_usage_stats()

    assert runtime.usage_stats() == []


def test_detach_releases_document_surfaces() -> None:
    runtime, _ = _runtime(MemoryConfigStore({"ty": "Thank you"}))
    document = Document("https://example.com/")
    field = document.create_element("textarea")
    document.body.append_child(field)

    assert runtime.attach(document) == 1
    runtime.detach(document)

    assert len(runtime.registry) == 0
    assert field.listener_count() == 0
    assert document.listener_count("click") == 0


def test_close_stops_pushes_and_releases_everything() -> None:
    store = MemoryConfigStore({"ty": "Thank you"})
    runtime, _ = _runtime(store)
    asyncio.run(runtime.start())
    document = Document("https://example.com/")
    document.body.append_child(document.create_element("textarea"))
    runtime.attach(document)

    runtime.close()
    store.add_abbreviation("brb", "be right back")
    document.body.append_child(document.create_element("textarea"))

    assert "brb" not in runtime.snapshot.abbreviations
    assert len(runtime.registry) == 0


def test_detached_document_no_longer_schedules_rescans() -> None:
    scheduler = ManualScheduler()
    runtime = ShorthandRuntime(MemoryConfigStore({"ty": "Thank you"}), scheduler=scheduler)
    document = Document("https://example.com/")
    runtime.attach(document)

    runtime.detach(document)
    document.body.append_child(document.create_element("textarea"))

    assert document._mutation_observers == []
    assert scheduler.pending == 0
    assert len(runtime.registry) == 0
