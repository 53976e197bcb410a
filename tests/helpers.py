"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict

from shorthand.config.options import EngineOptions, TriggerPolicy
from shorthand.config.store import MemoryConfigStore
from shorthand.events import Event, EventBus
from shorthand.host.dom import Document, DomEvent, Element
from shorthand.host.keyboard import Keyboard
from shorthand.runtime import ShorthandRuntime
from shorthand.surfaces.adapters import SurfaceHandle, SurfaceKind


@dataclass(eq=False)
class _ScheduledCall:
    due: float
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler:
    """Deterministic scheduler; time only moves when :meth:`advance` is called.

    Example:
        scheduler = ManualScheduler()
        debouncer = Debouncer(scheduler, 100, callback)
        debouncer.trigger()
        scheduler.advance(0.1)
    """

    now: float = 0.0
    calls: list[_ScheduledCall] = field(default_factory=list)

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ScheduledCall:
        call = _ScheduledCall(due=self.now + delay, callback=callback)
        self.calls.append(call)
        return call

    @property
    def pending(self) -> int:
        return sum(1 for call in self.calls if not call.cancelled)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            ready = [call for call in self.calls if not call.cancelled and call.due <= target + 1e-9]
            if not ready:
                break
            call = min(ready, key=lambda item: item.due)
            self.calls.remove(call)
            self.now = max(self.now, call.due)
            call.callback()
        self.now = target
        self.calls = [call for call in self.calls if not call.cancelled]


class RecordingBus(EventBus[Event]):
    """Event bus that keeps every published event."""

    __slots__ = ("events",)

    def __init__(self) -> None:
        super().__init__()
        self.events: list[Event] = []

    def publish(self, event: Event) -> None:
        self.events.append(event)
        super().publish(event)

    def of_type(self, event_type: type) -> list[Event]:
        return [event for event in self.events if isinstance(event, event_type)]


@dataclass
class Page:
    """A document attached to a started runtime, plus a keyboard to type with."""

    runtime: ShorthandRuntime
    document: Document
    scheduler: ManualScheduler
    store: MemoryConfigStore
    bus: RecordingBus

    @property
    def keyboard(self) -> Keyboard:
        return Keyboard(self.document)

    def add(self, tag: str, **attributes: str) -> Element:
        element = self.document.create_element(tag, **attributes)
        self.document.body.append_child(element)
        return element

    def settle(self, seconds: float = 1.0) -> None:
        self.scheduler.advance(seconds)


def make_page(
    abbreviations: dict[str, str] | None = None,
    *,
    url: str = "https://example.com/",
    policy: TriggerPolicy = TriggerPolicy.TRIGGER_KEY,
    case_sensitive: bool = False,
    options: EngineOptions | None = None,
) -> Page:
    """Build a runtime with a loaded snapshot; the caller attaches surfaces."""

    store = MemoryConfigStore(abbreviations or {}, case_sensitive=case_sensitive)
    scheduler = ManualScheduler()
    bus = RecordingBus()
    engine_options = options or EngineOptions(policy=policy)
    runtime = ShorthandRuntime(store, options=engine_options, scheduler=scheduler, bus=bus)
    asyncio.run(runtime.start())
    return Page(runtime=runtime, document=Document(url), scheduler=scheduler, store=store, bus=bus)


class RecordingEngine:
    """Stands in for the rewrite engine in registry tests; records the wiring."""

    def __init__(self) -> None:
        self.wired: list[SurfaceHandle] = []
        self.forgotten: list[SurfaceHandle] = []
        self.documents: list[Document] = []

    def listeners_for(self, handle: SurfaceHandle) -> Dict[str, Callable[[DomEvent], None]]:
        self.wired.append(handle)
        listeners: Dict[str, Callable[[DomEvent], None]] = {
            "input": lambda event: None,
            "keydown": lambda event: None,
        }
        if handle.kind is SurfaceKind.STRUCTURED:
            listeners["focus"] = lambda event: None
            listeners["blur"] = lambda event: None
        return listeners

    def forget(self, handle: SurfaceHandle) -> None:
        self.forgotten.append(handle)

    def watch_document(self, document: Document) -> None:
        if document not in self.documents:
            self.documents.append(document)
