"""Rewrite engine: from a trigger event to a committed expansion.

Each handled event walks ``Idle -> Matching -> (NoMatch | Matched ->
Resolving -> Splicing -> CaretPlaced -> Notifying) -> Idle``. The engine reads
the snapshot holder exactly once per event and never inspects hostnames
itself; every platform difference comes from :class:`~shorthand.policy.SitePolicy`.
"""

from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Callable, Dict, Optional

from ..config.options import EngineOptions, TriggerPolicy
from ..config.snapshot import SnapshotHolder
from ..errors import SurfaceWriteError
from ..events import Event, EventBus, ExpansionApplied, ExpansionDeferred, PendingResolved
from ..host.dom import Document, DomEvent, Element, TextControl
from ..policy import SitePolicy
from ..surfaces.adapters import SurfaceHandle, SurfaceKind
from ..surfaces.scheduling import Debouncer, Scheduler
from .deferred import PendingTracker
from .matcher import match
from .splice import splice
from .variables import resolve

__all__ = ["RewriteState", "RewriteOutcome", "RewriteEngine", "DELIMITER_KEYS"]

LOGGER = logging.getLogger(__name__)

DELIMITER_KEYS: Dict[str, str] = {" ": " ", "Space": " ", "Spacebar": " ", "Tab": "\t", "Enter": "\n"}

UsageSink = Callable[[str, str], None]
StateListener = Callable[["RewriteState"], None]


class RewriteState(str, Enum):
    IDLE = "idle"
    MATCHING = "matching"
    NO_MATCH = "no-match"
    MATCHED = "matched"
    RESOLVING = "resolving"
    SPLICING = "splicing"
    CARET_PLACED = "caret-placed"
    NOTIFYING = "notifying"


@dataclass(slots=True, frozen=True)
class RewriteOutcome:
    trigger: str
    expansion: str
    text: str
    caret: int
    kind: SurfaceKind
    policy: TriggerPolicy


class RewriteEngine:
    """Matches, splices and commits expansions on tracked surfaces."""

    def __init__(
        self,
        holder: SnapshotHolder,
        scheduler: Scheduler,
        *,
        options: EngineOptions | None = None,
        bus: EventBus[Event] | None = None,
        record_usage: UsageSink | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._holder = holder
        self._scheduler = scheduler
        self._options = options or EngineOptions()
        self._site_policy = self._options.site_policy()
        self._bus = bus
        self._record_usage_sink = record_usage
        self._clock = clock
        self._pending = PendingTracker()
        self._documents: "weakref.WeakSet[Document]" = weakref.WeakSet()
        self._state = RewriteState.IDLE
        self._state_listeners: list[StateListener] = []

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def state(self) -> RewriteState:
        return self._state

    @property
    def options(self) -> EngineOptions:
        return self._options

    @property
    def site_policy(self) -> SitePolicy:
        return self._site_policy

    @property
    def pending(self) -> PendingTracker:
        return self._pending

    def update_options(self, options: EngineOptions) -> None:
        """Swap options; the new policy applies from the next event."""

        self._options = options
        self._site_policy = options.site_policy()

    def subscribe_state(self, listener: StateListener) -> Callable[[], None]:
        self._state_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Wiring used by the surface registry
    # ------------------------------------------------------------------
    def listeners_for(self, handle: SurfaceHandle) -> Dict[str, Callable[[DomEvent], None]]:
        """Build the listener set for a newly tracked surface."""

        handle.debouncer = Debouncer(
            self._scheduler,
            self._options.input_debounce_ms,
            partial(self._on_input_settled, handle),
            name=f"input:{handle.kind.value}",
        )
        listeners: Dict[str, Callable[[DomEvent], None]] = {
            "input": partial(self._on_input, handle),
            "keydown": partial(self._on_keydown, handle),
        }
        if handle.kind is SurfaceKind.STRUCTURED:
            listeners["focus"] = partial(self._on_focus, handle)
            listeners["blur"] = partial(self._on_blur, handle)
        return listeners

    def forget(self, handle: SurfaceHandle) -> None:
        """Drop timers and pending state for a released surface."""

        if handle.debouncer is not None:
            handle.debouncer.cancel()
        self._pending.pop(handle)

    def watch_document(self, document: Document) -> None:
        """Listen for clicks on send affordances anywhere in ``document``."""

        if document in self._documents:
            return
        document.add_event_listener("click", self._on_document_click)
        self._documents.add(document)

    def unwatch_document(self, document: Document) -> None:
        document.remove_event_listener("click", self._on_document_click)
        self._documents.discard(document)

    def close(self) -> None:
        for document in list(self._documents):
            self.unwatch_document(document)
        for handle, _ in self._pending.items():
            self.forget(handle)

    # ------------------------------------------------------------------
    # Core operation
    # ------------------------------------------------------------------
    def expand(
        self,
        handle: SurfaceHandle,
        *,
        delimiter: str = "",
        policy: TriggerPolicy = TriggerPolicy.BOUNDARY,
    ) -> Optional[RewriteOutcome]:
        """Try to expand the word before the caret of ``handle``.

        Returns the outcome when text was rewritten, ``None`` otherwise. Any
        failure leaves the surface exactly as it was.
        """

        element = handle.element
        if element is None:
            return None
        snapshot = self._holder.current
        if not snapshot.enabled:
            return None
        try:
            self._set_state(RewriteState.MATCHING)
            if not self._site_policy.allows(handle.hostname, element):
                self._set_state(RewriteState.NO_MATCH)
                return None
            context = handle.adapter.read_context(element)
            if context is None:
                self._set_state(RewriteState.NO_MATCH)
                return None
            result = match(context.before_cursor, snapshot)
            if result is None:
                self._set_state(RewriteState.NO_MATCH)
                return None

            self._set_state(RewriteState.MATCHED)
            self._set_state(RewriteState.RESOLVING)
            expansion = resolve(result.expansion_template, self._clock())

            surface_text = element.text_content if handle.kind is SurfaceKind.STRUCTURED else ""
            self._set_state(RewriteState.SPLICING)
            before = context.before_cursor[: context.cursor_offset - len(result.word)]
            planned = splice(before, expansion, context.after_cursor, delimiter=delimiter)
            try:
                handle.adapter.write(element, context, planned.text, planned.caret)
            except SurfaceWriteError:
                LOGGER.warning("Expansion of %r skipped", result.trigger, exc_info=True)
                return None
            self._set_state(RewriteState.CARET_PLACED)

            self._set_state(RewriteState.NOTIFYING)
            handle.adapter.dispatch_change_signal(element)
            if (
                handle.kind is SurfaceKind.STRUCTURED
                and context.node is not None
                and self._site_policy.uses_deferred_commit(handle.hostname)
            ):
                self._pending.stage(
                    handle,
                    context.node,
                    original_text=context.full_text,
                    rewritten_text=planned.text,
                    trigger=result.trigger,
                    caret=planned.caret,
                    surface_text=surface_text,
                )
                self._publish(
                    ExpansionDeferred(
                        trigger=result.trigger,
                        original_text=context.full_text,
                        rewritten_text=planned.text,
                    )
                )
            LOGGER.debug("Expanded %r on <%s> (%s)", result.trigger, element.tag_name, policy.value)
            self._publish(
                ExpansionApplied(
                    trigger=result.trigger,
                    expansion=result.expansion_template,
                    kind=handle.kind.value,
                    policy=policy.value,
                    text=planned.text,
                    caret=planned.caret,
                )
            )
            self._record_usage(result.trigger, result.expansion_template)
            return RewriteOutcome(
                trigger=result.trigger,
                expansion=expansion,
                text=planned.text,
                caret=planned.caret,
                kind=handle.kind,
                policy=policy,
            )
        finally:
            self._set_state(RewriteState.IDLE)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------
    def _on_input(self, handle: SurfaceHandle, event: DomEvent) -> None:
        # Change signals dispatched by the adapters are untrusted; skip them.
        if not event.is_trusted or self._options.policy is not TriggerPolicy.BOUNDARY:
            return
        if handle.debouncer is not None:
            handle.debouncer.trigger()

    def _on_input_settled(self, handle: SurfaceHandle) -> None:
        self.expand(handle, policy=TriggerPolicy.BOUNDARY)

    def _on_keydown(self, handle: SurfaceHandle, event: DomEvent) -> None:
        if not event.is_trusted:
            return
        if event.key == "Enter" and not event.shift_key and handle in self._pending:
            self._confirm_send(handle)
        if self._options.policy is not TriggerPolicy.TRIGGER_KEY:
            return
        delimiter = DELIMITER_KEYS.get(event.key or "")
        if delimiter is None:
            return
        if delimiter == "\n" and not _accepts_newline(handle):
            # Enter keeps its default action (form submit) on single-line controls.
            self.expand(handle, policy=TriggerPolicy.TRIGGER_KEY)
            return
        if self.expand(handle, delimiter=delimiter, policy=TriggerPolicy.TRIGGER_KEY) is not None:
            event.prevent_default()

    def _on_focus(self, handle: SurfaceHandle, event: DomEvent) -> None:
        if self._pending.pop(handle) is not None:
            self._publish(PendingResolved(reason="focus"))

    def _on_blur(self, handle: SurfaceHandle, event: DomEvent) -> None:
        record = self._pending.pop(handle)
        if record is None:
            return
        element = handle.element
        node = record.reverted_node(element) if element is not None else None
        if node is not None:
            LOGGER.debug("Host reverted %r; re-applying expansion", record.trigger)
            node.data = record.rewritten_text
            handle.adapter.dispatch_change_signal(element)
            self._publish(PendingResolved(reason="blur-reapplied"))
            return
        self._publish(PendingResolved(reason="blur"))

    def _on_document_click(self, event: DomEvent) -> None:
        if not len(self._pending):
            return
        target = event.target
        if not isinstance(target, Element):
            return
        document = target.owner_document
        if document is None:
            return
        if not self._matches_send_affordance(target, document.hostname):
            return
        for handle, _ in self._pending.items():
            element = handle.element
            if element is not None and element.owner_document is document:
                self._confirm_send(handle)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _matches_send_affordance(self, target: Element, hostname: str) -> bool:
        for selector in self._site_policy.send_selectors(hostname):
            try:
                if target.closest(selector) is not None:
                    return True
            except ValueError as exc:
                LOGGER.warning("Ignoring invalid send selector %r: %s", selector, exc)
        return False

    def _confirm_send(self, handle: SurfaceHandle) -> None:
        record = self._pending.pop(handle)
        if record is None:
            return
        element = handle.element
        node = record.reverted_node(element) if element is not None else None
        if node is not None:
            node.data = record.rewritten_text
        delay = self._options.commit_signal_delay_ms / 1000.0
        self._scheduler.call_later(delay, partial(self._resignal, handle))
        self._publish(PendingResolved(reason="send"))

    def _resignal(self, handle: SurfaceHandle) -> None:
        element = handle.element
        if element is not None and element.is_connected:
            handle.adapter.dispatch_change_signal(element)

    def _record_usage(self, trigger: str, expansion: str) -> None:
        if self._record_usage_sink is None:
            return
        try:
            self._record_usage_sink(trigger, expansion)
        except Exception:
            LOGGER.warning("Failed to record usage for %r", trigger, exc_info=True)

    def _publish(self, event: Event) -> None:
        if self._bus is not None:
            self._bus.publish(event)

    def _set_state(self, state: RewriteState) -> None:
        if state is self._state:
            return
        self._state = state
        for listener in list(self._state_listeners):
            listener(state)


def _accepts_newline(handle: SurfaceHandle) -> bool:
    if handle.kind is SurfaceKind.STRUCTURED:
        return True
    element = handle.element
    return isinstance(element, TextControl) and element.multiline
