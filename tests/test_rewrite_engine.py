"""End-to-end tests for the rewrite engine on flat and structured surfaces."""

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from shorthand.config.options import EngineOptions, TriggerPolicy
from shorthand.config.snapshot import ConfigSnapshot, SnapshotHolder
from shorthand.config.store import MemoryConfigStore
from shorthand.engine import rewrite
from shorthand.engine.rewrite import RewriteEngine, RewriteState
from shorthand.errors import SurfaceWriteError
from shorthand.events import ExpansionApplied
from shorthand.host.dom import Document, DomEvent, Text, TextControl
from shorthand.host.keyboard import Keyboard
from shorthand.policy import SiteRule
from shorthand.runtime import ShorthandRuntime
from shorthand.surfaces.adapters import FlatAdapter
from shorthand.surfaces.registry import SurfaceRegistry

from tests.helpers import ManualScheduler, make_page


def _field(page, tag: str = "textarea", **attrs: str) -> TextControl:
    field = page.add(tag, **attrs)
    page.runtime.attach(page.document)
    field.focus()
    assert isinstance(field, TextControl)
    return field


class TestConcreteScenarios:
    def test_boundary_policy_on_flat_surface(self) -> None:
        page = make_page({"/ty": "Thank you"}, policy=TriggerPolicy.BOUNDARY)
        field = _field(page, "input", type="text")
        field.value = "ok /ty"

        field.dispatch_event(DomEvent("input"))
        page.settle()

        assert field.value == "ok Thank you"
        assert field.selection_start == field.selection_end == 12

    def test_trigger_key_with_cursor_marker(self) -> None:
        page = make_page({"sig": "Best,\n{cursor}\nName"})
        field = _field(page)
        keyboard = page.keyboard

        keyboard.type("sig")
        inserted = keyboard.press(" ")

        assert inserted is False
        assert field.value == "Best,\n\nName "
        assert field.selection_start == 6

    def test_excluded_element_never_reaches_the_matcher(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls: list[str] = []

        def recording_match(text, snapshot):  # type: ignore[no-untyped-def]
            calls.append(text)
            return None

        monkeypatch.setattr(rewrite, "match", recording_match)
        options = EngineOptions(sites={"example.com": SiteRule(exclude=(".no-expand",))})
        page = make_page({"ty": "Thank you"}, options=options)
        field = _field(page, class_="no-expand")

        page.keyboard.type("ty ")

        assert field.value == "ty "
        assert calls == []
        assert page.runtime.engine.site_policy.allows("example.com", field) is False


class TestTriggerKeyPolicy:
    @pytest.mark.parametrize(("key", "delimiter"), [(" ", " "), ("Space", " "), ("Tab", "\t"), ("Enter", "\n")])
    def test_delimiter_is_appended_once(self, key: str, delimiter: str) -> None:
        page = make_page({"ty": "Thank you"})
        field = _field(page)

        page.keyboard.type("ty")
        page.keyboard.press(key)

        assert field.value == f"Thank you{delimiter}"
        assert field.selection_start == 10

    def test_enter_on_single_line_input_expands_without_newline(self) -> None:
        page = make_page({"ty": "Thank you"})
        field = _field(page, "input", type="text")

        page.keyboard.type("ty")
        allowed = page.keyboard.press("Enter")

        assert allowed is True
        assert field.value == "Thank you"
        assert field.selection_start == 9

    def test_selected_text_is_replaced_not_expanded(self) -> None:
        page = make_page({"ty": "Thank you"})
        field = _field(page)
        field.value = "ty"
        field.set_selection_range(0, 2)

        page.keyboard.press(" ")

        assert field.value == " "

    def test_text_after_cursor_is_preserved(self) -> None:
        page = make_page({"ty": "Thank you"})
        field = _field(page)
        field.value = "ty world"
        field.set_selection_range(2, 2)

        page.keyboard.press(" ")

        assert field.value == "Thank you  world"
        assert field.selection_start == 10

    def test_case_insensitive_by_default(self) -> None:
        page = make_page({"ty": "Thank you"})
        field = _field(page)

        page.keyboard.type("TY ")

        assert field.value == "Thank you "

    def test_case_sensitive_requires_exact_case(self) -> None:
        page = make_page({"ty": "Thank you"}, case_sensitive=True)
        field = _field(page)

        page.keyboard.type("Ty ")

        assert field.value == "Ty "

    def test_only_whole_words_expand(self) -> None:
        page = make_page({"ty": "Thank you"})
        field = _field(page)

        page.keyboard.type("pretty tyrant, ty\tok\n")

        assert field.value == "pretty tyrant, Thank you\tok\n"

    def test_plain_typing_is_byte_for_byte(self) -> None:
        page = make_page({"ty": "Thank you"})
        field = _field(page)
        text = "nothing here matches; étude  \t x"

        page.keyboard.type(text)

        assert field.value == text
        assert page.bus.of_type(ExpansionApplied) == []

    def test_input_events_are_ignored_under_trigger_key(self) -> None:
        page = make_page({"ty": "Thank you"})
        field = _field(page)
        field.value = "ty"

        field.dispatch_event(DomEvent("input"))
        page.settle()

        assert field.value == "ty"

    def test_structured_surface(self) -> None:
        page = make_page({"brb": "be right back"})
        editor = page.add("div", contenteditable="true")
        page.runtime.attach(page.document)
        editor.focus()

        page.keyboard.type("ok brb")
        page.keyboard.press(" ")

        selection = page.document.get_selection()
        assert editor.text_content == "ok be right back "
        assert isinstance(selection.anchor_node, Text)
        assert selection.anchor_offset == len("ok be right back ")

    def test_structured_trigger_split_across_nodes_is_not_matched(self) -> None:
        page = make_page({"brb": "be right back"})
        editor = page.add("div", contenteditable="true")
        editor.append_child(page.document.create_text_node("b"))
        second = page.document.create_text_node("rb")
        editor.append_child(second)
        page.runtime.attach(page.document)
        editor.focus()
        page.document.get_selection().collapse(second, 2)

        page.keyboard.press(" ")

        assert editor.text_content == "brb "


class TestBoundaryPolicy:
    def test_typing_expands_after_debounce(self) -> None:
        page = make_page({"omw": "on my way"}, policy=TriggerPolicy.BOUNDARY)
        field = _field(page)

        page.keyboard.type("I'm omw")
        assert field.value == "I'm omw"

        page.settle()

        assert field.value == "I'm on my way"
        assert field.selection_start == len("I'm on my way")

    def test_bursts_are_coalesced(self) -> None:
        page = make_page({"ty": "Thank you"}, policy=TriggerPolicy.BOUNDARY)
        field = _field(page)

        page.keyboard.type("ty")
        page.scheduler.advance(0.05)
        page.keyboard.type("p")
        page.settle()

        assert field.value == "typ"

    def test_untrusted_input_is_ignored(self) -> None:
        page = make_page({"ty": "Thank you"}, policy=TriggerPolicy.BOUNDARY)
        field = _field(page)
        field.value = "ty"

        field.dispatch_event(DomEvent("input", is_trusted=False))
        page.settle()

        assert field.value == "ty"

    def test_own_change_signal_does_not_retrigger(self) -> None:
        page = make_page({"ty": "ty ty"}, policy=TriggerPolicy.BOUNDARY)
        field = _field(page)

        page.keyboard.type("ty")
        page.settle()
        page.settle()

        assert field.value == "ty ty"
        assert len(page.bus.of_type(ExpansionApplied)) == 1


class TestSideEffects:
    def test_expansion_event_and_usage_are_recorded(self) -> None:
        page = make_page({"ty": "Thank you"})
        _field(page)

        page.keyboard.type("ty ")

        [event] = page.bus.of_type(ExpansionApplied)
        assert event == ExpansionApplied(
            trigger="ty",
            expansion="Thank you",
            kind="flat",
            policy="trigger-key",
            text="Thank you ",
            caret=10,
        )
        [record] = page.store.usage_stats()
        assert (record.trigger, record.expansion, record.count) == ("ty", "Thank you", 1)

    def test_usage_failure_never_blocks_the_rewrite(self, scheduler: ManualScheduler, document: Document) -> None:
        def broken(trigger: str, expansion: str) -> None:
            raise OSError("disk full")

        holder = SnapshotHolder(ConfigSnapshot(abbreviations={"ty": "Thank you"}, enabled=True))
        engine = RewriteEngine(holder, scheduler, record_usage=broken)
        field = document.create_element("textarea")
        document.body.append_child(field)
        SurfaceRegistry(engine).scan(document)
        field.focus()

        Keyboard(document).type("ty ")

        assert field.value == "Thank you "  # type: ignore[attr-defined]
        assert engine.state is RewriteState.IDLE

    def test_placeholders_are_resolved_with_the_clock(self, scheduler: ManualScheduler, document: Document) -> None:
        store = MemoryConfigStore({"today": "{year}-{month}-{day}"})
        runtime = ShorthandRuntime(store, scheduler=scheduler, clock=lambda: datetime(2024, 1, 2, 3, 4, 5))
        asyncio.run(runtime.start())
        field = document.create_element("input")
        document.body.append_child(field)
        runtime.attach(document)
        field.focus()

        Keyboard(document).type("today ")

        assert field.value == "2024-01-02 "  # type: ignore[attr-defined]

    def test_state_walks_the_machine_and_returns_to_idle(self) -> None:
        page = make_page({"ty": "Thank you"})
        _field(page)
        states: list[RewriteState] = []
        page.runtime.engine.subscribe_state(states.append)

        page.keyboard.type("x ")
        page.keyboard.type("ty ")

        assert states == [
            RewriteState.MATCHING,
            RewriteState.NO_MATCH,
            RewriteState.IDLE,
            RewriteState.MATCHING,
            RewriteState.MATCHED,
            RewriteState.RESOLVING,
            RewriteState.SPLICING,
            RewriteState.CARET_PLACED,
            RewriteState.NOTIFYING,
            RewriteState.IDLE,
        ]

    def test_write_failure_leaves_surface_untouched(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def failing_write(self, element, context, new_text, caret):  # type: ignore[no-untyped-def]
            raise SurfaceWriteError("rejected")

        monkeypatch.setattr(FlatAdapter, "write", failing_write)
        page = make_page({"ty": "Thank you"})
        field = _field(page)

        page.keyboard.type("ty ")

        assert field.value == "ty "
        assert page.runtime.engine.state is RewriteState.IDLE
        assert page.store.usage_stats() == []


class TestLifecycle:
    def test_nothing_expands_before_first_snapshot(self, scheduler: ManualScheduler, document: Document) -> None:
        runtime = ShorthandRuntime(MemoryConfigStore({"ty": "Thank you"}), scheduler=scheduler)
        field = document.create_element("textarea")
        document.body.append_child(field)
        runtime.attach(document)
        field.focus()

        Keyboard(document).type("ty ")

        assert field.value == "ty "  # type: ignore[attr-defined]

    def test_rescans_do_not_double_register(self) -> None:
        page = make_page({"ty": "Thank you"})
        field = _field(page)

        page.runtime.attach(page.document)
        page.runtime.watcher.rescan()
        page.keyboard.type("ty ")

        assert field.listener_count("keydown") == 1
        assert len(page.bus.of_type(ExpansionApplied)) == 1
        assert field.value == "Thank you "

    def test_config_push_applies_to_next_keystroke(self) -> None:
        page = make_page({"ty": "Thank you"})
        field = _field(page)

        page.store.add_abbreviation("brb", "be right back")
        page.keyboard.type("brb ")

        assert field.value == "be right back "

    def test_disabling_stops_expansion(self) -> None:
        page = make_page({"ty": "Thank you"})
        field = _field(page)

        page.store.set_enabled(False)
        page.keyboard.type("ty ")

        assert field.value == "ty "

    def test_policy_switch_applies_without_reattaching(self) -> None:
        page = make_page({"ty": "Thank you"})
        field = _field(page)

        page.runtime.update_options(EngineOptions(policy=TriggerPolicy.BOUNDARY))
        page.keyboard.type("ty")
        page.settle()

        assert field.value == "Thank you"
