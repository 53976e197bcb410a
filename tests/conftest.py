"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from shorthand.config.snapshot import ConfigSnapshot
from shorthand.config.store import JsonConfigStore
from shorthand.host.dom import Document

from tests.helpers import ManualScheduler


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in (
        "SHORTHAND_POLICY",
        "SHORTHAND_INPUT_DEBOUNCE_MS",
        "SHORTHAND_RESCAN_DEBOUNCE_MS",
        "SHORTHAND_COMMIT_DELAY_MS",
        "SHORTHAND_CONFIG_PATH",
        "SHORTHAND_DEBUG",
        "SHORTHAND_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SHORTHAND_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def document() -> Document:
    return Document("https://example.com/compose")


@pytest.fixture
def snapshot() -> ConfigSnapshot:
    return ConfigSnapshot(abbreviations={"ty": "Thank you", "brb": "be right back"}, enabled=True)


@pytest.fixture
def json_store(tmp_path: Path) -> JsonConfigStore:
    return JsonConfigStore(tmp_path / "config.json")
