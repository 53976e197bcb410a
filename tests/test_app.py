"""Tests covering the command-line entry point."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from shorthand import app


def _run(config: Path, *argv: str) -> tuple[int, str]:
    out = io.StringIO()
    code = app.main(["--config", str(config), *argv], stdout=out)
    return code, out.getvalue()


@pytest.fixture
def config(tmp_path: Path) -> Path:
    return tmp_path / "config.json"


def test_first_run_writes_defaults(config: Path) -> None:
    code, output = _run(config, "list")

    assert code == 0
    assert output == 'ty\t"Thank you"\n'
    assert json.loads(config.read_text(encoding="utf-8"))["abbreviations"] == {"ty": "Thank you"}


def test_add_list_and_remove(config: Path) -> None:
    assert _run(config, "add", "sig", "Best,\\nName", "-e") == (0, "Added sig\n")

    code, output = _run(config, "list", "--json")
    assert code == 0
    assert json.loads(output) == {"ty": "Thank you", "sig": "Best,\nName"}

    assert _run(config, "remove", "sig") == (0, "Removed sig\n")
    assert "sig" not in _run(config, "list")[1]


def test_remove_unknown_fails(config: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code, _ = _run(config, "remove", "nope")

    assert code == 1
    assert "no abbreviation named 'nope'" in capsys.readouterr().err


def test_invalid_trigger_reports_error(config: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code, _ = _run(config, "add", "two words", "x")

    assert code == 1
    assert capsys.readouterr().err.startswith("error: ")


def test_broken_config_file_reports_error(config: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config.write_text("{not json", encoding="utf-8")

    code, _ = _run(config, "list")

    assert code == 1
    assert "Invalid configuration" in capsys.readouterr().err


def test_enable_and_disable_persist(config: Path) -> None:
    assert _run(config, "disable") == (0, "Expansion disabled\n")
    assert json.loads(config.read_text(encoding="utf-8"))["enabled"] is False

    assert _run(config, "enable") == (0, "Expansion enabled\n")
    assert json.loads(config.read_text(encoding="utf-8"))["enabled"] is True


def test_import_and_export_packs(config: Path, tmp_path: Path) -> None:
    pack = tmp_path / "pack.yaml"
    pack.write_text("matches:\n  - trigger: brb\n    replace: be right back\n", encoding="utf-8")

    assert _run(config, "import", str(pack)) == (0, f"Imported 1 abbreviation(s) from {pack}\n")

    exported = tmp_path / "out.json"
    code, output = _run(config, "export", str(exported))
    assert code == 0
    assert output == f"Exported 2 abbreviation(s) to {exported}\n"
    assert json.loads(exported.read_text(encoding="utf-8")) == {"ty": "Thank you", "brb": "be right back"}


def test_try_expands_and_records_usage(config: Path) -> None:
    code, output = _run(config, "try", "ok ty ")

    assert code == 0
    assert json.loads(output) == {"text": "ok Thank you ", "caret": 13}

    code, stats = _run(config, "stats")
    assert code == 0
    assert stats.split()[:2] == ["1", "ty"]

    assert _run(config, "clear-stats") == (0, "Usage statistics cleared\n")
    assert _run(config, "stats") == (0, "No expansions recorded yet\n")


def test_try_with_boundary_policy(config: Path) -> None:
    code, output = _run(config, "try", "ok ty", "--policy", "boundary", "--single-line")

    assert code == 0
    assert json.loads(output) == {"text": "ok Thank you", "caret": 12}


def test_try_respects_disabled_flag(config: Path) -> None:
    _run(config, "disable")

    code, output = _run(config, "try", "ty ")

    assert code == 0
    assert json.loads(output) == {"text": "ty ", "caret": 3}


def test_config_path_from_environment(config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SHORTHAND_CONFIG_PATH", str(config))
    out = io.StringIO()

    assert app.main(["add", "omw", "on my way"], stdout=out) == 0
    assert "omw" in json.loads(config.read_text(encoding="utf-8"))["abbreviations"]


def test_env_flag_parsing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SHORTHAND_DEBUG", "Yes")
    assert app._env_flag("SHORTHAND_DEBUG") is True

    monkeypatch.setenv("SHORTHAND_DEBUG", "0")
    assert app._env_flag("SHORTHAND_DEBUG") is False

    monkeypatch.delenv("SHORTHAND_DEBUG")
    assert app._env_flag("SHORTHAND_DEBUG", default=True) is True
