"""Import and export of abbreviation packs.

Three shapes are accepted on import:

* a flat mapping ``{"ty": "Thank you"}`` (the shape written by :func:`write_pack`),
* a list of ``{"trigger": ..., "replace": ...}`` entries,
* an object with a ``matches`` list of such entries.

Files ending in ``.yml``/``.yaml`` are parsed as YAML, everything else as JSON.
"""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path
from typing import Any, Mapping

from ..errors import PackError
from .validation import (
    PACK_SCHEMA,
    abbreviation_problem,
    create_yaml_parser,
    load_json_text,
    load_yaml_text,
    validate_payload,
)

__all__ = ["read_pack", "parse_pack", "write_pack", "is_yaml_path"]

LOGGER = logging.getLogger(__name__)
_YAML_SUFFIXES = {".yml", ".yaml"}


def is_yaml_path(path: Path | str) -> bool:
    return Path(path).suffix.lower() in _YAML_SUFFIXES


def read_pack(path: Path | str) -> dict[str, str]:
    """Read a pack file and return its ``{trigger: expansion}`` mapping."""

    target = Path(path).expanduser()
    try:
        text = target.read_text(encoding="utf-8")
    except OSError as exc:
        raise PackError(f"Cannot read pack {target}: {exc}") from exc
    return parse_pack(text, yaml=is_yaml_path(target), source=str(target))


def parse_pack(text: str, *, yaml: bool = False, source: str = "<pack>") -> dict[str, str]:
    """Parse and validate pack ``text``."""

    data, issues = load_yaml_text(text) if yaml else load_json_text(text)
    if not issues:
        issues = validate_payload(data, PACK_SCHEMA)
    if issues:
        detail = "; ".join(str(issue) for issue in issues)
        raise PackError(f"Invalid pack {source}: {detail}")

    entries: dict[str, str] = {}
    if isinstance(data, Mapping) and "matches" in data:
        data = data["matches"]
    if isinstance(data, list):
        for item in data:
            expansion = item.get("replace", item.get("expansion"))
            entries[str(item["trigger"])] = str(expansion)
    else:
        entries = {str(key): str(value) for key, value in data.items()}
    problems: list[str] = []
    for trigger, expansion in entries.items():
        problem = abbreviation_problem(trigger, expansion)
        if problem is not None:
            problems.append(f"{trigger!r}: {problem}")
    if problems:
        raise PackError(f"Invalid pack {source}: " + "; ".join(problems))
    LOGGER.debug("Parsed %d abbreviations from %s", len(entries), source)
    return entries


def write_pack(path: Path | str, abbreviations: Mapping[str, str]) -> Path:
    """Write ``abbreviations`` as a flat mapping (YAML or pretty JSON)."""

    target = Path(path).expanduser()
    payload = dict(abbreviations)
    if is_yaml_path(target):
        buffer = io.StringIO()
        create_yaml_parser().dump(payload, buffer)
        body = buffer.getvalue()
    else:
        body = json.dumps(payload, indent=2, ensure_ascii=False)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(body, encoding="utf-8")
    except OSError as exc:
        raise PackError(f"Cannot write pack {target}: {exc}") from exc
    return target
