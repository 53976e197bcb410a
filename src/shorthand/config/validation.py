"""JSON/YAML parsing and schema validation for configuration payloads and packs."""

from __future__ import annotations

import json
from dataclasses import dataclass
from json import JSONDecodeError
from typing import Any, Iterable, Mapping, Sequence

import jsonschema
from ruamel.yaml import YAML
from ruamel.yaml.error import MarkedYAMLError

__all__ = [
    "ValidationIssue",
    "CONFIG_SCHEMA",
    "PACK_SCHEMA",
    "DuplicateKeyError",
    "load_json_text",
    "load_yaml_text",
    "create_yaml_parser",
    "validate_payload",
    "abbreviation_problem",
]

MAX_SCHEMA_ERRORS = 25

_SELECTOR_LIST = {"type": "array", "items": {"type": "string"}}

CONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "version": {"type": "integer"},
        "abbreviations": {"type": "object", "additionalProperties": {"type": "string"}},
        "enabled": {"type": "boolean"},
        "case_sensitive": {"type": "boolean"},
        "usage": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["trigger", "expansion", "count"],
                "properties": {
                    "trigger": {"type": "string"},
                    "expansion": {"type": "string"},
                    "count": {"type": "integer", "minimum": 0},
                    "last_used": {"type": ["string", "null"]},
                },
            },
        },
        "options": {
            "type": "object",
            "properties": {
                "policy": {"type": "string"},
                "input_debounce_ms": {"type": "integer", "minimum": 0},
                "rescan_debounce_ms": {"type": "integer", "minimum": 0},
                "commit_signal_delay_ms": {"type": "integer", "minimum": 0},
                "editable_selectors": _SELECTOR_LIST,
                "sites": {
                    "type": "object",
                    "additionalProperties": {
                        "type": "object",
                        "properties": {
                            "include": _SELECTOR_LIST,
                            "exclude": _SELECTOR_LIST,
                            "deferred_commit": {"type": "boolean"},
                            "send_selectors": _SELECTOR_LIST,
                            "editable_selectors": _SELECTOR_LIST,
                        },
                        "additionalProperties": False,
                    },
                },
            },
        },
    },
}

_PACK_ENTRY = {
    "type": "object",
    "required": ["trigger"],
    "properties": {
        "trigger": {"type": "string", "minLength": 1},
        "replace": {"type": "string"},
        "expansion": {"type": "string"},
    },
    "anyOf": [{"required": ["replace"]}, {"required": ["expansion"]}],
}

PACK_SCHEMA: dict[str, Any] = {
    "oneOf": [
        {
            "type": "object",
            "required": ["matches"],
            "properties": {"matches": {"type": "array", "items": _PACK_ENTRY}},
        },
        {"type": "array", "items": _PACK_ENTRY},
        {
            "type": "object",
            "not": {"required": ["matches"]},
            "additionalProperties": {"type": "string"},
        },
    ]
}


@dataclass(slots=True)
class ValidationIssue:
    """One problem found while parsing or validating a payload."""

    message: str
    line: int | None = None

    def __str__(self) -> str:
        if self.line is not None:
            return f"line {self.line}: {self.message}"
        return self.message


def validate_payload(payload: Any, schema: Mapping[str, Any]) -> list[ValidationIssue]:
    """Validate ``payload`` against ``schema`` and return any issues."""

    validator = jsonschema.Draft202012Validator(schema)
    issues: list[ValidationIssue] = []
    for issue in validator.iter_errors(payload):
        path = _dotted_path(issue.absolute_path)
        msg = issue.message
        if path:
            msg = f"{path}: {msg}"
        issues.append(ValidationIssue(message=msg))
        if len(issues) >= MAX_SCHEMA_ERRORS:
            issues.append(ValidationIssue(message="Too many validation errors; stopping early."))
            break
    return issues


def abbreviation_problem(trigger: str, expansion: str) -> str | None:
    """Describe why ``trigger`` -> ``expansion`` can never be used, or return ``None``."""

    if not trigger or any(ch.isspace() for ch in trigger):
        return "abbreviations must be non-empty and contain no whitespace"
    if not expansion:
        return "expansion text must not be empty"
    return None


def load_json_text(text: str) -> tuple[Any, list[ValidationIssue]]:
    """Parse JSON rejecting duplicate keys; returns ``(data, issues)``."""

    try:
        return json.loads(text, object_pairs_hook=_unique_pairs), []
    except DuplicateKeyError as exc:
        return None, [ValidationIssue(message=str(exc))]
    except JSONDecodeError as exc:
        return None, [ValidationIssue(message=_describe_decode_error(exc), line=exc.lineno)]


def load_yaml_text(text: str) -> tuple[Any, list[ValidationIssue]]:
    """Parse a single YAML document; returns ``(data, issues)``."""

    parser = create_yaml_parser()
    try:
        return parser.load(text), []
    except MarkedYAMLError as exc:
        return None, [_issue_from_yaml(exc)]


def create_yaml_parser() -> YAML:
    parser = YAML(typ="safe")
    parser.allow_duplicate_keys = False
    parser.default_flow_style = False
    parser.width = 4096
    return parser


def _issue_from_yaml(exc: MarkedYAMLError) -> ValidationIssue:
    mark = exc.problem_mark or exc.context_mark
    detail = "; ".join(part for part in (exc.problem, exc.context) if part) or "Invalid YAML content"
    return ValidationIssue(message=detail, line=None if mark is None else mark.line + 1)


class DuplicateKeyError(ValueError):
    """A JSON object named the same key twice."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Duplicate key {key!r} in JSON object")
        self.key = key


def _unique_pairs(pairs: Iterable[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise DuplicateKeyError(key)
        result[key] = value
    return result


def _describe_decode_error(exc: JSONDecodeError) -> str:
    lines = exc.doc.splitlines() if exc.doc else []
    where = f"column {exc.colno}"
    if 0 < exc.lineno <= len(lines) and lines[exc.lineno - 1].strip():
        return f"{exc.msg} at {where}: {lines[exc.lineno - 1].strip()}"
    return f"{exc.msg} at {where}"


def _dotted_path(path: Sequence[Any]) -> str:
    out = ""
    for segment in path:
        if isinstance(segment, int):
            out += f"[{segment}]"
        else:
            out += f".{segment}" if out else str(segment)
    return out
