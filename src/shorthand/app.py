"""Command-line entry point for managing abbreviations and trying expansions."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Sequence, TextIO

from .config.options import EngineOptions, TriggerPolicy
from .config.store import JsonConfigStore
from .errors import ShorthandError
from .host.dom import Document
from .host.keyboard import Keyboard
from .runtime import ShorthandRuntime
from .utils import logging as logging_utils

__all__ = ["configure_logging", "main", "try_expansion"]

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_LOGGER = logging.getLogger(__name__)


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure file logging (and console logging in debug mode).

    Outside debug mode the level comes from ``SHORTHAND_LOG_LEVEL``.
    """

    level = logging.DEBUG if debug else logging_utils.level_from_env(logging.INFO)
    logging_utils.setup_logging(level, console=debug, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


async def try_expansion(
    store: JsonConfigStore,
    text: str,
    *,
    options: EngineOptions,
    url: str = "https://example.com/",
    multiline: bool = True,
) -> tuple[str, int]:
    """Type ``text`` into a scratch field and return ``(value, caret)``."""

    runtime = ShorthandRuntime(store, options=options)
    try:
        await runtime.start()
        document = Document(url)
        field = document.create_element("textarea" if multiline else "input")
        document.body.append_child(field)
        runtime.attach(document)
        field.focus()
        Keyboard(document).type(text)
        settle_ms = max(options.input_debounce_ms, options.commit_signal_delay_ms)
        await asyncio.sleep(settle_ms / 1000.0 + 0.01)
        return field.value, field.selection_start or 0  # type: ignore[attr-defined]
    finally:
        runtime.close()
        await store.flush_usage()


def main(argv: Sequence[str] | None = None, *, stdout: TextIO | None = None) -> int:
    """Entry point invoked by the ``shorthand`` console script."""

    args = _build_parser().parse_args(argv)
    out = stdout or sys.stdout

    debug = args.debug or _env_flag("SHORTHAND_DEBUG")
    configure_logging(debug)

    config_path = args.config or os.environ.get("SHORTHAND_CONFIG_PATH")
    store = JsonConfigStore(Path(config_path).expanduser() if config_path else None)
    try:
        return args.handler(store, args, out)
    except ShorthandError as exc:
        _LOGGER.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
def _cmd_list(store: JsonConfigStore, args: argparse.Namespace, out: TextIO) -> int:
    abbreviations = store.abbreviations
    if args.json:
        json.dump(abbreviations, out, indent=2, ensure_ascii=False)
        out.write("\n")
        return 0
    for trigger, expansion in abbreviations.items():
        out.write(f"{trigger}\t{json.dumps(expansion, ensure_ascii=False)}\n")
    return 0


def _cmd_add(store: JsonConfigStore, args: argparse.Namespace, out: TextIO) -> int:
    expansion = args.expansion.replace("\\n", "\n") if args.escapes else args.expansion
    store.add_abbreviation(args.trigger, expansion)
    out.write(f"Added {args.trigger}\n")
    return 0


def _cmd_remove(store: JsonConfigStore, args: argparse.Namespace, out: TextIO) -> int:
    if not store.remove_abbreviation(args.trigger):
        print(f"error: no abbreviation named {args.trigger!r}", file=sys.stderr)
        return 1
    out.write(f"Removed {args.trigger}\n")
    return 0


def _cmd_enable(store: JsonConfigStore, args: argparse.Namespace, out: TextIO) -> int:
    store.set_enabled(True)
    out.write("Expansion enabled\n")
    return 0


def _cmd_disable(store: JsonConfigStore, args: argparse.Namespace, out: TextIO) -> int:
    store.set_enabled(False)
    out.write("Expansion disabled\n")
    return 0


def _cmd_import(store: JsonConfigStore, args: argparse.Namespace, out: TextIO) -> int:
    changed = store.import_pack(args.path)
    out.write(f"Imported {changed} abbreviation(s) from {args.path}\n")
    return 0


def _cmd_export(store: JsonConfigStore, args: argparse.Namespace, out: TextIO) -> int:
    target = store.export_pack(args.path)
    out.write(f"Exported {len(store.abbreviations)} abbreviation(s) to {target}\n")
    return 0


def _cmd_stats(store: JsonConfigStore, args: argparse.Namespace, out: TextIO) -> int:
    records = store.usage_stats()
    if not records:
        out.write("No expansions recorded yet\n")
        return 0
    for record in records:
        out.write(f"{record.count:>6}  {record.trigger}  (last used {record.last_used or 'never'})\n")
    return 0


def _cmd_clear_stats(store: JsonConfigStore, args: argparse.Namespace, out: TextIO) -> int:
    store.clear_usage_stats()
    out.write("Usage statistics cleared\n")
    return 0


def _cmd_try(store: JsonConfigStore, args: argparse.Namespace, out: TextIO) -> int:
    options = store.load_options()
    if args.policy:
        options.policy = TriggerPolicy.coerce(args.policy)
    value, caret = asyncio.run(
        try_expansion(store, args.text, options=options, url=args.url, multiline=not args.single_line)
    )
    json.dump({"text": value, "caret": caret}, out, ensure_ascii=False)
    out.write("\n")
    return 0


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------
def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shorthand",
        description="Manage text abbreviations and try expansions from the terminal.",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Override the default ~/.shorthand/config.json path.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging on the console.")
    commands = parser.add_subparsers(dest="command", required=True)

    listing = commands.add_parser("list", help="List configured abbreviations.")
    listing.add_argument("--json", action="store_true", help="Print the mapping as JSON.")
    listing.set_defaults(handler=_cmd_list)

    add = commands.add_parser("add", help="Add or replace an abbreviation.")
    add.add_argument("trigger")
    add.add_argument("expansion")
    add.add_argument(
        "-e",
        "--escapes",
        action="store_true",
        help="Interpret \\n in the expansion as a newline.",
    )
    add.set_defaults(handler=_cmd_add)

    remove = commands.add_parser("remove", help="Remove an abbreviation.")
    remove.add_argument("trigger")
    remove.set_defaults(handler=_cmd_remove)

    commands.add_parser("enable", help="Turn expansion on.").set_defaults(handler=_cmd_enable)
    commands.add_parser("disable", help="Turn expansion off.").set_defaults(handler=_cmd_disable)

    importer = commands.add_parser("import", help="Merge abbreviations from a JSON or YAML pack.")
    importer.add_argument("path")
    importer.set_defaults(handler=_cmd_import)

    exporter = commands.add_parser("export", help="Write abbreviations to a JSON or YAML pack.")
    exporter.add_argument("path")
    exporter.set_defaults(handler=_cmd_export)

    commands.add_parser("stats", help="Show usage statistics.").set_defaults(handler=_cmd_stats)
    commands.add_parser("clear-stats", help="Reset usage statistics.").set_defaults(
        handler=_cmd_clear_stats
    )

    trial = commands.add_parser("try", help="Type TEXT into a scratch field and print the result.")
    trial.add_argument("text")
    trial.add_argument("--policy", choices=[policy.value for policy in TriggerPolicy])
    trial.add_argument("--url", default="https://example.com/", help="Page URL used for site rules.")
    trial.add_argument("--single-line", action="store_true", help="Use an <input> instead of a <textarea>.")
    trial.set_defaults(handler=_cmd_try)
    return parser


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
