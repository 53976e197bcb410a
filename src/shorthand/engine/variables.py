"""Placeholder substitution inside expansion templates."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Callable

__all__ = ["CURSOR_MARKER", "PLACEHOLDERS", "resolve"]

CURSOR_MARKER = "{cursor}"


def _date(now: datetime) -> str:
    return now.strftime("%x")


def _time(now: datetime) -> str:
    return now.strftime("%X")


PLACEHOLDERS: dict[str, Callable[[datetime], str]] = {
    "date": _date,
    "time": _time,
    "datetime": lambda now: f"{_date(now)} {_time(now)}",
    "year": lambda now: f"{now.year:04d}",
    "month": lambda now: f"{now.month:02d}",
    "day": lambda now: f"{now.day:02d}",
    "timestamp": lambda now: str(int(now.timestamp() * 1000)),
}

# One alternation so every token is rendered in a single left-to-right pass;
# rendered text is never rescanned.
_PATTERN = re.compile(r"\{(" + "|".join(sorted(PLACEHOLDERS, key=len, reverse=True)) + r")\}")


def resolve(template: str, now: datetime | None = None) -> str:
    """Render every recognised placeholder in ``template`` from ``now``.

    ``{cursor}`` is not a placeholder here: it is left verbatim for the
    rewrite engine to locate and strip. Unknown ``{tokens}`` are kept as
    literal text.
    """

    if "{" not in template:
        return template
    moment = now or datetime.now()
    return _PATTERN.sub(lambda match: PLACEHOLDERS[match.group(1)](moment), template)
