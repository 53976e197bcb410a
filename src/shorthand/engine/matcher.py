"""Decide whether the word just typed is a configured abbreviation."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from ..config.snapshot import ConfigSnapshot

__all__ = ["MatchResult", "trailing_word", "match"]

LOGGER = logging.getLogger(__name__)
_WHITESPACE = re.compile(r"\s")


@dataclass(slots=True, frozen=True)
class MatchResult:
    """A successful match.

    Attributes:
        trigger: The configured key that matched.
        expansion_template: The unresolved expansion.
        word: The text actually typed (may differ from ``trigger`` in case).
    """

    trigger: str
    expansion_template: str
    word: str


def trailing_word(preceding_text: str) -> str:
    """Return the run of non-whitespace characters ending at the cursor.

    Text ending in whitespace has no trailing word.
    """

    if not preceding_text:
        return ""
    return _WHITESPACE.split(preceding_text)[-1]


def match(preceding_text: str, snapshot: ConfigSnapshot) -> MatchResult | None:
    """Match the trailing word of ``preceding_text`` against ``snapshot``.

    The whole word must equal a key; substrings never match. When matching is
    case-insensitive and several keys fold to the same word, an exact-case key
    wins, otherwise the first key in snapshot order.
    """

    if not snapshot.enabled or not snapshot.abbreviations:
        return None
    word = trailing_word(preceding_text)
    if not word:
        return None

    abbreviations = snapshot.abbreviations
    if word in abbreviations:
        return MatchResult(trigger=word, expansion_template=abbreviations[word], word=word)
    if snapshot.case_sensitive:
        return None

    folded = word.casefold()
    for key, expansion in abbreviations.items():
        if key.casefold() == folded:
            LOGGER.debug("Case-insensitive match %r -> %r", word, key)
            return MatchResult(trigger=key, expansion_template=expansion, word=word)
    return None
