"""Matching, resolution, splicing and the rewrite state machine."""

from .matcher import MatchResult, match, trailing_word
from .rewrite import RewriteEngine, RewriteOutcome, RewriteState
from .splice import Splice, splice
from .variables import CURSOR_MARKER, resolve

__all__ = [
    "CURSOR_MARKER",
    "MatchResult",
    "RewriteEngine",
    "RewriteOutcome",
    "RewriteState",
    "Splice",
    "match",
    "resolve",
    "splice",
    "trailing_word",
]
