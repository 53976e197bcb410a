"""CSS selector subset used by the headless host model.

Supported: type and universal selectors, ``#id``, ``.class``, attribute tests
(``[a]``, ``[a=v]``, ``[a~=v]``, ``[a^=v]``, ``[a$=v]``, ``[a*=v]``,
``[a|=v]``), descendant and child combinators, and comma-separated groups.
Anything else raises ``ValueError``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Protocol

__all__ = ["SelectorElement", "compile_selector", "element_matches"]


class SelectorElement(Protocol):
    tag_name: str

    def get_attribute(self, name: str) -> str | None:
        ...

    @property
    def parent_element(self) -> Any:
        ...


_IDENT = r"-?[_a-zA-Z][-_a-zA-Z0-9]*"
_TOKEN = re.compile(
    rf"""
    (?P<combinator>\s*>\s*|\s+)
    |(?P<tag>\*|{_IDENT})
    |\#(?P<id>{_IDENT})
    |\.(?P<cls>{_IDENT})
    |\[\s*(?P<attr>{_IDENT})\s*
        (?:(?P<op>[~^$*|]?=)\s*(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>[-_a-zA-Z0-9]+))\s*)?
     \]
    """,
    re.VERBOSE,
)


@dataclass(slots=True, frozen=True)
class _AttributeTest:
    name: str
    op: str | None = None
    value: str = ""

    def check(self, element: SelectorElement) -> bool:
        actual = element.get_attribute(self.name)
        if actual is None:
            return False
        op, expected = self.op, self.value
        if op is None:
            return True
        if op == "=":
            return actual == expected
        if op == "~=":
            return expected in actual.split()
        if op == "^=":
            return bool(expected) and actual.startswith(expected)
        if op == "$=":
            return bool(expected) and actual.endswith(expected)
        if op == "*=":
            return bool(expected) and expected in actual
        if op == "|=":
            return actual == expected or actual.startswith(expected + "-")
        return False


@dataclass(slots=True, frozen=True)
class _Compound:
    tag: str | None = None
    ids: tuple[str, ...] = ()
    classes: tuple[str, ...] = ()
    attributes: tuple[_AttributeTest, ...] = ()

    def matches(self, element: SelectorElement) -> bool:
        if self.tag is not None and self.tag != "*" and element.tag_name != self.tag:
            return False
        if self.ids and any(element.get_attribute("id") != ident for ident in self.ids):
            return False
        if self.classes:
            present = (element.get_attribute("class") or "").split()
            if any(name not in present for name in self.classes):
                return False
        return all(test.check(element) for test in self.attributes)


@dataclass(slots=True, frozen=True)
class _Complex:
    parts: tuple[_Compound, ...]
    combinators: tuple[str, ...]

    def matches(self, element: SelectorElement) -> bool:
        return self._match_at(element, len(self.parts) - 1)

    def _match_at(self, element: SelectorElement, index: int) -> bool:
        if not self.parts[index].matches(element):
            return False
        if index == 0:
            return True
        parent = element.parent_element
        if self.combinators[index - 1] == ">":
            return parent is not None and self._match_at(parent, index - 1)
        while parent is not None:
            if self._match_at(parent, index - 1):
                return True
            parent = parent.parent_element
        return False


def _split_groups(selector: str) -> list[str]:
    groups: list[str] = []
    depth = 0
    quote: str | None = None
    current: list[str] = []
    for char in selector:
        if quote:
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
        elif char == "," and depth == 0:
            groups.append("".join(current))
            current = []
            continue
        current.append(char)
    groups.append("".join(current))
    return groups


def _parse_complex(text: str, source: str) -> _Complex:
    parts: list[_Compound] = []
    combinators: list[str] = []
    tag: str | None = None
    ids: list[str] = []
    classes: list[str] = []
    attributes: list[_AttributeTest] = []
    started = False
    position = 0

    def flush() -> None:
        nonlocal tag, ids, classes, attributes, started
        if not started:
            raise ValueError(f"Dangling combinator in selector {source!r}")
        parts.append(_Compound(tag, tuple(ids), tuple(classes), tuple(attributes)))
        tag, ids, classes, attributes, started = None, [], [], [], False

    while position < len(text):
        token = _TOKEN.match(text, position)
        if token is None or token.end() == position:
            raise ValueError(f"Unsupported selector syntax at {text[position:]!r} in {source!r}")
        position = token.end()
        if token.group("combinator") is not None:
            flush()
            combinators.append(">" if ">" in token.group("combinator") else " ")
        elif token.group("tag") is not None:
            if started:
                raise ValueError(f"Type selector must come first in {source!r}")
            tag = token.group("tag").lower()
            started = True
        elif token.group("id") is not None:
            ids.append(token.group("id"))
            started = True
        elif token.group("cls") is not None:
            classes.append(token.group("cls"))
            started = True
        else:
            value = token.group("dq")
            if value is None:
                value = token.group("sq")
            if value is None:
                value = token.group("bare") or ""
            attributes.append(_AttributeTest(token.group("attr").lower(), token.group("op"), value))
            started = True
    flush()
    return _Complex(tuple(parts), tuple(combinators))


@lru_cache(maxsize=256)
def compile_selector(selector: str) -> tuple[_Complex, ...]:
    """Compile ``selector`` into matchers; raises ``ValueError`` when unsupported."""

    groups = [group.strip() for group in _split_groups(selector or "")]
    if not groups or any(not group for group in groups):
        raise ValueError(f"Empty selector in {selector!r}")
    return tuple(_parse_complex(group, selector) for group in groups)


def element_matches(element: SelectorElement, selector: str) -> bool:
    return any(complex_.matches(element) for complex_ in compile_selector(selector))
