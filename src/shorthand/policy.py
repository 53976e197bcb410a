"""Per-origin allow/deny rules consulted before any rewrite is attempted.

Every platform quirk the engine knows about lives in this table: which
elements may be expanded into, which extra selectors count as editable, and
which hosts need the deferred-commit treatment. The rewrite engine itself
never inspects hostnames.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol

__all__ = [
    "SelectorTarget",
    "SiteRule",
    "SitePolicy",
    "DEFAULT_SITE_RULES",
]

LOGGER = logging.getLogger(__name__)


class SelectorTarget(Protocol):
    """Minimal element capability needed to evaluate rules."""

    def matches(self, selector: str) -> bool:
        ...

    def closest(self, selector: str) -> Any:
        ...


def _as_selectors(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    return tuple(str(item).strip() for item in value if str(item).strip())


@dataclass(slots=True, frozen=True)
class SiteRule:
    """Rule set attached to one hostname.

    Attributes:
        include: When non-empty, only elements matching one of these selectors
            are allowed. This is an allow-list, not an addition to the default.
        exclude: Elements matching (or inside an ancestor matching) any of
            these selectors are denied.
        deferred_commit: Structured surfaces on this host revert programmatic
            edits unless a send action follows.
        send_selectors: Affordances whose click counts as a send action.
        editable_selectors: Extra selectors treated as editable surfaces.
    """

    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    deferred_commit: bool = False
    send_selectors: tuple[str, ...] = ()
    editable_selectors: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SiteRule":
        return cls(
            include=_as_selectors(payload.get("include")),
            exclude=_as_selectors(payload.get("exclude")),
            deferred_commit=bool(payload.get("deferred_commit", False)),
            send_selectors=_as_selectors(payload.get("send_selectors")),
            editable_selectors=_as_selectors(payload.get("editable_selectors")),
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.include:
            payload["include"] = list(self.include)
        if self.exclude:
            payload["exclude"] = list(self.exclude)
        if self.deferred_commit:
            payload["deferred_commit"] = True
        if self.send_selectors:
            payload["send_selectors"] = list(self.send_selectors)
        if self.editable_selectors:
            payload["editable_selectors"] = list(self.editable_selectors)
        return payload


_DEFAULT_RULE = SiteRule()

DEFAULT_SITE_RULES: Mapping[str, SiteRule] = {
    "web.whatsapp.com": SiteRule(
        deferred_commit=True,
        send_selectors=('[data-testid="send"]', 'button[aria-label="Send"]'),
        editable_selectors=('[data-testid="conversation-compose-box-input"]',),
    ),
    "www.messenger.com": SiteRule(
        deferred_commit=True,
        send_selectors=('[aria-label="Press enter to send"]',),
    ),
    "app.slack.com": SiteRule(
        editable_selectors=(".ql-editor",),
        send_selectors=('[data-qa="texty_send_button"]',),
    ),
}


class SitePolicy:
    """Table-driven per-hostname rules.

    Lookup is by exact hostname first and then by each parent domain, so a
    rule for ``example.com`` also covers ``mail.example.com``.
    """

    def __init__(self, rules: Mapping[str, SiteRule] | None = None) -> None:
        self._rules: dict[str, SiteRule] = {
            self._normalize_host(host): rule for host, rule in (rules or {}).items()
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "SitePolicy":
        rules = {
            host: SiteRule.from_payload(entry or {}) for host, entry in dict(payload or {}).items()
        }
        return cls(rules)

    @staticmethod
    def _normalize_host(hostname: str | None) -> str:
        return (hostname or "").strip().lower().rstrip(".")

    @property
    def rules(self) -> Mapping[str, SiteRule]:
        return dict(self._rules)

    def rule_for(self, hostname: str | None) -> SiteRule:
        """Return the most specific rule for ``hostname`` (or the default rule)."""

        host = self._normalize_host(hostname)
        while host:
            rule = self._rules.get(host)
            if rule is not None:
                return rule
            _, _, host = host.partition(".")
        return _DEFAULT_RULE

    def allows(self, hostname: str | None, element: SelectorTarget) -> bool:
        """Return ``True`` when expansions may fire inside ``element``."""

        rule = self.rule_for(hostname)
        if rule.include and not _any_match(element, rule.include, ancestors=False):
            LOGGER.debug("Element outside include list for %s", hostname)
            return False
        if rule.exclude and _any_match(element, rule.exclude, ancestors=True):
            LOGGER.debug("Element excluded by site rule for %s", hostname)
            return False
        return True

    def uses_deferred_commit(self, hostname: str | None) -> bool:
        return self.rule_for(hostname).deferred_commit

    def send_selectors(self, hostname: str | None) -> tuple[str, ...]:
        return self.rule_for(hostname).send_selectors

    def editable_selectors(self, hostname: str | None) -> tuple[str, ...]:
        return self.rule_for(hostname).editable_selectors


def _any_match(element: SelectorTarget, selectors: Iterable[str], *, ancestors: bool) -> bool:
    for selector in selectors:
        try:
            if ancestors:
                if element.closest(selector) is not None:
                    return True
            elif element.matches(selector):
                return True
        except ValueError as exc:
            LOGGER.warning("Ignoring invalid site selector %r: %s", selector, exc)
    return False
