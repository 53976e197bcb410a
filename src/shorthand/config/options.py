"""Engine options: trigger policy, debounce windows, selectors and site rules."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping

from ..policy import DEFAULT_SITE_RULES, SitePolicy, SiteRule

__all__ = [
    "TriggerPolicy",
    "EngineOptions",
    "DEFAULT_EDITABLE_SELECTORS",
]

LOGGER = logging.getLogger(__name__)

_POLICY_ENV = "SHORTHAND_POLICY"
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "SHORTHAND_INPUT_DEBOUNCE_MS": "input_debounce_ms",
    "SHORTHAND_RESCAN_DEBOUNCE_MS": "rescan_debounce_ms",
    "SHORTHAND_COMMIT_DELAY_MS": "commit_signal_delay_ms",
}

DEFAULT_EDITABLE_SELECTORS: tuple[str, ...] = (
    '[role="textbox"]',
    ".ql-editor",
    ".ProseMirror",
    "[data-lexical-editor]",
)


class TriggerPolicy(str, Enum):
    """When an expansion is attempted."""

    BOUNDARY = "boundary"
    TRIGGER_KEY = "trigger-key"

    @classmethod
    def coerce(cls, value: Any) -> "TriggerPolicy":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower().replace("_", "-")
        if text in {"endswith", "boundary"}:
            return cls.BOUNDARY
        if text in {"trigger-key", "triggerkey", "key"}:
            return cls.TRIGGER_KEY
        raise ValueError(f"Unknown trigger policy: {value!r}")


@dataclass(slots=True)
class EngineOptions:
    """Tunable parameters for the engine, registry and topology watcher."""

    policy: TriggerPolicy = TriggerPolicy.TRIGGER_KEY
    input_debounce_ms: int = 100
    rescan_debounce_ms: int = 100
    commit_signal_delay_ms: int = 50
    editable_selectors: tuple[str, ...] = DEFAULT_EDITABLE_SELECTORS
    sites: Dict[str, SiteRule] = field(default_factory=lambda: dict(DEFAULT_SITE_RULES))

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "EngineOptions":
        """Build options from a stored payload, ignoring unknown keys."""

        options = cls()
        if not payload:
            return options
        updates: Dict[str, Any] = {}
        if "policy" in payload:
            try:
                updates["policy"] = TriggerPolicy.coerce(payload["policy"])
            except ValueError as exc:
                LOGGER.warning("%s; keeping %s", exc, options.policy.value)
        for name in ("input_debounce_ms", "rescan_debounce_ms", "commit_signal_delay_ms"):
            if name in payload:
                try:
                    updates[name] = max(0, int(payload[name]))
                except (TypeError, ValueError):
                    LOGGER.warning("Option %s=%r is not a valid integer", name, payload[name])
        if "editable_selectors" in payload:
            updates["editable_selectors"] = tuple(str(item) for item in payload["editable_selectors"] or ())
        if "sites" in payload:
            sites = dict(DEFAULT_SITE_RULES)
            sites.update(SitePolicy.from_payload(payload["sites"]).rules)
            updates["sites"] = sites
        return replace(options, **updates)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "policy": self.policy.value,
            "input_debounce_ms": self.input_debounce_ms,
            "rescan_debounce_ms": self.rescan_debounce_ms,
            "commit_signal_delay_ms": self.commit_signal_delay_ms,
            "editable_selectors": list(self.editable_selectors),
            "sites": {host: rule.to_payload() for host, rule in self.sites.items()},
        }

    def with_env_overrides(self, environ: Mapping[str, str] | None = None) -> "EngineOptions":
        """Return a copy with ``SHORTHAND_*`` environment overrides applied."""

        env = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}
        policy = env.get(_POLICY_ENV)
        if policy is not None:
            try:
                overrides["policy"] = TriggerPolicy.coerce(policy)
            except ValueError as exc:
                LOGGER.warning("Environment override %s ignored: %s", _POLICY_ENV, exc)
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = env.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = max(0, int(value, 10))
            except ValueError:
                LOGGER.warning(
                    "Environment override %s=%s is not a valid integer",
                    env_name,
                    value,
                )
        if overrides:
            LOGGER.debug("Applying environment option overrides: %s", sorted(overrides))
            return replace(self, **overrides)
        return self

    def site_policy(self) -> SitePolicy:
        return SitePolicy(self.sites)
