"""Exception hierarchy shared across the expander."""

from __future__ import annotations

__all__ = ["ShorthandError", "SurfaceWriteError", "ConfigError", "PackError", "SecurityError"]


class ShorthandError(Exception):
    """Base class for every error raised by :mod:`shorthand`."""


class SurfaceWriteError(ShorthandError):
    """Raised when a surface rejects a rewrite; the surface is left untouched."""


class ConfigError(ShorthandError):
    """Raised when a configuration payload cannot be loaded or validated."""


class PackError(ShorthandError):
    """Raised when an abbreviation pack cannot be imported or exported."""


class SecurityError(ShorthandError):
    """Raised by host models when a cross-origin document is accessed."""
