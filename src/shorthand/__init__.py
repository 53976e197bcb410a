"""Text-abbreviation expansion for editable surfaces."""

from .config import ConfigSnapshot, EngineOptions, JsonConfigStore, MemoryConfigStore, TriggerPolicy
from .errors import ConfigError, PackError, ShorthandError, SurfaceWriteError
from .runtime import ShorthandRuntime

__all__ = [
    "ConfigError",
    "ConfigSnapshot",
    "EngineOptions",
    "JsonConfigStore",
    "MemoryConfigStore",
    "PackError",
    "ShorthandError",
    "ShorthandRuntime",
    "SurfaceWriteError",
    "TriggerPolicy",
]

__version__ = "0.1.0"
