"""repstack package."""

from importlib import metadata
from typing import Any

try:
    __version__ = metadata.version("repstack")
except metadata.PackageNotFoundError:  # pragma: no cover - fallback for local edits
    __version__ = "0.0.0"

__all__ = ["app", "EntityStore", "__version__"]


def __getattr__(name: str) -> Any:  # pragma: no cover - exercised indirectly
    if name == "app":
        from .cli import app

        return app
    if name == "EntityStore":
        from .repository import EntityStore

        return EntityStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
