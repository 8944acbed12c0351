"""Local version store."""

from .lock import StoreLock
from .switcher import Switcher
from .version_store import VersionStore

__all__ = ["StoreLock", "Switcher", "VersionStore"]
