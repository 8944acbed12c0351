"""Orchestration of resolve, fetch, install and activate."""

from .manager import Stage, VersionManager

__all__ = ["Stage", "VersionManager"]
