"""Version resolution module."""

from .catalog import Catalog, GithubCatalog
from .index import ArtifactIndex
from .models import Artifact, InstalledVersion, Platform, ResolvedVersion, SpecifierKind
from .platforms import detect_platform

__all__ = [
    "ArtifactIndex",
    "Artifact",
    "Catalog",
    "GithubCatalog",
    "InstalledVersion",
    "Platform",
    "ResolvedVersion",
    "SpecifierKind",
    "detect_platform",
]
