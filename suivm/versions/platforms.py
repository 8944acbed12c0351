"""Host platform detection and release asset matching."""

import platform
from typing import Iterable, List, Optional

from .models import Platform, ReleaseAsset

OS_MAP = {
    "windows": "windows",
    "linux": "linux",
    "darwin": "macos",
}

ARCH_MAP = {
    "amd64": "x86_64",
    "x86_64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
}

# Names the sui release pipeline has used for each os/arch in asset names.
OS_ALIASES = {
    "linux": ["linux", "ubuntu"],
    "macos": ["macos", "darwin"],
    "windows": ["windows"],
}

ARCH_ALIASES = {
    "x86_64": ["x86_64", "amd64", "x64"],
    "aarch64": ["aarch64", "arm64"],
}

CHECKSUM_SUFFIXES = (".sha256", ".sha256sum", ".sig", ".asc")


def detect_platform(system: Optional[str] = None, machine: Optional[str] = None) -> Platform:
    """Map the host (or the given uname values) to a Platform."""
    system = (system or platform.system()).lower()
    machine = (machine or platform.machine()).lower()
    return Platform(os=OS_MAP.get(system, system), arch=ARCH_MAP.get(machine, machine))


def _contains_any(name: str, aliases: Iterable[str]) -> bool:
    return any(alias in name for alias in aliases)


def matching_assets(assets: List[ReleaseAsset], target: Platform) -> List[ReleaseAsset]:
    """Return binary assets built for ``target``, best candidates first."""
    os_aliases = OS_ALIASES.get(target.os, [target.os])
    arch_aliases = ARCH_ALIASES.get(target.arch, [target.arch])

    candidates = []
    for asset in assets:
        name = asset.name.lower()
        if name.endswith(CHECKSUM_SUFFIXES):
            continue
        if _contains_any(name, os_aliases) and _contains_any(name, arch_aliases):
            candidates.append(asset)

    # Prefer plain binaries over archives, then shorter (less decorated) names
    candidates.sort(key=lambda a: (a.name.lower().endswith((".tgz", ".tar.gz", ".zip")), len(a.name)))
    return candidates
