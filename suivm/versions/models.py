"""Data models for sui releases, resolved versions and installs."""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field


class ReleaseAsset(BaseModel):
    name: str
    browser_download_url: str
    size: Optional[int] = None
    # GitHub publishes "sha256:<hex>" for newer uploads
    digest: Optional[str] = None


class GithubRelease(BaseModel):
    tag_name: str
    name: Optional[str] = None
    draft: bool = False
    prerelease: bool = False
    published_at: Optional[datetime] = None
    target_commitish: Optional[str] = None
    assets: List[ReleaseAsset] = Field(default_factory=list)

    @property
    def stable(self) -> bool:
        return not self.draft and not self.prerelease


class SpecifierKind(str, Enum):
    KEYWORD = "keyword"
    TAG = "tag"
    BRANCH = "branch"
    COMMIT = "commit"


class Platform(BaseModel):
    os: str
    arch: str

    @property
    def key(self) -> str:
        return f"{self.os}-{self.arch}"

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"


class ResolvedVersion(BaseModel):
    """A catalog-verified build identity.

    ``commit`` is the full lowercase hash and doubles as the store key;
    ``label`` is the tag or branch the user asked for, when there was one.
    """

    commit: str
    label: Optional[str] = None
    kind: SpecifierKind = SpecifierKind.COMMIT

    @property
    def key(self) -> str:
        return self.commit

    @property
    def short(self) -> str:
        return self.commit[:10]

    def __str__(self) -> str:
        if self.label:
            return f"{self.label} ({self.short})"
        return self.short


class Artifact(BaseModel):
    version: ResolvedVersion
    platform: Platform
    url: str
    name: str
    checksum: Optional[str] = None
    checksum_algorithm: str = "sha256"
    # Published as a separate "<asset>.sha256" file instead of inline
    checksum_url: Optional[str] = None
    size: Optional[int] = None

    @property
    def is_archive(self) -> bool:
        lowered = self.name.lower()
        return lowered.endswith((".tgz", ".tar.gz", ".zip"))


class InstalledVersion(BaseModel):
    version: ResolvedVersion
    path: Path
    installed_at: datetime

    @property
    def key(self) -> str:
        return self.version.key


class AvailableVersion(BaseModel):
    """A release tag as shown by ``suivm list``."""

    tag: str
    published_at: Optional[datetime] = None
    latest: bool = False
    installed: bool = False
    current: bool = False

    @property
    def flags(self) -> List[str]:
        flags = []
        if self.latest:
            flags.append("latest")
        if self.installed:
            flags.append("installed")
        if self.current:
            flags.append("current")
        return flags
