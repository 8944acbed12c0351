"""Specifier resolution and artifact lookup against the release catalog."""

import logging
import re
from typing import List, Optional

from packaging.version import InvalidVersion, Version

from ..config import Settings
from ..errors import AmbiguousSpecifier, NotFound
from .catalog import Catalog
from .models import Artifact, GithubRelease, Platform, ResolvedVersion, SpecifierKind
from .platforms import matching_assets
from .specifier import FULL_HASH_LENGTH, classify, is_commit_hash, normalize_hash

logger = logging.getLogger(__name__)

# Channel prefixes sui has used on release tags (devnet-v1.2.3, sui_v0.9.0, ...)
_TAG_PREFIX_RE = re.compile(r"^(?:refs/tags/)?(?:(?:private-)?(?:devnet|testnet|mainnet)[-_])?(?:sui[-_])?v?", re.I)
_TAG_SUFFIX_RE = re.compile(r"[-_](?:ci|release)$", re.I)


def tag_version(tag: str) -> Optional[Version]:
    """Parse the version embedded in a release tag, None if there is none."""
    core = _TAG_SUFFIX_RE.sub("", _TAG_PREFIX_RE.sub("", tag.strip()))
    if not core or not core[0].isdigit():
        return None
    try:
        return Version(core)
    except InvalidVersion:
        return None


def _published(release: GithubRelease) -> float:
    return release.published_at.timestamp() if release.published_at else 0.0


def release_commit(release: GithubRelease) -> Optional[str]:
    """Commit a release was cut from, when the catalog names it by hash."""
    target = normalize_hash(release.target_commitish or "")
    if len(target) == FULL_HASH_LENGTH and is_commit_hash(target):
        return target
    return None


def order_releases(releases: List[GithubRelease]) -> List[GithubRelease]:
    """Sort releases oldest to newest.

    Version ordering is used when every tag carries a version; otherwise the
    whole list falls back to publish time.
    """
    versions = {r.tag_name: tag_version(r.tag_name) for r in releases}
    if releases and all(v is not None for v in versions.values()):
        return sorted(releases, key=lambda r: (versions[r.tag_name], _published(r), r.tag_name))
    return sorted(releases, key=lambda r: (_published(r), r.tag_name))


class ArtifactIndex:
    """Answers "which build does this specifier mean, and where is it?"."""

    def __init__(self, catalog: Catalog, settings: Settings):
        self.catalog = catalog
        self.settings = settings

    async def resolve(self, specifier: str, platform: Platform) -> ResolvedVersion:
        """Resolve ``specifier`` to a concrete commit.

        Interpretations are tried in precedence order (keyword, tag, branch,
        commit). Only "not found" falls through to the next interpretation.
        """
        value = specifier.strip()
        kinds = classify(value)
        if not kinds:
            raise NotFound(f"'{specifier}' is not a valid tag, branch or commit hash")

        for kind in kinds:
            resolved = await self._resolve_as(kind, value)
            if resolved is not None:
                logger.info("Resolved '%s' as %s to %s for %s", value, kind.value, resolved.commit, platform.key)
                return resolved
            logger.debug("'%s' is not a known %s", value, kind.value)

        raise NotFound(f"No release, branch or commit matches '{specifier}'")

    async def _resolve_as(self, kind: SpecifierKind, value: str) -> Optional[ResolvedVersion]:
        if kind is SpecifierKind.KEYWORD:
            release = await self.latest_release()
            if release is None:
                raise NotFound("The catalog has no stable release")
            return await self._resolve_tag(release.tag_name)
        if kind is SpecifierKind.TAG:
            return await self._resolve_tag(value)
        if kind is SpecifierKind.BRANCH:
            # Branch tips move; this mapping is never cached
            commit = await self.catalog.branch_tip(value)
            if commit is None:
                return None
            return ResolvedVersion(commit=normalize_hash(commit), label=value, kind=SpecifierKind.BRANCH)
        if kind is SpecifierKind.COMMIT:
            prefix = normalize_hash(value)
            matches = sorted(set(normalize_hash(c) for c in await self.catalog.match_commits(prefix)))
            if len(matches) > 1:
                raise AmbiguousSpecifier(value, matches)
            if not matches:
                return None
            return ResolvedVersion(commit=matches[0], kind=SpecifierKind.COMMIT)
        return None

    async def _resolve_tag(self, tag: str) -> Optional[ResolvedVersion]:
        release = await self.find_release(tag)
        if release is None:
            return None
        commit = await self.catalog.tag_commit(release.tag_name)
        if commit is None:
            raise NotFound(f"Release {tag} exists but its tag could not be found")
        return ResolvedVersion(commit=normalize_hash(commit), label=release.tag_name, kind=SpecifierKind.TAG)

    async def find_release(self, tag: str) -> Optional[GithubRelease]:
        for release in await self.catalog.list_releases():
            if release.tag_name == tag:
                return release
        return None

    async def stable_releases(self) -> List[GithubRelease]:
        """Stable releases, oldest first."""
        releases = [r for r in await self.catalog.list_releases() if r.stable]
        return order_releases(releases)

    async def latest_release(self) -> Optional[GithubRelease]:
        releases = await self.stable_releases()
        return releases[-1] if releases else None

    async def _release_for(self, version: ResolvedVersion) -> Optional[GithubRelease]:
        if version.kind is SpecifierKind.TAG and version.label:
            return await self.find_release(version.label)
        # A branch tip or bare commit may still be a tagged release
        for release in await self.catalog.list_releases():
            if release_commit(release) == version.commit:
                return release
        return None

    async def artifact_for(self, version: ResolvedVersion, platform: Platform) -> Artifact:
        """Locate the downloadable payload of ``version`` for ``platform``."""
        release = await self._release_for(version)
        if release is not None:
            assets = matching_assets(release.assets, platform)
            if not assets:
                raise NotFound(f"Release {release.tag_name} has no build for {platform.key}")
            asset = assets[0]
            checksum = None
            if asset.digest and asset.digest.lower().startswith("sha256:"):
                checksum = asset.digest.split(":", 1)[1].lower()
            return Artifact(
                version=version,
                platform=platform,
                url=asset.browser_download_url,
                name=asset.name,
                checksum=checksum,
                checksum_url=None if checksum else self._sidecar_checksum_url(release, asset.name),
                size=asset.size,
            )

        if not self.settings.commit_artifact_url:
            raise NotFound(f"No release build is published for {version}")
        url = self.settings.commit_artifact_url.format(
            commit=version.commit, os=platform.os, arch=platform.arch, platform=platform.key
        )
        return Artifact(version=version, platform=platform, url=url, name=url.rsplit("/", 1)[-1])

    @staticmethod
    def _sidecar_checksum_url(release: GithubRelease, asset_name: str) -> Optional[str]:
        for asset in release.assets:
            if asset.name in (f"{asset_name}.sha256", f"{asset_name}.sha256sum"):
                return asset.browser_download_url
        return None
