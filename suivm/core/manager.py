"""Resolve, fetch, install and activate sui versions."""

import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional

from ..config import Settings
from ..downloads import Downloader, RetryPolicy
from ..downloads.download_manager import ProgressCallback
from ..errors import AmbiguousSpecifier, SuivmError
from ..store import Switcher, VersionStore
from ..versions.catalog import Catalog, GithubCatalog
from ..versions.index import ArtifactIndex, release_commit
from ..versions.models import AvailableVersion, InstalledVersion, Platform, ResolvedVersion
from ..versions.platforms import detect_platform
from ..versions.specifier import LATEST

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    START = "start"
    RESOLVING = "resolving"
    CACHE_HIT = "cache-hit"
    FETCHING = "fetching"
    INSTALLING = "installing"
    ACTIVATING = "activating"
    DONE = "done"
    FAILED = "failed"


class VersionManager:
    """Front door used by the CLI.

    One ``resolve_and_activate`` call walks
    START -> RESOLVING -> (CACHE_HIT | FETCHING -> INSTALLING) -> ACTIVATING -> DONE.
    A failure ends in FAILED; the error propagates unchanged with ``stage``
    set to where it happened. Nothing is retried at this level.
    """

    def __init__(self, settings: Optional[Settings] = None, catalog: Optional[Catalog] = None,
                 store: Optional[VersionStore] = None, platform: Optional[Platform] = None,
                 downloader_factory: Optional[Callable[[], Downloader]] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 progress_callback: Optional[ProgressCallback] = None):
        self.settings = settings or Settings.from_env()
        self.catalog = catalog or GithubCatalog(self.settings)
        self.index = ArtifactIndex(self.catalog, self.settings)
        self.store = store or VersionStore(self.settings)
        self.switcher = Switcher(self.store)
        self.platform = platform or detect_platform()
        self.downloader_factory = downloader_factory or (
            lambda: Downloader(self.settings, retry_policy, progress_callback)
        )
        self.stage = Stage.START
        self.failed_stage: Optional[Stage] = None

    async def __aenter__(self):
        self.store.ensure_paths()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.catalog.close()

    def _enter(self, stage: Stage):
        logger.debug("%s -> %s", self.stage.value, stage.value)
        self.stage = stage

    async def resolve_and_activate(self, specifier: str) -> ResolvedVersion:
        """Make ``specifier`` the active sui, downloading it when needed."""
        self.stage = Stage.START
        self.failed_stage = None
        try:
            self._enter(Stage.RESOLVING)
            version = await self.index.resolve(specifier, self.platform)

            installed = self.store.get(version)
            if installed is not None:
                self._enter(Stage.CACHE_HIT)
                logger.info("sui %s is already installed", version)
            else:
                self._enter(Stage.FETCHING)
                artifact = await self.index.artifact_for(version, self.platform)
                async with self.downloader_factory() as downloader:
                    temp_file = await downloader.fetch(artifact)

                self._enter(Stage.INSTALLING)
                try:
                    installed = await asyncio.to_thread(self.store.install, version, temp_file)
                except Exception:
                    temp_file.unlink(missing_ok=True)
                    raise

            self._enter(Stage.ACTIVATING)
            await asyncio.to_thread(self.switcher.activate, installed)
            self._enter(Stage.DONE)
            return version
        except SuivmError as e:
            if e.stage is None:
                e.stage = self.stage.value
            self._fail()
            raise
        except Exception:
            self._fail()
            raise

    def _fail(self):
        self.failed_stage = self.stage
        logger.debug("Failed while %s", self.stage.value)
        self.stage = Stage.FAILED

    async def latest(self) -> ResolvedVersion:
        return await self.resolve_and_activate(LATEST)

    def list_installed(self) -> List[InstalledVersion]:
        return self.store.list_installed()

    def current(self) -> Optional[InstalledVersion]:
        return self.store.active_pointer()

    async def remove(self, specifier: str):
        """Remove an installed version by label, commit prefix or catalog lookup."""
        matches = self.store.find(specifier)
        if len(matches) > 1:
            raise AmbiguousSpecifier(specifier, [m.key for m in matches])
        if matches:
            version = matches[0].version
        else:
            version = await self.index.resolve(specifier, self.platform)
        await asyncio.to_thread(self.store.remove, version)

    async def list_available(self) -> List[AvailableVersion]:
        """Stable releases, newest first, flagged latest/installed/current."""
        releases = list(reversed(await self.index.stable_releases()))
        installed = self.store.list_installed()
        installed_labels = {i.version.label for i in installed if i.version.label}
        installed_keys = {i.key for i in installed}
        active = self.store.active_pointer()

        def is_current(release) -> bool:
            if active is None:
                return False
            return release.tag_name == active.version.label or release_commit(release) == active.key

        return [
            AvailableVersion(
                tag=release.tag_name,
                published_at=release.published_at,
                latest=(position == 0),
                # Installed under another specifier still counts when the commit matches
                installed=release.tag_name in installed_labels or release_commit(release) in installed_keys,
                current=is_current(release),
            )
            for position, release in enumerate(releases)
        ]

    def clean(self, max_age: float = 24 * 3600) -> int:
        return self.store.clean_scratch(max_age)
