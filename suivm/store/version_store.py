"""On-disk store of installed sui binaries.

Layout under the store home::

    versions/<commit>/sui            installed binary
    versions/<commit>/version.json   install record
    current -> versions/<commit>     active pointer
    bin/sui -> ../current/sui        stable entry for PATH
    tmp/                             in-flight downloads

Entries appear under ``versions/`` only by renaming a complete staging
directory into place, so a reader never sees a half-installed version.
"""

import json
import logging
import os
import shutil
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from ..config import Settings
from ..errors import NotInstalled, StoreError, VersionInUse
from ..versions.models import InstalledVersion, ResolvedVersion
from ..versions.specifier import is_commit_hash, normalize_hash
from .lock import StoreLock

logger = logging.getLogger(__name__)


class VersionStore:
    METADATA_FILE = "version.json"

    def __init__(self, settings: Settings):
        self.settings = settings
        self.home = settings.home
        self.versions_dir = settings.versions_dir

    @property
    def binary_filename(self) -> str:
        if os.name == "nt":
            return f"{self.settings.binary_name}.exe"
        return self.settings.binary_name

    def lock(self) -> StoreLock:
        return StoreLock(self.settings.lock_file, timeout=self.settings.lock_timeout)

    def ensure_paths(self):
        """Create the store layout if it does not exist yet."""
        try:
            for directory in (self.home, self.versions_dir, self.settings.bin_dir, self.settings.tmp_dir):
                directory.mkdir(parents=True, exist_ok=True)
            self.ensure_bin_link()
        except OSError as e:
            raise StoreError(f"Could not create the version store at {self.home}: {e}", cause=e) from e

    def ensure_bin_link(self):
        """Point ``bin/<tool>`` through ``current`` so PATH never needs editing."""
        if os.name == "nt":
            return
        link = self.settings.bin_dir / self.binary_filename
        if link.is_symlink() or link.exists():
            return
        link.parent.mkdir(parents=True, exist_ok=True)
        target = os.path.join("..", self.settings.current_link.name, self.binary_filename)
        try:
            link.symlink_to(target)
        except FileExistsError:
            pass

    def entry_dir(self, version: ResolvedVersion) -> Path:
        return self.versions_dir / version.key

    def binary_path(self, version: ResolvedVersion) -> Path:
        return self.entry_dir(version) / self.binary_filename

    def _read_entry(self, entry: Path) -> Optional[InstalledVersion]:
        metadata = entry / self.METADATA_FILE
        binary = entry / self.binary_filename
        if not metadata.is_file() or not binary.is_file():
            return None
        try:
            data = json.loads(metadata.read_text())
            installed = InstalledVersion(path=binary, **data)
        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.warning("Ignoring unreadable install record %s: %s", metadata, e)
            return None
        if installed.key != entry.name:
            logger.warning("Install record %s names %s; ignoring it", metadata, installed.key)
            return None
        return installed

    def get(self, version: ResolvedVersion) -> Optional[InstalledVersion]:
        return self._read_entry(self.entry_dir(version))

    def has(self, version: ResolvedVersion) -> bool:
        return self.get(version) is not None

    def install(self, version: ResolvedVersion, temp_file: Path) -> InstalledVersion:
        """Move a verified download into the store under ``version.key``.

        Installing a version that is already present discards ``temp_file``
        and returns the existing entry.
        """
        self.versions_dir.mkdir(parents=True, exist_ok=True)
        with self.lock():
            existing = self.get(version)
            if existing is not None:
                logger.info("%s is already installed; discarding the new download", version)
                temp_file.unlink(missing_ok=True)
                return existing

            entry = self.entry_dir(version)
            try:
                if entry.exists():
                    # Leftover without a valid record: not an install
                    self._discard(entry)
                staging = Path(tempfile.mkdtemp(prefix=f".{version.key}.", suffix=".staging", dir=self.versions_dir))
            except OSError as e:
                raise StoreError(f"Could not prepare {entry} for sui {version}: {e}", cause=e) from e

            try:
                staged_binary = staging / self.binary_filename
                shutil.move(str(temp_file), str(staged_binary))
                installed = InstalledVersion(
                    version=version,
                    path=entry / self.binary_filename,
                    installed_at=datetime.now(timezone.utc),
                )
                record = installed.model_dump(mode="json", exclude={"path"})
                (staging / self.METADATA_FILE).write_text(json.dumps(record, indent=2))
                os.rename(staging, entry)
            except OSError as e:
                shutil.rmtree(staging, ignore_errors=True)
                raise StoreError(f"Could not install sui {version} into {entry}: {e}", cause=e) from e
            except Exception:
                shutil.rmtree(staging, ignore_errors=True)
                raise

        logger.info("Installed %s at %s", version, entry)
        return installed

    def active_pointer(self) -> Optional[InstalledVersion]:
        """The installed version ``current`` points at, None when unset."""
        link = self.settings.current_link
        if not link.is_symlink():
            return None
        target = Path(os.readlink(link))
        if not target.is_absolute():
            target = link.parent / target
        if target.parent.resolve() != self.versions_dir.resolve():
            logger.warning("Active pointer %s leads outside the store (%s)", link, target)
            return None
        installed = self._read_entry(self.versions_dir / target.name)
        if installed is None:
            logger.warning("Active pointer %s is dangling (%s)", link, target)
        return installed

    def list_installed(self) -> List[InstalledVersion]:
        if not self.versions_dir.is_dir():
            return []
        installed = []
        for entry in self.versions_dir.iterdir():
            # Hidden names are staging and removal areas
            if entry.name.startswith(".") or not entry.is_dir():
                continue
            record = self._read_entry(entry)
            if record is not None:
                installed.append(record)
        installed.sort(key=lambda i: (i.installed_at, i.key))
        return installed

    def find(self, specifier: str) -> List[InstalledVersion]:
        """Installed versions matching a label exactly or a commit prefix."""
        value = specifier.strip()
        installed = self.list_installed()
        by_label = [i for i in installed if i.version.label == value]
        if by_label:
            return by_label
        if is_commit_hash(value):
            prefix = normalize_hash(value)
            return [i for i in installed if i.key.startswith(prefix)]
        return []

    def remove(self, version: ResolvedVersion):
        """Delete an installed version; the active one must be switched away first."""
        with self.lock():
            installed = self.get(version)
            if installed is None:
                raise NotInstalled(f"sui {version} is not installed")
            active = self.active_pointer()
            if active is not None and active.key == version.key:
                raise VersionInUse(f"sui {version} is currently in use")
            try:
                self._discard(self.entry_dir(version))
            except OSError as e:
                raise StoreError(f"Could not remove sui {version}: {e}", cause=e) from e
        logger.info("Removed %s", version)

    def _discard(self, entry: Path):
        # Rename first so the entry vanishes from has() in one step
        tombstone = entry.with_name(f".{entry.name}.removing-{os.getpid()}")
        os.rename(entry, tombstone)
        shutil.rmtree(tombstone)

    def clean_scratch(self, max_age: float = 24 * 3600) -> int:
        """Delete orphaned downloads and staging leftovers older than ``max_age`` seconds."""
        cutoff = time.time() - max_age
        removed = 0
        candidates = []
        if self.settings.tmp_dir.is_dir():
            candidates.extend(self.settings.tmp_dir.iterdir())
        if self.versions_dir.is_dir():
            candidates.extend(p for p in self.versions_dir.iterdir() if p.name.startswith("."))

        for path in candidates:
            try:
                if path.lstat().st_mtime >= cutoff:
                    continue
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                else:
                    path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
        if removed:
            logger.info("Cleaned %d stale scratch entries", removed)
        return removed
