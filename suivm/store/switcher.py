"""Atomic repointing of the active sui version."""

import logging
import os

from ..errors import ActivationFailed
from ..versions.models import InstalledVersion
from .version_store import VersionStore

logger = logging.getLogger(__name__)


class Switcher:
    """Moves the ``current`` link of a store.

    The new link is created under a temporary name and renamed over the old
    one, so ``current`` always resolves to the previous or the new version.
    """

    def __init__(self, store: VersionStore):
        self.store = store

    def activate(self, installed: InstalledVersion):
        with self.store.lock():
            self._check_runnable(installed)

            active = self.store.active_pointer()
            if active is not None and active.key == installed.key:
                logger.info("sui %s is already the active version", installed.version)
                return

            self._replace_pointer(installed)

        self.store.ensure_bin_link()
        logger.info("Now using sui %s", installed.version)

    def deactivate(self):
        """Put the active pointer in the unset state."""
        with self.store.lock():
            link = self.store.settings.current_link
            if link.is_symlink():
                link.unlink()
                logger.info("Active version unset")

    def _check_runnable(self, installed: InstalledVersion):
        # Time may have passed since installation; look again
        binary = installed.path
        if not binary.is_file():
            raise ActivationFailed(f"Binary for sui {installed.version} is missing: {binary}")
        if os.name != "nt" and not os.access(binary, os.X_OK):
            raise ActivationFailed(f"Binary for sui {installed.version} is not executable: {binary}")
        if self.store.get(installed.version) is None:
            raise ActivationFailed(f"sui {installed.version} is not installed in {self.store.versions_dir}")

    def _replace_pointer(self, installed: InstalledVersion):
        link = self.store.settings.current_link
        entry = self.store.entry_dir(installed.version)
        target = os.path.relpath(entry, link.parent)
        staged = link.with_name(f".{link.name}.{os.getpid()}.tmp")

        try:
            if staged.is_symlink() or staged.exists():
                staged.unlink()
            os.symlink(target, staged, target_is_directory=True)
            os.replace(staged, link)
        except OSError as e:
            if staged.is_symlink():
                staged.unlink()
            raise ActivationFailed(f"Could not activate sui {installed.version}: {e}") from e
