"""Error taxonomy for version resolution, download, store and activation."""

from typing import List, Optional


class SuivmError(Exception):
    """Base class for every failure the version manager reports.

    ``stage`` is filled in by the orchestrator with the name of the step that
    was running when the error surfaced. ``retryable`` tells the caller whether
    re-running the same command may succeed.
    """

    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.stage: Optional[str] = None

    def __str__(self) -> str:
        return self.message


class CatalogUnavailable(SuivmError):
    """The release catalog could not be reached or answered garbage."""

    retryable = True


class NotFound(SuivmError):
    """The specifier does not resolve to anything in the catalog."""


class AmbiguousSpecifier(SuivmError):
    """A commit prefix (or local match) designates more than one version."""

    def __init__(self, specifier: str, candidates: List[str]):
        if candidates:
            shown = ", ".join(sorted(candidates)[:5])
            message = f"'{specifier}' is ambiguous, it matches {len(candidates)} versions: {shown}"
        else:
            message = f"'{specifier}' is ambiguous, it matches more than one commit"
        super().__init__(message)
        self.specifier = specifier
        self.candidates = list(candidates)


class DownloadFailed(SuivmError):
    """Download gave up; ``cause`` holds the last underlying error."""

    retryable = True

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class IntegrityMismatch(SuivmError):
    """Downloaded bytes do not hash to the checksum the catalog declared."""

    def __init__(self, name: str, expected: str, actual: str):
        super().__init__(
            f"Checksum mismatch for {name}: expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class ActivationFailed(SuivmError):
    """The active pointer could not be moved; the previous one is kept."""


class NotInstalled(SuivmError):
    """The requested version is not present in the local store."""


class VersionInUse(SuivmError):
    """The version is the active one and cannot be removed."""


class StoreLocked(SuivmError):
    """Another process held the store lock for longer than the timeout."""

    retryable = True


class StoreError(SuivmError):
    """The filesystem refused a store operation (disk full, permissions, ...)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
