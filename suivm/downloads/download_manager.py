"""Download manager for release binaries."""

import aiohttp
import aiofiles
import asyncio
import hashlib
import logging
import os
import stat
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Awaitable, Callable, Optional

from ..config import Settings
from ..errors import DownloadFailed, IntegrityMismatch
from ..versions.models import Artifact
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], Awaitable[None]]

CHUNK_SIZE = 64 * 1024


class TransientHTTPError(Exception):
    """Server side status worth retrying (5xx, 429)."""

    def __init__(self, status: int, url: str):
        super().__init__(f"HTTP {status} from {url}")
        self.status = status


def is_transient(error: BaseException) -> bool:
    if isinstance(error, TransientHTTPError):
        return True
    if isinstance(error, aiohttp.ClientResponseError):
        return error.status >= 500 or error.status == 429
    return isinstance(error, (
        aiohttp.ClientConnectionError,
        aiohttp.ClientPayloadError,
        asyncio.TimeoutError,
        ConnectionResetError,
    ))


class Downloader:
    """Fetches artifacts into the scratch area, verified and executable.

    Files are never written to their final store location here; the store
    moves them into place once ``fetch`` has returned.
    """

    def __init__(self, settings: Settings, retry_policy: Optional[RetryPolicy] = None,
                 progress_callback: Optional[ProgressCallback] = None):
        self.settings = settings
        self.scratch_dir = settings.tmp_dir
        self.retry_policy = retry_policy or RetryPolicy(
            attempts=settings.download_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )
        self.progress_callback = progress_callback
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        timeout = aiohttp.ClientTimeout(
            total=None,
            sock_connect=self.settings.request_timeout,
            sock_read=self.settings.request_timeout,
        )
        self.session = aiohttp.ClientSession(
            headers={"User-Agent": self.settings.user_agent},
            timeout=timeout,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self.session:
            await self.session.close()
            self.session = None

    async def fetch(self, artifact: Artifact) -> Path:
        """Download ``artifact`` and return the path of the ready binary."""
        if not self.session:
            raise RuntimeError("Downloader must be used as an async context manager")

        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        expected = artifact.checksum
        if not expected and artifact.checksum_url:
            expected = await self._fetch_checksum(artifact.checksum_url)

        fd, name = tempfile.mkstemp(prefix=f"{artifact.version.short}-", suffix=".part", dir=self.scratch_dir)
        os.close(fd)
        payload = Path(name)
        binary: Optional[Path] = None
        logger.info("Downloading %s from %s", artifact.name, artifact.url)

        try:
            digest = await self._with_retries(
                lambda: self._download_once(artifact, payload),
                f"Download of {artifact.name}",
            )

            if expected and digest != expected.lower():
                logger.error("Checksum mismatch for %s", artifact.name)
                raise IntegrityMismatch(artifact.name, expected.lower(), digest)
            if not expected:
                logger.info("No checksum published for %s; %s is %s", artifact.name, artifact.checksum_algorithm, digest)

            binary = self._extract_binary(artifact, payload) if artifact.is_archive else payload
            self.make_executable(binary)
            return binary
        except Exception:
            payload.unlink(missing_ok=True)
            if binary is not None:
                binary.unlink(missing_ok=True)
            raise

    async def _with_retries(self, operation, description: str):
        try:
            return await self.retry_policy.run(operation, is_transient, description)
        except (DownloadFailed, IntegrityMismatch):
            raise
        except Exception as e:
            raise DownloadFailed(f"{description} failed: {e or type(e).__name__}", cause=e) from e

    async def _download_once(self, artifact: Artifact, dest: Path) -> str:
        """Stream the payload into ``dest`` from scratch, return its digest."""
        hasher = hashlib.new(artifact.checksum_algorithm)
        async with self.session.get(artifact.url) as resp:
            if resp.status >= 500 or resp.status == 429:
                raise TransientHTTPError(resp.status, artifact.url)
            resp.raise_for_status()
            content_length = int(resp.headers.get('Content-Length', 0) or 0)
            if resp.headers.get('Content-Encoding'):
                # Length of the encoded body, not of what we write
                content_length = 0
            total_size = content_length or artifact.size or 0
            downloaded = 0

            async with aiofiles.open(dest, 'wb') as f:
                async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                    await f.write(chunk)
                    hasher.update(chunk)
                    downloaded += len(chunk)
                    if self.progress_callback:
                        await self.progress_callback(artifact.name, downloaded, total_size)

        if content_length and downloaded != content_length:
            raise aiohttp.ClientPayloadError(
                f"Transfer of {artifact.name} ended at {downloaded} of {content_length} bytes"
            )
        return hasher.hexdigest()

    async def _fetch_checksum(self, url: str) -> str:
        """Read a ``<asset>.sha256`` sidecar; the digest is its first token."""
        async def get():
            async with self.session.get(url) as resp:
                if resp.status >= 500 or resp.status == 429:
                    raise TransientHTTPError(resp.status, url)
                resp.raise_for_status()
                return await resp.text()

        text = await self._with_retries(get, f"Checksum download from {url}")
        tokens = text.split()
        if not tokens:
            raise DownloadFailed(f"Checksum file {url} is empty")
        return tokens[0].lower()

    def _extract_binary(self, artifact: Artifact, archive: Path) -> Path:
        """Pull the tool binary out of a release archive."""
        wanted = {self.settings.binary_name, f"{self.settings.binary_name}.exe"}
        fd, name = tempfile.mkstemp(prefix=f"{artifact.version.short}-", suffix=".bin", dir=self.scratch_dir)
        os.close(fd)
        binary = Path(name)

        try:
            found = False
            if artifact.name.lower().endswith(".zip"):
                with zipfile.ZipFile(archive, 'r') as zip_ref:
                    for info in zip_ref.infolist():
                        if not info.is_dir() and Path(info.filename).name in wanted:
                            with zip_ref.open(info) as src, open(binary, 'wb') as dst:
                                _copy(src, dst)
                            found = True
                            break
            else:
                with tarfile.open(archive, 'r:*') as tar_ref:
                    for member in tar_ref.getmembers():
                        if member.isfile() and Path(member.name).name in wanted:
                            with tar_ref.extractfile(member) as src, open(binary, 'wb') as dst:
                                _copy(src, dst)
                            found = True
                            break
            if not found:
                raise DownloadFailed(f"{artifact.name} does not contain a '{self.settings.binary_name}' binary")
        except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
            binary.unlink(missing_ok=True)
            raise DownloadFailed(f"Could not unpack {artifact.name}: {e}", cause=e) from e
        except DownloadFailed:
            binary.unlink(missing_ok=True)
            raise

        archive.unlink(missing_ok=True)
        return binary

    @staticmethod
    def make_executable(path: Path):
        if os.name == "nt":
            return
        mode = path.stat().st_mode
        path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def _copy(src, dst):
    while chunk := src.read(CHUNK_SIZE):
        dst.write(chunk)
