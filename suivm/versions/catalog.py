"""Release catalog clients.

The catalog is the remote source of truth for release tags, branch tips and
commits. ``GithubCatalog`` talks to the GitHub REST API; anything else that
answers the same four questions can stand in for it.
"""

import asyncio
import logging
from typing import Dict, List, Optional
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from ..config import Settings
from ..errors import AmbiguousSpecifier, CatalogUnavailable
from ..utils import AsyncHTTPClient
from .models import GithubRelease

logger = logging.getLogger(__name__)


class Catalog:
    """Read-only view of the upstream release catalog."""

    async def list_releases(self) -> List[GithubRelease]:
        raise NotImplementedError

    async def tag_commit(self, tag: str) -> Optional[str]:
        """Full commit hash the tag points at, None if the tag is unknown."""
        raise NotImplementedError

    async def branch_tip(self, branch: str) -> Optional[str]:
        """Current tip commit of ``branch``, None if there is no such branch."""
        raise NotImplementedError

    async def match_commits(self, prefix: str) -> List[str]:
        """Full hashes of every commit starting with ``prefix``."""
        raise NotImplementedError

    async def close(self):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


class GithubCatalog(Catalog):
    PER_PAGE = 100
    MAX_PAGES = 20

    def __init__(self, settings: Settings, http: Optional[AsyncHTTPClient] = None):
        self.settings = settings
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": settings.user_agent,
        }
        if settings.github_token:
            headers["Authorization"] = f"Bearer {settings.github_token}"
        self.http = http or AsyncHTTPClient(headers=headers, timeout=settings.request_timeout)
        self._releases: Optional[List[GithubRelease]] = None
        self._tag_commits: Dict[str, str] = {}

    async def close(self):
        await self.http.close()

    async def _get(self, path: str, params: Optional[Dict] = None, missing=(404,)):
        """GET a repo API path; statuses in ``missing`` come back as None."""
        url = f"{self.settings.repo_api_url}/{path}" if path else self.settings.repo_api_url
        try:
            return await self.http.get(url, params=params)
        except aiohttp.ClientResponseError as e:
            if e.status == 422 and "ambiguous" in (e.message or "").lower():
                raise AmbiguousSpecifier(path.rsplit("/", 1)[-1], []) from e
            if e.status in missing:
                logger.debug("Catalog answered %s for %s", e.status, url)
                return None
            raise CatalogUnavailable(f"Catalog request {url} failed with HTTP {e.status}: {e.message}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CatalogUnavailable(f"Catalog unreachable at {url}: {e or type(e).__name__}") from e
        except ValueError as e:
            raise CatalogUnavailable(f"Catalog returned malformed JSON for {url}") from e

    async def list_releases(self) -> List[GithubRelease]:
        # Tags are immutable, so the list is fetched once per catalog instance
        if self._releases is not None:
            return self._releases

        releases: List[GithubRelease] = []
        for page in range(1, self.MAX_PAGES + 1):
            data = await self._get("releases", params={"per_page": self.PER_PAGE, "page": page})
            if not isinstance(data, list):
                raise CatalogUnavailable("Catalog returned an unexpected release listing")
            try:
                releases.extend(GithubRelease(**item) for item in data)
            except (ValidationError, TypeError) as e:
                raise CatalogUnavailable(f"Catalog returned malformed release data: {e}") from e
            if len(data) < self.PER_PAGE:
                break

        logger.debug("Fetched %d releases from %s", len(releases), self.settings.repo_api_url)
        self._releases = releases
        return releases

    async def tag_commit(self, tag: str) -> Optional[str]:
        if tag in self._tag_commits:
            return self._tag_commits[tag]
        data = await self._get(f"commits/tags/{quote(tag, safe='')}", missing=(404, 422))
        sha = self._sha_of(data)
        if sha:
            self._tag_commits[tag] = sha
        return sha

    async def branch_tip(self, branch: str) -> Optional[str]:
        data = await self._get(f"branches/{quote(branch, safe='')}")
        if data is None:
            return None
        commit = data.get("commit") if isinstance(data, dict) else None
        return self._sha_of(commit)

    async def match_commits(self, prefix: str) -> List[str]:
        prefix = prefix.lower()
        data = await self._get(f"commits/{prefix}", missing=(404, 422))
        sha = self._sha_of(data)
        # A hex-looking branch or tag name would also answer; only keep real prefixes
        if sha and sha.startswith(prefix):
            return [sha]
        return []

    @staticmethod
    def _sha_of(data) -> Optional[str]:
        if not isinstance(data, dict):
            return None
        sha = data.get("sha")
        if not isinstance(sha, str):
            raise CatalogUnavailable("Catalog returned a commit without a hash")
        return sha.lower()
