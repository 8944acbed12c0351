"""Shared fixtures: an in-memory catalog, a local HTTP server, store settings."""

import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from suivm.config import Settings
from suivm.errors import CatalogUnavailable
from suivm.store import Switcher, VersionStore
from suivm.versions.catalog import Catalog
from suivm.versions.models import GithubRelease, Platform, ReleaseAsset, ResolvedVersion, SpecifierKind

COMMIT_26 = "26" * 20
COMMIT_27 = "27" * 20
COMMIT_MAIN = "ab" * 20
BINARY = b"#!/bin/sh\necho sui\n"

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_release(tag: str, commit: Optional[str] = None, days: int = 0, prerelease: bool = False,
                 draft: bool = False, assets: Optional[List[ReleaseAsset]] = None) -> GithubRelease:
    return GithubRelease(
        tag_name=tag,
        prerelease=prerelease,
        draft=draft,
        published_at=EPOCH + timedelta(days=days),
        target_commitish=commit,
        assets=assets if assets is not None else [
            ReleaseAsset(
                name=f"sui-{tag}-ubuntu-x86_64",
                browser_download_url=f"https://downloads.example/{tag}/sui-ubuntu-x86_64",
                size=len(BINARY),
            ),
            ReleaseAsset(
                name=f"sui-{tag}-macos-arm64",
                browser_download_url=f"https://downloads.example/{tag}/sui-macos-arm64",
            ),
        ],
    )


class FakeCatalog(Catalog):
    """Catalog answering from dictionaries and recording every query."""

    def __init__(self, releases: Optional[List[GithubRelease]] = None, tags: Optional[Dict[str, str]] = None,
                 branches: Optional[Dict[str, str]] = None, commits: Optional[List[str]] = None):
        self.releases = releases or []
        self.tags = tags or {}
        self.branches = branches or {}
        self.commits = commits or []
        self.calls: List[str] = []
        self.unavailable = False
        self.closed = False

    def _record(self, call: str):
        self.calls.append(call)
        if self.unavailable:
            raise CatalogUnavailable("catalog is down")

    async def list_releases(self) -> List[GithubRelease]:
        self._record("list_releases")
        return list(self.releases)

    async def tag_commit(self, tag: str) -> Optional[str]:
        self._record(f"tag_commit:{tag}")
        return self.tags.get(tag)

    async def branch_tip(self, branch: str) -> Optional[str]:
        self._record(f"branch_tip:{branch}")
        return self.branches.get(branch)

    async def match_commits(self, prefix: str) -> List[str]:
        self._record(f"match_commits:{prefix}")
        return [c for c in self.commits if c.startswith(prefix)]

    async def close(self):
        self.closed = True


class FakeDownloader:
    """Stands in for Downloader: writes a payload to the scratch area."""

    def __init__(self, settings: Settings, payload: bytes = BINARY, error: Optional[Exception] = None):
        self.settings = settings
        self.payload = payload
        self.error = error
        self.fetched = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        pass

    async def fetch(self, artifact):
        self.fetched.append(artifact)
        if self.error is not None:
            raise self.error
        self.settings.tmp_dir.mkdir(parents=True, exist_ok=True)
        path = self.settings.tmp_dir / f"{artifact.version.short}.part"
        path.write_bytes(self.payload)
        path.chmod(0o755)
        return path


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        home=tmp_path / ".suivm",
        retry_base_delay=0,
        lock_timeout=1.0,
        commit_artifact_url="https://builds.example/{commit}/sui-{os}-{arch}",
    )


@pytest.fixture
def linux() -> Platform:
    return Platform(os="linux", arch="x86_64")


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog(
        releases=[
            make_release("v0.26.0", COMMIT_26, days=1),
            make_release("v0.27.0", COMMIT_27, days=2),
        ],
        tags={"v0.26.0": COMMIT_26, "v0.27.0": COMMIT_27},
        branches={"main": COMMIT_MAIN},
        commits=[COMMIT_26, COMMIT_27, COMMIT_MAIN],
    )


@pytest.fixture
def store(settings) -> VersionStore:
    store = VersionStore(settings)
    store.ensure_paths()
    return store


@pytest.fixture
def switcher(store) -> Switcher:
    return Switcher(store)


@pytest.fixture
def scratch_binary(settings):
    """Factory for executable files in the scratch area, as fetch leaves them."""
    def make(name: str = "download.part", payload: bytes = BINARY, mode: int = 0o755):
        settings.tmp_dir.mkdir(parents=True, exist_ok=True)
        path = settings.tmp_dir / name
        path.write_bytes(payload)
        os.chmod(path, mode)
        return path
    return make


@pytest.fixture
def tagged():
    def make(tag: str, commit: str) -> ResolvedVersion:
        return ResolvedVersion(commit=commit, label=tag, kind=SpecifierKind.TAG)
    return make


@asynccontextmanager
async def _serve(routes):
    app = web.Application()
    app.router.add_routes(routes)
    server = TestServer(app)
    await server.start_server()
    try:
        yield server
    finally:
        await server.close()


@pytest.fixture
def serve():
    """``async with serve(routes) as server`` runs a local aiohttp app."""
    return _serve
