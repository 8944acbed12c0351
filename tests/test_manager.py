"""End-to-end tests for the orchestrator."""

import asyncio
import hashlib
import os
from unittest.mock import patch

import pytest
from aiohttp import web

from suivm.core import Stage, VersionManager
from suivm.downloads import Downloader, RetryPolicy
from suivm.errors import AmbiguousSpecifier, IntegrityMismatch, NotFound, StoreError, VersionInUse
from suivm.store import StoreLock
from suivm.store import lock as lock_module
from suivm.versions.models import ReleaseAsset

from conftest import BINARY, COMMIT_26, COMMIT_27, COMMIT_MAIN, FakeDownloader

pytestmark = pytest.mark.skipif(os.name == "nt", reason="activation relies on POSIX symlinks")


@pytest.fixture
def downloader(settings):
    return FakeDownloader(settings)


@pytest.fixture
def manager(settings, catalog, linux, downloader):
    manager = VersionManager(settings, catalog=catalog, platform=linux, downloader_factory=lambda: downloader)
    manager.store.ensure_paths()
    return manager


@pytest.mark.asyncio
async def test_latest_then_tag_is_a_cache_hit(manager, downloader, settings):
    resolved = await manager.resolve_and_activate("latest")

    assert resolved.label == "v0.27.0"
    assert len(downloader.fetched) == 1
    assert downloader.fetched[0].url.endswith("/v0.27.0/sui-ubuntu-x86_64")
    assert manager.current().key == COMMIT_27
    assert manager.stage is Stage.DONE

    again = await manager.resolve_and_activate("v0.27.0")

    assert again.commit == COMMIT_27
    assert len(downloader.fetched) == 1
    assert [i.key for i in manager.list_installed()] == [COMMIT_27]
    assert (settings.bin_dir / "sui").read_bytes() == BINARY


@pytest.mark.asyncio
async def test_unknown_commit_never_downloads(manager, downloader):
    with pytest.raises(NotFound) as excinfo:
        await manager.resolve_and_activate("f" * 40)

    assert excinfo.value.stage == Stage.RESOLVING.value
    assert manager.stage is Stage.FAILED
    assert manager.failed_stage is Stage.RESOLVING
    assert downloader.fetched == []


@pytest.mark.asyncio
async def test_integrity_failure_leaves_store_untouched(manager, downloader):
    await manager.resolve_and_activate("v0.26.0")
    downloader.error = IntegrityMismatch("sui", "aa", "bb")

    with pytest.raises(IntegrityMismatch) as excinfo:
        await manager.resolve_and_activate("v0.27.0")

    assert excinfo.value.stage == Stage.FETCHING.value
    assert manager.current().key == COMMIT_26
    assert [i.key for i in manager.list_installed()] == [COMMIT_26]


@pytest.mark.asyncio
async def test_branch_switch(manager, downloader):
    resolved = await manager.resolve_and_activate("main")

    assert resolved.commit == COMMIT_MAIN
    assert downloader.fetched[0].url == f"https://builds.example/{COMMIT_MAIN}/sui-linux-x86_64"
    assert manager.current().version.label == "main"


@pytest.mark.asyncio
async def test_remove_by_label(manager, catalog):
    await manager.resolve_and_activate("v0.26.0")
    await manager.resolve_and_activate("v0.27.0")
    calls = len(catalog.calls)

    await manager.remove("v0.26.0")

    assert [i.key for i in manager.list_installed()] == [COMMIT_27]
    assert len(catalog.calls) == calls


@pytest.mark.asyncio
async def test_remove_active_version(manager):
    await manager.resolve_and_activate("v0.27.0")
    with pytest.raises(VersionInUse):
        await manager.remove("v0.27.0")


@pytest.mark.asyncio
async def test_remove_ambiguous_local_match(manager, catalog):
    await manager.resolve_and_activate("main")
    catalog.branches["main"] = "ac" * 20
    await manager.resolve_and_activate("main")

    with pytest.raises(AmbiguousSpecifier):
        await manager.remove("main")


@pytest.mark.asyncio
async def test_list_available_flags(manager):
    await manager.resolve_and_activate("v0.26.0")

    available = await manager.list_available()

    assert [a.tag for a in available] == ["v0.27.0", "v0.26.0"]
    assert available[0].flags == ["latest"]
    assert available[1].flags == ["installed", "current"]


@pytest.mark.asyncio
async def test_context_manager_closes_catalog(manager, catalog):
    async with manager:
        pass
    assert catalog.closed


@pytest.mark.asyncio
async def test_full_download_path(settings, catalog, linux, serve):
    async def binary(request):
        return web.Response(body=BINARY)

    async with serve([web.get("/sui-linux-x86_64", binary)]) as server:
        catalog.releases[1].assets = [ReleaseAsset(
            name="sui-linux-x86_64",
            browser_download_url=str(server.make_url("/sui-linux-x86_64")),
            digest=f"sha256:{hashlib.sha256(BINARY).hexdigest()}",
        )]
        retry = RetryPolicy(attempts=1)
        manager = VersionManager(settings, catalog=catalog, platform=linux,
                                 downloader_factory=lambda: Downloader(settings, retry))
        async with manager:
            resolved = await manager.resolve_and_activate("latest")

    assert resolved.commit == COMMIT_27
    assert manager.current().path.read_bytes() == BINARY
    assert list(settings.tmp_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_store_failure_is_reported_with_its_stage(manager, settings):
    await manager.resolve_and_activate("v0.26.0")

    with patch("suivm.store.version_store.os.rename", side_effect=OSError(28, "No space left on device")):
        with pytest.raises(StoreError) as excinfo:
            await manager.resolve_and_activate("v0.27.0")

    assert excinfo.value.stage == Stage.INSTALLING.value
    assert manager.failed_stage is Stage.INSTALLING
    assert manager.current().key == COMMIT_26
    assert list(settings.tmp_dir.iterdir()) == []


@pytest.mark.skipif(lock_module.fcntl is None, reason="flock is not available")
@pytest.mark.asyncio
async def test_waiting_for_the_store_lock_keeps_the_loop_running(manager, settings):
    lock = StoreLock(settings.lock_file)
    lock.acquire()
    try:
        task = asyncio.create_task(manager.resolve_and_activate("v0.27.0"))
        await asyncio.sleep(0.2)
        assert not task.done()
    finally:
        lock.release()

    resolved = await task
    assert resolved.commit == COMMIT_27


@pytest.mark.asyncio
async def test_release_installed_by_commit_is_flagged(manager):
    await manager.resolve_and_activate(COMMIT_26)

    available = await manager.list_available()

    assert manager.current().version.label is None
    assert available[1].tag == "v0.26.0"
    assert available[1].flags == ["installed", "current"]
