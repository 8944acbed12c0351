"""Tests for specifier classification and platform detection."""

import pytest

from suivm.versions.models import Platform, ReleaseAsset, SpecifierKind
from suivm.versions.platforms import detect_platform, matching_assets
from suivm.versions.specifier import classify, is_ref_name


def test_latest_is_a_keyword_first():
    assert classify("latest")[0] is SpecifierKind.KEYWORD
    assert classify("LATEST")[0] is SpecifierKind.KEYWORD


def test_hex_string_is_tag_branch_and_commit_in_that_order():
    assert classify("deadbeef") == [SpecifierKind.TAG, SpecifierKind.BRANCH, SpecifierKind.COMMIT]


def test_release_tag_is_not_a_commit():
    assert classify("devnet-v1.2.3") == [SpecifierKind.TAG, SpecifierKind.BRANCH]


def test_short_hex_is_not_a_commit_prefix():
    assert SpecifierKind.COMMIT not in classify("abc")


@pytest.mark.parametrize("value", ["", "a..b", "feature/", "-x", "has space", "x.lock", "a@{1}", ".hidden"])
def test_invalid_ref_names(value):
    assert not is_ref_name(value)
    assert SpecifierKind.TAG not in classify(value)


def test_branch_with_slashes_is_valid():
    assert is_ref_name("releases/sui-v1.20.0-release")


@pytest.mark.parametrize("system,machine,expected", [
    ("Linux", "x86_64", "linux-x86_64"),
    ("Darwin", "arm64", "macos-aarch64"),
    ("Windows", "AMD64", "windows-x86_64"),
])
def test_detect_platform(system, machine, expected):
    assert detect_platform(system, machine).key == expected


def test_matching_assets_skips_checksums_and_other_platforms():
    assets = [
        ReleaseAsset(name="sui-mainnet-v1.0.0-ubuntu-x86_64.tgz", browser_download_url="u1"),
        ReleaseAsset(name="sui-mainnet-v1.0.0-ubuntu-x86_64.tgz.sha256", browser_download_url="u2"),
        ReleaseAsset(name="sui-mainnet-v1.0.0-ubuntu-x86_64", browser_download_url="u3"),
        ReleaseAsset(name="sui-mainnet-v1.0.0-macos-arm64.tgz", browser_download_url="u4"),
        ReleaseAsset(name="sui-mainnet-v1.0.0-windows-x86_64.tgz", browser_download_url="u5"),
    ]
    found = matching_assets(assets, Platform(os="linux", arch="x86_64"))
    assert [a.browser_download_url for a in found] == ["u3", "u1"]


def test_windows_does_not_match_darwin_assets():
    assets = [ReleaseAsset(name="sui-darwin-x86_64", browser_download_url="u")]
    assert matching_assets(assets, Platform(os="windows", arch="x86_64")) == []
