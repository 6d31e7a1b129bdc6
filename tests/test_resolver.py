"""Tests for routing plugin requests to catalog lookups."""

from __future__ import annotations

import pytest
from conftest import FakeOre

from oremon.client import CatalogClient
from oremon.errors import InvalidRequest, PluginNotFound, VersionNotFound
from oremon.resolver import (
    PluginResolution,
    VersionListResolution,
    VersionResolution,
    VersionResolver,
)


@pytest.fixture
def resolver(client: CatalogClient) -> VersionResolver:
    return VersionResolver(client, page_size=2)


def test_plugin_only_returns_summary_and_promoted(resolver: VersionResolver) -> None:
    result = resolver.resolve("nucleus")

    assert isinstance(result, PluginResolution)
    assert result.summary.plugin_id == "nucleus"
    assert result.promoted is not None
    assert result.promoted.name == "2.1.4"


def test_plugin_without_promoted_version(resolver: VersionResolver) -> None:
    result = resolver.resolve("huskycrates")

    assert isinstance(result, PluginResolution)
    assert result.promoted is None


def test_version_list_pages_through_the_catalog(
    resolver: VersionResolver, fake_ore: FakeOre
) -> None:
    result = resolver.resolve("nucleus", versions=True)

    assert isinstance(result, VersionListResolution)
    assert [v.name for v in result.versions] == ["2.1.4", "2.1.0", "2.0.0"]
    assert result.total == 3
    assert result.exhausted
    assert fake_ore.calls(r"GET /api/v2/projects/nucleus/versions") == 2


def test_version_list_honours_limit_and_offset(resolver: VersionResolver) -> None:
    result = resolver.resolve("nucleus", versions=True, limit=1, offset=1)

    assert isinstance(result, VersionListResolution)
    assert [v.name for v in result.versions] == ["2.1.0"]
    assert result.offset == 1
    assert not result.exhausted


@pytest.mark.parametrize("limit", [0, -5])
def test_non_positive_limit_still_reports_the_total(
    resolver: VersionResolver, fake_ore: FakeOre, limit: int
) -> None:
    result = resolver.resolve("nucleus", versions=True, limit=limit)

    assert isinstance(result, VersionListResolution)
    assert [v.name for v in result.versions] == ["2.1.4"]
    assert result.total == 3
    assert fake_ore.calls(r"GET /api/v2/projects/nucleus/versions") == 1


def test_version_list_offset_past_the_end(resolver: VersionResolver) -> None:
    result = resolver.resolve("nucleus", versions=True, offset=10)

    assert isinstance(result, VersionListResolution)
    assert result.versions == ()
    assert result.exhausted


def test_negative_offset(resolver: VersionResolver) -> None:
    with pytest.raises(InvalidRequest):
        resolver.resolve("nucleus", versions=True, offset=-2)


def test_concrete_version(resolver: VersionResolver) -> None:
    result = resolver.resolve("nucleus", versions=True, version="2.0.0")

    assert isinstance(result, VersionResolution)
    assert result.record.name == "2.0.0"
    assert not result.record.promoted


def test_version_without_versions_flag_is_rejected(
    resolver: VersionResolver, fake_ore: FakeOre
) -> None:
    with pytest.raises(ValueError, match="versions=True"):
        resolver.resolve("nucleus", version="2.0.0")
    assert fake_ore.requests == []


def test_catalog_errors_pass_through(resolver: VersionResolver) -> None:
    with pytest.raises(PluginNotFound):
        resolver.resolve("missing")
    with pytest.raises(PluginNotFound):
        resolver.resolve("missing", versions=True)
    with pytest.raises(VersionNotFound):
        resolver.resolve("nucleus", versions=True, version="0.0.1")
