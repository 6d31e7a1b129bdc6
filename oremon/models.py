"""Catalog wire schemas and the typed records the engine hands out.

The wire models mirror the JSON bodies returned by the Ore v2 API. Only the
fields the engine reads are declared; anything else in a response is
ignored. Domain records (`VersionRecord`, `PluginSummary`, ...) are frozen:
the engine creates them once and never mutates them.
"""

from __future__ import annotations

import enum
import typing as t
from datetime import datetime
from pathlib import Path

import pydantic

from oremon.errors import ArchiveError, CatalogError

PluginId = str
VersionName = str

_Frozen = pydantic.ConfigDict(frozen=True, arbitrary_types_allowed=True)


def sponge_major(text: str | None) -> int | None:
    """Return the major component of a Sponge API version string.

    Examples
    --------
    >>> sponge_major("7.3.0")
    7
    >>> sponge_major("8") is None
    True
    >>> sponge_major(None) is None
    True
    """
    if not text or "." not in text:
        return None
    major, _, _ = text.partition(".")
    try:
        return int(major)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Wire schemas
# ---------------------------------------------------------------------------


class ProjectSort(enum.StrEnum):
    """Sort strategies accepted by ``GET /projects``."""

    STARS = "stars"
    DOWNLOADS = "downloads"
    VIEWS = "views"
    NEWEST = "newest"
    UPDATED = "updated"
    ONLY_RELEVANCE = "only_relevance"
    RECENT_DOWNLOADS = "recent_downloads"
    RECENT_VIEWS = "recent_views"


class Category(enum.StrEnum):
    """Project categories known to the catalog."""

    ADMIN_TOOLS = "admin_tools"
    CHAT = "chat"
    DEV_TOOLS = "dev_tools"
    ECONOMY = "economy"
    GAMEPLAY = "gameplay"
    GAMES = "games"
    PROTECTION = "protection"
    ROLE_PLAYING = "role_playing"
    WORLD_MANAGEMENT = "world_management"
    MISC = "misc"


class Pagination(pydantic.BaseModel):
    """Window metadata attached to every paged response.

    Examples
    --------
    >>> Pagination(limit=25, offset=0, count=3)
    Pagination(limit=25, offset=0, count=3)
    """

    limit: int
    offset: int
    count: int


class ProjectNamespace(pydantic.BaseModel):
    owner: str
    slug: str


class PromotedVersionTag(pydantic.BaseModel):
    name: str
    data: str | None = None
    display_data: str | None = None
    minecraft_version: str | None = None


class PromotedVersion(pydantic.BaseModel):
    """A version the catalog recommends, with the platform tags it targets."""

    version: str
    tags: list[PromotedVersionTag] = pydantic.Field(default_factory=list)

    @property
    def sponge_major(self) -> int | None:
        """Major Sponge API version this promotion targets, if tagged.

        Examples
        --------
        >>> pv = PromotedVersion(
        ...     version="2.1.4",
        ...     tags=[PromotedVersionTag(name="Sponge", display_data="7.3")],
        ... )
        >>> pv.sponge_major
        7
        """
        for tag in self.tags:
            if "Sponge" in tag.name:
                return sponge_major(tag.display_data or tag.data)
        return None


class ProjectStats(pydantic.BaseModel):
    views: int = 0
    downloads: int = 0
    recent_views: int = 0
    recent_downloads: int = 0
    stars: int = 0
    watchers: int = 0


class Project(pydantic.BaseModel):
    """Body of ``GET /projects/{plugin_id}`` and each search result."""

    plugin_id: str
    name: str
    namespace: ProjectNamespace
    promoted_versions: list[PromotedVersion] = pydantic.Field(default_factory=list)
    stats: ProjectStats = pydantic.Field(default_factory=ProjectStats)
    category: str = "misc"
    description: str | None = None
    created_at: datetime | None = None
    last_updated: datetime | None = None


class FileInfo(pydantic.BaseModel):
    name: str
    size_bytes: int = 0
    md_5_hash: str | None = None


class VersionTag(pydantic.BaseModel):
    name: str
    data: str | None = None


class VersionDependency(pydantic.BaseModel):
    plugin_id: str
    version: str | None = None


class VersionStats(pydantic.BaseModel):
    downloads: int = 0


class Version(pydantic.BaseModel):
    """Body of ``GET /projects/{plugin_id}/versions/{name}``."""

    name: str
    created_at: datetime
    description: str | None = None
    author: str | None = None
    review_state: str = "unreviewed"
    visibility: str = "public"
    file_info: FileInfo | None = None
    tags: list[VersionTag] = pydantic.Field(default_factory=list)
    dependencies: list[VersionDependency] = pydantic.Field(default_factory=list)
    stats: VersionStats = pydantic.Field(default_factory=VersionStats)


class PaginatedProjects(pydantic.BaseModel):
    pagination: Pagination
    result: list[Project]


class PaginatedVersions(pydantic.BaseModel):
    pagination: Pagination
    result: list[Version]


class Session(pydantic.BaseModel):
    """Body of ``POST /authenticate``."""

    session: str
    expires: datetime
    type: str | None = None


class PermissionCheck(pydantic.BaseModel):
    """Body of ``GET /permissions``."""

    type: str
    permissions: list[str] = pydantic.Field(default_factory=list)


# ---------------------------------------------------------------------------
# Domain records
# ---------------------------------------------------------------------------


class VersionRecord(pydantic.BaseModel):
    """One release of a plugin, as resolved by the engine."""

    model_config = _Frozen

    plugin_id: PluginId
    name: VersionName
    download_url: str
    promoted: bool = False
    published_at: datetime | None = None
    file_name: str | None = None
    md5: str | None = None
    size_bytes: int | None = None
    author: str | None = None
    review_state: str | None = None
    downloads: int = 0
    platform_tags: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()


class PluginSummary(pydantic.BaseModel):
    """A catalog project with its promoted release(s)."""

    model_config = _Frozen

    plugin_id: PluginId
    name: str
    owner: str
    slug: str
    description: str | None = None
    category: str = "misc"
    promoted: VersionRecord | None = None
    promoted_versions: tuple[PromotedVersion, ...] = ()
    stats: ProjectStats = pydantic.Field(default_factory=ProjectStats)
    last_updated: datetime | None = None

    def promoted_for_api(self, api_major: int | None) -> VersionName | None:
        """Return the promoted version targeting *api_major*, if any is tagged so."""
        if api_major is None:
            return None
        for pv in self.promoted_versions:
            if pv.sponge_major == api_major:
                return pv.version
        return None


class SearchPage(pydantic.BaseModel):
    """A window into the catalog's project listing.

    Pages are best-effort: the catalog may change between requests, so
    concatenating pages is not a consistent snapshot.
    """

    model_config = _Frozen

    plugins: tuple[PluginSummary, ...]
    offset: int
    limit: int
    total: int
    query: str | None = None
    categories: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    owner: str | None = None
    sort: ProjectSort = ProjectSort.UPDATED
    order: t.Literal["asc", "desc"] = "desc"


class VersionPage(pydantic.BaseModel):
    """A window into a plugin's version listing, newest first."""

    model_config = _Frozen

    plugin_id: PluginId
    versions: tuple[VersionRecord, ...]
    offset: int
    limit: int
    total: int


class ArchiveMetadata(pydantic.BaseModel):
    """Identity extracted from a plugin archive's descriptor entry."""

    model_config = _Frozen

    plugin_id: PluginId
    version: VersionName
    name: str | None = None
    api_major: int | None = None
    descriptor: str


class LocalArtifact(pydantic.BaseModel):
    """A plugin archive found on disk, with whatever metadata it yielded."""

    model_config = _Frozen

    path: Path
    plugin_id: PluginId | None = None
    version: VersionName | None = None
    api_major: int | None = None
    error: ArchiveError | None = None

    @property
    def parsed(self) -> bool:
        """True when both id and version were extracted."""
        return self.plugin_id is not None and self.version is not None


class Classification(enum.StrEnum):
    UP_TO_DATE = "up_to_date"
    OUTDATED = "outdated"
    UNKNOWN_TO_CATALOG = "unknown_to_catalog"
    UNPARSEABLE = "unparseable"
    LOOKUP_FAILED = "lookup_failed"


class ReconcilePolicy(enum.StrEnum):
    """Which remote version a local artifact is compared against."""

    PROMOTED = "promoted"
    LATEST = "latest"


class ReconciliationResult(pydantic.BaseModel):
    """Freshness verdict for one local artifact."""

    model_config = _Frozen

    artifact: LocalArtifact
    classification: Classification
    remote: PluginSummary | None = None
    newer: VersionName | None = None
    reference: VersionName | None = None
    error: CatalogError | None = None
