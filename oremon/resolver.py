"""Route a plugin request to exactly one catalog lookup shape.

The three shapes are:

``(plugin_id)``
    Project summary and its promoted version (possibly none).
``(plugin_id, versions=True)``
    The version list, paged transparently.
``(plugin_id, versions=True, version=name)``
    One concrete version.

Catalog errors (`PluginNotFound`, `VersionNotFound`, ...) pass through
unchanged. A version name without ``versions=True`` is a caller error and
raises `ValueError`.
"""

from __future__ import annotations

import logging
import typing as t

import pydantic

from oremon.client import MAX_LIMIT, MIN_LIMIT, Catalog, check_offset
from oremon.models import PluginSummary, VersionRecord

logger = logging.getLogger(__name__)


class PluginResolution(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(frozen=True)

    summary: PluginSummary
    promoted: VersionRecord | None


class VersionListResolution(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(frozen=True)

    plugin_id: str
    versions: tuple[VersionRecord, ...]
    offset: int
    total: int

    @property
    def exhausted(self) -> bool:
        """True when no versions exist past this window."""
        return self.offset + len(self.versions) >= self.total


class VersionResolution(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(frozen=True)

    record: VersionRecord


Resolution = t.Union[PluginResolution, VersionListResolution, VersionResolution]


class VersionResolver:
    """Pure routing layer over a `Catalog`."""

    def __init__(self, catalog: Catalog, *, page_size: int = MAX_LIMIT):
        self.catalog = catalog
        self.page_size = page_size

    def resolve(
        self,
        plugin_id: str,
        *,
        versions: bool = False,
        version: str | None = None,
        limit: int | None = None,
        offset: int = 0,
        tags: t.Sequence[str] = (),
    ) -> Resolution:
        if version is not None and not versions:
            msg = "a version name can only be resolved together with versions=True"
            raise ValueError(msg)
        if version is not None:
            return VersionResolution(record=self.catalog.get_version(plugin_id, version))
        if versions:
            return self.list_all(plugin_id, limit=limit, offset=offset, tags=tags)
        summary = self.catalog.get_plugin(plugin_id)
        return PluginResolution(summary=summary, promoted=summary.promoted)

    def list_all(
        self,
        plugin_id: str,
        *,
        limit: int | None = None,
        offset: int = 0,
        tags: t.Sequence[str] = (),
    ) -> VersionListResolution:
        """Collect versions page by page until *limit* is met or the catalog runs out.

        ``limit=None`` means every version from *offset* onwards; limits below
        `MIN_LIMIT` are raised to it. Because the catalog can change between page
        requests the result is best-effort.
        """
        start = check_offset(offset)
        if limit is not None:
            limit = max(MIN_LIMIT, limit)
        collected: list[VersionRecord] = []
        total = 0
        cursor = start
        while limit is None or len(collected) < limit:
            want = self.page_size if limit is None else min(self.page_size, limit - len(collected))
            page = self.catalog.list_versions(plugin_id, tags=tags, limit=want, offset=cursor)
            total = page.total
            collected.extend(page.versions)
            cursor += len(page.versions)
            logger.debug("%s: %d of %d version(s) fetched", plugin_id, cursor, total)
            if not page.versions or cursor >= total:
                break
        if limit is not None:
            del collected[limit:]
        return VersionListResolution(
            plugin_id=plugin_id, versions=tuple(collected), offset=start, total=total
        )
