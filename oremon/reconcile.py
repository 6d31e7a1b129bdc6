"""Compare local plugin archives against the catalog.

Each distinct plugin id is looked up once per `Reconciler.reconcile` call,
with a bounded number of lookups in flight. Artifacts without an id and a
version never reach the network.

Examples
--------
>>> from pathlib import Path
>>> from oremon.client import CatalogClient
>>> from oremon.errors import MetadataNotFound
>>> broken = LocalArtifact(path=Path("x.jar"), error=MetadataNotFound("x.jar", "no descriptor"))
>>> with CatalogClient() as client:
...     Reconciler(client).reconcile([broken])[0].classification
<Classification.UNPARSEABLE: 'unparseable'>
"""

from __future__ import annotations

import logging
import typing as t
from concurrent.futures import ThreadPoolExecutor

from oremon.client import Catalog
from oremon.errors import CatalogError, PluginNotFound
from oremon.models import (
    Classification,
    LocalArtifact,
    PluginSummary,
    ReconcilePolicy,
    ReconciliationResult,
    VersionName,
)

logger = logging.getLogger(__name__)


class _Lookup(t.NamedTuple):
    summary: PluginSummary | None
    latest: VersionName | None = None
    error: CatalogError | None = None


class Reconciler:
    """Classify local artifacts as up to date, outdated, unknown or unparseable.

    Parameters
    ----------
    catalog : Catalog
        Source of remote truth.
    policy : ReconcilePolicy
        ``promoted`` compares against the catalog's recommended version
        (preferring one tagged for the artifact's Sponge API major);
        ``latest`` compares against the newest listed version.
    max_workers : int
        Upper bound on concurrent catalog lookups.
    """

    def __init__(
        self,
        catalog: Catalog,
        *,
        policy: ReconcilePolicy = ReconcilePolicy.PROMOTED,
        max_workers: int = 4,
    ):
        self.catalog = catalog
        self.policy = policy
        self.max_workers = max(1, max_workers)

    def reconcile(self, artifacts: t.Iterable[LocalArtifact]) -> list[ReconciliationResult]:
        """Return one result per artifact, in input order."""
        items = list(artifacts)
        ids = list(dict.fromkeys(a.plugin_id for a in items if a.parsed and a.plugin_id))
        lookups = self._lookup_all(ids)
        return [self._classify(a, lookups) for a in items]

    def _lookup_all(self, ids: list[str]) -> dict[str, _Lookup]:
        if not ids:
            return {}
        if len(ids) == 1 or self.max_workers == 1:
            return {pid: self._lookup(pid) for pid in ids}
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(ids))) as pool:
            return dict(zip(ids, pool.map(self._lookup, ids)))

    def _lookup(self, plugin_id: str) -> _Lookup:
        try:
            summary = self.catalog.get_plugin(plugin_id)
            latest = None
            if self.policy is ReconcilePolicy.LATEST:
                page = self.catalog.list_versions(plugin_id, limit=1)
                latest = page.versions[0].name if page.versions else None
        except PluginNotFound as exc:
            logger.info("%s is not in the catalog", plugin_id)
            return _Lookup(None, error=exc)
        except CatalogError as exc:
            logger.warning("lookup of %s failed: %s", plugin_id, exc)
            return _Lookup(None, error=exc)
        return _Lookup(summary, latest)

    def reference_version(self, artifact: LocalArtifact, lookup: _Lookup) -> VersionName | None:
        """The remote version *artifact* should match under the active policy."""
        if self.policy is ReconcilePolicy.LATEST:
            return lookup.latest
        summary = lookup.summary
        if summary is None:
            return None
        tagged = summary.promoted_for_api(artifact.api_major)
        if tagged is not None:
            return tagged
        return summary.promoted.name if summary.promoted else None

    def _classify(
        self, artifact: LocalArtifact, lookups: dict[str, _Lookup]
    ) -> ReconciliationResult:
        if not artifact.parsed or artifact.plugin_id is None:
            return ReconciliationResult(
                artifact=artifact, classification=Classification.UNPARSEABLE
            )

        lookup = lookups[artifact.plugin_id]
        if isinstance(lookup.error, PluginNotFound):
            return ReconciliationResult(
                artifact=artifact, classification=Classification.UNKNOWN_TO_CATALOG
            )
        if lookup.error is not None:
            return ReconciliationResult(
                artifact=artifact,
                classification=Classification.LOOKUP_FAILED,
                error=lookup.error,
            )

        reference = self.reference_version(artifact, lookup)
        if reference is None or reference == artifact.version:
            classification, newer = Classification.UP_TO_DATE, None
        else:
            classification, newer = Classification.OUTDATED, reference
        return ReconciliationResult(
            artifact=artifact,
            classification=classification,
            remote=lookup.summary,
            newer=newer,
            reference=reference,
        )
