"""Typed access to the Ore v2 read API.

`CatalogClient` owns the HTTP session, pagination parameters and the
translation of transport and HTTP failures into the `oremon.errors`
taxonomy. All requests go through one transport method wrapped in
`oremon.retry.retrying`, so retry policy lives in exactly one place.

Anonymous use is the default: without an API key the client negotiates a
public session, which is enough for every read operation. Only the
operations named in `PRIVILEGED_OPERATIONS` need a key.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
import typing as t
from datetime import UTC, datetime, timedelta

import httpx
import pydantic

from oremon.config import Settings
from oremon.errors import (
    AuthenticationRequired,
    CatalogUnavailable,
    DownloadFailed,
    InvalidRequest,
    NotFound,
    PluginNotFound,
    TransientError,
    Unreachable,
    VersionNotFound,
)
from oremon.models import (
    PaginatedProjects,
    PaginatedVersions,
    PermissionCheck,
    PluginSummary,
    Project,
    ProjectSort,
    SearchPage,
    Session,
    Version,
    VersionPage,
    VersionRecord,
)
from oremon.retry import RetryPolicy, retrying

logger = logging.getLogger(__name__)

MIN_LIMIT = 1
MAX_LIMIT = 25
"""Largest page the catalog serves; bigger limits are clamped to it."""

PRIVILEGED_OPERATIONS = frozenset({"permissions"})
"""Client operations that refuse to run without a configured API key."""

_M = t.TypeVar("_M", bound=pydantic.BaseModel)
Params = list[tuple[str, str]]


class Catalog(t.Protocol):
    """The catalog operations the resolver, reconciler and installer rely on."""

    def get_plugin(self, plugin_id: str) -> PluginSummary: ...

    def list_versions(
        self,
        plugin_id: str,
        *,
        tags: t.Sequence[str] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> VersionPage: ...

    def get_version(self, plugin_id: str, version: str) -> VersionRecord: ...

    def download(self, record: VersionRecord, sink: t.BinaryIO) -> str: ...


def clamp_limit(limit: int | None) -> int:
    """Clamp a requested page size into the supported range.

    Examples
    --------
    >>> clamp_limit(None), clamp_limit(0), clamp_limit(10), clamp_limit(500)
    (25, 1, 10, 25)
    """
    if limit is None:
        return MAX_LIMIT
    return max(MIN_LIMIT, min(MAX_LIMIT, limit))


def check_offset(offset: int) -> int:
    if offset < 0:
        msg = f"offset must be non-negative, got {offset}"
        raise InvalidRequest(msg)
    return offset


class CatalogClient:
    """Client for the catalog's read endpoints.

    Parameters
    ----------
    settings : Settings, optional
        Endpoint, credentials, timeouts and retry bound.
    http : httpx.Client, optional
        Pre-built HTTP client. Tests pass one backed by
        ``httpx.MockTransport``; otherwise one is created from *settings*.
    """

    def __init__(self, settings: Settings | None = None, *, http: httpx.Client | None = None):
        self.settings = settings or Settings()
        self.retry_policy = RetryPolicy(
            retries=self.settings.retries, backoff=self.settings.backoff
        )
        self._owns_http = http is None
        self._http = http or httpx.Client(
            timeout=httpx.Timeout(self.settings.timeout, connect=self.settings.connect_timeout),
            follow_redirects=True,
        )
        self._session: Session | None = None
        self._session_lock = threading.Lock()
        self._summaries: dict[str, PluginSummary] = {}

    def __enter__(self) -> CatalogClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    # ------------------------------------------------------------------
    # Session handling
    # ------------------------------------------------------------------

    def _auth_header(self) -> str:
        with self._session_lock:
            session = self._session
            if session is None or _expired(session):
                session = self._session = self._authenticate()
            return f'OreApi session="{session.session}"'

    def _authenticate(self) -> Session:
        key = self.settings.api_key
        header = f'OreApi apikey="{key}"' if key else "OreApi"
        logger.debug("authenticating (%s)", "api key" if key else "anonymous")
        resp = self._send("POST", f"{self.settings.base_url}/authenticate", auth=header)
        return self._parse(resp, Session)

    def _drop_session(self) -> None:
        with self._session_lock:
            self._session = None

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self, auth: str | None) -> dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": self.settings.user_agent}
        if auth is not None:
            headers["Authorization"] = auth
        return headers

    @retrying
    def _send(
        self,
        method: str,
        url: str,
        *,
        auth: str | None = None,
        params: Params | None = None,
    ) -> httpx.Response:
        """Issue one request and classify the outcome.

        Transport failures and running past ``Settings.timeout`` become
        `Unreachable`, and 5xx responses become `CatalogUnavailable`; both are
        retried by the decorator. Other failures map to typed, non-retried
        errors.
        """
        where = f"{method} {url}"
        deadline = time.monotonic() + self.settings.timeout
        try:
            with self._http.stream(
                method, url, params=params, headers=self._headers(auth)
            ) as streamed:
                body = b"".join(_within(streamed.iter_raw(), deadline, where))
        except httpx.TransportError as exc:
            msg = f"{where}: {type(exc).__name__}: {exc}"
            raise Unreachable(msg) from exc
        resp = httpx.Response(
            streamed.status_code,
            headers=streamed.headers,
            content=body,
            request=streamed.request,
        )
        raise_for_status(resp)
        return resp

    def _get(self, path: str, params: Params | None = None) -> httpx.Response:
        url = f"{self.settings.base_url}{path}"
        try:
            return self._send("GET", url, auth=self._auth_header(), params=params)
        except AuthenticationRequired:
            # An expired or revoked session: negotiate a fresh one once.
            logger.debug("session refused for %s, re-authenticating", path)
            self._drop_session()
            return self._send("GET", url, auth=self._auth_header(), params=params)

    @staticmethod
    def _parse(resp: httpx.Response, model: type[_M]) -> _M:
        try:
            return model.model_validate(resp.json())
        except (ValueError, pydantic.ValidationError) as exc:
            msg = f"{resp.request.url}: unexpected response body ({exc})"
            raise CatalogUnavailable(msg, resp.status_code) from exc

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def search(
        self,
        query: str | None = None,
        *,
        categories: t.Sequence[str] = (),
        tags: t.Sequence[str] = (),
        owner: str | None = None,
        sort: ProjectSort | None = None,
        order: t.Literal["asc", "desc"] = "desc",
        relevance: bool | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> SearchPage:
        """Return one page of catalog projects.

        ``limit`` is clamped into ``[MIN_LIMIT, MAX_LIMIT]``; a negative
        ``offset`` raises `InvalidRequest`. Without a sort the catalog's
        "latest updated" ordering is used. An offset past the end yields an
        empty page.
        """
        limit = clamp_limit(limit)
        offset = check_offset(offset)
        sort = sort or ProjectSort.UPDATED
        params: Params = []
        if query:
            params.append(("q", query))
        params.extend(("categories", str(c)) for c in categories)
        params.extend(("tags", tag) for tag in tags)
        if owner:
            params.append(("owner", owner))
        params.append(("sort", sort.value))
        if relevance is not None:
            params.append(("relevance", "true" if relevance else "false"))
        params += [("limit", str(limit)), ("offset", str(offset))]

        page = self._parse(self._get("/projects", params), PaginatedProjects)
        plugins = [self._summarize(p) for p in page.result]
        if order == "asc":
            plugins.reverse()
        return SearchPage(
            plugins=tuple(plugins),
            offset=page.pagination.offset,
            limit=page.pagination.limit,
            total=page.pagination.count,
            query=query,
            categories=tuple(str(c) for c in categories),
            tags=tuple(tags),
            owner=owner,
            sort=sort,
            order=order,
        )

    def get_plugin(self, plugin_id: str) -> PluginSummary:
        """Fetch one project; raises `PluginNotFound` for an unknown id."""
        try:
            resp = self._get(f"/projects/{plugin_id}")
        except NotFound as exc:
            raise PluginNotFound(plugin_id) from exc
        return self._summarize(self._parse(resp, Project))

    def list_versions(
        self,
        plugin_id: str,
        *,
        tags: t.Sequence[str] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> VersionPage:
        """Return one page of a plugin's versions in catalog order (newest first)."""
        limit = clamp_limit(limit)
        offset = check_offset(offset)
        summary = self._summary(plugin_id)
        params: Params = [("tags", tag) for tag in tags]
        params += [("limit", str(limit)), ("offset", str(offset))]
        try:
            resp = self._get(f"/projects/{plugin_id}/versions", params)
        except NotFound as exc:
            raise PluginNotFound(plugin_id) from exc
        page = self._parse(resp, PaginatedVersions)
        return VersionPage(
            plugin_id=plugin_id,
            versions=tuple(self._record(summary, v) for v in page.result),
            offset=page.pagination.offset,
            limit=page.pagination.limit,
            total=page.pagination.count,
        )

    def get_version(self, plugin_id: str, version: str) -> VersionRecord:
        """Fetch one version.

        Raises `PluginNotFound` when the plugin is unknown and
        `VersionNotFound` when the plugin exists but the version does not.
        """
        summary = self._summary(plugin_id)
        try:
            resp = self._get(f"/projects/{plugin_id}/versions/{version}")
        except NotFound as exc:
            raise VersionNotFound(plugin_id, version) from exc
        return self._record(summary, self._parse(resp, Version))

    def permissions(self, plugin_id: str | None = None) -> PermissionCheck:
        """Report what the configured API key may do, globally or on one plugin.

        This is a privileged operation: without an API key it raises
        `AuthenticationRequired` before contacting the catalog.
        """
        if not self.settings.api_key:
            msg = "the 'permissions' operation requires an API key"
            raise AuthenticationRequired(msg)
        params: Params = []
        if plugin_id is not None:
            summary = self._summary(plugin_id)
            params = [("projectOwner", summary.owner), ("projectSlug", summary.slug)]
        return self._parse(self._get("/permissions", params), PermissionCheck)

    def download(self, record: VersionRecord, sink: t.BinaryIO) -> str:
        """Stream a version's artifact into *sink* and return its MD5 hex digest.

        *sink* must be seekable: a retried attempt rewinds and truncates it.
        Transport and server failures, and transfers running past
        ``Settings.download_timeout``, surface as `DownloadFailed` once the
        retry bound is spent; a 404 surfaces as `VersionNotFound`.
        """
        try:
            return self._download(record.download_url, sink)
        except NotFound as exc:
            raise VersionNotFound(record.plugin_id, record.name) from exc
        except (TransientError, InvalidRequest, AuthenticationRequired) as exc:
            raise DownloadFailed(record.plugin_id, record.name, str(exc)) from exc

    @retrying
    def _download(self, url: str, sink: t.BinaryIO) -> str:
        sink.seek(0)
        sink.truncate()
        digest = hashlib.md5()  # noqa: S324
        headers = self._headers(self._auth_header())
        headers["Accept"] = "application/java-archive, application/octet-stream, */*"
        deadline = time.monotonic() + self.settings.download_timeout
        try:
            with self._http.stream("GET", url, headers=headers) as resp:
                raise_for_status(resp)
                for chunk in _within(resp.iter_bytes(), deadline, f"GET {url}"):
                    digest.update(chunk)
                    sink.write(chunk)
        except httpx.TransportError as exc:
            msg = f"GET {url}: {type(exc).__name__}: {exc}"
            raise Unreachable(msg) from exc
        logger.debug("downloaded %s", url)
        return digest.hexdigest()

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def _summary(self, plugin_id: str) -> PluginSummary:
        cached = self._summaries.get(plugin_id)
        return cached if cached is not None else self.get_plugin(plugin_id)

    def download_url(self, owner: str, slug: str, version: str) -> str:
        return f"{self.settings.site_url}/{owner}/{slug}/versions/{version}/download"

    def _summarize(self, project: Project) -> PluginSummary:
        promoted = None
        if project.promoted_versions:
            first = project.promoted_versions[0]
            promoted = VersionRecord(
                plugin_id=project.plugin_id,
                name=first.version,
                download_url=self.download_url(
                    project.namespace.owner, project.namespace.slug, first.version
                ),
                promoted=True,
                platform_tags=tuple(
                    f"{tag.name} {tag.display_data or tag.data or ''}".strip()
                    for tag in first.tags
                ),
            )
        summary = PluginSummary(
            plugin_id=project.plugin_id,
            name=project.name,
            owner=project.namespace.owner,
            slug=project.namespace.slug,
            description=project.description,
            category=project.category,
            promoted=promoted,
            promoted_versions=tuple(project.promoted_versions),
            stats=project.stats,
            last_updated=project.last_updated,
        )
        self._summaries[project.plugin_id] = summary
        return summary

    def _record(self, summary: PluginSummary, version: Version) -> VersionRecord:
        promoted_names = {pv.version for pv in summary.promoted_versions}
        info = version.file_info
        return VersionRecord(
            plugin_id=summary.plugin_id,
            name=version.name,
            download_url=self.download_url(summary.owner, summary.slug, version.name),
            promoted=version.name in promoted_names,
            published_at=version.created_at,
            file_name=info.name if info else None,
            md5=info.md_5_hash if info else None,
            size_bytes=info.size_bytes if info else None,
            author=version.author,
            review_state=version.review_state,
            downloads=version.stats.downloads,
            platform_tags=tuple(f"{tag.name} {tag.data or ''}".strip() for tag in version.tags),
            dependencies=tuple(
                f"{d.plugin_id}@{d.version}" if d.version else d.plugin_id
                for d in version.dependencies
            ),
        )


def _within(chunks: t.Iterator[bytes], deadline: float, where: str) -> t.Iterator[bytes]:
    """Pass *chunks* through, raising `Unreachable` once *deadline* has passed."""
    for chunk in chunks:
        if time.monotonic() > deadline:
            msg = f"{where}: no complete response within the request timeout"
            raise Unreachable(msg)
        yield chunk


def _expired(session: Session) -> bool:
    expires = session.expires
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=UTC)
    return expires <= datetime.now(UTC) + timedelta(seconds=5)


def raise_for_status(resp: httpx.Response) -> None:
    """Translate an HTTP error status into the catalog error taxonomy."""
    status = resp.status_code
    if status < 400:
        return
    where = f"{resp.request.method} {resp.request.url}"
    if status >= 500:
        msg = f"{where}: catalog unavailable (HTTP {status})"
        raise CatalogUnavailable(msg, status)
    if status in (401, 403):
        msg = f"{where}: not authorized (HTTP {status})"
        raise AuthenticationRequired(msg)
    if status == 404:
        msg = f"{where}: not found"
        raise NotFound(msg)
    msg = f"{where}: request rejected (HTTP {status})"
    raise InvalidRequest(msg)
