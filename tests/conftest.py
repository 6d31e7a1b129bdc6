"""Shared fixtures: real jar files on disk and a fake Ore catalog over httpx."""

from __future__ import annotations

import collections
import hashlib
import io
import json
import re
import typing as t
import zipfile
from pathlib import Path

import httpx
import pytest

from oremon.client import CatalogClient
from oremon.config import Settings

BASE_URL = "https://ore.test/api/v2"
SITE_URL = "https://ore.test"
TIMESTAMP = "2023-05-01T12:00:00Z"


def jar_bytes(
    plugin_id: str | None = None,
    version: str | None = None,
    *,
    descriptor: str = "mcmod.info",
    api: str | None = "7.3",
    raw: bytes | str | None = None,
) -> bytes:
    """Build a jar in memory with a descriptor entry and some filler classes."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("com/example/Main.class", b"\xca\xfe\xba\xbe" + b"\x00" * 64)
        if raw is not None:
            zf.writestr(descriptor, raw)
        elif plugin_id is not None:
            if descriptor == "META-INF/sponge_plugins.json":
                deps = [{"id": "spongeapi", "version": f"{api}.0"}] if api else []
                body: object = {
                    "plugins": [{"id": plugin_id, "version": version, "dependencies": deps}]
                }
            else:
                deps = [f"spongeapi@{api}"] if api else []
                body = [{"modid": plugin_id, "name": plugin_id.title(), "version": version,
                         "dependencies": deps, "requiredMods": deps}]
            zf.writestr(descriptor, json.dumps(body))
    return buf.getvalue()


def write_jar(
    path: Path, plugin_id: str | None = None, version: str | None = None, **kw: t.Any
) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(jar_bytes(plugin_id, version, **kw))
    return path


class FakeOre:
    """In-memory Ore v2 API for `httpx.MockTransport`.

    ``failures`` holds outcomes (an HTTP status or an exception) consumed by
    the next non-authentication requests, oldest first.
    """

    def __init__(self) -> None:
        self.projects: dict[str, dict[str, t.Any]] = {}
        self.versions: dict[str, list[dict[str, t.Any]]] = {}
        self.artifacts: dict[tuple[str, str], bytes] = {}
        self.requests: list[httpx.Request] = []
        self.failures: collections.deque[int | Exception] = collections.deque()
        self.session_counter = 0
        self.expire_sessions = False

    def add_plugin(
        self,
        plugin_id: str,
        versions: t.Sequence[str],
        *,
        promoted: t.Sequence[str] = (),
        owner: str = "Owner",
        api: str = "7.3",
    ) -> None:
        """Register a plugin; *versions* are newest first."""
        slug = plugin_id.title()
        self.projects[plugin_id] = {
            "plugin_id": plugin_id,
            "name": slug,
            "namespace": {"owner": owner, "slug": slug},
            "promoted_versions": [
                {
                    "version": v,
                    "tags": [{"name": "Sponge", "data": f"{api}.0", "display_data": api}],
                }
                for v in promoted
            ],
            "stats": {"views": 10, "downloads": 100, "stars": 5},
            "category": "admin_tools",
            "description": f"The {slug} plugin",
            "created_at": TIMESTAMP,
            "last_updated": TIMESTAMP,
        }
        self.versions[plugin_id] = []
        for name in versions:
            data = jar_bytes(plugin_id, name, api=api)
            self.artifacts[(plugin_id, name)] = data
            self.versions[plugin_id].append(
                {
                    "name": name,
                    "created_at": TIMESTAMP,
                    "author": owner,
                    "review_state": "reviewed",
                    "file_info": {
                        "name": f"{slug}-{name}.jar",
                        "size_bytes": len(data),
                        "md_5_hash": hashlib.md5(data).hexdigest(),
                    },
                    "tags": [{"name": "Sponge", "data": f"{api}.0"}],
                    "dependencies": [{"plugin_id": "spongeapi", "version": f"{api}.0"}],
                    "stats": {"downloads": 42},
                }
            )

    # ------------------------------------------------------------------

    def calls(self, pattern: str) -> int:
        """Count requests whose ``METHOD path`` matches *pattern*."""
        rx = re.compile(pattern)
        return sum(bool(rx.fullmatch(f"{r.method} {r.url.path}")) for r in self.requests)

    @property
    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if not r.url.path.endswith("/authenticate")]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/api/v2/authenticate":
            self.session_counter += 1
            expires = "2000-01-01T00:00:00Z" if self.expire_sessions else "2999-01-01T00:00:00Z"
            return httpx.Response(
                200,
                json={"session": f"s{self.session_counter}", "expires": expires, "type": "public"},
            )

        if self.failures:
            outcome = self.failures.popleft()
            if isinstance(outcome, Exception):
                raise outcome
            return httpx.Response(outcome, json={"error": "injected"})

        if m := re.fullmatch(r"/([^/]+)/([^/]+)/versions/([^/]+)/download", path):
            for (pid, name), data in self.artifacts.items():
                ns = self.projects[pid]["namespace"]
                if (ns["owner"], ns["slug"], name) == m.groups():
                    return httpx.Response(200, content=data)
            return httpx.Response(404)

        if path == "/api/v2/projects":
            return self._search(request)
        if path == "/api/v2/permissions":
            return httpx.Response(200, json={"type": "global", "permissions": ["view_public_info"]})
        if m := re.fullmatch(r"/api/v2/projects/([^/]+)", path):
            project = self.projects.get(m.group(1))
            return httpx.Response(200, json=project) if project else httpx.Response(404)
        if m := re.fullmatch(r"/api/v2/projects/([^/]+)/versions", path):
            if m.group(1) not in self.projects:
                return httpx.Response(404)
            return self._paginate(request, self.versions[m.group(1)])
        if m := re.fullmatch(r"/api/v2/projects/([^/]+)/versions/([^/]+)", path):
            for version in self.versions.get(m.group(1), []):
                if version["name"] == m.group(2):
                    return httpx.Response(200, json=version)
            return httpx.Response(404)
        return httpx.Response(404)

    def _search(self, request: httpx.Request) -> httpx.Response:
        q = request.url.params.get("q", "").lower()
        hits = [
            p for p in self.projects.values()
            if q in p["plugin_id"].lower() or q in p["name"].lower()
        ]
        return self._paginate(request, hits)

    @staticmethod
    def _paginate(request: httpx.Request, items: list[dict[str, t.Any]]) -> httpx.Response:
        limit = int(request.url.params.get("limit", "25"))
        offset = int(request.url.params.get("offset", "0"))
        return httpx.Response(
            200,
            json={
                "pagination": {"limit": limit, "offset": offset, "count": len(items)},
                "result": items[offset : offset + limit],
            },
        )


@pytest.fixture
def fake_ore() -> FakeOre:
    ore = FakeOre()
    ore.add_plugin("nucleus", ["2.1.4", "2.1.0", "2.0.0"], promoted=["2.1.4"])
    ore.add_plugin("huskycrates", ["2.0.0PRE9H2"])
    return ore


@pytest.fixture
def settings() -> Settings:
    return Settings(base_url=BASE_URL, site_url=SITE_URL, retries=2, backoff=0)


@pytest.fixture
def make_client(fake_ore: FakeOre) -> t.Callable[..., CatalogClient]:
    def factory(settings: Settings) -> CatalogClient:
        http = httpx.Client(transport=httpx.MockTransport(fake_ore.handle))
        client = CatalogClient(settings, http=http)
        client.sleep = lambda _delay: None  # type: ignore[attr-defined]
        return client

    return factory


@pytest.fixture
def client(
    make_client: t.Callable[..., CatalogClient], settings: Settings
) -> t.Iterator[CatalogClient]:
    with make_client(settings) as c:
        yield c
