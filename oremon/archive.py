"""Read plugin identity from a ``.jar`` archive without unpacking it.

Only the ZIP central directory and the single descriptor member are read.
Two descriptor formats are recognised, newest first:

``META-INF/sponge_plugins.json``
    Sponge API 8+: ``{"plugins": [{"id": ..., "version": ...}]}``.
``mcmod.info``
    Legacy format: a list of mod objects, ``{"modList": [...]}`` or
    ``{"info": {...}}``, each with ``modid`` and ``version``.

Examples
--------
>>> import io, json, zipfile
>>> buf = io.BytesIO()
>>> with zipfile.ZipFile(buf, "w") as zf:
...     zf.writestr("mcmod.info", json.dumps([{"modid": "nucleus", "version": "2.1.4",
...         "dependencies": ["spongeapi@7.3"]}]))
>>> meta = read_metadata(buf)
>>> meta.plugin_id, meta.version, meta.api_major
('nucleus', '2.1.4', 7)
"""

from __future__ import annotations

import json
import logging
import typing as t
import zipfile
from pathlib import Path

from oremon.errors import ArchiveCorrupt, MetadataMalformed, MetadataNotFound
from oremon.models import ArchiveMetadata, sponge_major

logger = logging.getLogger(__name__)

SPONGE_PLUGINS_JSON = "META-INF/sponge_plugins.json"
MCMOD_INFO = "mcmod.info"
DESCRIPTOR_ENTRIES = (SPONGE_PLUGINS_JSON, MCMOD_INFO)
"""Descriptor member names, in lookup order."""

MAX_DESCRIPTOR_BYTES = 1 << 20

Source = t.Union[str, Path, t.BinaryIO]


def read_metadata(source: Source) -> ArchiveMetadata:
    """Extract ``(plugin_id, version)`` from a plugin archive.

    Parameters
    ----------
    source : str, Path or binary file object
        The archive to inspect. File objects must be seekable.

    Returns
    -------
    ArchiveMetadata
        Identity of the first plugin declared in the descriptor.

    Raises
    ------
    ArchiveCorrupt
        The container is not a readable ZIP archive.
    MetadataNotFound
        No descriptor entry exists.
    MetadataMalformed
        The descriptor cannot be decoded into an id and a version.
    """
    label = source if isinstance(source, (str, Path)) else getattr(source, "name", None)
    try:
        with zipfile.ZipFile(source) as zf:
            names = set(zf.namelist())
            for entry in DESCRIPTOR_ENTRIES:
                if entry in names:
                    logger.debug("%s: reading descriptor %s", label, entry)
                    raw = _read_member(zf, entry, label)
                    return _parse_descriptor(entry, raw, label)
    except zipfile.BadZipFile as exc:
        raise ArchiveCorrupt(label, f"not a valid archive ({exc})") from exc
    except (OSError, EOFError) as exc:
        raise ArchiveCorrupt(label, f"cannot read archive ({exc})") from exc
    raise MetadataNotFound(label, "no plugin descriptor in archive")


def _read_member(zf: zipfile.ZipFile, entry: str, label: t.Any) -> bytes:
    info = zf.getinfo(entry)
    if info.file_size > MAX_DESCRIPTOR_BYTES:
        raise MetadataMalformed(label, f"{entry} is implausibly large ({info.file_size} bytes)")
    try:
        return zf.read(info)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, NotImplementedError) as exc:
        raise ArchiveCorrupt(label, f"cannot decompress {entry} ({exc})") from exc


def _parse_descriptor(entry: str, raw: bytes, label: t.Any) -> ArchiveMetadata:
    try:
        data = t.cast("object", json.loads(raw.decode("utf-8-sig")))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MetadataMalformed(label, f"{entry} is not valid JSON ({exc})") from exc

    if entry == SPONGE_PLUGINS_JSON:
        return _from_sponge_plugins(data, entry, label)
    return _from_mcmod_info(data, entry, label)


def _first_mapping(value: object) -> dict[str, t.Any] | None:
    if isinstance(value, list) and value and isinstance(value[0], dict):
        return t.cast("dict[str, t.Any]", value[0])
    if isinstance(value, dict):
        return t.cast("dict[str, t.Any]", value)
    return None


def _require(fields: dict[str, t.Any], key: str, entry: str, label: t.Any) -> str:
    value = fields.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MetadataMalformed(label, f"{entry} has no '{key}'")
    return str(value).strip()


def _from_sponge_plugins(data: object, entry: str, label: t.Any) -> ArchiveMetadata:
    plugins = data.get("plugins") if isinstance(data, dict) else None
    plugin = _first_mapping(plugins)
    if plugin is None:
        raise MetadataMalformed(label, f"{entry} declares no plugins")

    api_major = None
    for dep in plugin.get("dependencies") or []:
        if isinstance(dep, dict) and dep.get("id") == "spongeapi":
            api_major = sponge_major(str(dep.get("version") or ""))
            break

    return ArchiveMetadata(
        plugin_id=_require(plugin, "id", entry, label),
        version=_require(plugin, "version", entry, label),
        name=plugin.get("name"),
        api_major=api_major,
        descriptor=entry,
    )


def _from_mcmod_info(data: object, entry: str, label: t.Any) -> ArchiveMetadata:
    mod: dict[str, t.Any] | None
    if isinstance(data, dict) and "modList" in data:
        mod = _first_mapping(data["modList"])
    elif isinstance(data, dict) and "info" in data:
        mod = _first_mapping(data["info"])
    else:
        mod = _first_mapping(data)
    if mod is None:
        raise MetadataMalformed(label, f"{entry} declares no mods")

    deps = _string_list(mod.get("dependencies"))
    required = _string_list(mod.get("requiredMods"))
    api_major = _spongeapi_major(deps)
    if api_major is None:
        api_major = _spongeapi_major(required)

    return ArchiveMetadata(
        plugin_id=_require(mod, "modid", entry, label),
        version=_require(mod, "version", entry, label),
        name=mod.get("name"),
        api_major=api_major,
        descriptor=entry,
    )


def _string_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in t.cast("list[object]", value)]


def _spongeapi_major(specs: list[str]) -> int | None:
    """Find ``spongeapi@X.Y`` in a dependency list and return ``X``.

    Examples
    --------
    >>> _spongeapi_major(["placeholderapi", "spongeapi@7.1.0-SNAPSHOT"])
    7
    >>> _spongeapi_major(["spongeapi"]) is None
    True
    """
    for spec in specs:
        if spec.startswith("spongeapi") and "@" in spec:
            return sponge_major(spec.split("@", 1)[1])
    return None
