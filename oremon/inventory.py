"""Discover plugin archives on disk and read their identity."""

from __future__ import annotations

import logging
import os
import typing as t
from pathlib import Path

from oremon.archive import read_metadata
from oremon.errors import ArchiveError, PathNotFound, PathUnreadable
from oremon.models import LocalArtifact

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIXES = frozenset({".jar", ".zip"})
"""File suffixes treated as plugin archives (compared case-insensitively)."""


def is_archive(path: Path) -> bool:
    """Check a path's suffix against `ARCHIVE_SUFFIXES`.

    Examples
    --------
    >>> from pathlib import Path
    >>> is_archive(Path("Nucleus-2.1.4.JAR")), is_archive(Path("notes.txt"))
    (True, False)
    """
    return path.suffix.lower() in ARCHIVE_SUFFIXES


def inspect(path: Path) -> LocalArtifact:
    """Read one archive; a reader failure is recorded on the artifact, not raised."""
    try:
        meta = read_metadata(path)
    except ArchiveError as exc:
        logger.debug("%s: %s", path, exc.reason)
        return LocalArtifact(path=path, error=exc)
    return LocalArtifact(
        path=path, plugin_id=meta.plugin_id, version=meta.version, api_major=meta.api_major
    )


def scan(path: str | Path) -> t.Iterator[LocalArtifact]:
    """Yield a `LocalArtifact` for every archive at or beneath *path*.

    A file yields itself if it is an archive, else nothing. A directory is
    walked recursively in sorted order. Per-file failures are data: they
    appear as artifacts with ``error`` set.

    Raises
    ------
    PathNotFound
        *path* does not exist.
    PathUnreadable
        *path* exists but cannot be listed or opened.
    """
    root = Path(path)
    if not root.exists():
        raise PathNotFound(root)
    if not os.access(root, os.R_OK):
        raise PathUnreadable(root, "permission denied")

    if root.is_file():
        if is_archive(root):
            yield inspect(root)
        return

    try:
        children = sorted(root.iterdir())
    except OSError as exc:
        raise PathUnreadable(root, exc.strerror or str(exc)) from exc
    yield from _walk(children)


def _walk(entries: list[Path]) -> t.Iterator[LocalArtifact]:
    for entry in entries:
        if entry.is_symlink() and entry.is_dir():
            logger.debug("not following directory link %s", entry)
            continue
        if entry.is_dir():
            try:
                children = sorted(entry.iterdir())
            except OSError as exc:
                logger.warning("skipping unreadable directory %s: %s", entry, exc.strerror or exc)
                continue
            yield from _walk(children)
        elif entry.is_file() and is_archive(entry):
            yield inspect(entry)
