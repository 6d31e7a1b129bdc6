"""Error taxonomy for ore-monitor.

Every failure the engine can report is a subclass of `OreMonitorError`. Each
class carries an ``exit_code`` so the CLI can map failures to process exit
statuses without inspecting messages.

Examples
--------
>>> err = VersionNotFound("nucleus", "9.9.9")
>>> str(err)
"Version '9.9.9' not found for plugin 'nucleus'"
>>> isinstance(err, NotFound), err.exit_code
(True, 3)
"""

from __future__ import annotations

import typing as t
from pathlib import Path

EXIT_FAILURE = 1
EXIT_NOT_FOUND = 3
EXIT_UNAVAILABLE = 4
EXIT_FILESYSTEM = 5
EXIT_AUTH = 6


class OreMonitorError(Exception):
    """Base class for all ore-monitor failures."""

    exit_code: t.ClassVar[int] = EXIT_FAILURE


class ConfigError(OreMonitorError):
    """Settings file is unreadable or holds invalid values."""


# ---------------------------------------------------------------------------
# Catalog errors
# ---------------------------------------------------------------------------


class CatalogError(OreMonitorError):
    """A catalog request failed."""


class NotFound(CatalogError):
    """The catalog answered 404 for a resource."""

    exit_code = EXIT_NOT_FOUND


class PluginNotFound(NotFound):
    """No catalog project exists with the given plugin id."""

    def __init__(self, plugin_id: str) -> None:
        super().__init__(f"Plugin '{plugin_id}' not found in catalog")
        self.plugin_id = plugin_id


class VersionNotFound(NotFound):
    """The plugin exists but has no version with the given name."""

    def __init__(self, plugin_id: str, version: str) -> None:
        super().__init__(f"Version '{version}' not found for plugin '{plugin_id}'")
        self.plugin_id = plugin_id
        self.version = version


class InvalidRequest(CatalogError):
    """The request was rejected as malformed (bad argument or HTTP 4xx)."""

    exit_code = 2


class AuthenticationRequired(CatalogError):
    """The operation needs an API key, or the configured key was refused."""

    exit_code = EXIT_AUTH


class TransientError(CatalogError):
    """A failure that is eligible for retry."""

    exit_code = EXIT_UNAVAILABLE


class Unreachable(TransientError):
    """Transport failure: timeout, refused connection, DNS."""


class CatalogUnavailable(TransientError):
    """The catalog answered with a server error or an unusable body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DownloadFailed(CatalogError):
    """Fetching a version's artifact failed or produced the wrong bytes."""

    exit_code = EXIT_UNAVAILABLE

    def __init__(self, plugin_id: str, version: str, reason: str) -> None:
        super().__init__(f"Download of {plugin_id} {version} failed: {reason}")
        self.plugin_id = plugin_id
        self.version = version
        self.reason = reason


# ---------------------------------------------------------------------------
# Archive errors (per-file, carried as data during scans)
# ---------------------------------------------------------------------------


class ArchiveError(OreMonitorError):
    """Metadata could not be read from a plugin archive."""

    def __init__(self, path: str | Path | None, reason: str) -> None:
        where = f"{path}: " if path is not None else ""
        super().__init__(f"{where}{reason}")
        self.path = path
        self.reason = reason


class ArchiveCorrupt(ArchiveError):
    """The container cannot be opened as a ZIP archive."""


class MetadataNotFound(ArchiveError):
    """The archive holds no plugin descriptor entry."""


class MetadataMalformed(ArchiveError):
    """The descriptor exists but lacks a usable id or version."""


# ---------------------------------------------------------------------------
# Local filesystem errors
# ---------------------------------------------------------------------------


class LocalFilesystemError(OreMonitorError):
    """A local path could not be read or written."""

    exit_code = EXIT_FILESYSTEM

    def __init__(self, path: str | Path, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class PathNotFound(LocalFilesystemError):
    """The path given to scan does not exist."""

    def __init__(self, path: str | Path) -> None:
        super().__init__(path, "no such file or directory")


class PathUnreadable(LocalFilesystemError):
    """The path given to scan exists but cannot be read."""


class InstallTargetUnwritable(LocalFilesystemError):
    """The install directory cannot receive the artifact."""
