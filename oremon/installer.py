"""Download a plugin version and place it atomically in a directory."""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path

from oremon.client import Catalog
from oremon.errors import DownloadFailed, InstallTargetUnwritable

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".oremon-"
TEMP_SUFFIX = ".part"
INSTALLED_MODE = 0o644

_UNSAFE = re.compile(r"[^A-Za-z0-9._+-]")


def install_filename(plugin_id: str, version: str) -> str:
    """Final file name for an installed ``(plugin_id, version)`` pair.

    Examples
    --------
    >>> install_filename("nucleus", "2.1.4")
    'nucleus-2.1.4.jar'
    >>> install_filename("huskycrates", "2.0.0 PRE9/H2")
    'huskycrates-2.0.0_PRE9_H2.jar'
    """
    return f"{_UNSAFE.sub('_', plugin_id)}-{_UNSAFE.sub('_', version)}.jar"


class Installer:
    """Fetch version artifacts from a `Catalog` and write them to disk.

    The artifact is streamed into a temporary file in the target directory
    and renamed into place only after the download completed and, when the
    catalog publishes one, its MD5 digest matched. Any failure or
    interruption before the rename removes the temporary file, so nothing
    partial ever appears under the final name.
    """

    def __init__(self, catalog: Catalog):
        self.catalog = catalog

    def install(self, plugin_id: str, version: str, target_dir: str | Path | None = None) -> Path:
        """Install one version and return the path of the installed file.

        Raises
        ------
        PluginNotFound, VersionNotFound
            Propagated from the catalog.
        DownloadFailed
            Transport failure or checksum mismatch.
        InstallTargetUnwritable
            The target directory cannot be created or written.
        """
        record = self.catalog.get_version(plugin_id, version)
        target = Path(target_dir) if target_dir is not None else Path.cwd()
        try:
            target.mkdir(parents=True, exist_ok=True)
            tmp = tempfile.NamedTemporaryFile(  # noqa: SIM115
                dir=target, prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX, delete=False
            )
        except OSError as exc:
            raise InstallTargetUnwritable(target, exc.strerror or str(exc)) from exc

        final = target / install_filename(plugin_id, version)
        tmp_path = Path(tmp.name)
        try:
            with tmp:
                digest = self.catalog.download(record, tmp)
                tmp.flush()
                os.fsync(tmp.fileno())
            if record.md5 and digest.lower() != record.md5.lower():
                reason = f"checksum mismatch (expected {record.md5}, got {digest})"
                raise DownloadFailed(plugin_id, version, reason)
            os.chmod(tmp_path, INSTALLED_MODE)
            os.replace(tmp_path, final)
        except OSError as exc:
            _discard(tmp_path)
            raise InstallTargetUnwritable(target, exc.strerror or str(exc)) from exc
        except BaseException:
            _discard(tmp_path)
            raise

        logger.info("installed %s %s into %s", plugin_id, version, final)
        return final


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("could not remove temporary file %s: %s", path, exc)
