"""Settings for the catalog client and the CLI.

Settings come from an optional YAML file plus explicit overrides (CLI
flags). Nothing is read from the environment; the API key in particular is
an explicit value handed to the client at construction.

Examples
--------
>>> s = Settings()
>>> s.base_url, s.api_key is None, s.policy
('https://ore.spongepowered.org/api/v2', True, <ReconcilePolicy.PROMOTED: 'promoted'>)
"""

from __future__ import annotations

import typing as t
from pathlib import Path

import pydantic
import yaml

from oremon.errors import ConfigError
from oremon.models import ReconcilePolicy

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "oremon" / "config.yaml"
DEFAULT_BASE_URL = "https://ore.spongepowered.org/api/v2"
DEFAULT_SITE_URL = "https://ore.spongepowered.org"


class Settings(pydantic.BaseModel):
    """Client and engine configuration.

    Examples
    --------
    URLs are normalised and out-of-range values are rejected:

    >>> Settings(base_url="https://example.org/api/v2/").base_url
    'https://example.org/api/v2'
    >>> try:
    ...     Settings(retries=-1)
    ... except pydantic.ValidationError:
    ...     print("rejected")
    rejected
    """

    model_config = pydantic.ConfigDict(frozen=True, extra="forbid")

    base_url: str = DEFAULT_BASE_URL
    site_url: str = DEFAULT_SITE_URL
    api_key: str | None = None
    connect_timeout: float = pydantic.Field(default=5.0, gt=0)
    timeout: float = pydantic.Field(default=30.0, gt=0)
    download_timeout: float = pydantic.Field(default=300.0, gt=0)
    retries: int = pydantic.Field(default=3, ge=0, le=10)
    backoff: float = pydantic.Field(default=0.5, ge=0)
    max_workers: int = pydantic.Field(default=4, ge=1, le=32)
    policy: ReconcilePolicy = ReconcilePolicy.PROMOTED
    user_agent: str = "ore-monitor"

    @pydantic.field_validator("base_url", "site_url")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            msg = "URL must start with http:// or https://"
            raise ValueError(msg)
        return v.rstrip("/")

    @pydantic.field_validator("api_key")
    @classmethod
    def _blank_key_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()


def load_settings(path: Path | None = None, **overrides: t.Any) -> Settings:
    """Build `Settings` from a YAML file and explicit overrides.

    Parameters
    ----------
    path : Path, optional
        Settings file. When omitted, `DEFAULT_CONFIG_PATH` is used if it
        exists. An explicitly given path must exist.
    **overrides
        Values taking precedence over the file. ``None`` values are ignored
        so unset CLI flags fall through to the file.

    Raises
    ------
    ConfigError
        The file is missing, unreadable, not a mapping, or holds invalid
        values.

    Examples
    --------
    >>> from pathlib import Path
    >>> import tempfile
    >>> d = tempfile.mkdtemp()
    >>> p = Path(d) / "config.yaml"
    >>> _ = p.write_text("retries: 1\\napi_key: abc\\n")
    >>> s = load_settings(p, retries=None, timeout=10)
    >>> s.retries, s.api_key, s.timeout
    (1, 'abc', 10.0)
    """
    data: dict[str, t.Any] = {}
    source = path if path is not None else DEFAULT_CONFIG_PATH
    if path is not None or source.exists():
        data = _read_yaml(source)
    data.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return Settings.model_validate(data)
    except pydantic.ValidationError as exc:
        msg = f"{source}: invalid settings: {exc}"
        raise ConfigError(msg) from exc


def _read_yaml(path: Path) -> dict[str, t.Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"{path}: cannot read settings ({exc.strerror or exc})"
        raise ConfigError(msg) from exc
    try:
        loaded = t.cast("object", yaml.safe_load(text))
    except yaml.YAMLError as exc:
        msg = f"{path}: invalid YAML: {exc}"
        raise ConfigError(msg) from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        msg = f"{path}: settings must be a mapping"
        raise ConfigError(msg)
    return dict(t.cast("dict[str, t.Any]", loaded))
