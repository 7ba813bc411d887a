"""Settings storage for offgrid.

One JSON file, ``config.json`` in the per-user config directory, holds a
:class:`~offgrid.models.GlobalConfig`.  :func:`resolve_config` layers
``OFFGRID_*`` environment variables and command-line values over it.
Directories come from :mod:`platformdirs`, so they follow XDG on Linux and
the native conventions elsewhere.

:func:`atomic_write` is shared with the disk cache.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path
from typing import Optional

import platformdirs
from pydantic import ValidationError

from offgrid.exceptions import ConfigError
from offgrid.models import GlobalConfig

_APP_NAME = "offgrid"

# variable -> (section, field)
ENV_OVERRIDES = {
    "OFFGRID_BASE_URL": ("request", "base_url"),
    "OFFGRID_CACHE_DIR": ("cache", "directory"),
    "OFFGRID_PROBE_URL": ("monitor", "probe_url"),
}


def get_config_dir() -> Path:
    """Directory holding ``config.json``, created if missing."""
    return platformdirs.user_config_path(_APP_NAME, appauthor=False, ensure_exists=True)


def get_cache_dir() -> Path:
    """Default root of the offline cache, created if missing.

    Everything below it may be deleted at any time; requests only lose
    their offline fallback.
    """
    return platformdirs.user_cache_path(_APP_NAME, appauthor=False, ensure_exists=True)


def cache_root(config: GlobalConfig) -> Path:
    """Return the directory the offline cache lives under for *config*."""
    if config.cache.directory:
        return Path(config.cache.directory).expanduser()
    return get_cache_dir()


def atomic_write(path: Path, data: str | bytes) -> None:
    """Replace *path* with *data* so readers never see a partial file.

    The bytes go to a temp file in the same directory, are fsynced, and
    the temp file is renamed over *path*.  On failure the temp file is
    removed and the error propagates.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = data.encode("utf-8") if isinstance(data, str) else data
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise


def config_path() -> Path:
    return get_config_dir() / "config.json"


def load_global_config() -> GlobalConfig:
    """Read ``config.json``; defaults when it does not exist.

    Raises:
        ConfigError: If the file is not valid JSON or fails validation.
    """
    path = config_path()
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        return GlobalConfig()
    try:
        return GlobalConfig.model_validate_json(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    atomic_write(config_path(), config.model_dump_json(indent=2) + "\n")


def resolve_config(
    base_url: Optional[str] = None,
    cache_dir: Optional[str] = None,
) -> GlobalConfig:
    """Return the effective configuration.

    Command-line values beat ``OFFGRID_*`` variables (see
    :data:`ENV_OVERRIDES`), which beat the config file.

    Raises:
        ConfigError: If the config file is invalid.
    """
    config = load_global_config()
    for variable, (section, name) in ENV_OVERRIDES.items():
        value = os.environ.get(variable)
        if value:
            setattr(getattr(config, section), name, value)
    if base_url is not None:
        config.request.base_url = base_url
    if cache_dir is not None:
        config.cache.directory = cache_dir
    return config
