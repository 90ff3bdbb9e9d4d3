"""Settings loading with XDG paths, atomic writes, and credential sources.

This module is the read side of the host's settings collaborator:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.courier/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Settings** -- a single :class:`~courier.models.ClientSettings` JSON
  file, overridable through ``COURIER_*`` environment variables. See
  :func:`load_settings` and :func:`save_settings`.
* **Credential resolution** -- :func:`resolve_credential` reads secrets
  from env vars, files, or literal values.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from courier.exceptions import ConfigError
from courier.models import ClientSettings

_APP_NAME = "courier"
_SETTINGS_FILENAME = "settings.json"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/courier/`` (default ``~/.config/courier/``).
    On macOS/Windows: ``~/.courier/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory used by :class:`~courier.cache.DiskCache`.

    On Linux/BSD: ``$XDG_CACHE_HOME/courier/`` (default ``~/.cache/courier/``).
    On macOS/Windows: ``~/.courier/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory used by :class:`~courier.auth.FileSecretStore`.

    On Linux/BSD: ``$XDG_DATA_HOME/courier/`` (default ``~/.local/share/courier/``).
    On macOS/Windows: ``~/.courier/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems.  When *mode* is
    given, permissions are applied before any content is written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Settings ---


def _settings_path() -> Path:
    return get_config_dir() / _SETTINGS_FILENAME


def load_settings(path: Optional[Path] = None) -> ClientSettings:
    """Load client settings, then apply environment overrides.

    Precedence (high to low):
        1. Environment variables (``COURIER_BASE_URL``, ``COURIER_TIMEOUT``,
           ``COURIER_AUTH_PROVIDER``)
        2. The settings file (*path*, default ``<config dir>/settings.json``)
        3. Defaults

    Args:
        path: Optional explicit settings file.

    Returns:
        The effective :class:`~courier.models.ClientSettings`.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            validation, or if an environment override is malformed.
    """
    path = path or _settings_path()
    data: dict = {}
    if path.is_file():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            raise ConfigError(f"Invalid settings at {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Invalid settings at {path}: expected a JSON object")

    env_base_url = os.environ.get("COURIER_BASE_URL")
    if env_base_url:
        data["base_url"] = env_base_url

    env_timeout = os.environ.get("COURIER_TIMEOUT")
    if env_timeout:
        try:
            data["timeout"] = float(env_timeout)
        except ValueError as exc:
            raise ConfigError(f"COURIER_TIMEOUT must be a number, got '{env_timeout}'") from exc

    env_provider = os.environ.get("COURIER_AUTH_PROVIDER")
    if env_provider:
        data.setdefault("auth", {})["provider"] = env_provider

    try:
        return ClientSettings.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid settings at {path}: {exc}") from exc


def save_settings(settings: ClientSettings, path: Optional[Path] = None) -> None:
    """Persist settings atomically to disk."""
    data = settings.model_dump(mode="json")
    atomic_write(path or _settings_path(), json.dumps(data, indent=2) + "\n")


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"literal:value"`` -- the value itself (tests, throwaway setups)

    Raises:
        ConfigError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    if source.startswith("literal:"):
        return source[8:]

    raise ConfigError(f"Unknown credential source format: {source}")
