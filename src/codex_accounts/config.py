"""Storage locations and persistence of the account aggregate.

This module handles everything codex-accounts keeps on disk:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.codex-accounts/`` on macOS and Windows. See :func:`get_data_dir`.
* **State file** -- the whole :class:`~codex_accounts.models.AppData`
  aggregate as one JSON document (:func:`load_app_data`,
  :func:`save_app_data`). ``CODEX_ACCOUNTS_STATE`` overrides its path.
  A file that cannot be loaded is moved aside by
  :func:`quarantine_state_file`.
* **Credential export** -- the location of the ``auth.json`` file read by
  the Codex CLI (:func:`get_codex_auth_path`). ``CODEX_HOME`` overrides
  its directory, as it does for the CLI itself.

All writes use :func:`atomic_write`, a temp-file-then-rename strategy with
``0o600`` permissions, so a crash never leaves a truncated state file and
tokens are never world-readable.
"""

from __future__ import annotations

import json
import logging
import os
import platform
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from codex_accounts.exceptions import ConfigError, StorageError
from codex_accounts.models import AppData

logger = logging.getLogger(__name__)

_APP_NAME = "codex-accounts"
_STATE_FILENAME = "state.json"
_STATE_ENV = "CODEX_ACCOUNTS_STATE"
_CODEX_HOME_ENV = "CODEX_HOME"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True on platforms that follow the XDG base directory layout (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_data_dir() -> Path:
    """Return the data directory (state file, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/codex-accounts/`` (default
    ``~/.local/share/codex-accounts/``). On macOS/Windows:
    ``~/.codex-accounts/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_state_path() -> Path:
    """Return the path of the persisted aggregate.

    ``$CODEX_ACCOUNTS_STATE`` wins when set; otherwise
    ``<data dir>/state.json``.
    """
    override = os.environ.get(_STATE_ENV, "")
    if override:
        return Path(override).expanduser()
    return get_data_dir() / _STATE_FILENAME


def get_codex_home() -> Path:
    """Return the Codex CLI home directory (``$CODEX_HOME`` or ``~/.codex``)."""
    override = os.environ.get(_CODEX_HOME_ENV, "")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".codex"


def get_codex_auth_path() -> Path:
    """Return the path of the credential export file consumed by the Codex CLI."""
    return get_codex_home() / "auth.json"


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: int = 0o600) -> None:
    """Write *data* to *path* atomically using temp file + rename.

    The temporary file lives in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. Permissions are
    restricted before any content is written.

    Raises:
        StorageError: If the directory or file cannot be written.
    """
    fd = None
    tmp_path: Optional[str] = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except OSError as exc:
        _discard_temp(fd, tmp_path)
        raise StorageError(f"Failed to write {path}: {exc}") from exc
    except BaseException:
        _discard_temp(fd, tmp_path)
        raise


def _discard_temp(fd: Any, tmp_path: Optional[str]) -> None:
    if fd is not None:
        fd.close()
    if tmp_path is not None:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass


# --- State file ---


def load_app_data(path: Optional[Path] = None) -> AppData:
    """Load the persisted aggregate.

    Args:
        path: State file location. Defaults to :func:`get_state_path`.

    Returns:
        The deserialised :class:`~codex_accounts.models.AppData`, or a
        default instance when the file does not exist yet.

    Raises:
        ConfigError: If the file exists but is unreadable, is not valid
            JSON, or fails validation.
    """
    path = path or get_state_path()
    if not path.is_file():
        return AppData()
    try:
        text = path.read_text(encoding="utf-8")
        return AppData.model_validate(json.loads(text))
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        raise ConfigError(f"Invalid state file at {path}: {exc}") from exc


def save_app_data(data: AppData, path: Optional[Path] = None) -> None:
    """Persist the full aggregate atomically.

    Raises:
        StorageError: If the file cannot be written.
    """
    path = path or get_state_path()
    text = json.dumps(data.model_dump(mode="json", by_alias=True), indent=2) + "\n"
    atomic_write(path, text)
    logger.debug("Saved state to %s (%d accounts)", path, len(data.accounts))


def quarantine_state_file(path: Path) -> Optional[Path]:
    """Rename an unloadable state file to ``<name>.corrupt-<timestamp>``.

    The next save would otherwise overwrite it with an empty aggregate.

    Returns:
        The new location, or ``None`` if the file could not be moved.
    """
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    target = path.with_name(f"{path.name}.corrupt-{timestamp}")
    try:
        os.replace(path, target)
    except OSError as exc:
        logger.error("Could not move unreadable state file %s aside: %s", path, exc)
        return None
    return target
