"""Tests for storage locations and state file persistence."""

from __future__ import annotations

import json
import os
import stat
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from codex_accounts.config import (
    atomic_write,
    get_codex_auth_path,
    get_data_dir,
    get_state_path,
    load_app_data,
    quarantine_state_file,
    save_app_data,
)
from codex_accounts.exceptions import ConfigError, StorageError
from codex_accounts.models import Account, AppData, IdeTarget, Tokens


class TestPaths:
    def test_data_dir_follows_xdg(self, isolated_config: Path) -> None:
        with patch("codex_accounts.config._is_xdg_platform", return_value=True):
            path = get_data_dir()
        assert path == isolated_config / "data" / "codex-accounts"
        assert path.is_dir()

    def test_data_dir_on_other_platforms(self, isolated_config: Path) -> None:
        with patch("codex_accounts.config._is_xdg_platform", return_value=False):
            assert get_data_dir() == isolated_config / "home" / ".codex-accounts"

    def test_state_path_default(self, isolated_config: Path) -> None:
        with patch("codex_accounts.config._is_xdg_platform", return_value=True):
            assert get_state_path() == isolated_config / "data" / "codex-accounts" / "state.json"

    def test_state_path_override(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CODEX_ACCOUNTS_STATE", str(isolated_config / "custom.json"))
        assert get_state_path() == isolated_config / "custom.json"

    def test_codex_auth_path(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        assert get_codex_auth_path() == isolated_config / "codex" / "auth.json"
        monkeypatch.delenv("CODEX_HOME")
        assert get_codex_auth_path() == isolated_config / "home" / ".codex" / "auth.json"


class TestAtomicWrite:
    def test_creates_parent_dirs(self, tmp_path: Path) -> None:
        target = tmp_path / "a" / "b" / "file.json"
        atomic_write(target, "{}")
        assert target.read_text() == "{}"

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_permissions(self, tmp_path: Path) -> None:
        target = tmp_path / "secret.json"
        atomic_write(target, "{}")
        assert stat.S_IMODE(os.stat(target).st_mode) == 0o600

    def test_failure_cleans_up_temp_file(self, tmp_path: Path) -> None:
        target = tmp_path / "file.json"
        with patch("codex_accounts.config.os.replace", side_effect=OSError("nope")):
            with pytest.raises(StorageError):
                atomic_write(target, "{}")
        assert list(tmp_path.iterdir()) == []


class TestAppDataPersistence:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        data = load_app_data(tmp_path / "absent.json")
        assert data == AppData()
        assert data.limits_base_url == "https://chatgpt.com/backend-api"

    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        data = AppData(
            accounts=[Account(id="a", email="a@x.com", tokens=Tokens(access_token="t"))],
            active_account_id="a",
            preferred_ide=IdeTarget.CURSOR,
        )
        save_app_data(data, path)
        assert load_app_data(path) == data
        raw = json.loads(path.read_text())
        assert raw["preferredIde"] == "cursor"

    def test_reads_snake_case_keys(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"limits_base_url": "https://example.com", "accounts": []}))
        assert load_app_data(path).limits_base_url == "https://example.com"

    @pytest.mark.parametrize("content", ["{not json", '{"accounts": "nope"}'])
    def test_invalid_file(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "state.json"
        path.write_text(content)
        with pytest.raises(ConfigError, match="Invalid state file"):
            load_app_data(path)


class TestQuarantineStateFile:
    def test_moves_file_aside(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text("{broken")
        backup = quarantine_state_file(path)
        assert backup is not None
        assert backup.parent == tmp_path
        assert backup.name.startswith("state.json.corrupt-")
        assert backup.read_text() == "{broken"
        assert not path.exists()

    def test_rename_failure_returns_none(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text("{broken")
        with patch("codex_accounts.config.os.replace", side_effect=OSError("read-only")):
            assert quarantine_state_file(path) is None
        assert path.read_text() == "{broken"
