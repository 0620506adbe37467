"""Shared test fixtures for codex-accounts.

Provides isolated storage locations, output state management, a Typer
CLI runner, and helpers for faking the provider: identity tokens and
``httpx`` clients backed by :class:`httpx.MockTransport`.
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional

import httpx
import pytest

from codex_accounts.accounts.store import AccountStore
from codex_accounts.models import AppData, ProxyEntry
from codex_accounts.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output and logging state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager and the package logger after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time, and the CLI root callback installs a log handler bound
    to the stderr of that run. Both go stale once CliRunner restores the
    real streams.
    """
    yield
    reset_output()
    logger = logging.getLogger("codex_accounts")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Storage isolation
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate every on-disk location to a temporary directory.

    Points HOME, XDG_DATA_HOME and CODEX_HOME into tmp_path and clears
    the state file override, so tests never touch the real state file or
    the real Codex CLI credentials.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setenv("CODEX_HOME", str(tmp_path / "codex"))
    monkeypatch.delenv("CODEX_ACCOUNTS_STATE", raising=False)
    monkeypatch.delenv("NO_COLOR", raising=False)
    return tmp_path


@pytest.fixture
def state_path(isolated_config: Path) -> Path:
    return isolated_config / "state.json"


@pytest.fixture
def store(state_path: Path) -> AccountStore:
    """An empty store persisting to a temporary state file."""
    return AccountStore(AppData(), state_path, lock_timeout=2.0)


@pytest.fixture
def sample_proxy() -> ProxyEntry:
    return ProxyEntry(
        id="proxy-1",
        login="user",
        password="secret",
        host="10.0.0.5",
        port=3128,
        raw="user:secret@10.0.0.5:3128",
    )


# ---------------------------------------------------------------------------
# Provider fakes
# ---------------------------------------------------------------------------


def _b64(data: dict[str, Any]) -> str:
    raw = json.dumps(data).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


@pytest.fixture
def make_id_token() -> Callable[..., str]:
    """Build an unsigned JWT whose payload holds the given claims.

    Usage: ``make_id_token(email="u@x.com", account_id="acc-1")`` puts
    ``account_id`` under the provider's namespaced auth claim as
    ``chatgpt_account_id``. Extra keyword arguments become top-level
    claims.
    """

    def _make(
        email: Optional[str] = None,
        account_id: Optional[str] = None,
        **claims: Any,
    ) -> str:
        payload: dict[str, Any] = dict(claims)
        if email is not None:
            payload["email"] = email
        if account_id is not None:
            payload["https://api.openai.com/auth"] = {"chatgpt_account_id": account_id}
        header = _b64({"alg": "RS256", "typ": "JWT"})
        return f"{header}.{_b64(payload)}.signature"

    return _make


Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def mock_client_factory() -> Callable[[Handler], Callable[..., httpx.Client]]:
    """Return a stand-in for ``build_http_client`` that serves *handler*.

    The returned factory records the ``(timeout, proxy)`` of every call in
    its ``calls`` attribute.
    """

    def _factory(handler: Handler) -> Callable[..., httpx.Client]:
        calls: list[tuple[float, Optional[ProxyEntry]]] = []

        def build(timeout: float, proxy: Optional[ProxyEntry] = None) -> httpx.Client:
            calls.append((timeout, proxy))
            return httpx.Client(transport=httpx.MockTransport(handler), timeout=timeout)

        build.calls = calls  # type: ignore[attr-defined]
        return build

    return _factory


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager for the test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
