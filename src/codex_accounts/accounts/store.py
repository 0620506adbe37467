"""Lock-guarded, persisted store of accounts, proxies, and settings.

:class:`AccountStore` owns the single :class:`~codex_accounts.models.AppData`
aggregate of the process. Every mutation runs as a transaction:

1. acquire the store lock (bounded wait, :class:`LockError` on timeout),
2. apply the change to a deep copy of the aggregate,
3. persist the whole copy to the state file,
4. publish the copy as the new in-memory state.

A failed save therefore leaves memory exactly as it was. Readers get
deep copies and never see a half-applied change.

Network work (quota fetches, proxy probes) never happens under the lock:
operations snapshot what they need, release the lock, do the I/O, then
re-acquire and apply the result by id, skipping or rejecting records
that vanished in between.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from codex_accounts.accounts.export import write_codex_auth
from codex_accounts.accounts.ide import ReloadStatus, normalize_ide_target, reload_ide
from codex_accounts.accounts.proxies import parse_proxy_input, probe_latency
from codex_accounts.client.quota import fetch_quota
from codex_accounts.config import get_state_path, save_app_data
from codex_accounts.constants import LOCK_TIMEOUT
from codex_accounts.exceptions import (
    CodexAccountsError,
    InvalidInputError,
    LockError,
    NotFoundError,
    StateError,
)
from codex_accounts.models import (
    Account,
    AppData,
    IdeTarget,
    ProxyEntry,
    ProxyTestResult,
    QuotaInfo,
    SwitchAccountResponse,
    Tokens,
    now_ts,
)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


def _apply_quota(account: Account, quota: Optional[QuotaInfo], error: Optional[str]) -> None:
    if quota is not None:
        account.quota = quota
        account.last_error = None
    elif error is not None:
        account.last_error = error


class AccountStore:
    """Thread-safe owner of the persisted aggregate.

    Args:
        data: Initial aggregate, usually loaded from disk.
        path: State file every transaction writes to. Defaults to
            :func:`~codex_accounts.config.get_state_path`.
        lock_timeout: Seconds to wait for the store lock.
    """

    def __init__(
        self,
        data: Optional[AppData] = None,
        path: Optional[Path] = None,
        lock_timeout: float = LOCK_TIMEOUT,
    ) -> None:
        self._data = data if data is not None else AppData()
        self._path = path or get_state_path()
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout

    # --- Locking ---

    @contextmanager
    def _locked(self) -> Iterator[AppData]:
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise LockError("State lock unavailable (app data)")
        try:
            yield self._data
        finally:
            self._lock.release()

    @contextmanager
    def _transaction(self) -> Iterator[AppData]:
        """Yield a working copy; persist and publish it if the block succeeds."""
        with self._locked() as current:
            working = current.model_copy(deep=True)
            yield working
            save_app_data(working, self._path)
            self._data = working

    # --- Reads ---

    @property
    def path(self) -> Path:
        return self._path

    def snapshot(self) -> AppData:
        """Return a deep copy of the whole aggregate."""
        with self._locked() as data:
            return data.model_copy(deep=True)

    def get_account(self, account_id: str) -> Account:
        with self._locked() as data:
            account = data.find_account(account_id)
            if account is None:
                raise NotFoundError("Account not found")
            return account.model_copy(deep=True)

    def active_proxy(self) -> Optional[ProxyEntry]:
        with self._locked() as data:
            proxy = data.active_proxy()
            return proxy.model_copy() if proxy is not None else None

    def limits_base_url(self) -> str:
        with self._locked() as data:
            return data.limits_base_url

    # --- Accounts ---

    def upsert_account(
        self,
        tokens: Tokens,
        email: Optional[str],
        account_id: Optional[str],
        quota: Optional[QuotaInfo] = None,
        quota_error: Optional[str] = None,
    ) -> Account:
        """Store the result of a successful token exchange.

        An existing account is reused only when both its provider account
        id and its email equal the new ones; its tokens are then replaced
        wholesale. Otherwise a new account is created. The first stored
        account becomes active.

        Args:
            tokens: Freshly issued tokens.
            email: Email claim of the identity token.
            account_id: Provider account id of the identity token.
            quota: Quota fetched right after the exchange, if it succeeded.
            quota_error: Why the quota fetch failed, recorded as
                ``last_error``.

        Returns:
            A copy of the stored account.
        """
        now = now_ts()
        with self._transaction() as data:
            account = None
            if account_id is not None and email is not None:
                account = next(
                    (
                        a
                        for a in data.accounts
                        if a.account_id == account_id and a.email == email
                    ),
                    None,
                )
            if account is None:
                account = Account(
                    id=_new_id(),
                    email=email,
                    account_id=account_id,
                    tokens=tokens,
                    created_at=now,
                    last_login_at=now,
                )
                data.accounts.append(account)
                logger.info("Added account %s (%s)", account.id, email or "no email")
            else:
                account.tokens = tokens
                account.last_login_at = now
                account.last_error = None
                logger.info("Re-authenticated account %s (%s)", account.id, email)
            _apply_quota(account, quota, quota_error)
            if data.active_account_id is None:
                data.active_account_id = account.id
            stored = account.model_copy(deep=True)
        return stored

    def remove_account(self, account_id: str) -> AppData:
        """Delete an account, moving the active pointer to the first remaining one.

        Raises:
            NotFoundError: If *account_id* is unknown.
        """
        with self._transaction() as data:
            if data.find_account(account_id) is None:
                raise NotFoundError("Account not found")
            data.accounts = [a for a in data.accounts if a.id != account_id]
            if data.active_account_id == account_id:
                data.active_account_id = data.accounts[0].id if data.accounts else None
            result = data.model_copy(deep=True)
        logger.info("Removed account %s", account_id)
        return result

    def _activate(self, data: AppData, account_id: str) -> None:
        # Called inside a transaction, so the account cannot vanish between
        # the lookup and the export.
        account = data.find_account(account_id)
        if account is None:
            raise NotFoundError("Account not found")
        write_codex_auth(account.tokens, account.account_id)
        data.active_account_id = account_id

    def set_active_account(self, account_id: str) -> AppData:
        """Export the account's credentials and make it the active account.

        Raises:
            NotFoundError: If *account_id* is unknown.
        """
        with self._transaction() as data:
            self._activate(data, account_id)
            result = data.model_copy(deep=True)
        return result

    def switch_account_for_ide(
        self, account_id: str, ide: Optional[str] = None
    ) -> SwitchAccountResponse:
        """Activate an account and reload the chosen editor.

        *ide* is remembered as the preferred editor; when omitted the
        stored preference is used. Reload problems do not fail the switch,
        they are reported in :attr:`SwitchAccountResponse.warning`.

        Raises:
            InvalidInputError: If *ide* names no supported editor.
            NotFoundError: If *account_id* is unknown.
        """
        requested = normalize_ide_target(ide) if ide is not None else None
        with self._transaction() as data:
            self._activate(data, account_id)
            if requested is not None:
                data.preferred_ide = requested
            selected = requested or data.preferred_ide
            snapshot = data.model_copy(deep=True)

        if selected is None:
            return SwitchAccountResponse(
                state=snapshot,
                warning="Account switched. Choose an IDE target to enable auto reload.",
            )

        outcome = reload_ide(selected)
        warning = None
        if outcome.status is ReloadStatus.NOT_FOUND:
            warning = (
                f"Account switched. No running {selected.value} process was found to reload."
            )
        elif outcome.status is ReloadStatus.FAILED:
            warning = f"Account switched, but IDE reload failed: {outcome.message}"
        return SwitchAccountResponse(
            state=snapshot,
            ide=selected,
            reloaded=outcome.status is ReloadStatus.RELOADED,
            warning=warning,
        )

    # --- Settings ---

    def set_preferred_ide(self, ide: Optional[str]) -> AppData:
        """Set or clear the preferred editor.

        Raises:
            InvalidInputError: If *ide* names no supported editor.
        """
        target: Optional[IdeTarget] = None
        if ide is not None and ide.strip():
            target = normalize_ide_target(ide)
        with self._transaction() as data:
            data.preferred_ide = target
            result = data.model_copy(deep=True)
        return result

    def set_limits_base_url(self, url: str) -> AppData:
        """Change the base URL used for quota queries.

        Raises:
            InvalidInputError: If *url* is not an absolute http(s) URL.
        """
        value = url.strip().rstrip("/")
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise InvalidInputError("Limits base URL must be an absolute http(s) URL")
        with self._transaction() as data:
            data.limits_base_url = value
            result = data.model_copy(deep=True)
        return result

    # --- Quota ---

    def _fetch(
        self, base_url: str, account: Account, proxy: Optional[ProxyEntry]
    ) -> tuple[Optional[QuotaInfo], Optional[str]]:
        try:
            return fetch_quota(base_url, account.tokens, account.account_id, proxy), None
        except CodexAccountsError as exc:
            logger.warning("Quota refresh for %s failed: %s", account.id, exc)
            return None, str(exc)

    def refresh_account_quota(self, account_id: str) -> Account:
        """Fetch fresh usage for one account.

        A failed fetch is recorded as the account's ``last_error`` and is
        not raised.

        Raises:
            NotFoundError: If *account_id* is unknown.
            StateError: If the account was removed during the fetch.
        """
        with self._locked() as data:
            account = data.find_account(account_id)
            if account is None:
                raise NotFoundError("Account not found")
            account = account.model_copy(deep=True)
            base_url = data.limits_base_url
            proxy = data.active_proxy()

        quota, error = self._fetch(base_url, account, proxy)

        with self._transaction() as data:
            target = data.find_account(account_id)
            if target is None:
                raise StateError("Account disappeared during quota refresh")
            _apply_quota(target, quota, error)
            updated = target.model_copy(deep=True)
        return updated

    def refresh_all_quotas(self) -> AppData:
        """Fetch usage for every account; accounts removed meanwhile are skipped."""
        with self._locked() as data:
            accounts = [a.model_copy(deep=True) for a in data.accounts]
            base_url = data.limits_base_url
            proxy = data.active_proxy()

        results = {a.id: self._fetch(base_url, a, proxy) for a in accounts}

        with self._transaction() as data:
            for account in data.accounts:
                if account.id in results:
                    _apply_quota(account, *results[account.id])
            result = data.model_copy(deep=True)
        return result

    # --- Proxies ---

    def save_proxy(self, raw: str, proxy_id: Optional[str] = None) -> AppData:
        """Add a proxy, or replace the address of proxy *proxy_id*.

        Raises:
            InvalidInputError: If *raw* is not ``login:password@host:port``.
            NotFoundError: If *proxy_id* is given but unknown.
        """
        parsed = parse_proxy_input(raw)
        with self._transaction() as data:
            if proxy_id is not None:
                proxy = data.find_proxy(proxy_id)
                if proxy is None:
                    raise NotFoundError("Proxy not found")
                proxy.login = parsed.login
                proxy.password = parsed.password
                proxy.host = parsed.host
                proxy.port = parsed.port
                proxy.raw = parsed.raw
            else:
                data.proxies.append(
                    ProxyEntry(
                        id=_new_id(),
                        login=parsed.login,
                        password=parsed.password,
                        host=parsed.host,
                        port=parsed.port,
                        raw=parsed.raw,
                    )
                )
            result = data.model_copy(deep=True)
        return result

    def delete_proxy(self, proxy_id: str) -> AppData:
        """Delete a proxy, clearing the active pointer if it referenced it.

        Raises:
            NotFoundError: If *proxy_id* is unknown.
        """
        with self._transaction() as data:
            if data.find_proxy(proxy_id) is None:
                raise NotFoundError("Proxy not found")
            data.proxies = [p for p in data.proxies if p.id != proxy_id]
            if data.active_proxy_id == proxy_id:
                data.active_proxy_id = None
            result = data.model_copy(deep=True)
        return result

    def set_active_proxy(self, proxy_id: Optional[str]) -> AppData:
        """Route outbound traffic through *proxy_id*, or directly when ``None``.

        Raises:
            NotFoundError: If *proxy_id* is unknown.
        """
        with self._transaction() as data:
            if proxy_id is not None and data.find_proxy(proxy_id) is None:
                raise NotFoundError("Proxy not found")
            data.active_proxy_id = proxy_id
            result = data.model_copy(deep=True)
        return result

    def test_proxy(self, proxy_id: str) -> ProxyTestResult:
        """Probe a proxy's TCP reachability and record the outcome on it.

        Raises:
            NotFoundError: If *proxy_id* is unknown.
            StateError: If the proxy was deleted during the probe.
        """
        with self._locked() as data:
            proxy = data.find_proxy(proxy_id)
            if proxy is None:
                raise NotFoundError("Proxy not found")
            host, port = proxy.host, proxy.port

        checked_at = now_ts()
        latency: Optional[int] = None
        error: Optional[str] = None
        try:
            latency = probe_latency(host, port)
        except CodexAccountsError as exc:
            error = str(exc)

        with self._transaction() as data:
            target = data.find_proxy(proxy_id)
            if target is None:
                raise StateError("Proxy disappeared during update")
            target.last_checked_at = checked_at
            target.last_status = "ok" if error is None else "error"
            target.last_latency_ms = latency

        return ProxyTestResult(
            proxy_id=proxy_id,
            reachable=error is None,
            latency_ms=latency,
            checked_at=checked_at,
            error=error,
        )
