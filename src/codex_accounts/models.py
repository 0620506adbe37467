"""Canonical Pydantic models shared across all codex-accounts modules.

This is the single source of truth for data shapes in the project. The
models fall into three groups:

**Persisted aggregate** -- serialised as one JSON document in the data
directory: :class:`Tokens`, :class:`QuotaWindow`, :class:`QuotaInfo`,
:class:`Account`, :class:`ProxyEntry`, and the root :class:`AppData`.

**Login flow bookkeeping** -- kept in process memory only:
:class:`FlowStatus` and :class:`OauthFlow`.

**Operation results** -- returned to the front end:
:class:`OauthStartResponse`, :class:`OauthFlowResponse`,
:class:`ProxyTestResult`, and :class:`SwitchAccountResponse`.

All persisted and result models serialise with camelCase keys (the format
of existing state files) and accept either camelCase or snake_case on
input. Timestamps are integer Unix seconds.
"""

from __future__ import annotations

import enum
import time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from codex_accounts.constants import DEFAULT_LIMITS_BASE_URL


def now_ts() -> int:
    """Return the current Unix time in whole seconds."""
    return int(time.time())


class _CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Credentials and quota ---


class Tokens(_CamelModel):
    """Tokens issued by the provider for one account.

    Immutable once obtained; a re-authentication replaces the whole object.
    ``refresh_token`` is persisted and exported but never used locally.
    """

    id_token: str = ""
    access_token: str = ""
    refresh_token: str = ""


class QuotaWindow(_CamelModel):
    """Usage of one rate-limit window at the time it was fetched."""

    used_percent: Optional[float] = None
    limit_window_seconds: Optional[int] = None
    reset_at: Optional[int] = None
    fetched_at: Optional[int] = None


class QuotaInfo(_CamelModel):
    """Point-in-time usage snapshot. Replaced wholesale on every refresh."""

    plan_type: Optional[str] = None
    primary: QuotaWindow = Field(default_factory=QuotaWindow)
    secondary: QuotaWindow = Field(default_factory=QuotaWindow)
    fetched_at: int = Field(default_factory=now_ts)


# --- Accounts and proxies ---


class Account(_CamelModel):
    """A signed-in account.

    Only created by a successful token exchange, so every stored account
    carries tokens. ``id`` is generated locally and stays stable for the
    account's lifetime; ``account_id`` is the provider's identifier taken
    from the identity token.
    """

    id: str
    email: Optional[str] = None
    account_id: Optional[str] = None
    tokens: Tokens
    quota: Optional[QuotaInfo] = None
    created_at: int = Field(default_factory=now_ts)
    last_login_at: int = Field(default_factory=now_ts)
    last_error: Optional[str] = None


class ProxyEntry(_CamelModel):
    """An HTTP proxy used for outbound provider traffic.

    ``raw`` always holds the canonical ``login:password@host:port`` form.
    The ``last_*`` fields record the most recent reachability probe.
    """

    id: str
    login: str
    password: str
    host: str
    port: int
    raw: str
    last_latency_ms: Optional[int] = None
    last_status: Optional[str] = None
    last_checked_at: Optional[int] = None


class IdeTarget(str, enum.Enum):
    """Editors that can be asked to reload after an account switch."""

    VSCODE = "vscode"
    CURSOR = "cursor"
    WINDSURF = "windsurf"
    TRAE = "trae"
    VSCODIUM = "vscodium"
    ZED = "zed"


class AppData(_CamelModel):
    """Root aggregate persisted to the state file.

    ``active_account_id`` and ``active_proxy_id`` are weak references:
    plain ids that must name an existing entry or be ``None``. Every
    operation that deletes an entry fixes the pointer in the same update.
    """

    accounts: list[Account] = Field(default_factory=list)
    active_account_id: Optional[str] = None
    proxies: list[ProxyEntry] = Field(default_factory=list)
    active_proxy_id: Optional[str] = None
    limits_base_url: str = DEFAULT_LIMITS_BASE_URL
    preferred_ide: Optional[IdeTarget] = None

    def find_account(self, account_id: str) -> Optional[Account]:
        """Return the account with local id *account_id*, if any."""
        for account in self.accounts:
            if account.id == account_id:
                return account
        return None

    def find_proxy(self, proxy_id: str) -> Optional[ProxyEntry]:
        """Return the proxy with id *proxy_id*, if any."""
        for proxy in self.proxies:
            if proxy.id == proxy_id:
                return proxy
        return None

    def active_proxy(self) -> Optional[ProxyEntry]:
        """Resolve :attr:`active_proxy_id` against the live proxy list."""
        if self.active_proxy_id is None:
            return None
        return self.find_proxy(self.active_proxy_id)


# --- Login flows ---


class FlowStatus(str, enum.Enum):
    """Lifecycle of one login attempt.

    ``WAITING_CALLBACK -> EXCHANGING -> COMPLETED | ERROR``. Both terminal
    states are final; a failed login needs a new flow.
    """

    WAITING_CALLBACK = "waiting_callback"
    EXCHANGING = "exchanging"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (FlowStatus.COMPLETED, FlowStatus.ERROR)


class OauthFlow(BaseModel):
    """In-memory record of one login attempt.

    ``state`` is the anti-forgery token sent to the provider; ``id`` never
    leaves the process. ``result_account_id`` is a weak reference into
    :attr:`AppData.accounts` and is set together with ``COMPLETED``.
    """

    id: str
    state: str
    code_verifier: str
    created_at: int = Field(default_factory=now_ts)
    authorization_url: str
    callback_url: Optional[str] = None
    result_account_id: Optional[str] = None
    status: FlowStatus = FlowStatus.WAITING_CALLBACK
    error: Optional[str] = None


# --- Operation results ---


class OauthStartResponse(_CamelModel):
    """Returned when a login flow starts."""

    flow_id: str
    authorization_url: str
    redirect_uri: str


class OauthFlowResponse(_CamelModel):
    """Public view of a login flow, without its secrets."""

    flow_id: str
    authorization_url: str
    callback_url: Optional[str] = None
    created_at: int
    status: FlowStatus
    error: Optional[str] = None
    account: Optional[Account] = None


class ProxyTestResult(_CamelModel):
    """Outcome of a proxy reachability probe."""

    proxy_id: str
    reachable: bool
    latency_ms: Optional[int] = None
    checked_at: int
    error: Optional[str] = None


class SwitchAccountResponse(_CamelModel):
    """Result of activating an account and reloading an editor."""

    state: AppData
    ide: Optional[IdeTarget] = None
    reloaded: bool = False
    warning: Optional[str] = None
