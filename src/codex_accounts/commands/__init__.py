"""CLI sub-command groups and the helpers they share.

Every command obtains the process state through :func:`get_state`, which
builds it once per invocation and caches it on the Typer context object.
Domain errors are reported with :func:`reporting_errors`, which prints
the message to stderr and exits with the error's exit code.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

import typer

from codex_accounts.exceptions import CodexAccountsError, InvalidInputError, NotFoundError
from codex_accounts.models import Account, AppData, ProxyEntry, QuotaWindow
from codex_accounts.output import error
from codex_accounts.state import SharedState, create_shared_state


def get_state(ctx: typer.Context) -> SharedState:
    """Return the invocation's :class:`SharedState`, creating it on first use."""
    obj = ctx.ensure_object(dict)
    state = obj.get("state")
    if state is None:
        state = create_shared_state()
        obj["state"] = state
    return state


@contextmanager
def reporting_errors() -> Iterator[None]:
    """Turn a :class:`CodexAccountsError` into an error message and exit code."""
    try:
        yield
    except CodexAccountsError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _resolve(ref: str, candidates: list[tuple[str, Optional[str]]], kind: str) -> str:
    # Exact id, then exact label (case-insensitive), then unique id prefix.
    for entry_id, _ in candidates:
        if entry_id == ref:
            return entry_id
    lowered = ref.lower()
    by_label = [i for i, label in candidates if label is not None and label.lower() == lowered]
    if len(by_label) == 1:
        return by_label[0]
    by_prefix = [i for i, _ in candidates if i.startswith(ref)]
    if len(by_prefix) == 1:
        return by_prefix[0]
    if len(by_label) > 1 or len(by_prefix) > 1:
        raise InvalidInputError(f"'{ref}' matches more than one {kind}; use the full id")
    raise NotFoundError(f"{kind.capitalize()} not found: {ref}")


def resolve_account(data: AppData, ref: str) -> str:
    """Map an account id, id prefix, or email to the account's id."""
    return _resolve(ref, [(a.id, a.email) for a in data.accounts], "account")


def resolve_proxy(data: AppData, ref: str) -> str:
    """Map a proxy id, id prefix, or ``host:port`` to the proxy's id."""
    return _resolve(ref, [(p.id, f"{p.host}:{p.port}") for p in data.proxies], "proxy")


def short_id(entry_id: str) -> str:
    return entry_id[:8]


def format_ts(ts: Optional[int]) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")


def format_window(window: Optional[QuotaWindow]) -> str:
    if window is None or window.used_percent is None:
        return "-"
    text = f"{window.used_percent:.0f}%"
    if window.reset_at is not None:
        text += f" (resets {format_ts(window.reset_at)})"
    return text


def account_row(account: Account, active_id: Optional[str]) -> list[str]:
    quota = account.quota
    return [
        "*" if account.id == active_id else "",
        short_id(account.id),
        account.email or "-",
        (quota.plan_type if quota and quota.plan_type else "-"),
        format_window(quota.primary if quota else None),
        format_window(quota.secondary if quota else None),
        account.last_error or "",
    ]


ACCOUNT_HEADERS = ["Active", "ID", "Email", "Plan", "Primary", "Secondary", "Last error"]


def proxy_row(proxy: ProxyEntry, active_id: Optional[str]) -> list[str]:
    latency = f"{proxy.last_latency_ms} ms" if proxy.last_latency_ms is not None else "-"
    return [
        "*" if proxy.id == active_id else "",
        short_id(proxy.id),
        f"{proxy.host}:{proxy.port}",
        proxy.login,
        proxy.last_status or "-",
        latency,
        format_ts(proxy.last_checked_at),
    ]


PROXY_HEADERS = ["Active", "ID", "Address", "Login", "Status", "Latency", "Checked"]
