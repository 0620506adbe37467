"""Proxy commands.

Provider traffic (token exchange and quota queries) goes through the
active proxy when one is set. Proxies are entered as
``login:password@host:port``::

    codex-accounts proxy add user:secret@10.0.0.5:3128
    codex-accounts proxy test 10.0.0.5:3128
    codex-accounts proxy use --none
"""

from __future__ import annotations

from typing import Optional

import typer

from codex_accounts.commands import (
    PROXY_HEADERS,
    get_state,
    proxy_row,
    reporting_errors,
    resolve_proxy,
)
from codex_accounts.output import error, get_output, info, success, warning

proxy_app = typer.Typer(no_args_is_help=True)


@proxy_app.command("list")
def proxy_list(ctx: typer.Context) -> None:
    """List saved proxies. Passwords appear only in ``--json`` output."""
    with reporting_errors():
        data = get_state(ctx).store.snapshot()
    if not data.proxies:
        info("No proxies saved.")
    get_output().print_table(
        PROXY_HEADERS,
        [proxy_row(p, data.active_proxy_id) for p in data.proxies],
        title="Proxies",
        records=[p.model_dump(mode="json", by_alias=True) for p in data.proxies],
    )


@proxy_app.command("add")
def proxy_add(
    ctx: typer.Context,
    proxy: str = typer.Argument(help="login:password@host:port"),
    activate: bool = typer.Option(False, "--use", help="Make the new proxy active."),
) -> None:
    """Save a new proxy."""
    store = get_state(ctx).store
    with reporting_errors():
        data = store.save_proxy(proxy)
        added = data.proxies[-1]
        if activate:
            store.set_active_proxy(added.id)
    success(f"Saved proxy {added.host}:{added.port} ({added.id}).")


@proxy_app.command("edit")
def proxy_edit(
    ctx: typer.Context,
    ref: str = typer.Argument(help="Proxy id, id prefix, or host:port."),
    proxy: str = typer.Argument(help="New login:password@host:port"),
) -> None:
    """Replace the address and credentials of a saved proxy."""
    store = get_state(ctx).store
    with reporting_errors():
        proxy_id = resolve_proxy(store.snapshot(), ref)
        store.save_proxy(proxy, proxy_id=proxy_id)
    success("Proxy updated.")


@proxy_app.command("remove")
def proxy_remove(
    ctx: typer.Context,
    ref: str = typer.Argument(help="Proxy id, id prefix, or host:port."),
) -> None:
    """Delete a proxy. If it was active, traffic goes direct again."""
    store = get_state(ctx).store
    with reporting_errors():
        before = store.snapshot()
        proxy_id = resolve_proxy(before, ref)
        store.delete_proxy(proxy_id)
    success("Proxy removed.")
    if before.active_proxy_id == proxy_id:
        info("No proxy is active now.")


@proxy_app.command("use")
def proxy_use(
    ctx: typer.Context,
    ref: Optional[str] = typer.Argument(None, help="Proxy id, id prefix, or host:port."),
    none: bool = typer.Option(False, "--none", help="Stop using a proxy."),
) -> None:
    """Select the proxy for provider traffic."""
    store = get_state(ctx).store
    if none == (ref is not None):
        error("Give either a proxy or --none.")
        raise typer.Exit(code=2)
    with reporting_errors():
        if none:
            store.set_active_proxy(None)
            success("Proxy disabled.")
            return
        proxy_id = resolve_proxy(store.snapshot(), ref)
        store.set_active_proxy(proxy_id)
    success(f"Active proxy: {proxy_id}")


@proxy_app.command("test")
def proxy_test(
    ctx: typer.Context,
    ref: str = typer.Argument(help="Proxy id, id prefix, or host:port."),
) -> None:
    """Check that the proxy accepts TCP connections and record the latency."""
    store = get_state(ctx).store
    with reporting_errors():
        result = store.test_proxy(resolve_proxy(store.snapshot(), ref))
    get_output().print_record(result.model_dump(mode="json", by_alias=True), title="Proxy test")
    if not result.reachable:
        warning(f"Proxy unreachable: {result.error}")
        raise typer.Exit(code=6)
