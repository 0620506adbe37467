"""Account commands: list, activate, switch with editor reload, remove, refresh quota.

Accounts are referenced by id, unique id prefix, or email::

    codex-accounts accounts list
    codex-accounts accounts use alice@example.com
    codex-accounts accounts switch 3f2a --ide cursor
    codex-accounts accounts refresh --all
"""

from __future__ import annotations

from typing import Optional

import typer

from codex_accounts.commands import (
    ACCOUNT_HEADERS,
    account_row,
    get_state,
    reporting_errors,
    resolve_account,
)
from codex_accounts.output import error, get_output, info, success, warning

accounts_app = typer.Typer(no_args_is_help=True)


def _print_accounts(ctx: typer.Context) -> None:
    data = get_state(ctx).store.snapshot()
    get_output().print_table(
        ACCOUNT_HEADERS,
        [account_row(a, data.active_account_id) for a in data.accounts],
        title="Accounts",
        records=[a.model_dump(mode="json", by_alias=True, exclude={"tokens"}) for a in data.accounts],
    )


@accounts_app.command("list")
def accounts_list(ctx: typer.Context) -> None:
    """List signed-in accounts with their last known quota.

    Tokens are never printed, not even with ``--json``.
    """
    with reporting_errors():
        if not get_state(ctx).store.snapshot().accounts:
            info("No accounts yet.")
            get_output().suggest("Run 'codex-accounts login' to add one.")
        _print_accounts(ctx)


@accounts_app.command("use")
def accounts_use(
    ctx: typer.Context,
    account: str = typer.Argument(help="Account id, id prefix, or email."),
) -> None:
    """Make an account active and export its credentials for the Codex CLI."""
    store = get_state(ctx).store
    with reporting_errors():
        account_id = resolve_account(store.snapshot(), account)
        store.set_active_account(account_id)
        email = store.get_account(account_id).email
    success(f"Active account: {email or account_id}")


@accounts_app.command("switch")
def accounts_switch(
    ctx: typer.Context,
    account: str = typer.Argument(help="Account id, id prefix, or email."),
    ide: Optional[str] = typer.Option(
        None, "--ide", help="Editor to reload (vscode, cursor, windsurf, trae, vscodium, zed)."
    ),
) -> None:
    """Activate an account and reload the editor so it picks up the switch.

    The editor given with ``--ide`` is remembered for later switches.
    """
    store = get_state(ctx).store
    with reporting_errors():
        account_id = resolve_account(store.snapshot(), account)
        result = store.switch_account_for_ide(account_id, ide)

    if result.warning:
        warning(result.warning)
    if result.reloaded and result.ide is not None:
        success(f"Account switched and {result.ide.value} reloaded.")
    elif not result.warning:
        success("Account switched.")


@accounts_app.command("remove")
def accounts_remove(
    ctx: typer.Context,
    account: str = typer.Argument(help="Account id, id prefix, or email."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
) -> None:
    """Forget an account and its tokens."""
    store = get_state(ctx).store
    with reporting_errors():
        account_id = resolve_account(store.snapshot(), account)
        label = store.get_account(account_id).email or account_id
        if not yes and not typer.confirm(f"Remove account {label}?"):
            info("Cancelled.")
            raise typer.Exit()
        data = store.remove_account(account_id)
    success(f"Removed account {label}.")
    if data.active_account_id is not None:
        info(f"Active account is now {data.active_account_id}.")


@accounts_app.command("refresh")
def accounts_refresh(
    ctx: typer.Context,
    account: Optional[str] = typer.Argument(None, help="Account id, id prefix, or email."),
    all_accounts: bool = typer.Option(False, "--all", help="Refresh every account."),
) -> None:
    """Fetch current usage from the provider.

    A failed fetch does not fail the command; it is shown in the
    ``Last error`` column.
    """
    store = get_state(ctx).store
    with reporting_errors():
        if all_accounts:
            store.refresh_all_quotas()
        elif account is not None:
            refreshed = store.refresh_account_quota(resolve_account(store.snapshot(), account))
            if refreshed.last_error:
                warning(f"Quota refresh failed: {refreshed.last_error}")
        else:
            error("Give an account or use --all.")
            raise typer.Exit(code=2)
        _print_accounts(ctx)
