"""Settings commands: preferred editor, quota base URL, file locations."""

from __future__ import annotations

import typer

from codex_accounts.commands import get_state, reporting_errors
from codex_accounts.config import get_codex_auth_path
from codex_accounts.output import get_output, print_data, success

config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the current settings."""
    state = get_state(ctx)
    with reporting_errors():
        data = state.store.snapshot()
    get_output().print_record(
        {
            "limitsBaseUrl": data.limits_base_url,
            "preferredIde": data.preferred_ide.value if data.preferred_ide else None,
            "activeAccountId": data.active_account_id,
            "activeProxyId": data.active_proxy_id,
            "accounts": len(data.accounts),
            "proxies": len(data.proxies),
            "stateFile": str(state.store.path),
            "codexAuthFile": str(get_codex_auth_path()),
        },
        title="Settings",
    )


@config_app.command("set-ide")
def config_set_ide(
    ctx: typer.Context,
    ide: str = typer.Argument(
        help="vscode, cursor, windsurf, trae, vscodium, zed, or 'none' to clear."
    ),
) -> None:
    """Set the editor reloaded after an account switch."""
    with reporting_errors():
        value = None if ide.strip().lower() == "none" else ide
        data = get_state(ctx).store.set_preferred_ide(value)
    if data.preferred_ide is None:
        success("Preferred IDE cleared.")
    else:
        success(f"Preferred IDE: {data.preferred_ide.value}")


@config_app.command("set-base-url")
def config_set_base_url(
    ctx: typer.Context,
    url: str = typer.Argument(help="Base URL of the usage API."),
) -> None:
    """Set the base URL used for quota queries.

    URLs containing ``/backend-api`` are queried at ``/wham/usage``, all
    others at ``/api/codex/usage``.
    """
    with reporting_errors():
        data = get_state(ctx).store.set_limits_base_url(url)
    success(f"Limits base URL: {data.limits_base_url}")


@config_app.command("path")
def config_path(ctx: typer.Context) -> None:
    """Print the state file path."""
    print_data(str(get_state(ctx).store.path))
