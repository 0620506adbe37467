"""Login command -- add or re-authenticate an account through the browser.

Login flows live in process memory, so one ``login`` invocation runs the
whole flow:

1. Start a flow and make sure the callback listener is up on
   ``127.0.0.1:1455``.
2. Open the authorization URL in the browser (unless ``--no-browser``).
3. Wait for the provider to redirect back to the listener.
4. If the redirect never arrives (the listener could not bind, or the
   browser runs on another machine), ask the user to paste the URL the
   browser ended up on and complete the same flow with it.
"""

from __future__ import annotations

import sys
import threading
import time
import webbrowser

import typer

from codex_accounts.commands import get_state, reporting_errors
from codex_accounts.exit_codes import EXIT_AUTH_FAILURE
from codex_accounts.models import FlowStatus, OauthFlowResponse
from codex_accounts.output import error, get_output, info, success, warning

_POLL_INTERVAL = 0.5
_LISTENER_READY_TIMEOUT = 2.0


def _wait_for_flow(ctx: typer.Context, flow_id: str, timeout: float) -> OauthFlowResponse:
    oauth = get_state(ctx).oauth
    deadline = time.monotonic() + timeout
    status = oauth.flow_status(flow_id)
    while not status.status.is_terminal and time.monotonic() < deadline:
        time.sleep(_POLL_INTERVAL)
        status = oauth.flow_status(flow_id)
    return status


def login_command(
    ctx: typer.Context,
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the login URL instead of opening it."
    ),
    timeout: int = typer.Option(
        300, "--timeout", min=1, help="Seconds to wait for the browser callback."
    ),
    paste: bool = typer.Option(
        False, "--paste", help="Skip waiting and paste the callback URL right away."
    ),
) -> None:
    """Sign in with a ChatGPT account and store its tokens.

    Signing in again with an account that is already stored refreshes its
    tokens instead of adding a duplicate.

    Example::

        codex-accounts login
        codex-accounts login --no-browser --paste
    """
    state = get_state(ctx)
    with reporting_errors():
        start = state.oauth.start_flow()

    if not state.listener.wait_until_ready(_LISTENER_READY_TIMEOUT):
        warning(state.listener.bind_error or "Callback listener is not running.")
        paste = True

    typer.echo("Open this URL to sign in:", err=True)
    typer.echo(start.authorization_url, err=True)
    if not no_browser:
        threading.Thread(
            target=webbrowser.open, args=(start.authorization_url,), daemon=True
        ).start()

    with reporting_errors():
        if paste:
            status = state.oauth.flow_status(start.flow_id)
        else:
            info("Waiting for the browser to finish signing in...")
            status = _wait_for_flow(ctx, start.flow_id, timeout)

        if status.status is FlowStatus.WAITING_CALLBACK and (paste or sys.stdin.isatty()):
            callback = typer.prompt("Paste the URL your browser was redirected to")
            status = state.oauth.complete_with_callback(start.flow_id, callback)
        elif status.status is FlowStatus.EXCHANGING:
            status = _wait_for_flow(ctx, start.flow_id, timeout)

    if status.status is FlowStatus.COMPLETED and status.account is not None:
        account = status.account
        success(f"Signed in as {account.email or account.id}.")
        if account.last_error:
            warning(f"Quota fetch failed: {account.last_error}")
        get_output().print_record(
            account.model_dump(mode="json", by_alias=True, exclude={"tokens"}),
            title="Account",
        )
        return

    if status.status is FlowStatus.ERROR:
        error(f"Login failed: {status.error}")
    else:
        error("Timed out waiting for the OAuth callback.")
    raise typer.Exit(code=EXIT_AUTH_FAILURE)
