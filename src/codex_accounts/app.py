"""Typer application and CLI entry point for codex-accounts.

The root callback configures output and logging from the global flags;
the sub-command groups (``accounts``, ``proxy``, ``config``) and the
``login`` command are registered below. :func:`main` is the console-script
entry point: it maps :class:`~codex_accounts.exceptions.CodexAccountsError`
to its exit code and writes a crash log for anything else.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer

from codex_accounts import __version__
from codex_accounts.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="codex-accounts",
    help="Manage multiple ChatGPT accounts for the Codex CLI.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"codex-accounts {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~codex_accounts.output.OutputManager`,
    configures logging, and prepares ``ctx.obj`` for the lazily created
    shared state.
    """
    from codex_accounts.output import (
        OutputFormat,
        OutputManager,
        configure_logging,
        set_output,
    )

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    configure_logging(verbose=verbose, no_color=no_color)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


# ------------------------------------------------------------------ #
# Sub-commands
# ------------------------------------------------------------------ #

from codex_accounts.commands.accounts import accounts_app  # noqa: E402
from codex_accounts.commands.config import config_app  # noqa: E402
from codex_accounts.commands.login import login_command  # noqa: E402
from codex_accounts.commands.proxy import proxy_app  # noqa: E402

app.command("login")(login_command)
app.add_typer(accounts_app, name="accounts", help="Manage signed-in accounts.")
app.add_typer(proxy_app, name="proxy", help="Manage outbound proxies.")
app.add_typer(config_app, name="config", help="View and change settings.")


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback under the data directory and return its path."""
    from codex_accounts.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``codex-accounts`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)
    except Exception as exc:
        from codex_accounts.exceptions import CodexAccountsError
        from codex_accounts.output import error

        if isinstance(exc, CodexAccountsError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
