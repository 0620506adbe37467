"""codex-accounts -- keep several ChatGPT accounts signed in for the Codex CLI.

Accounts are added through the provider's browser login (OAuth 2.0
authorization code with PKCE). The manager stores each account's tokens,
shows its usage quota, and on request exports one account's credentials
to the Codex CLI's ``auth.json`` and reloads the editor using it.

Typical workflow::

    codex-accounts login                     # add an account
    codex-accounts accounts list             # tokens stay hidden
    codex-accounts accounts switch alice@example.com --ide cursor

Modules:
    app: Typer application and CLI entry point.
    state: Shared state wiring (store, flow registry, listener).
    models: Pydantic models for persisted state and operation results.
    config: Storage locations and atomic persistence.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr discipline and logging setup.
"""

__version__ = "0.1.0"
