"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to one error category of the
:class:`~codex_accounts.exceptions.CodexAccountsError` hierarchy, so
wrapper scripts can tell a rejected login from an unreachable proxy
without parsing stderr.

Example::

    $ codex-accounts accounts use 1234
    $ echo $?
    4   # EXIT_NOT_FOUND -- no account with that id
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred (including storage and config failures)."""

EXIT_INVALID_INPUT = 2
"""The command received malformed input (proxy string, IDE name, callback URL)."""

EXIT_AUTH_FAILURE = 3
"""The OAuth token exchange was rejected or returned an unusable payload."""

EXIT_NOT_FOUND = 4
"""The referenced account, proxy, or login flow does not exist."""

EXIT_QUOTA_FAILURE = 5
"""The usage endpoint could not be queried."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_STATE_ERROR = 7
"""Shared state changed underneath an operation or could not be locked."""

EXIT_CANCELLED = 130
"""The user interrupted the command (Ctrl-C)."""
