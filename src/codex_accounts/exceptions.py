"""Exception hierarchy for codex-accounts.

All exceptions inherit from :class:`CodexAccountsError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`codex_accounts.exit_codes`. The CLI entry point in
:func:`codex_accounts.app.main` catches ``CodexAccountsError`` and exits
with the matching code; anything else produces a crash log.

Subclass hierarchy::

    CodexAccountsError (exit 1)
    +-- InvalidInputError   (exit 2)
    +-- AuthError           (exit 3)
    +-- NotFoundError       (exit 4)
    +-- QuotaError          (exit 5)
    +-- ConnectionError_    (exit 6)
    +-- StateError          (exit 7)
    |   +-- FlowStateError
    |   +-- LockError
    +-- ConfigError         (exit 1)
    +-- StorageError        (exit 1)
"""

from codex_accounts.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_INPUT,
    EXIT_NOT_FOUND,
    EXIT_QUOTA_FAILURE,
    EXIT_STATE_ERROR,
)


class CodexAccountsError(Exception):
    """Base exception for all codex-accounts errors.

    Args:
        message: Human-readable error description. Messages that echo a
            remote response body are already truncated by the caller.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidInputError(CodexAccountsError):
    """Raised for malformed user input. No state is mutated."""

    exit_code = EXIT_INVALID_INPUT


class AuthError(CodexAccountsError):
    """Raised when the OAuth token exchange fails or returns an unusable payload."""

    exit_code = EXIT_AUTH_FAILURE


class NotFoundError(CodexAccountsError):
    """Raised for an unknown account, proxy, or flow id."""

    exit_code = EXIT_NOT_FOUND


class QuotaError(CodexAccountsError):
    """Raised when the usage endpoint rejects the request or returns garbage."""

    exit_code = EXIT_QUOTA_FAILURE


class ConnectionError_(CodexAccountsError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class StateError(CodexAccountsError):
    """Raised when shared state no longer matches what an operation read earlier.

    Typical cause: an account removed by one caller while another caller
    was refreshing its quota.
    """

    exit_code = EXIT_STATE_ERROR


class FlowStateError(StateError):
    """Raised when a login flow is not in the state an operation requires."""


class LockError(StateError):
    """Raised when a shared-state lock cannot be acquired in time."""


class ConfigError(CodexAccountsError):
    """Raised for an unreadable or invalid state file."""

    exit_code = EXIT_GENERIC_FAILURE


class StorageError(CodexAccountsError):
    """Raised when the state file or credential export cannot be written."""

    exit_code = EXIT_GENERIC_FAILURE
