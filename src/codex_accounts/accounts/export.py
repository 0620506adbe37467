"""Credential export for the Codex CLI.

Activating an account writes its tokens to ``auth.json`` in the CLI's
home directory, which is how the CLI (and editors embedding it) pick up
the switch.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from codex_accounts.config import atomic_write, get_codex_auth_path
from codex_accounts.models import Tokens

logger = logging.getLogger(__name__)


def build_codex_auth(tokens: Tokens, account_id: Optional[str]) -> dict[str, object]:
    """Return the ``auth.json`` document for *tokens*."""
    return {
        "OPENAI_API_KEY": None,
        "tokens": {
            "id_token": tokens.id_token,
            "access_token": tokens.access_token,
            "refresh_token": tokens.refresh_token,
            "account_id": account_id,
        },
        "last_refresh": datetime.now(timezone.utc).isoformat(),
    }


def write_codex_auth(
    tokens: Tokens,
    account_id: Optional[str],
    path: Optional[Path] = None,
) -> Path:
    """Atomically write the credential export file with ``0o600`` permissions.

    Args:
        tokens: Tokens of the account being activated.
        account_id: Provider account id of that account.
        path: Destination. Defaults to :func:`~codex_accounts.config.get_codex_auth_path`.

    Returns:
        The path written.

    Raises:
        StorageError: If the file cannot be written.
    """
    path = path or get_codex_auth_path()
    text = json.dumps(build_codex_auth(tokens, account_id), indent=2) + "\n"
    atomic_write(path, text)
    logger.info("Exported credentials to %s", path)
    return path
