"""Process-wide shared state.

Everything that must be shared between the CLI commands and the callback
listener thread lives in one :class:`SharedState`, built once at start-up
by :func:`create_shared_state` and passed explicitly to whoever needs it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from codex_accounts.accounts.store import AccountStore
from codex_accounts.auth.callback_server import CallbackListener
from codex_accounts.auth.flows import FlowRegistry
from codex_accounts.auth.orchestrator import FlowOrchestrator
from codex_accounts.config import get_state_path, load_app_data, quarantine_state_file
from codex_accounts.constants import CALLBACK_PORT
from codex_accounts.exceptions import ConfigError
from codex_accounts.models import AppData

logger = logging.getLogger(__name__)


@dataclass
class SharedState:
    store: AccountStore
    registry: FlowRegistry
    listener: CallbackListener
    oauth: FlowOrchestrator


def create_shared_state(
    path: Optional[Path] = None, port: int = CALLBACK_PORT
) -> SharedState:
    """Load the persisted aggregate and wire up store, registry and listener.

    A state file that cannot be read or validated is moved aside and
    replaced by defaults in memory.
    """
    path = path or get_state_path()
    try:
        data = load_app_data(path)
    except ConfigError as exc:
        logger.warning("%s; starting with empty state", exc)
        backup = quarantine_state_file(path)
        if backup is not None:
            logger.warning("Unreadable state file kept at %s", backup)
        data = AppData()

    store = AccountStore(data, path)
    registry = FlowRegistry()
    oauth = FlowOrchestrator(store, registry, port=port)
    return SharedState(store=store, registry=registry, listener=oauth.listener, oauth=oauth)
