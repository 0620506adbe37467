"""Registry of in-flight login flows.

:class:`FlowRegistry` is a lock-guarded map of flow id to
:class:`~codex_accounts.models.OauthFlow`. It is the only place flow state
changes, and it enforces the state machine::

    waiting_callback --> exchanging --> completed
                                   \\-> error

The move to ``exchanging`` happens in the same critical section that
matches the callback, before any network I/O, so a second callback for
the same flow finds it already claimed. Every method holds the lock only
for the in-memory update and returns copies, never live records.

Flows are never removed; they live until the process exits.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

from codex_accounts.constants import LOCK_TIMEOUT
from codex_accounts.exceptions import (
    FlowStateError,
    InvalidInputError,
    LockError,
    NotFoundError,
)
from codex_accounts.models import FlowStatus, OauthFlow

logger = logging.getLogger(__name__)

STATE_MISMATCH_MESSAGE = "State mismatch. Callback belongs to another session."


class FlowRegistry:
    """Concurrency-safe map of login flows keyed by flow id.

    Args:
        lock_timeout: Seconds to wait for the registry lock before raising
            :class:`~codex_accounts.exceptions.LockError`.
    """

    def __init__(self, lock_timeout: float = LOCK_TIMEOUT) -> None:
        self._flows: dict[str, OauthFlow] = {}
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout

    @contextmanager
    def _locked(self) -> Iterator[dict[str, OauthFlow]]:
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise LockError("State lock unavailable (oauth flows)")
        try:
            yield self._flows
        finally:
            self._lock.release()

    def __len__(self) -> int:
        with self._locked() as flows:
            return len(flows)

    def register(self, flow: OauthFlow) -> None:
        """Add a new flow. Its id must be unused."""
        with self._locked() as flows:
            if flow.id in flows:
                raise FlowStateError(f"OAuth flow {flow.id} already registered")
            flows[flow.id] = flow.model_copy()
        logger.debug("Registered OAuth flow %s", flow.id)

    def get(self, flow_id: str) -> OauthFlow:
        """Return a copy of the flow *flow_id*.

        Raises:
            NotFoundError: If no such flow exists.
        """
        with self._locked() as flows:
            flow = flows.get(flow_id)
            if flow is None:
                raise NotFoundError("OAuth flow not found")
            return flow.model_copy()

    def flows(self) -> list[OauthFlow]:
        """Return copies of all flows, oldest first."""
        with self._locked() as flows:
            return sorted(
                (flow.model_copy() for flow in flows.values()),
                key=lambda f: f.created_at,
            )

    def begin_exchange_for_state(self, state: str, callback_url: str) -> tuple[str, str]:
        """Claim the flow whose anti-forgery token equals *state*.

        Used by the callback listener, which never sees flow ids.

        Returns:
            ``(flow_id, code_verifier)`` of the claimed flow.

        Raises:
            NotFoundError: If no flow carries *state*. Nothing is mutated.
            FlowStateError: If the matching flow was already claimed by an
                earlier callback or has finished.
        """
        with self._locked() as flows:
            flow = self._find_by_state(flows, state)
            if flow is None:
                raise NotFoundError("No active OAuth flow matched this state.")
            self._claim(flow, callback_url)
            return flow.id, flow.code_verifier

    def begin_exchange(self, flow_id: str, state: str, callback_url: str) -> str:
        """Claim flow *flow_id* for a manually pasted callback.

        Returns:
            The flow's ``code_verifier``.

        Raises:
            NotFoundError: If *flow_id* is unknown.
            InvalidInputError: If *state* is not the flow's token. The flow
                is moved to ``error`` since the pasted callback belongs to
                another session.
            FlowStateError: If the flow is no longer waiting for a callback.
        """
        with self._locked() as flows:
            flow = flows.get(flow_id)
            if flow is None:
                raise NotFoundError("OAuth flow not found")
            if flow.state != state:
                if not flow.status.is_terminal:
                    flow.status = FlowStatus.ERROR
                    flow.error = STATE_MISMATCH_MESSAGE
                raise InvalidInputError(
                    "State mismatch. Ensure callback belongs to the current login session."
                )
            self._claim(flow, callback_url)
            return flow.code_verifier

    def complete(self, flow_id: str, account_id: str) -> None:
        """Mark an exchanging flow completed with its resulting account."""
        with self._locked() as flows:
            flow = flows.get(flow_id)
            if flow is None:
                raise NotFoundError("OAuth flow not found after completion")
            if flow.status is not FlowStatus.EXCHANGING:
                raise FlowStateError(
                    f"OAuth flow cannot complete from status {flow.status.value}"
                )
            flow.status = FlowStatus.COMPLETED
            flow.result_account_id = account_id
            flow.error = None
        logger.info("OAuth flow %s completed (account %s)", flow_id, account_id)

    def fail(self, flow_id: str, message: str) -> None:
        """Move a flow to the terminal ``error`` state with *message*.

        A flow that already completed keeps its result.
        """
        with self._locked() as flows:
            flow = flows.get(flow_id)
            if flow is None or flow.status is FlowStatus.COMPLETED:
                return
            flow.status = FlowStatus.ERROR
            flow.error = message
        logger.warning("OAuth flow %s failed: %s", flow_id, message)

    @staticmethod
    def _find_by_state(flows: dict[str, OauthFlow], state: str) -> Optional[OauthFlow]:
        for flow in flows.values():
            if flow.state == state:
                return flow
        return None

    @staticmethod
    def _claim(flow: OauthFlow, callback_url: str) -> None:
        if flow.status is not FlowStatus.WAITING_CALLBACK:
            raise FlowStateError(
                f"OAuth flow is already {flow.status.value}; start a new login."
            )
        flow.callback_url = callback_url
        flow.status = FlowStatus.EXCHANGING
