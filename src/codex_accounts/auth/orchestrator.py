"""Login flow orchestration.

:class:`FlowOrchestrator` ties the pieces of a login together: it starts
flows (PKCE pair, state token, authorization URL), exposes their status,
accepts manually pasted callbacks, and runs the token exchange that both
the loopback listener and the paste path end in.

No lock is held while talking to the provider. The registry claim that
precedes :meth:`FlowOrchestrator.complete_code` guarantees each flow is
exchanged at most once.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from codex_accounts.accounts.store import AccountStore
from codex_accounts.auth.callback_server import CallbackListener, parse_callback_input
from codex_accounts.auth.flows import FlowRegistry
from codex_accounts.auth.identity import extract_account_id, extract_email
from codex_accounts.auth.pkce import (
    build_authorization_url,
    generate_pkce_pair,
    new_state_token,
)
from codex_accounts.client.oauth_client import exchange_code_for_tokens
from codex_accounts.client.quota import fetch_quota
from codex_accounts.constants import CALLBACK_PORT, OAUTH_REDIRECT_URI
from codex_accounts.exceptions import CodexAccountsError, FlowStateError
from codex_accounts.models import (
    Account,
    FlowStatus,
    OauthFlow,
    OauthFlowResponse,
    OauthStartResponse,
    QuotaInfo,
)

logger = logging.getLogger(__name__)


class FlowOrchestrator:
    """Drives login flows from start to a stored account.

    Args:
        store: Account store that receives exchanged tokens.
        registry: Registry of in-flight flows.
        listener: Callback listener to start with the first flow. When
            omitted, one is created on *port* that completes flows through
            :meth:`complete_code`.
        port: Listener port used when *listener* is omitted.
    """

    def __init__(
        self,
        store: AccountStore,
        registry: FlowRegistry,
        listener: Optional[CallbackListener] = None,
        port: int = CALLBACK_PORT,
    ) -> None:
        self.store = store
        self.registry = registry
        self.listener = listener or CallbackListener(registry, self.complete_code, port=port)

    def start_flow(self) -> OauthStartResponse:
        """Start a login and return the URL the user must open."""
        self.listener.ensure_started()

        verifier, challenge = generate_pkce_pair()
        state = new_state_token()
        url = build_authorization_url(state, challenge)
        flow = OauthFlow(
            id=str(uuid.uuid4()),
            state=state,
            code_verifier=verifier,
            authorization_url=url,
        )
        self.registry.register(flow)
        logger.info("Started OAuth flow %s", flow.id)
        return OauthStartResponse(
            flow_id=flow.id,
            authorization_url=url,
            redirect_uri=OAUTH_REDIRECT_URI,
        )

    def flow_status(self, flow_id: str) -> OauthFlowResponse:
        """Return the public view of a flow.

        The resulting account is looked up in the store; if it has been
        removed since, ``account`` is ``None``.

        Raises:
            NotFoundError: If *flow_id* is unknown.
        """
        flow = self.registry.get(flow_id)
        account = None
        if flow.result_account_id is not None:
            account = self.store.snapshot().find_account(flow.result_account_id)
        return OauthFlowResponse(
            flow_id=flow.id,
            authorization_url=flow.authorization_url,
            callback_url=flow.callback_url,
            created_at=flow.created_at,
            status=flow.status,
            error=flow.error if flow.status is FlowStatus.ERROR else None,
            account=account,
        )

    def complete_with_callback(self, flow_id: str, callback_input: str) -> OauthFlowResponse:
        """Finish a flow from a callback URL the user pasted.

        A failed exchange is not raised; it shows up as an ``error``
        status in the returned response.

        Raises:
            InvalidInputError: If the input cannot be parsed or its state
                does not belong to *flow_id*.
            NotFoundError: If *flow_id* is unknown.
            FlowStateError: If the flow is no longer waiting for a callback.
        """
        code, state, normalized = parse_callback_input(callback_input)
        self.registry.begin_exchange(flow_id, state, normalized)
        try:
            self.complete_code(flow_id, code)
        except CodexAccountsError as exc:
            logger.info("Manual completion of flow %s failed: %s", flow_id, exc)
        return self.flow_status(flow_id)

    def complete_code(self, flow_id: str, code: str) -> Account:
        """Exchange *code* for tokens and store the account.

        The flow must already be claimed (``exchanging``). On any failure
        the flow moves to ``error`` with the failure text, and the error
        is re-raised.

        Returns:
            The stored account.
        """
        try:
            flow = self.registry.get(flow_id)
            if flow.status is not FlowStatus.EXCHANGING:
                raise FlowStateError(
                    f"OAuth flow cannot exchange from status {flow.status.value}"
                )
            account = self._exchange_and_store(flow.code_verifier, code)
            self.registry.complete(flow_id, account.id)
        except Exception as exc:
            self.registry.fail(flow_id, str(exc))
            raise
        return account

    def _exchange_and_store(self, verifier: str, code: str) -> Account:
        tokens = exchange_code_for_tokens(code, verifier, self.store.active_proxy())
        account_id = extract_account_id(tokens.id_token)
        email = extract_email(tokens.id_token)

        quota: Optional[QuotaInfo] = None
        quota_error: Optional[str] = None
        try:
            quota = fetch_quota(
                self.store.limits_base_url(),
                tokens,
                account_id,
                self.store.active_proxy(),
            )
        except CodexAccountsError as exc:
            logger.warning("Initial quota fetch failed: %s", exc)
            quota_error = str(exc)

        return self.store.upsert_account(
            tokens, email, account_id, quota=quota, quota_error=quota_error
        )
