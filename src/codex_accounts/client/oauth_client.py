"""Authorization-code token exchange against the provider's token endpoint.

Only the initial exchange is implemented; refresh tokens are stored and
exported but never redeemed here.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from codex_accounts.client.http import build_http_client, describe_status, truncate
from codex_accounts.constants import (
    OAUTH_CLIENT_ID,
    OAUTH_REDIRECT_URI,
    OAUTH_TOKEN_URL,
    TOKEN_EXCHANGE_TIMEOUT,
)
from codex_accounts.exceptions import AuthError, ConnectionError_
from codex_accounts.models import ProxyEntry, Tokens

logger = logging.getLogger(__name__)


def exchange_code_for_tokens(
    code: str,
    code_verifier: str,
    proxy: Optional[ProxyEntry] = None,
) -> Tokens:
    """Exchange an authorization code for the account's tokens.

    Args:
        code: The ``code`` query parameter from the provider's redirect.
        code_verifier: The PKCE verifier stored with the flow.
        proxy: Optional proxy to route the request through.

    Returns:
        The issued :class:`~codex_accounts.models.Tokens`. ``id_token``
        and ``refresh_token`` are empty strings when the provider omits them.

    Raises:
        ConnectionError_: If the request could not be sent or read.
        AuthError: On a non-2xx status, a body that is not a JSON object,
            or a response without ``access_token``.
    """
    form = {
        "grant_type": "authorization_code",
        "client_id": OAUTH_CLIENT_ID,
        "code": code,
        "code_verifier": code_verifier,
        "redirect_uri": OAUTH_REDIRECT_URI,
    }

    logger.debug("Exchanging authorization code (proxy=%s)", proxy.host if proxy else None)
    try:
        with build_http_client(TOKEN_EXCHANGE_TIMEOUT, proxy) as client:
            response = client.post(OAUTH_TOKEN_URL, data=form)
    except httpx.HTTPError as exc:
        raise ConnectionError_(f"OAuth token request failed: {exc}") from exc

    if not response.is_success:
        raise AuthError(
            f"OAuth exchange failed ({describe_status(response)}): {truncate(response.text)}"
        )

    try:
        payload: Any = response.json()
    except ValueError as exc:
        raise AuthError(f"Invalid OAuth payload: {exc}") from exc
    if not isinstance(payload, dict):
        raise AuthError("Invalid OAuth payload: expected a JSON object")

    access_token = payload.get("access_token")
    if not isinstance(access_token, str) or not access_token:
        raise AuthError("OAuth payload missing access_token")

    return Tokens(
        access_token=access_token,
        id_token=_optional_str(payload, "id_token"),
        refresh_token=_optional_str(payload, "refresh_token"),
    )


def _optional_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    return value if isinstance(value, str) else ""
