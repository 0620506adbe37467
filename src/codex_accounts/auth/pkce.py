"""PKCE pair generation and authorization URL construction.

Pure functions, no state. The verifier is 64 random bytes and the state
token 32 random bytes, both drawn from :mod:`secrets` and encoded as
URL-safe base64 without padding. The challenge uses the ``S256`` method
from :rfc:`7636`.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from urllib.parse import urlencode, urlsplit

from codex_accounts.constants import (
    OAUTH_AUTHORIZE_URL,
    OAUTH_CLIENT_ID,
    OAUTH_ORIGINATOR,
    OAUTH_REDIRECT_URI,
    OAUTH_SCOPE,
)


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def random_urlsafe(byte_len: int) -> str:
    """Return *byte_len* CSPRNG bytes as unpadded URL-safe base64."""
    return _b64url(secrets.token_bytes(byte_len))


def new_verifier() -> str:
    """Generate a PKCE ``code_verifier`` (86 characters)."""
    return random_urlsafe(64)


def challenge_for(verifier: str) -> str:
    """Derive the ``S256`` ``code_challenge`` for *verifier*."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A tuple of ``(code_verifier, code_challenge)``.
    """
    verifier = new_verifier()
    return verifier, challenge_for(verifier)


def new_state_token() -> str:
    """Generate the anti-forgery ``state`` value for one login flow."""
    return random_urlsafe(32)


def build_authorization_url(state: str, challenge: str) -> str:
    """Build the provider's ``/oauth/authorize`` URL for one flow.

    The output depends only on *state* and *challenge*; client id,
    redirect URI, scope and provider flags are fixed.

    Args:
        state: Anti-forgery token echoed back on the callback.
        challenge: ``S256`` PKCE challenge.

    Returns:
        The absolute URL to open in the user's browser.
    """
    parts = urlsplit(OAUTH_AUTHORIZE_URL)
    assert parts.scheme == "https" and parts.netloc, "OAuth issuer URL is malformed"

    params = {
        "response_type": "code",
        "client_id": OAUTH_CLIENT_ID,
        "redirect_uri": OAUTH_REDIRECT_URI,
        "scope": OAUTH_SCOPE,
        "state": state,
        "code_challenge": challenge,
        "code_challenge_method": "S256",
        "originator": OAUTH_ORIGINATOR,
        "id_token_add_organizations": "true",
        "codex_cli_simplified_flow": "true",
    }
    return f"{OAUTH_AUTHORIZE_URL}?{urlencode(params)}"
