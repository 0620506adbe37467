"""Read account identity out of an issued ID token.

The payload segment is decoded without verifying the signature. The token
comes straight from the provider's token endpoint over TLS (optionally via
the user's own proxy), so it is trusted as issued; deployments that need
stronger guarantees must add JWKS verification here.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Optional

from codex_accounts.constants import IDENTITY_AUTH_CLAIM


def decode_jwt_payload(token: str) -> Optional[dict[str, Any]]:
    """Decode the middle segment of a JWT.

    Returns:
        The claims as a dict, or ``None`` when the token has no payload
        segment, is not valid base64url, or does not hold a JSON object.
    """
    segments = token.split(".")
    if len(segments) < 2 or not segments[1]:
        return None
    payload = segments[1]
    payload += "=" * (-len(payload) % 4)
    try:
        decoded = base64.urlsafe_b64decode(payload.encode("ascii"))
        claims = json.loads(decoded)
    except (binascii.Error, UnicodeError, ValueError):
        return None
    return claims if isinstance(claims, dict) else None


def _str_claim(claims: dict[str, Any], key: str) -> Optional[str]:
    value = claims.get(key)
    return value if isinstance(value, str) else None


def extract_account_id(id_token: str) -> Optional[str]:
    """Return the provider account id carried by *id_token*.

    Looks for ``chatgpt_account_id`` then ``account_id`` inside the
    provider's namespaced auth claim, and falls back to the standard
    ``sub`` claim.
    """
    claims = decode_jwt_payload(id_token)
    if claims is None:
        return None
    auth_claim = claims.get(IDENTITY_AUTH_CLAIM)
    if isinstance(auth_claim, dict):
        for key in ("chatgpt_account_id", "account_id"):
            value = _str_claim(auth_claim, key)
            if value is not None:
                return value
    return _str_claim(claims, "sub")


def extract_email(id_token: str) -> Optional[str]:
    """Return the top-level ``email`` claim of *id_token*, if present."""
    claims = decode_jwt_payload(id_token)
    if claims is None:
        return None
    return _str_claim(claims, "email")
