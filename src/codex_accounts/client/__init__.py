"""Outbound calls to the provider: token exchange and usage quota.

Both calls build a fresh :class:`httpx.Client` per request so that each
can be routed through the currently active proxy with its own timeout.
"""

from codex_accounts.client.oauth_client import exchange_code_for_tokens
from codex_accounts.client.quota import fetch_quota, parse_quota_payload, quota_endpoint

__all__ = [
    "exchange_code_for_tokens",
    "fetch_quota",
    "parse_quota_payload",
    "quota_endpoint",
]
