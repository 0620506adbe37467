"""Usage quota queries against the backend API.

The provider does not document the response shape. A missing
``rate_limit`` object, window, or field yields empty values; only a body
that is not JSON is an error.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from codex_accounts.client.http import build_http_client, describe_status, truncate
from codex_accounts.constants import ACCOUNT_ID_HEADER, BACKEND_API_MARKER, QUOTA_TIMEOUT
from codex_accounts.exceptions import QuotaError
from codex_accounts.models import ProxyEntry, QuotaInfo, QuotaWindow, Tokens, now_ts

logger = logging.getLogger(__name__)


def quota_endpoint(base_url: str) -> str:
    """Return the usage endpoint for *base_url*.

    ``.../backend-api`` style bases expose ``/wham/usage``; anything else is
    treated as an API host serving ``/api/codex/usage``.
    """
    base = base_url.rstrip("/")
    if BACKEND_API_MARKER in base:
        return f"{base}/wham/usage"
    return f"{base}/api/codex/usage"


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _integer(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def parse_quota_window(window: Any) -> QuotaWindow:
    """Parse one ``*_window`` object; anything that is not an object is empty."""
    if not isinstance(window, dict):
        return QuotaWindow()
    return QuotaWindow(
        used_percent=_number(window.get("used_percent")),
        limit_window_seconds=_integer(window.get("limit_window_seconds")),
        reset_at=_integer(window.get("reset_at")),
        fetched_at=now_ts(),
    )


def parse_quota_payload(payload: Any) -> QuotaInfo:
    """Build a :class:`~codex_accounts.models.QuotaInfo` from a decoded usage body."""
    if not isinstance(payload, dict):
        payload = {}
    rate_limit = payload.get("rate_limit")
    if not isinstance(rate_limit, dict):
        rate_limit = {}
    plan_type = payload.get("plan_type")
    return QuotaInfo(
        plan_type=plan_type if isinstance(plan_type, str) else None,
        primary=parse_quota_window(rate_limit.get("primary_window")),
        secondary=parse_quota_window(rate_limit.get("secondary_window")),
        fetched_at=now_ts(),
    )


def fetch_quota(
    base_url: str,
    tokens: Tokens,
    account_id: Optional[str] = None,
    proxy: Optional[ProxyEntry] = None,
) -> QuotaInfo:
    """Query current usage for one account.

    Args:
        base_url: The configured limits base URL.
        tokens: The account's tokens; only ``access_token`` is sent.
        account_id: Provider account id, sent as a scoping header when
            non-blank.
        proxy: Optional proxy to route the request through.

    Raises:
        QuotaError: If the token is blank, the request fails, the status
            is not 2xx, or the body is not JSON.
    """
    if not tokens.access_token.strip():
        raise QuotaError("Missing access_token")

    headers = {"Authorization": f"Bearer {tokens.access_token}"}
    if account_id and account_id.strip():
        headers[ACCOUNT_ID_HEADER] = account_id

    endpoint = quota_endpoint(base_url)
    logger.debug("Fetching quota from %s", endpoint)
    try:
        with build_http_client(QUOTA_TIMEOUT, proxy) as client:
            response = client.get(endpoint, headers=headers)
    except httpx.HTTPError as exc:
        raise QuotaError(f"Quota request failed: {exc}") from exc

    if not response.is_success:
        raise QuotaError(
            f"Quota request failed ({describe_status(response)}): {truncate(response.text)}"
        )

    try:
        payload = response.json()
    except ValueError as exc:
        raise QuotaError(f"Invalid quota payload: {exc}") from exc
    return parse_quota_payload(payload)
