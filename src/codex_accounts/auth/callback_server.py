"""Loopback listener that receives the provider's OAuth redirect.

One :class:`CallbackListener` serves every login flow of the process on
``127.0.0.1:1455``, the only redirect URI registered with the provider.
It is started lazily by the first flow and then runs until the process
exits; requests are handled one at a time on a single daemon thread.

Request handling lives in :func:`handle_callback_request`, which has no
socket dependency, so the routing rules can be exercised directly::

    GET /auth/callback?code=...&state=...   -> exchange, 200 or 400
    GET <any other path>                     -> 404
    <any other method>                       -> 405

The listener never redirects and never echoes tokens; every response is
a small self-contained HTML page.
"""

from __future__ import annotations

import html
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

from codex_accounts.auth.flows import FlowRegistry
from codex_accounts.constants import (
    CALLBACK_HOST,
    CALLBACK_PATH,
    CALLBACK_PORT,
    CALLBACK_READ_TIMEOUT,
    OAUTH_REDIRECT_URI,
)
from codex_accounts.exceptions import (
    CodexAccountsError,
    FlowStateError,
    InvalidInputError,
    NotFoundError,
)
from codex_accounts.models import Account

logger = logging.getLogger(__name__)

# Runs the token exchange for a claimed flow: ``complete(flow_id, code)``.
CompleteCallback = Callable[[str, str], Account]

_PAGE_TEMPLATE = (
    '<!doctype html><html><head><meta charset="utf-8"><title>{title}</title>'
    "<style>body{{font-family:Segoe UI,Arial,sans-serif;background:#f6f8fb;"
    "color:#1d2733;padding:30px}}.card{{max-width:640px;margin:0 auto;"
    "background:white;border-radius:14px;padding:24px;"
    "box-shadow:0 10px 30px rgba(20,37,63,.08)}}h1{{margin:0 0 12px 0;"
    "font-size:22px}}p{{margin:0;font-size:15px;line-height:1.45}}</style>"
    '</head><body><div class="card"><h1>{title}</h1><p>{message}</p></div>'
    "</body></html>"
)

_REASONS = {
    200: "OK",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    500: "Internal Server Error",
}


def html_message(title: str, message: str) -> str:
    """Render a complete HTML page with an escaped *title* and *message*."""
    return _PAGE_TEMPLATE.format(title=html.escape(title), message=html.escape(message))


@dataclass(frozen=True)
class CallbackResponse:
    """What the listener sends back for one request."""

    status: int
    title: str
    message: str

    @property
    def reason(self) -> str:
        return _REASONS.get(self.status, "")

    def body(self) -> bytes:
        return html_message(self.title, self.message).encode("utf-8")


def _first_param(params: dict[str, list[str]], key: str) -> Optional[str]:
    values = params.get(key)
    if not values or not values[0]:
        return None
    return values[0]


def handle_callback_request(
    method: str,
    target: str,
    registry: FlowRegistry,
    complete: CompleteCallback,
) -> CallbackResponse:
    """Route one callback request and run the exchange when it matches a flow.

    Args:
        method: HTTP method of the request.
        target: Request target as sent on the request line (path and query).
        registry: Flow registry used to match ``state`` to a waiting flow.
        complete: Exchange procedure for a claimed flow.

    Returns:
        The response to send. Requests that do not match a waiting flow
        leave the registry untouched.
    """
    if method != "GET":
        return CallbackResponse(
            405, "Method Not Allowed", "Only GET is supported for OAuth callback."
        )

    callback_url = f"http://localhost:{CALLBACK_PORT}{target}"
    try:
        if not target.startswith("/"):
            raise ValueError(target)
        parts = urlsplit(callback_url)
        params = parse_qs(parts.query, keep_blank_values=True)
    except ValueError:
        return CallbackResponse(400, "Invalid Request", "Could not parse callback URL.")

    if parts.path != CALLBACK_PATH:
        return CallbackResponse(
            404, "Not Found", "This endpoint is only used for OAuth callback."
        )

    code = _first_param(params, "code")
    state = _first_param(params, "state")
    if code is None or state is None:
        return CallbackResponse(
            400, "Callback Error", "Query does not contain OAuth code/state."
        )

    try:
        flow_id, _ = registry.begin_exchange_for_state(state, callback_url)
    except NotFoundError:
        logger.info("Callback state did not match any active flow")
        return CallbackResponse(
            400, "Callback Error", "No active OAuth flow matched this state."
        )
    except FlowStateError as exc:
        return CallbackResponse(400, "Callback Error", str(exc))

    try:
        complete(flow_id, code)
    except CodexAccountsError as exc:
        return CallbackResponse(400, "OAuth Failed", f"Token exchange failed: {exc}")

    return CallbackResponse(
        200,
        "Login Completed",
        "OAuth completed successfully. You can return to the app now.",
    )


def parse_callback_input(text: str) -> tuple[str, str, str]:
    """Extract ``(code, state, normalized_url)`` from a pasted callback.

    Accepts a full ``http(s)`` URL, a ``/auth/callback?...`` path, or a
    bare query string containing both ``code=`` and ``state=``.

    Raises:
        InvalidInputError: If the input is empty, has none of the accepted
            shapes, or lacks ``code`` or ``state``.
    """
    trimmed = text.strip()
    if not trimmed:
        raise InvalidInputError("Callback URL is empty")

    if trimmed.startswith(("http://", "https://")):
        normalized = trimmed
    elif trimmed.startswith(CALLBACK_PATH):
        normalized = f"http://localhost:{CALLBACK_PORT}{trimmed}"
    elif "code=" in trimmed and "state=" in trimmed:
        normalized = f"{OAUTH_REDIRECT_URI}?{trimmed.lstrip('?')}"
    else:
        raise InvalidInputError(
            "Invalid callback format. Paste full callback URL or query with code/state"
        )

    try:
        params = parse_qs(urlsplit(normalized).query, keep_blank_values=True)
    except ValueError as exc:
        raise InvalidInputError(f"Invalid callback URL: {exc}") from exc

    code = _first_param(params, "code")
    if code is None:
        raise InvalidInputError("Callback does not contain code")
    state = _first_param(params, "state")
    if state is None:
        raise InvalidInputError("Callback does not contain state")
    return code, state, normalized


class _CallbackHTTPServer(HTTPServer):
    """HTTPServer carrying the registry and exchange callback for its handler."""

    def __init__(
        self,
        address: tuple[str, int],
        registry: FlowRegistry,
        complete: CompleteCallback,
    ) -> None:
        super().__init__(address, _CallbackHandler)
        self.registry = registry
        self.complete = complete


class _CallbackHandler(BaseHTTPRequestHandler):
    server: _CallbackHTTPServer

    # The listener serves one connection at a time; a client that never
    # sends its request must not hold up the next callback.
    timeout = CALLBACK_READ_TIMEOUT

    def _respond(self, response: CallbackResponse, include_body: bool = True) -> None:
        body = response.body()
        self.send_response(response.status, response.reason)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        if include_body:
            self.wfile.write(body)

    def _dispatch(self) -> None:
        try:
            response = handle_callback_request(
                self.command, self.path, self.server.registry, self.server.complete
            )
        except Exception:
            logger.exception("Unhandled error while serving OAuth callback")
            response = CallbackResponse(
                500, "Server Error", "The callback could not be processed."
            )
        self._respond(response, include_body=self.command != "HEAD")

    do_GET = _dispatch
    do_POST = _dispatch
    do_PUT = _dispatch
    do_DELETE = _dispatch
    do_PATCH = _dispatch
    do_OPTIONS = _dispatch
    do_HEAD = _dispatch

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("callback %s - %s", self.address_string(), format % args)


class CallbackListener:
    """Process-wide loopback listener for OAuth redirects.

    Args:
        registry: Flow registry shared with the orchestrator.
        complete: Exchange procedure invoked for each matched callback.
        host: Bind address.
        port: Bind port. ``0`` picks a free port, which tests use.
    """

    def __init__(
        self,
        registry: FlowRegistry,
        complete: CompleteCallback,
        host: str = CALLBACK_HOST,
        port: int = CALLBACK_PORT,
    ) -> None:
        self._registry = registry
        self._complete = complete
        self._host = host
        self._port = port
        self._start_lock = threading.Lock()
        self._started = False
        self._ready = threading.Event()
        self._server: Optional[_CallbackHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self.bind_error: Optional[str] = None

    @property
    def started(self) -> bool:
        return self._started

    @property
    def server_address(self) -> Optional[tuple[str, int]]:
        """Bound ``(host, port)``, or ``None`` before binding or after a bind failure."""
        if self._server is None:
            return None
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    def ensure_started(self) -> None:
        """Start the listener thread unless it was already started.

        Safe to call from any number of threads; only the first call binds.
        A failed bind is logged once and never retried, so a port conflict
        leaves login flows usable through the manual paste path only.
        """
        with self._start_lock:
            if self._started:
                return
            self._started = True
        self._thread = threading.Thread(
            target=self._run, name="oauth-callback-listener", daemon=True
        )
        self._thread.start()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the bind attempt finished. Returns True if it succeeded."""
        self._ready.wait(timeout)
        return self._server is not None

    def _run(self) -> None:
        try:
            server = _CallbackHTTPServer((self._host, self._port), self._registry, self._complete)
        except OSError as exc:
            self.bind_error = f"Failed to bind OAuth callback server on {self._host}:{self._port}: {exc}"
            logger.error(self.bind_error)
            self._ready.set()
            return

        self._server = server
        logger.info("OAuth callback listener on http://%s:%d%s", *self.server_address, CALLBACK_PATH)
        self._ready.set()
        server.serve_forever()

    def shutdown(self) -> None:
        """Stop serving and close the socket. Used by tests."""
        server = self._server
        if server is None:
            return
        server.shutdown()
        server.server_close()
        self._server = None
