"""Tests for the OAuth callback listener and pasted-callback parsing."""

from __future__ import annotations

import http.client
import socket
import threading
from unittest.mock import MagicMock

import pytest

from codex_accounts.auth.callback_server import (
    CallbackListener,
    _CallbackHandler,
    handle_callback_request,
    html_message,
    parse_callback_input,
)
from codex_accounts.auth.flows import FlowRegistry
from codex_accounts.exceptions import AuthError, InvalidInputError
from codex_accounts.models import Account, FlowStatus, OauthFlow, Tokens


@pytest.fixture
def registry() -> FlowRegistry:
    reg = FlowRegistry(lock_timeout=1.0)
    reg.register(
        OauthFlow(
            id="flow-1",
            state="good-state",
            code_verifier="verifier",
            authorization_url="https://auth.example/authorize",
        )
    )
    return reg


def _completing(registry: FlowRegistry) -> MagicMock:
    """A ``complete`` callback that finishes the flow like the orchestrator does."""

    def complete(flow_id: str, code: str) -> Account:
        registry.complete(flow_id, "acct-1")
        return Account(id="acct-1", tokens=Tokens(access_token="tok"))

    return MagicMock(side_effect=complete)


class TestHandleCallbackRequest:
    def test_non_get_is_405(self, registry: FlowRegistry) -> None:
        complete = MagicMock()
        response = handle_callback_request(
            "POST", "/auth/callback?code=a&state=good-state", registry, complete
        )
        assert response.status == 405
        complete.assert_not_called()
        assert registry.get("flow-1").status is FlowStatus.WAITING_CALLBACK

    def test_other_path_is_404(self, registry: FlowRegistry) -> None:
        response = handle_callback_request("GET", "/favicon.ico", registry, MagicMock())
        assert response.status == 404

    def test_unparsable_target_is_400(self, registry: FlowRegistry) -> None:
        response = handle_callback_request("GET", "*", registry, MagicMock())
        assert response.status == 400
        assert response.message == "Could not parse callback URL."

    @pytest.mark.parametrize(
        "target",
        [
            "/auth/callback",
            "/auth/callback?code=abc",
            "/auth/callback?state=good-state",
            "/auth/callback?code=&state=good-state",
        ],
    )
    def test_missing_code_or_state_is_400(self, registry: FlowRegistry, target: str) -> None:
        complete = MagicMock()
        response = handle_callback_request("GET", target, registry, complete)
        assert response.status == 400
        assert response.message == "Query does not contain OAuth code/state."
        complete.assert_not_called()

    def test_unmatched_state_mutates_nothing(self, registry: FlowRegistry) -> None:
        before = registry.get("flow-1")
        complete = MagicMock()
        response = handle_callback_request(
            "GET", "/auth/callback?code=abc&state=forged", registry, complete
        )
        assert response.status == 400
        assert response.message == "No active OAuth flow matched this state."
        assert registry.get("flow-1") == before
        complete.assert_not_called()

    def test_success_is_200(self, registry: FlowRegistry) -> None:
        complete = _completing(registry)
        response = handle_callback_request(
            "GET", "/auth/callback?code=ABC123&state=good-state", registry, complete
        )
        assert response.status == 200
        assert response.title == "Login Completed"
        complete.assert_called_once_with("flow-1", "ABC123")
        flow = registry.get("flow-1")
        assert flow.status is FlowStatus.COMPLETED
        assert flow.callback_url == "http://localhost:1455/auth/callback?code=ABC123&state=good-state"

    def test_second_callback_is_rejected(self, registry: FlowRegistry) -> None:
        complete = _completing(registry)
        target = "/auth/callback?code=ABC123&state=good-state"
        assert handle_callback_request("GET", target, registry, complete).status == 200
        second = handle_callback_request("GET", target, registry, complete)
        assert second.status == 400
        assert complete.call_count == 1

    def test_exchange_failure_is_400(self, registry: FlowRegistry) -> None:
        complete = MagicMock(side_effect=AuthError("OAuth exchange failed (401 Unauthorized): nope"))
        response = handle_callback_request(
            "GET", "/auth/callback?code=abc&state=good-state", registry, complete
        )
        assert response.status == 400
        assert response.title == "OAuth Failed"
        assert "401" in response.message
        assert response.message.startswith("Token exchange failed: ")


class TestHtmlMessage:
    def test_escapes_content(self) -> None:
        page = html_message("<b>Title</b>", "a & <script>")
        assert "<b>Title</b>" not in page
        assert "&lt;script&gt;" in page
        assert page.startswith("<!doctype html>")
        assert page.endswith("</html>")


class TestParseCallbackInput:
    def test_full_url(self) -> None:
        url = "http://localhost:1455/auth/callback?code=abc&state=xyz"
        assert parse_callback_input(f"  {url}  ") == ("abc", "xyz", url)

    def test_path_only(self) -> None:
        code, state, normalized = parse_callback_input("/auth/callback?code=abc&state=xyz")
        assert (code, state) == ("abc", "xyz")
        assert normalized == "http://localhost:1455/auth/callback?code=abc&state=xyz"

    def test_bare_query(self) -> None:
        code, state, normalized = parse_callback_input("?code=abc&state=xyz")
        assert (code, state) == ("abc", "xyz")
        assert normalized == "http://localhost:1455/auth/callback?code=abc&state=xyz"

    def test_percent_encoded_values(self) -> None:
        code, state, _ = parse_callback_input("code=a%2Fb&state=s%3D1")
        assert (code, state) == ("a/b", "s=1")

    def test_empty(self) -> None:
        with pytest.raises(InvalidInputError, match="empty"):
            parse_callback_input("   ")

    def test_unrecognised_shape(self) -> None:
        with pytest.raises(InvalidInputError, match="Invalid callback format"):
            parse_callback_input("hello world")

    def test_url_without_state(self) -> None:
        with pytest.raises(InvalidInputError, match="state"):
            parse_callback_input("https://localhost:1455/auth/callback?code=abc")


class TestCallbackListener:
    def _get(self, port: int, target: str, method: str = "GET") -> tuple[int, str, dict[str, str]]:
        conn = http.client.HTTPConnection("127.0.0.1", port, timeout=5)
        try:
            conn.request(method, target)
            resp = conn.getresponse()
            return resp.status, resp.read().decode("utf-8"), dict(resp.getheaders())
        finally:
            conn.close()

    def test_serves_callbacks(self, registry: FlowRegistry) -> None:
        listener = CallbackListener(registry, _completing(registry), port=0)
        listener.ensure_started()
        try:
            assert listener.wait_until_ready(5)
            _, port = listener.server_address

            status, body, headers = self._get(port, "/auth/callback?code=c&state=good-state")
            assert status == 200
            assert "Login Completed" in body
            assert headers["Content-Type"] == "text/html; charset=utf-8"
            assert int(headers["Content-Length"]) == len(body.encode("utf-8"))

            assert self._get(port, "/auth/callback?code=c&state=good-state")[0] == 400
            assert self._get(port, "/elsewhere")[0] == 404
            assert self._get(port, "/auth/callback", method="POST")[0] == 405
        finally:
            listener.shutdown()

    def test_idle_connection_does_not_block_callbacks(
        self, registry: FlowRegistry, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(_CallbackHandler, "timeout", 0.5)
        listener = CallbackListener(registry, _completing(registry), port=0)
        listener.ensure_started()
        idle = None
        try:
            assert listener.wait_until_ready(5)
            _, port = listener.server_address
            # Connects and never sends a request line.
            idle = socket.create_connection(("127.0.0.1", port), timeout=5)

            assert self._get(port, "/elsewhere")[0] == 404
            status, body, _ = self._get(port, "/auth/callback?code=c&state=good-state")
            assert status == 200
            assert "Login Completed" in body
        finally:
            if idle is not None:
                idle.close()
            listener.shutdown()

    def test_ensure_started_is_idempotent(self, registry: FlowRegistry) -> None:
        listener = CallbackListener(registry, MagicMock(), port=0)
        threads = [threading.Thread(target=listener.ensure_started) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        try:
            assert listener.wait_until_ready(5)
            assert listener.started
            assert listener.bind_error is None
        finally:
            listener.shutdown()

    def test_bind_failure_is_recorded(self, registry: FlowRegistry) -> None:
        first = CallbackListener(registry, MagicMock(), port=0)
        first.ensure_started()
        try:
            assert first.wait_until_ready(5)
            _, port = first.server_address
            second = CallbackListener(registry, MagicMock(), port=port)
            second.ensure_started()
            assert second.wait_until_ready(5) is False
            assert second.bind_error is not None
            assert second.server_address is None
        finally:
            first.shutdown()
