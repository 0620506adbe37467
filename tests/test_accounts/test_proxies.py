"""Tests for proxy parsing and the TCP reachability probe."""

from __future__ import annotations

import socket

import pytest

from codex_accounts.accounts.proxies import ParsedProxy, parse_proxy_input, probe_latency
from codex_accounts.exceptions import ConnectionError_, InvalidInputError


class TestParseProxyInput:
    def test_basic(self) -> None:
        parsed = parse_proxy_input("user:pass@1.2.3.4:8080")
        assert parsed == ParsedProxy("user", "pass", "1.2.3.4", 8080)
        assert parsed.raw == "user:pass@1.2.3.4:8080"

    @pytest.mark.parametrize("prefix", ["http://", "https://", "HTTP://"])
    def test_scheme_prefix_stripped(self, prefix: str) -> None:
        assert parse_proxy_input(f"  {prefix}user:pass@host:1  ").raw == "user:pass@host:1"

    def test_fields_are_trimmed(self) -> None:
        parsed = parse_proxy_input("user : pass @ host : 80")
        assert parsed.raw == "user:pass@host:80"

    def test_password_may_contain_colon(self) -> None:
        parsed = parse_proxy_input("user:pa:ss@host:80")
        assert parsed.password == "pa:ss"

    @pytest.mark.parametrize(
        ("raw", "message"),
        [
            ("user:pass-host:80", "Proxy must be in login:pass@ip:port format"),
            ("userpass@host:80", "Proxy must include login and password"),
            ("user:pass@host", "Proxy must include ip and port"),
            ("user:pass@host:abc", "Proxy port must be a valid number"),
            ("user:pass@host:", "Proxy port must be a valid number"),
            ("user:pass@host:-1", "Proxy port must be a valid number"),
            ("user:pass@host:70000", "Proxy port must be between 1 and 65535"),
            ("user:pass@host:0", "Proxy port must be between 1 and 65535"),
            (":pass@host:80", "Proxy login cannot be empty"),
            ("user:@host:80", "Proxy password cannot be empty"),
            ("user:pass@:80", "Proxy host cannot be empty"),
        ],
    )
    def test_invalid_inputs(self, raw: str, message: str) -> None:
        with pytest.raises(InvalidInputError) as excinfo:
            parse_proxy_input(raw)
        assert str(excinfo.value) == message


class TestProbeLatency:
    def test_reachable_port(self) -> None:
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        try:
            latency = probe_latency("127.0.0.1", server.getsockname()[1], timeout=2.0)
            assert latency >= 0
        finally:
            server.close()

    def test_refused_port(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
        sock.close()
        with pytest.raises(ConnectionError_, match="TCP connection failed"):
            probe_latency("127.0.0.1", port, timeout=2.0)

    def test_unresolvable_host(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def fail(*args, **kwargs):
            raise socket.gaierror("Name or service not known")

        monkeypatch.setattr(socket, "getaddrinfo", fail)
        with pytest.raises(ConnectionError_, match="DNS resolution failed"):
            probe_latency("does-not-exist.invalid", 80)
