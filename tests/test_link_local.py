"""Tests for link-local address scoping and the connector-backed transport."""

from __future__ import annotations

import socket
import ssl

import httpcore
import pytest

from adapters.http_client import apply_hostname_policy
from adapters.link_local import LinkLocalConnector
from adapters.network_backend import LinkLocalNetworkBackend
from core.domain.errors import NetworkError
from core.domain.models import Failure, HostnamePolicy, NetworkInterface
from core.services.transport_client import TransportClient

from conftest import RecordingCallback, StubTrust

WLAN0 = NetworkInterface(name="wlan0", index=5)


class FakeSocket:
    """Records connect attempts and refuses them."""

    def __init__(self, family: int) -> None:
        self.family = family
        self.timeout: float | None = None
        self.connected_to: tuple | None = None
        self.closed = False

    def settimeout(self, timeout: float | None) -> None:
        self.timeout = timeout

    def setsockopt(self, *args) -> None:
        pass

    def connect(self, address: tuple) -> None:
        self.connected_to = address
        raise ConnectionRefusedError("refused")

    def close(self) -> None:
        self.closed = True


class RecordingConnector(LinkLocalConnector):
    def __init__(self) -> None:
        super().__init__()
        self.sockets: list[FakeSocket] = []

    def create_socket(self, family: int = socket.AF_INET6) -> FakeSocket:  # type: ignore[override]
        sock = FakeSocket(family)
        self.sockets.append(sock)
        return sock

    @property
    def attempts(self) -> list[tuple]:
        return [s.connected_to for s in self.sockets if s.connected_to is not None]


@pytest.fixture
def connector() -> LinkLocalConnector:
    connector = LinkLocalConnector()
    connector.bind_interface(WLAN0)
    return connector


def test_link_local_address_gets_interface_scope(connector: LinkLocalConnector) -> None:
    assert connector.scope_address(("fe80::1", 8771, 0, 0)) == ("fe80::1", 8771, 0, 5)


def test_existing_zone_is_replaced(connector: LinkLocalConnector) -> None:
    assert connector.scope_address(("fe80::1%eth9", 8771, 0, 9)) == ("fe80::1", 8771, 0, 5)


def test_flowinfo_is_kept(connector: LinkLocalConnector) -> None:
    assert connector.scope_address(("fe80::abcd", 443, 7, 0)) == ("fe80::abcd", 443, 7, 5)


@pytest.mark.parametrize(
    "address",
    [
        ("192.168.1.10", 8771),
        ("169.254.1.1", 8771),
        ("2001:db8::1", 8771, 0, 0),
        ("::1", 8771, 0, 0),
        ("/tmp/peer.sock",),
        "/tmp/peer.sock",
    ],
)
def test_other_addresses_pass_through(connector: LinkLocalConnector, address) -> None:
    assert connector.scope_address(address) is address


def test_without_interface_addresses_pass_through() -> None:
    connector = LinkLocalConnector()
    address = ("fe80::1", 8771, 0, 0)

    assert connector.scope_address(address) is address


def test_rebinding_replaces_and_clears_interface(connector: LinkLocalConnector) -> None:
    connector.bind_interface(NetworkInterface(name="awdl0", index=12))
    assert connector.scope_address(("fe80::1", 1, 0, 0))[3] == 12

    connector.bind_interface(None)
    assert connector.interface is None
    assert connector.scope_address(("fe80::1", 1, 0, 0)) == ("fe80::1", 1, 0, 0)


def test_connect_uses_scoped_address(connector: LinkLocalConnector) -> None:
    sock = FakeSocket(socket.AF_INET6)

    with pytest.raises(ConnectionRefusedError):
        connector.connect(sock, ("fe80::1", 8771, 0, 0), 3.0)  # type: ignore[arg-type]

    assert sock.connected_to == ("fe80::1", 8771, 0, 5)
    assert sock.timeout == 3.0


def test_hostname_factory_variant_fails_fast(connector: LinkLocalConnector) -> None:
    with pytest.raises(NotImplementedError):
        connector.create_connection(("fe80::1", 8771))


def test_backend_rejects_unix_sockets(connector: LinkLocalConnector) -> None:
    with pytest.raises(NotImplementedError):
        LinkLocalNetworkBackend(connector).connect_unix_socket("/tmp/peer.sock")


def test_backend_maps_refused_connect() -> None:
    connector = RecordingConnector()
    connector.bind_interface(WLAN0)
    backend = LinkLocalNetworkBackend(connector)

    with pytest.raises(httpcore.ConnectError):
        backend.connect_tcp("fe80::1", 8771, timeout=1.0)

    assert connector.attempts == [("fe80::1", 8771, 0, 5)]
    assert all(s.closed for s in connector.sockets)


@pytest.mark.parametrize(
    ("policy", "checks"),
    [(HostnamePolicy.CHAIN_ONLY, False), (HostnamePolicy.VERIFY, True)],
)
def test_hostname_policy_keeps_chain_validation(policy: HostnamePolicy, checks: bool) -> None:
    ctx = apply_hostname_policy(ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT), policy)

    assert ctx.check_hostname is checks
    assert ctx.verify_mode == ssl.CERT_REQUIRED


def test_post_document_connects_to_scoped_peer(settings, dispatcher, callback: RecordingCallback) -> None:
    connector = RecordingConnector()
    client = TransportClient.configure(
        StubTrust(),
        settings=settings,
        connector=connector,
        dispatcher=dispatcher,
    )
    try:
        client.bind_interface(WLAN0)
        outcome = client.post_document("https://[fe80::1]:8771/Ask", {"Status": 0}, callback).wait(5.0)
    finally:
        client.close()

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, NetworkError)
    assert connector.attempts == [("fe80::1", 8771, 0, WLAN0.index)]
