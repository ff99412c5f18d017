"""Shared pytest fixtures for transport tests."""

from __future__ import annotations

import ssl
import threading
from typing import Callable

import httpx
import pytest

from core.config import AppSettings
from core.domain.errors import TransportError
from core.domain.models import StructuredDocument
from core.services.dispatcher import CallbackDispatcher, QueueDeliveryContext
from core.services.transport_client import TransportClient

DELIVERY_THREAD = "test-delivery"

STATUS_OK_MARKUP = b"<dict><key>Status</key><integer>0</integer></dict>"


class RecordingCallback:
    """Collects deliveries and the thread each one ran on."""

    def __init__(self) -> None:
        self.responses: list[StructuredDocument] = []
        self.failures: list[TransportError] = []
        self.threads: list[str] = []
        self.event = threading.Event()

    @property
    def calls(self) -> int:
        return len(self.responses) + len(self.failures)

    def on_response(self, document: StructuredDocument) -> None:
        self.responses.append(document)
        self.threads.append(threading.current_thread().name)
        self.event.set()

    def on_failure(self, error: TransportError) -> None:
        self.failures.append(error)
        self.threads.append(threading.current_thread().name)
        self.event.set()


class StubTrust:
    def create_client_ssl_context(self) -> ssl.SSLContext:
        return ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(_env_file=None, max_workers=2, stream_chunk_size=1024)


@pytest.fixture
def dispatcher():
    dispatcher = CallbackDispatcher(QueueDeliveryContext(name=DELIVERY_THREAD))
    yield dispatcher
    dispatcher.context.close()


@pytest.fixture
def callback() -> RecordingCallback:
    return RecordingCallback()


@pytest.fixture
def make_client(settings: AppSettings, dispatcher: CallbackDispatcher):
    """Builds clients over `httpx.MockTransport`; closes them afterwards."""

    clients: list[TransportClient] = []

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> TransportClient:
        client = TransportClient.configure(
            None,
            settings=settings,
            dispatcher=dispatcher,
            transport=httpx.MockTransport(handler),
        )
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.close()
