"""Tests for request submission, outcome classification and delivery."""

from __future__ import annotations

import io
import logging
import threading

import httpx
import pytest

from adapters import plist_codec
from core.domain.errors import (
    DecodeError,
    EmptyBodyError,
    EncodeError,
    HttpStatusError,
    NetworkError,
)
from core.domain.models import Failure, Success

from conftest import DELIVERY_THREAD, STATUS_OK_MARKUP, RecordingCallback

URL = "https://[fe80::1]:8771/Ask"
UPLOAD_URL = "https://[fe80::1]:8771/Upload"
WAIT = 5.0


class CountingStream(io.BytesIO):
    def __init__(self, data: bytes = b"") -> None:
        super().__init__(data)
        self.close_count = 0

    def close(self) -> None:
        self.close_count += 1
        super().close()


def _ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, content=STATUS_OK_MARKUP)


def test_post_document_sends_binary_plist(make_client, callback: RecordingCallback) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        request.read()
        seen.append(request)
        return _ok(request)

    client = make_client(handler)
    call = client.post_document(URL, {"Status": 0}, callback)

    outcome = call.wait(WAIT)
    assert callback.event.wait(WAIT)
    assert isinstance(outcome, Success)
    assert callback.responses == [{"Status": 0}]
    assert callback.failures == []

    request = seen[0]
    assert request.method == "POST"
    assert request.headers["content-type"] == "application/octet-stream"
    assert plist_codec.decode(request.content) == {"Status": 0}


def test_delivery_runs_on_dispatcher_thread(make_client, callback: RecordingCallback) -> None:
    client = make_client(_ok)
    client.post_document(URL, {"Status": 0}, callback)

    assert callback.event.wait(WAIT)
    assert callback.threads == [DELIVERY_THREAD]


@pytest.mark.parametrize("status", [201, 404, 500])
def test_non_200_is_http_status_error(make_client, callback: RecordingCallback, status: int) -> None:
    client = make_client(lambda request: httpx.Response(status, content=b"not a plist"))
    call = client.post_document(URL, {"Status": 0}, callback)

    outcome = call.wait(WAIT)
    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, HttpStatusError)
    assert outcome.error.status_code == status
    assert callback.event.wait(WAIT)
    assert callback.responses == []


def test_empty_body_is_empty_body_error(make_client, callback: RecordingCallback) -> None:
    client = make_client(lambda request: httpx.Response(200))
    outcome = client.post_document(URL, {}, callback).wait(WAIT)

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, EmptyBodyError)


@pytest.mark.parametrize(
    "body",
    [b"garbage", b"<dict><key>Status</key>", b"<array><integer>0</integer></array>"],
)
def test_unparsable_body_is_decode_error(make_client, callback: RecordingCallback, body: bytes) -> None:
    client = make_client(lambda request: httpx.Response(200, content=body))
    outcome = client.post_document(URL, {}, callback).wait(WAIT)

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, DecodeError)
    assert callback.event.wait(WAIT)
    assert len(callback.failures) == 1


def test_encode_failure_skips_network(make_client, callback: RecordingCallback) -> None:
    hits: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hits.append(request)
        return _ok(request)

    client = make_client(handler)
    outcome = client.post_document(URL, {"Bad": object()}, callback).wait(WAIT)

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, EncodeError)
    assert callback.event.wait(WAIT)
    assert callback.threads == [DELIVERY_THREAD]
    assert hits == []


def test_transport_failure_is_network_error(make_client, callback: RecordingCallback) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    outcome = client.post_document(URL, {"Status": 0}, callback).wait(WAIT)

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, NetworkError)
    assert isinstance(outcome.error.cause, httpx.ConnectError)


def test_cancel_suppresses_completed_response(make_client, dispatcher, callback: RecordingCallback) -> None:
    entered = threading.Event()
    release = threading.Event()

    def handler(request: httpx.Request) -> httpx.Response:
        entered.set()
        release.wait(WAIT)
        return _ok(request)

    client = make_client(handler)
    call = client.post_document(URL, {"Status": 0}, callback)
    assert entered.wait(WAIT)

    call.cancel()
    call.cancel()
    release.set()
    client.close()
    assert dispatcher.context.drain(WAIT)

    assert callback.calls == 0
    assert call.wait(0.05) is None
    assert call.done()


def test_cancelled_transport_failure_is_only_logged(
    make_client, dispatcher, callback: RecordingCallback, caplog: pytest.LogCaptureFixture
) -> None:
    entered = threading.Event()
    release = threading.Event()

    def handler(request: httpx.Request) -> httpx.Response:
        entered.set()
        release.wait(WAIT)
        raise httpx.ReadError("connection reset", request=request)

    client = make_client(handler)
    call = client.post_document(URL, {"Status": 0}, callback)
    assert entered.wait(WAIT)

    with caplog.at_level(logging.WARNING, logger="core.services.transport_client"):
        call.cancel()
        release.set()
        client.close()
        assert dispatcher.context.drain(WAIT)

    assert callback.calls == 0
    assert any("Request cancelled" in record.getMessage() for record in caplog.records)


def test_each_call_delivered_exactly_once_serially(make_client, dispatcher) -> None:
    active = 0
    peak = 0
    lock = threading.Lock()
    seen: list[int] = []

    class SlowCallback:
        def on_response(self, document: dict) -> None:
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            seen.append(document["Echo"])
            with lock:
                active -= 1

        def on_failure(self, error: Exception) -> None:
            raise AssertionError(error)

    def handler(request: httpx.Request) -> httpx.Response:
        request.read()
        echo = plist_codec.decode(request.content)["Echo"]
        return httpx.Response(200, content=plist_codec.encode({"Echo": echo}))

    client = make_client(handler)
    calls = [client.post_document(URL, {"Echo": i}, SlowCallback()) for i in range(10)]
    for call in calls:
        assert call.wait(WAIT) is not None
    assert dispatcher.context.drain(WAIT)

    assert sorted(seen) == list(range(10))
    assert peak == 1


def test_failing_callback_does_not_block_later_deliveries(make_client, callback: RecordingCallback) -> None:
    class Exploding:
        def on_response(self, document: dict) -> None:
            raise RuntimeError("boom")

        def on_failure(self, error: Exception) -> None:
            raise RuntimeError("boom")

    client = make_client(_ok)
    client.post_document(URL, {}, Exploding()).wait(WAIT)
    client.post_document(URL, {}, callback)

    assert callback.event.wait(WAIT)
    assert callback.responses == [{"Status": 0}]


def test_post_empty_stream_closes_once(make_client, callback: RecordingCallback) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        request.read()
        seen.append(request)
        return _ok(request)

    client = make_client(handler)
    stream = CountingStream()
    outcome = client.post_stream(UPLOAD_URL, stream, callback).wait(WAIT)
    client.close()

    assert isinstance(outcome, Success)
    assert stream.close_count == 1
    assert seen[0].headers["content-type"] == "application/x-cpio"
    assert seen[0].content == b""


def test_post_stream_sends_all_bytes(make_client, callback: RecordingCallback) -> None:
    payload = bytes(range(256)) * 20
    received: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request.read())
        return httpx.Response(500)

    client = make_client(handler)
    stream = CountingStream(payload)
    outcome = client.post_stream(UPLOAD_URL, stream, callback).wait(WAIT)
    client.close()

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, HttpStatusError)
    assert received == [payload]
    assert stream.close_count == 1


def test_post_stream_closes_on_transport_failure(make_client, callback: RecordingCallback) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.WriteError("broken pipe", request=request)

    client = make_client(handler)
    stream = CountingStream(b"070707")
    outcome = client.post_stream(UPLOAD_URL, stream, callback).wait(WAIT)
    client.close()

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, NetworkError)
    assert stream.close_count == 1


@pytest.mark.parametrize("url", ["not a url", "ftp://[fe80::1]/Ask", "https:///Ask"])
def test_invalid_url_rejected_synchronously(make_client, callback: RecordingCallback, url: str) -> None:
    client = make_client(_ok)
    stream = CountingStream(b"x")

    with pytest.raises(ValueError):
        client.post_stream(url, stream, callback)
    with pytest.raises(ValueError):
        client.post_document(url, {}, callback)

    assert stream.close_count == 1
    assert callback.calls == 0


def test_configure_requires_trust_material_without_transport() -> None:
    from core.services.transport_client import TransportClient

    with pytest.raises(ValueError):
        TransportClient.configure(None)


class BrokenStream(CountingStream):
    def read(self, size: int | None = -1) -> bytes:
        raise ValueError("read of closed file")


def test_stream_read_error_is_delivered_as_failure(make_client, callback: RecordingCallback) -> None:
    client = make_client(_ok)
    stream = BrokenStream()

    outcome = client.post_stream(UPLOAD_URL, stream, callback).wait(WAIT)

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, NetworkError)
    assert isinstance(outcome.error.cause, ValueError)
    assert callback.event.wait(WAIT)
    assert len(callback.failures) == 1
    assert stream.close_count == 1


def test_wait_without_timeout_returns_after_cancel(make_client) -> None:
    entered = threading.Event()
    release = threading.Event()

    def handler(request: httpx.Request) -> httpx.Response:
        entered.set()
        release.wait(WAIT)
        return _ok(request)

    client = make_client(handler)
    call = client.post_document(URL, {"Status": 0}, RecordingCallback())
    assert entered.wait(WAIT)
    call.cancel()

    results: list[object] = []
    waiter = threading.Thread(target=lambda: results.append(call.wait()), daemon=True)
    waiter.start()
    waiter.join(2.0)
    release.set()

    assert not waiter.is_alive()
    assert results == [None]


def test_deeply_nested_document_is_encode_failure(make_client, callback: RecordingCallback) -> None:
    deep: list = []
    for _ in range(20_000):
        deep = [deep]

    client = make_client(_ok)
    outcome = client.post_document(URL, {"Deep": deep}, callback).wait(WAIT)

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, EncodeError)
    assert callback.event.wait(WAIT)
    assert len(callback.failures) == 1


def test_stream_closed_when_cancelled_before_start(make_client, dispatcher) -> None:
    entered = threading.Semaphore(0)
    release = threading.Event()

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/Ask":
            entered.release()
            release.wait(WAIT)
        return _ok(request)

    client = make_client(handler)
    # max_workers=2: dos llamadas bloqueadas ocupan el pool.
    blockers = [client.post_document(URL, {"Status": 0}, RecordingCallback()) for _ in range(2)]
    assert entered.acquire(timeout=WAIT)
    assert entered.acquire(timeout=WAIT)

    stream = CountingStream(b"070707")
    stream_callback = RecordingCallback()
    call = client.post_stream(UPLOAD_URL, stream, stream_callback)
    call.cancel()

    assert stream.close_count == 1

    release.set()
    for blocker in blockers:
        assert blocker.wait(WAIT) is not None
    client.close()
    assert dispatcher.context.drain(WAIT)

    assert stream.close_count == 1
    assert stream_callback.calls == 0
    assert call.wait(0) is None
