"""Cliente de transporte: POST de documentos y archivos a un peer.

Flujo:
1) `bind_interface` fija la interfaz usada como scope link-local.
2) `post_document` / `post_stream` devuelven un `PendingCall` de inmediato.
3) Un hilo de I/O ejecuta el POST (TLS vía `LinkLocalTransport`).
4) El resultado se clasifica (`Success` / `Failure`) y se entrega una sola vez
   por el `CallbackDispatcher`, nunca dentro de la llamada que lo originó.

No hay reintentos: cada llamada es independiente y reintentar es cosa del
caller.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import IO, Iterator

import httpx

from adapters import plist_codec
from adapters.http_client import build_client
from adapters.link_local import LinkLocalConnector
from core.config import AppSettings
from core.domain.errors import (
    DecodeError,
    EmptyBodyError,
    EncodeError,
    HttpStatusError,
    NetworkError,
)
from core.domain.models import (
    ContentType,
    Failure,
    NetworkInterface,
    Outcome,
    StructuredDocument,
    Success,
)
from core.interfaces.delivery import TransportCallback
from core.interfaces.trust import TrustMaterial
from core.services.dispatcher import CallbackDispatcher

logger = logging.getLogger(__name__)


class PendingCall:
    """Handle cancelable de una request en curso.

    `cancel()` es idempotente y garantiza que no habrá entrega, aunque la
    respuesta ya haya llegado.
    """

    def __init__(self, url: str) -> None:
        self.url = url
        self._lock = threading.Lock()
        self._cancelled = False
        self._future: Future | None = None
        self._outcome: Outcome | None = None
        self._delivered = threading.Event()
        # Se activa con la entrega o con cancel(): despierta a wait().
        self._settled = threading.Event()

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            future = self._future
        self._settled.set()
        if future is not None:
            future.cancel()
        logger.debug("Cancelled call: %s", self.url)

    def done(self) -> bool:
        """True si ya se entregó un resultado o la llamada fue cancelada."""

        return self._delivered.is_set() or self.cancelled

    def wait(self, timeout: float | None = None) -> Outcome | None:
        """Bloquea hasta la entrega. Devuelve `None` si no hubo (timeout/cancel)."""

        self._settled.wait(timeout)
        return self._outcome

    def attach_future(self, future: Future) -> None:
        with self._lock:
            self._future = future
            cancelled = self._cancelled
        if cancelled:
            future.cancel()

    def claim_delivery(self, outcome: Outcome) -> bool:
        """Reserva la única entrega de esta llamada."""

        with self._lock:
            if self._cancelled or self._delivered.is_set():
                return False
            self._outcome = outcome
            self._delivered.set()
            self._settled.set()
            return True


class _ArchiveBody:
    """Body en streaming de un archivo; cierra el stream una sola vez."""

    def __init__(self, stream: IO[bytes], chunk_size: int) -> None:
        self._stream = stream
        self._chunk_size = chunk_size
        self._lock = threading.Lock()
        self._closed = False

    def __iter__(self) -> Iterator[bytes]:
        try:
            while True:
                chunk = self._stream.read(self._chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.close()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._stream.close()


def _validate_url(url: str) -> None:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as exc:
        raise ValueError(f"Invalid URL: {url}") from exc
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ValueError(f"Invalid URL: {url}")


def _log_worker_crash(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Transport worker crashed", exc_info=exc)


class TransportClient:
    def __init__(
        self,
        http: httpx.Client,
        *,
        connector: LinkLocalConnector,
        dispatcher: CallbackDispatcher | None = None,
        settings: AppSettings,
    ) -> None:
        self._http = http
        self._connector = connector
        self._dispatcher = dispatcher or CallbackDispatcher()
        self._owns_dispatcher = dispatcher is None
        self._settings = settings
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_workers,
            thread_name_prefix="peerdrop-io",
        )

    @classmethod
    def configure(
        cls,
        trust_material: TrustMaterial | None,
        *,
        settings: AppSettings | None = None,
        connector: LinkLocalConnector | None = None,
        dispatcher: CallbackDispatcher | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> "TransportClient":
        """Crea un cliente con el material TLS y la política de hostname.

        `transport` reemplaza el transporte link-local (tests, embebidos); en
        ese caso `trust_material` puede ser `None`.
        """

        settings = settings or AppSettings()
        connector = connector or LinkLocalConnector()
        if transport is None and trust_material is None:
            raise ValueError("trust_material is required to build the TLS transport")

        ssl_context = trust_material.create_client_ssl_context() if trust_material else None
        http = build_client(
            settings,
            ssl_context=ssl_context,
            connector=connector,
            transport=transport,
        )
        return cls(
            http,
            connector=connector,
            dispatcher=dispatcher,
            settings=settings,
        )

    @property
    def connector(self) -> LinkLocalConnector:
        return self._connector

    def bind_interface(self, interface: NetworkInterface | None) -> None:
        self._connector.bind_interface(interface)

    def post_document(
        self,
        url: str,
        document: StructuredDocument,
        callback: TransportCallback,
    ) -> PendingCall:
        _validate_url(url)
        call = PendingCall(url)
        try:
            payload = plist_codec.encode(document)
        except EncodeError as exc:
            logger.error("Could not encode request for %s: %s", url, exc)
            self._dispatcher.dispatch(call, Failure(url=url, error=exc), callback)
            return call
        return self._submit(call, payload, ContentType.DOCUMENT, callback)

    def post_stream(
        self,
        url: str,
        stream: IO[bytes],
        callback: TransportCallback,
    ) -> PendingCall:
        body = _ArchiveBody(stream, self._settings.stream_chunk_size)
        try:
            _validate_url(url)
        except ValueError:
            body.close()
            raise
        return self._submit(PendingCall(url), body, ContentType.ARCHIVE, callback, body=body)

    def _submit(
        self,
        call: PendingCall,
        content: bytes | _ArchiveBody,
        content_type: ContentType,
        callback: TransportCallback,
        body: _ArchiveBody | None = None,
    ) -> PendingCall:
        future = self._executor.submit(self._execute, call, content, content_type, callback, body)
        if body is not None:
            # Cubre la cancelación antes de que el worker arranque.
            future.add_done_callback(lambda _: body.close())
        future.add_done_callback(_log_worker_crash)
        call.attach_future(future)
        return call

    def _execute(
        self,
        call: PendingCall,
        content: bytes | _ArchiveBody,
        content_type: ContentType,
        callback: TransportCallback,
        body: _ArchiveBody | None,
    ) -> None:
        try:
            outcome = self._exchange(call.url, content, content_type)
        except (httpx.HTTPError, OSError) as exc:
            if call.cancelled:
                logger.warning("Request cancelled: %s (%s)", call.url, exc)
                return
            logger.error("Request failed: %s", call.url, exc_info=exc)
            outcome = Failure(
                url=call.url,
                error=NetworkError(f"Request failed: {exc}", cause=exc),
            )
        except Exception as exc:
            # Fallos del stream de origen (archivo cerrado, read() roto) al
            # escribir el body: también son un envío fallido.
            if call.cancelled:
                logger.warning("Request cancelled: %s (%s)", call.url, exc)
                return
            logger.error("Request body failed: %s", call.url, exc_info=exc)
            outcome = Failure(
                url=call.url,
                error=NetworkError(f"Request body failed: {exc}", cause=exc),
            )
        finally:
            if body is not None:
                body.close()
        self._dispatcher.dispatch(call, outcome, callback)

    def _exchange(self, url: str, content: bytes | _ArchiveBody, content_type: ContentType) -> Outcome:
        with self._http.stream(
            "POST",
            url,
            content=content,
            headers={"Content-Type": content_type.value},
        ) as response:
            status = response.status_code
            if status != 200:
                logger.debug("Request to %s returned HTTP %s", url, status)
                return Failure(url=url, error=HttpStatusError(status))
            raw = response.read()

        if not raw:
            return Failure(url=url, error=EmptyBodyError())
        try:
            document = plist_codec.decode(raw)
        except DecodeError as exc:
            logger.debug("Undecodable response from %s: %s", url, exc)
            return Failure(url=url, error=exc)
        return Success(url=url, document=document)

    def close(self) -> None:
        self._executor.shutdown(wait=True, cancel_futures=True)
        self._http.close()
        if self._owns_dispatcher:
            self._dispatcher.close()

    def __enter__(self) -> "TransportClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
