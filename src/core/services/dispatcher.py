"""Entrega serializada de resultados.

Por qué un dispatcher:
- Las requests terminan en hilos de I/O arbitrarios; el caller espera recibir
  sus callbacks de a uno, en un único contexto que él elige.
- Concentra las reglas de entrega: nada si la llamada fue cancelada, nunca
  dos veces la misma llamada, y un callback que falla no tumba el contexto.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from typing import TYPE_CHECKING, Callable

from core.domain.models import Failure, Outcome, Success
from core.interfaces.delivery import DeliveryContext, TransportCallback

if TYPE_CHECKING:
    from core.services.transport_client import PendingCall

logger = logging.getLogger(__name__)

_STOP = object()


class QueueDeliveryContext:
    """Un hilo consumidor sobre una `queue.Queue`."""

    def __init__(self, name: str = "peerdrop-delivery") -> None:
        self._queue: queue.Queue = queue.Queue()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def submit(self, fn: Callable[[], None]) -> None:
        self._queue.put(fn)

    def drain(self, timeout: float | None = None) -> bool:
        """Espera a que corra todo lo encolado hasta ahora."""

        if threading.current_thread() is self._thread:
            raise RuntimeError("drain() would deadlock on the delivery thread")
        marker = threading.Event()
        self._queue.put(marker.set)
        return marker.wait(timeout)

    def close(self) -> None:
        self._queue.put(_STOP)
        if threading.current_thread() is not self._thread:
            self._thread.join()

    def _run(self) -> None:
        while True:
            fn = self._queue.get()
            if fn is _STOP:
                return
            try:
                fn()
            except Exception:
                logger.exception("Delivery task failed")


class AsyncioDeliveryContext:
    """Entrega en el event loop de la aplicación que embebe el transporte."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def submit(self, fn: Callable[[], None]) -> None:
        self._loop.call_soon_threadsafe(fn)

    def close(self) -> None:
        # El loop pertenece al caller.
        pass


class CallbackDispatcher:
    def __init__(self, context: DeliveryContext | None = None) -> None:
        self._owns_context = context is None
        self._context: DeliveryContext = context or QueueDeliveryContext()

    @property
    def context(self) -> DeliveryContext:
        return self._context

    def dispatch(self, call: "PendingCall", outcome: Outcome, callback: TransportCallback) -> None:
        self._context.submit(lambda: self._deliver(call, outcome, callback))

    def _deliver(self, call: "PendingCall", outcome: Outcome, callback: TransportCallback) -> None:
        if call.cancelled:
            logger.debug("Dropping result of cancelled call: %s", call.url)
            return
        if not call.claim_delivery(outcome):
            return
        try:
            if isinstance(outcome, Success):
                callback.on_response(outcome.document)
            elif isinstance(outcome, Failure):
                callback.on_failure(outcome.error)
        except Exception:
            logger.exception("Callback raised for %s", call.url)

    def close(self) -> None:
        if self._owns_context:
            self._context.close()
