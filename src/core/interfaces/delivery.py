"""Contratos de entrega de resultados.

Reglas de diseño:
- `DeliveryContext` es un único contexto serializado: las funciones enviadas
  se ejecutan de a una, en orden, fuera del hilo que las envía.
- `TransportCallback` recibe exactamente uno de `on_response`/`on_failure` por
  llamada no cancelada.
"""

from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

from core.domain.errors import TransportError
from core.domain.models import StructuredDocument


@runtime_checkable
class DeliveryContext(Protocol):
    def submit(self, fn: Callable[[], None]) -> None:
        """Encola `fn` para ejecutarla en el contexto serializado."""

        ...

    def close(self) -> None:
        ...


@runtime_checkable
class TransportCallback(Protocol):
    def on_response(self, document: StructuredDocument) -> None:
        ...

    def on_failure(self, error: TransportError) -> None:
        ...
