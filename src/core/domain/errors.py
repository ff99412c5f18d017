"""Taxonomía de errores del transporte.

Por qué una jerarquía propia:
- Los errores de plistlib/expat/httpx quedan envueltos (`__cause__`) y el
  caller solo depende de estas clases.
- Cada llamada es independiente: ningún error invalida el cliente.
"""

from __future__ import annotations


class TransportError(Exception):
    """Base de todos los errores entregados por el transporte."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class EncodeError(TransportError):
    """El documento no se puede serializar; no hubo intento de red."""


class DecodeError(TransportError):
    """El body no es un property list bien formado o no es un diccionario."""


class NetworkError(TransportError):
    """Fallo de I/O durante el envío o la recepción."""


class CancelledCall(TransportError):
    """El caller canceló la llamada. Nunca llega al callback."""


class EmptyBodyError(TransportError):
    """Respuesta 200 sin body."""

    def __init__(self, message: str = "Response body empty") -> None:
        super().__init__(message)


class HttpStatusError(TransportError):
    """Respuesta con status distinto de 200. El body no se parsea."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"Request failed: {status_code}")
        self.status_code = status_code
