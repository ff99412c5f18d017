"""Contrato del proveedor de material TLS.

Por qué Protocol:
- La generación/validación de certificados vive fuera de este Core. Solo
  necesitamos un `ssl.SSLContext` cliente ya cargado (certificado propio +
  anclas de confianza para la cadena del peer).
"""

from __future__ import annotations

import ssl
from typing import Protocol, runtime_checkable


@runtime_checkable
class TrustMaterial(Protocol):
    """Fábrica opaca del contexto TLS cliente."""

    def create_client_ssl_context(self) -> ssl.SSLContext:
        """Devuelve un contexto con certificado cliente y validación de cadena."""

        ...
