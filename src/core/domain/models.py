"""Modelos del dominio (Pydantic v2).

Por qué Pydantic en el dominio:
- Nos da validación estricta y documentación autocontenida (Field) sin acoplar
  el Core a librerías de I/O.
- Los resultados (`Success`/`Failure`) son inmutables: se entregan una vez y
  nadie debe mutarlos después.

Nota:
- Estos modelos describen *qué* viaja por el transporte, no *cómo*.
"""

from __future__ import annotations

import socket
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from core.domain.errors import TransportError

# Diccionario de property list: str -> str | int | bool | bytes | float |
# datetime | StructuredDocument | list[...]. El orden de inserción se conserva.
StructuredDocument = dict[str, Any]


class ContentType(str, Enum):
    """Content-Type de cada variante de payload."""

    DOCUMENT = "application/octet-stream"
    ARCHIVE = "application/x-cpio"


class HostnamePolicy(str, Enum):
    """Política de verificación de hostname en el handshake TLS.

    Los peers se identifican por dirección link-local y un certificado
    pre-provisionado, no por nombre DNS. Con `CHAIN_ONLY` el hostname se acepta
    siempre y la confianza depende solo de la validación de la cadena que
    aporta el proveedor de material TLS.
    """

    CHAIN_ONLY = "chain-only"
    VERIFY = "verify"

    @property
    def checks_hostname(self) -> bool:
        return self is HostnamePolicy.VERIFY


class NetworkInterface(BaseModel):
    """Interfaz de red usada como scope de direcciones link-local."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(
        ...,
        min_length=1,
        description="Nombre de la interfaz (p.ej. 'wlan0', 'awdl0').",
    )
    index: int = Field(
        ...,
        ge=1,
        description="Índice de la interfaz en el sistema (scope id IPv6).",
    )

    @classmethod
    def from_name(cls, name: str) -> "NetworkInterface":
        """Resuelve el índice del sistema operativo. Lanza OSError si no existe."""

        return cls(name=name, index=socket.if_nametoindex(name))


class Success(BaseModel):
    """Respuesta 200 con un diccionario decodificado."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="URL del request original.")
    document: StructuredDocument = Field(
        default_factory=dict,
        description="Documento decodificado del body de la respuesta.",
    )

    @property
    def ok(self) -> bool:
        return True


class Failure(BaseModel):
    """Cualquier fallo entregable al caller (nunca `CancelledCall`)."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    url: str = Field(..., description="URL del request original.")
    error: TransportError = Field(..., description="Error normalizado del transporte.")

    @property
    def ok(self) -> bool:
        return False


Outcome = Union[Success, Failure]
