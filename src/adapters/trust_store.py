"""Material TLS desde archivos PEM.

La generación de certificados queda fuera de este proyecto; este adaptador
solo carga lo que ya existe en disco para la CLI y para embebidos simples.
"""

from __future__ import annotations

import ssl
from pathlib import Path

from core.config import AppSettings


class PemTrustMaterial:
    """Implementa `core.interfaces.trust.TrustMaterial` con archivos PEM."""

    def __init__(
        self,
        *,
        cert_path: Path | None = None,
        key_path: Path | None = None,
        ca_path: Path | None = None,
    ) -> None:
        if key_path is not None and cert_path is None:
            raise ValueError("key_path requires cert_path")
        self._cert_path = cert_path
        self._key_path = key_path
        self._ca_path = ca_path

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "PemTrustMaterial":
        return cls(
            cert_path=settings.client_cert_path,
            key_path=settings.client_key_path,
            ca_path=settings.ca_bundle_path,
        )

    def create_client_ssl_context(self) -> ssl.SSLContext:
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        if self._ca_path is not None:
            ctx.load_verify_locations(cafile=str(self._ca_path))
        else:
            ctx.load_default_certs(ssl.Purpose.SERVER_AUTH)
        if self._cert_path is not None:
            ctx.load_cert_chain(
                certfile=str(self._cert_path),
                keyfile=str(self._key_path) if self._key_path else None,
            )
        return ctx
