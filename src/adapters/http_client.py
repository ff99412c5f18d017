"""Wrapper de httpx.

Por qué un wrapper:
- Estandariza timeouts, headers, límites del pool y la política TLS.
- Conecta el pool de httpcore con `LinkLocalNetworkBackend` para que cada
  socket pase por el conector link-local.
- Facilita testeo: se puede sustituir el transporte por `httpx.MockTransport`.
"""

from __future__ import annotations

import ssl

import httpcore
import httpx

from adapters.link_local import LinkLocalConnector
from adapters.network_backend import LinkLocalNetworkBackend
from core.config import AppSettings
from core.domain.models import HostnamePolicy


def apply_hostname_policy(ssl_context: ssl.SSLContext, policy: HostnamePolicy) -> ssl.SSLContext:
    """Aplica la política de hostname sin tocar la validación de cadena.

    `CHAIN_ONLY` desactiva `check_hostname` pero deja `verify_mode` como esté
    (normalmente `CERT_REQUIRED`): el peer sigue necesitando una cadena válida.
    """

    ssl_context.check_hostname = policy.checks_hostname
    return ssl_context


class LinkLocalTransport(httpx.HTTPTransport):
    """`HTTPTransport` cuyo pool abre sockets a través del conector.

    Reutiliza el mapeo de excepciones httpcore -> httpx de la clase base y
    solo reemplaza el pool por uno con el backend de red propio.
    """

    def __init__(
        self,
        *,
        ssl_context: ssl.SSLContext,
        connector: LinkLocalConnector,
        limits: httpx.Limits = httpx.Limits(max_connections=8),
    ) -> None:
        super().__init__(verify=ssl_context, limits=limits, trust_env=False)
        self._pool = httpcore.ConnectionPool(
            ssl_context=ssl_context,
            max_connections=limits.max_connections,
            max_keepalive_connections=limits.max_keepalive_connections,
            keepalive_expiry=limits.keepalive_expiry,
            http1=True,
            http2=False,
            network_backend=LinkLocalNetworkBackend(connector),
        )


def build_timeout(settings: AppSettings) -> httpx.Timeout:
    return httpx.Timeout(
        connect=settings.connect_timeout_seconds,
        read=settings.read_timeout_seconds,
        write=settings.write_timeout_seconds,
        pool=settings.pool_timeout_seconds,
    )


def build_client(
    settings: AppSettings | None = None,
    *,
    ssl_context: ssl.SSLContext | None = None,
    connector: LinkLocalConnector | None = None,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Crea el `httpx.Client` del transporte.

    Sin `transport` explícito se necesitan `ssl_context` y `connector` para
    armar el `LinkLocalTransport`.
    """

    settings = settings or AppSettings()
    if transport is None:
        if ssl_context is None or connector is None:
            raise ValueError("ssl_context and connector are required without an explicit transport")
        transport = LinkLocalTransport(
            ssl_context=apply_hostname_policy(ssl_context, settings.hostname_policy),
            connector=connector,
            limits=httpx.Limits(max_connections=settings.max_connections),
        )

    return httpx.Client(
        transport=transport,
        timeout=build_timeout(settings),
        follow_redirects=False,
        trust_env=False,
        headers={"User-Agent": settings.user_agent},
    )
