"""Conector de sockets con scope link-local.

Por qué existe:
- Las URLs (`https://[fe80::1]:8771/...`) no llevan zone id, así que la capa
  HTTP resuelve direcciones link-local sin interfaz y el sistema operativo no
  sabe por dónde rutearlas.
- El conector reescribe la dirección justo antes de `connect()`, cuando ya hay
  una dirección de socket estructurada que inspeccionar.

Única operación de fábrica soportada: `create_socket()` (socket sin conectar).
Las variantes que reciben host/puerto fallan enseguida.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
import threading
from typing import Any

from core.domain.models import NetworkInterface

logger = logging.getLogger(__name__)

SocketAddress = tuple[Any, ...]


class LinkLocalConnector:
    """Fábrica de sockets + hook de reescritura de direcciones.

    La interfaz activa es un único slot protegido por un lock. Un connect en
    curso puede ver el valor anterior o el nuevo a un rebind; ambos son
    consistentes.
    """

    def __init__(self, interface: NetworkInterface | None = None) -> None:
        self._lock = threading.Lock()
        self._interface = interface

    @property
    def interface(self) -> NetworkInterface | None:
        with self._lock:
            return self._interface

    def bind_interface(self, interface: NetworkInterface | None) -> None:
        with self._lock:
            self._interface = interface
        logger.debug("Bound interface: %s", interface.name if interface else None)

    def create_socket(self, family: int = socket.AF_INET6) -> socket.socket:
        return socket.socket(family, socket.SOCK_STREAM)

    def create_connection(self, *args: Any, **kwargs: Any) -> socket.socket:
        raise NotImplementedError(
            "LinkLocalConnector only creates unconnected sockets; "
            "use create_socket() and connect() with a socket address"
        )

    def scope_address(self, address: SocketAddress) -> SocketAddress:
        """Devuelve la dirección a la que hay que conectarse realmente.

        Con interfaz asignada y destino IPv6 link-local, devuelve los mismos
        bytes de dirección y puerto con `scope_id` = índice de la interfaz.
        En cualquier otro caso, `address` sin cambios.
        """

        iface = self.interface
        if iface is None or not isinstance(address, tuple) or len(address) != 4:
            return address

        host, port, flowinfo, _ = address
        try:
            ip = ipaddress.ip_address(host)
        except ValueError:
            return address
        if ip.version != 6 or not ip.is_link_local:
            return address

        # Reconstruir desde los bytes descarta un `%zona` textual previo.
        bare = str(ipaddress.IPv6Address(ip.packed))
        return (bare, port, flowinfo, iface.index)

    def connect(self, sock: socket.socket, address: SocketAddress, timeout: float | None) -> None:
        target = self.scope_address(address)
        if target is not address:
            logger.debug("Scoped %s to interface index %s", address[0], target[3])
        sock.settimeout(timeout)
        sock.connect(target)
