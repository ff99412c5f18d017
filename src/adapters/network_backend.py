"""Backend de red de httpcore sobre `LinkLocalConnector`.

Por qué un backend propio:
- httpcore abre sockets con `socket.create_connection(host, port)`, que no
  deja inspeccionar la dirección resuelta. Aquí resolvemos, pedimos un socket
  sin conectar al conector y dejamos que él decida la dirección final.
- El upgrade TLS (`start_tls`) envuelve el mismo socket con el contexto del
  transporte, así que el scope sobrevive al handshake.
"""

from __future__ import annotations

import select
import socket
import ssl
import typing

import httpcore

from adapters.link_local import LinkLocalConnector


class SocketStream(httpcore.NetworkStream):
    """Stream de httpcore sobre un socket ya conectado (plano o TLS)."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    def read(self, max_bytes: int, timeout: float | None = None) -> bytes:
        try:
            self._sock.settimeout(timeout)
            return self._sock.recv(max_bytes)
        except socket.timeout as exc:
            raise httpcore.ReadTimeout(exc) from exc
        except OSError as exc:
            raise httpcore.ReadError(exc) from exc

    def write(self, buffer: bytes, timeout: float | None = None) -> None:
        if not buffer:
            return
        try:
            self._sock.settimeout(timeout)
            while buffer:
                sent = self._sock.send(buffer)
                buffer = buffer[sent:]
        except socket.timeout as exc:
            raise httpcore.WriteTimeout(exc) from exc
        except OSError as exc:
            raise httpcore.WriteError(exc) from exc

    def close(self) -> None:
        self._sock.close()

    def start_tls(
        self,
        ssl_context: ssl.SSLContext,
        server_hostname: str | None = None,
        timeout: float | None = None,
    ) -> httpcore.NetworkStream:
        try:
            self._sock.settimeout(timeout)
            tls_sock = ssl_context.wrap_socket(self._sock, server_hostname=server_hostname)
        except socket.timeout as exc:
            self.close()
            raise httpcore.ConnectTimeout(exc) from exc
        except OSError as exc:
            # ssl.SSLError es subclase de OSError.
            self.close()
            raise httpcore.ConnectError(exc) from exc
        return SocketStream(tls_sock)

    def get_extra_info(self, info: str) -> typing.Any:
        if info == "ssl_object" and isinstance(self._sock, ssl.SSLSocket):
            return self._sock
        if info == "client_addr":
            return self._sock.getsockname()
        if info == "server_addr":
            return self._sock.getpeername()
        if info == "socket":
            return self._sock
        if info == "is_readable":
            return self._is_readable()
        return None

    def _is_readable(self) -> bool:
        # Un socket idle legible significa EOF o datos inesperados: no reutilizar.
        if self._sock.fileno() < 0:
            return True
        readable, _, _ = select.select([self._sock], [], [], 0)
        return bool(readable)


class LinkLocalNetworkBackend(httpcore.NetworkBackend):
    def __init__(self, connector: LinkLocalConnector) -> None:
        self._connector = connector

    def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: typing.Iterable[typing.Any] | None = None,
    ) -> httpcore.NetworkStream:
        try:
            infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
        except OSError as exc:
            raise httpcore.ConnectError(exc) from exc

        last_exc: BaseException | None = None
        for family, _, _, _, address in infos:
            sock = self._connector.create_socket(family)
            try:
                for option in socket_options or ():
                    sock.setsockopt(*option)
                if local_address is not None:
                    sock.bind((local_address, 0))
                self._connector.connect(sock, address, timeout)
            except socket.timeout as exc:
                sock.close()
                last_exc = httpcore.ConnectTimeout(exc)
                continue
            except OSError as exc:
                sock.close()
                last_exc = httpcore.ConnectError(exc)
                continue
            return SocketStream(sock)

        if last_exc is None:
            raise httpcore.ConnectError(f"No addresses for {host}:{port}")
        raise last_exc

    def connect_unix_socket(
        self,
        path: str,
        timeout: float | None = None,
        socket_options: typing.Iterable[typing.Any] | None = None,
    ) -> httpcore.NetworkStream:
        raise NotImplementedError("Unix sockets are not supported by the link-local backend")
