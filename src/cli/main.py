"""CLI principal (Typer).

Comandos:
- `post`: envía un documento plist y muestra la respuesta.
- `upload`: envía un archivo cpio como body en streaming.
- `decode`: decodifica un plist local (binario o XML).
- `doctor`: diagnósticos y configuración TLS.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from adapters import plist_codec
from adapters.json_exporter import export_document_json
from adapters.trust_store import PemTrustMaterial
from cli import doctor
from cli.ui_components import (
    build_document_tree,
    build_error_panel,
    configure_logging,
    print_banner,
)
from core.config import AppSettings
from core.domain.errors import TransportError
from core.domain.models import NetworkInterface, StructuredDocument
from core.services.transport_client import PendingCall, TransportClient

app = typer.Typer(no_args_is_help=True, help="Send plist documents and archives to a link-local peer.")
app.add_typer(doctor.app, name="doctor")

_console = Console()


class _ReportingCallback:
    """Imprime el resultado y avisa al hilo principal."""

    def __init__(self, json_out: Path | None = None) -> None:
        self.finished = threading.Event()
        self.ok = False
        self._json_out = json_out

    def on_response(self, document: StructuredDocument) -> None:
        try:
            _console.print(build_document_tree(document))
            if self._json_out is not None:
                path = export_document_json(document=document, output_path=self._json_out)
                _console.print(f"[green]Saved JSON to:[/green] {path}")
            self.ok = True
        finally:
            self.finished.set()

    def on_failure(self, error: TransportError) -> None:
        try:
            _console.print(build_error_panel(error))
        finally:
            self.finished.set()


def parse_assignment(raw: str) -> tuple[str, object]:
    """`KEY=VALUE` -> (key, valor). Enteros y true/false se convierten."""

    if "=" not in raw:
        raise typer.BadParameter(f"Expected KEY=VALUE, got {raw!r}")
    key, value = raw.split("=", 1)
    key = key.strip()
    if not key:
        raise typer.BadParameter(f"Empty key in {raw!r}")
    lowered = value.strip().lower()
    if lowered in ("true", "false"):
        return key, lowered == "true"
    try:
        return key, int(value)
    except ValueError:
        return key, value


def _resolve_interface(name: str | None) -> NetworkInterface | None:
    if not name:
        return None
    try:
        return NetworkInterface.from_name(name)
    except OSError as exc:
        raise typer.BadParameter(f"Unknown network interface: {name}") from exc


def _build_client(
    settings: AppSettings,
    cert: Path | None,
    key: Path | None,
    ca: Path | None,
) -> TransportClient:
    try:
        trust = PemTrustMaterial(
            cert_path=cert or settings.client_cert_path,
            key_path=key or settings.client_key_path,
            ca_path=ca or settings.ca_bundle_path,
        )
        return TransportClient.configure(trust, settings=settings)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"Could not load TLS material: {exc}") from exc


def _submit_or_reject(submit, *args) -> PendingCall:
    # Una URL inválida es error de uso, no de transporte.
    try:
        return submit(*args)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="URL") from exc


def _await(call: PendingCall, callback: _ReportingCallback) -> None:
    try:
        callback.finished.wait()
    except KeyboardInterrupt:
        call.cancel()
        _console.print("\n[yellow]Cancelled.[/yellow]")
        raise typer.Exit(code=130)
    if not callback.ok:
        raise typer.Exit(code=1)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ERROR."),
    banner: bool = typer.Option(False, "--banner", help="Show the banner."),
) -> None:
    settings = AppSettings()
    configure_logging(_console, log_level or settings.log_level)
    if banner:
        print_banner(_console)


@app.command()
def post(
    url: str = typer.Argument(..., help="Peer URL, e.g. https://[fe80::1]:8770/Ask"),
    assignments: list[str] = typer.Option([], "--set", "-s", help="KEY=VALUE field (repeatable)."),
    document_path: Optional[Path] = typer.Option(None, "--document", "-d", exists=True, dir_okay=False),
    interface: Optional[str] = typer.Option(None, "--interface", "-i", help="Interface for link-local scope."),
    cert: Optional[Path] = typer.Option(None, "--cert", exists=True, dir_okay=False),
    key: Optional[Path] = typer.Option(None, "--key", exists=True, dir_okay=False),
    ca: Optional[Path] = typer.Option(None, "--ca", exists=True, dir_okay=False),
    json_out: Optional[Path] = typer.Option(None, "--json-out", help="Also save the response as JSON."),
) -> None:
    """POST a plist document (application/octet-stream)."""

    settings = AppSettings()
    document: StructuredDocument = {}
    if document_path is not None:
        try:
            document = plist_codec.decode(document_path.read_bytes())
        except TransportError as exc:
            raise typer.BadParameter(str(exc)) from exc
    for raw in assignments:
        field, value = parse_assignment(raw)
        document[field] = value

    iface = _resolve_interface(interface or settings.interface)
    callback = _ReportingCallback(json_out=json_out)
    with _build_client(settings, cert, key, ca) as client:
        client.bind_interface(iface)
        call = _submit_or_reject(client.post_document, url, document, callback)
        _await(call, callback)


@app.command()
def upload(
    url: str = typer.Argument(..., help="Peer URL, e.g. https://[fe80::1]:8770/Upload"),
    archive: Path = typer.Argument(..., exists=True, dir_okay=False, help="cpio archive to send."),
    interface: Optional[str] = typer.Option(None, "--interface", "-i"),
    cert: Optional[Path] = typer.Option(None, "--cert", exists=True, dir_okay=False),
    key: Optional[Path] = typer.Option(None, "--key", exists=True, dir_okay=False),
    ca: Optional[Path] = typer.Option(None, "--ca", exists=True, dir_okay=False),
) -> None:
    """POST an archive file (application/x-cpio), streamed from disk."""

    settings = AppSettings()
    iface = _resolve_interface(interface or settings.interface)
    callback = _ReportingCallback()
    with _build_client(settings, cert, key, ca) as client:
        client.bind_interface(iface)
        call = _submit_or_reject(client.post_stream, url, archive.open("rb"), callback)
        _await(call, callback)


@app.command()
def decode(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Binary or XML plist."),
    json_out: Optional[Path] = typer.Option(None, "--json-out"),
) -> None:
    """Decode a local plist file and print it."""

    try:
        document = plist_codec.decode(path.read_bytes())
    except TransportError as exc:
        _console.print(build_error_panel(exc))
        raise typer.Exit(code=1)
    _console.print(build_document_tree(document, title=path.name))
    if json_out is not None:
        export_document_json(document=document, output_path=json_out)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
