"""Doctor command for environment diagnostics."""

from __future__ import annotations

import socket
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from adapters.trust_store import PemTrustMaterial
from core.config import AppSettings, read_env_file, update_user_env, user_env_file
from core.domain.models import NetworkInterface

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and TLS configuration.")

_console = Console()


def _check_file(path: Path | None) -> tuple[str, str]:
    if path is None:
        return "OPTIONAL", "not set"
    if not path.is_file():
        return "FAIL", f"missing: {path}"
    return "OK", str(path)


def _check_tls(settings: AppSettings) -> tuple[bool, str]:
    try:
        PemTrustMaterial.from_settings(settings).create_client_ssl_context()
        return True, "SSL context loaded"
    except Exception as exc:
        return False, str(exc)


def _check_interface(name: str | None) -> tuple[str, str]:
    if not name:
        return "OPTIONAL", "no default interface"
    try:
        iface = NetworkInterface.from_name(name)
    except OSError as exc:
        return "FAIL", str(exc)
    return "OK", f"{iface.name} (index {iface.index})"


@app.command()
def run() -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = AppSettings()

    table = Table(title="peerdrop Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    table.add_row("IPv6 support", "OK" if socket.has_ipv6 else "FAIL", "socket.has_ipv6")
    status, detail = _check_interface(settings.interface)
    table.add_row("Interface", status, detail)

    for label, path in (
        ("Client cert", settings.client_cert_path),
        ("Client key", settings.client_key_path),
        ("CA bundle", settings.ca_bundle_path),
    ):
        status, detail = _check_file(path)
        table.add_row(label, status, detail)

    env_file = user_env_file()
    stored = read_env_file(env_file)
    table.add_row("User config", "OK" if stored else "OPTIONAL", f"{env_file} ({len(stored)} keys)")

    ok_tls, detail_tls = _check_tls(settings)
    table.add_row("TLS context", "OK" if ok_tls else "FAIL", detail_tls)
    table.add_row("Hostname policy", "OK", settings.hostname_policy.value)
    table.add_row(
        "Timeouts",
        "OK",
        f"connect={settings.connect_timeout_seconds}s read={settings.read_timeout_seconds}s",
    )

    _console.print(table)

    if settings.client_cert_path is None:
        _console.print(
            "\n[yellow]Note:[/yellow] peers usually require a client certificate. "
            "Run `peerdrop doctor setup-tls`."
        )


_TLS_KEYS = (
    "PEERDROP_CLIENT_CERT_PATH",
    "PEERDROP_CLIENT_KEY_PATH",
    "PEERDROP_CA_BUNDLE_PATH",
)


@app.command(name="setup-tls")
def setup_tls(
    reset: bool = typer.Option(False, "--reset", help="Remove stored TLS paths."),
) -> None:
    """Interactive TLS setup (stores paths in the user config .env)."""

    if reset:
        env_path = update_user_env(dict.fromkeys(_TLS_KEYS))
        _console.print(f"[green]Removed TLS config from:[/green] {env_path}")
        return

    cert = typer.prompt("Client certificate (PEM)", default="", show_default=False).strip()
    key = typer.prompt("Client private key (PEM)", default="", show_default=False).strip()
    ca = typer.prompt("CA bundle (PEM)", default="", show_default=False).strip()
    interface = typer.prompt("Default interface", default="", show_default=False).strip()

    values: dict[str, str | None] = {}
    for env_key, raw in zip(_TLS_KEYS, (cert, key, ca)):
        if not raw:
            continue
        path = Path(raw).expanduser()
        if not path.is_file():
            raise typer.BadParameter(f"File not found: {path}")
        values[env_key] = str(path)
    if interface:
        values["PEERDROP_INTERFACE"] = interface

    if not values:
        raise typer.BadParameter("Nothing to save")

    env_path = update_user_env(values)
    _console.print(f"[green]Saved TLS config to:[/green] {env_path}")
