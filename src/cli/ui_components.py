"""Componentes de UI para CLI (Rich).

Por qué separar componentes:
- Evita mezclar lógica de comandos con detalles visuales.
- Permite reutilizar árboles/paneles en múltiples comandos.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from rich.align import Align
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.text import Text
from rich.tree import Tree

from core.domain.errors import HttpStatusError, TransportError
from core.domain.models import StructuredDocument


def configure_logging(console: Console, level: str) -> None:
    """Instala un `RichHandler` en el logger raíz (una sola vez)."""

    root = logging.getLogger()
    root.setLevel(level.upper())
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(RichHandler(console=console, show_path=False, rich_tracebacks=True))


def print_banner(console: Console) -> None:
    title = Text("peerdrop", style="bold cyan")
    subtitle = Text("Link-local TLS transport • plist • cpio", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def _format_scalar(value: Any) -> Text:
    if isinstance(value, bool):
        return Text(str(value).lower(), style="magenta")
    if isinstance(value, (int, float)):
        return Text(str(value), style="cyan")
    if isinstance(value, (bytes, bytearray)):
        return Text(f"<{len(value)} bytes>", style="dim")
    if isinstance(value, datetime):
        return Text(value.isoformat(), style="yellow")
    return Text(repr(value), style="green")


def _add_node(tree: Tree, label: str, value: Any) -> None:
    if isinstance(value, dict):
        branch = tree.add(Text(f"{label} {{{len(value)}}}", style="bold"))
        for key, item in value.items():
            _add_node(branch, key, item)
    elif isinstance(value, (list, tuple)):
        branch = tree.add(Text(f"{label} [{len(value)}]", style="bold"))
        for i, item in enumerate(value):
            _add_node(branch, f"[{i}]", item)
    else:
        tree.add(Text.assemble(Text(f"{label}: ", style="bold"), _format_scalar(value)))


def build_document_tree(document: StructuredDocument, title: str = "Response") -> Tree:
    """Árbol Rich de un documento anidado."""

    tree = Tree(Text(title, style="bold yellow"))
    for key, value in document.items():
        _add_node(tree, key, value)
    return tree


def build_error_panel(error: TransportError) -> Panel:
    body = Text(str(error))
    if isinstance(error, HttpStatusError):
        body.append(f"\nHTTP status: {error.status_code}", style="bold")
    if error.cause is not None:
        body.append(f"\nCause: {error.cause!r}", style="dim")
    return Panel(body, title=Text(type(error).__name__, style="bold red"), border_style="red")
