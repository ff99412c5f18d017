"""Configuración del Core.

Por qué aquí:
- Centraliza variables de entorno (pydantic-settings) sin contaminar la CLI.
- Permite que adaptadores (HTTP/TLS/sockets) lean config de forma consistente.
"""

from __future__ import annotations

import os
import re
import sys
from pathlib import Path
from typing import Mapping

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.domain.models import HostnamePolicy

APP_DIR_NAME = "peerdrop"

_ENV_LINE = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=(.*)$")


def user_config_dir() -> Path:
    """Directorio de configuración por usuario.

    `PEERDROP_CONFIG_DIR` tiene prioridad (instalaciones portables, tests).
    """

    override = os.environ.get("PEERDROP_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    if sys.platform.startswith("win"):
        return Path(os.environ.get("APPDATA") or Path.home()) / APP_DIR_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_DIR_NAME
    return Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config") / APP_DIR_NAME


def user_env_file() -> Path:
    return user_config_dir() / ".env"


def _unquote(raw: str) -> str:
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return re.sub(r'\\(["\\])', r"\1", value[1:-1])
    if len(value) >= 2 and value[0] == value[-1] == "'":
        return value[1:-1]
    # Sin comillas, ` #` abre un comentario al final de la línea.
    return value.split(" #", 1)[0].rstrip()


def _quote(value: str) -> str:
    if value and not re.search(r"[\s#'\"]", value):
        return value
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def read_env_file(path: Path) -> dict[str, str]:
    """Pares KEY=VALUE de un .env; ignora comentarios y líneas inválidas."""

    if not path.is_file():
        return {}
    data: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        match = _ENV_LINE.match(line)
        if match:
            data[match.group(1)] = _unquote(match.group(2))
    return data


def update_user_env(values: Mapping[str, str | None], env_path: Path | None = None) -> Path:
    """Actualiza el .env de usuario en el lugar.

    Las líneas existentes (comentarios incluidos) se conservan en su orden;
    una clave con valor `None` se elimina y las claves nuevas van al final.
    """

    env_path = env_path or user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)
    lines = env_path.read_text(encoding="utf-8").splitlines() if env_path.is_file() else [
        f"# {APP_DIR_NAME} user config (.env)"
    ]

    pending = dict(values)
    updated: list[str] = []
    for line in lines:
        match = _ENV_LINE.match(line)
        if not match or match.group(1) not in pending:
            updated.append(line)
            continue
        value = pending.pop(match.group(1))
        if value is not None:
            updated.append(f"{match.group(1)}={_quote(value)}")
    updated.extend(f"{key}={_quote(value)}" for key, value in pending.items() if value is not None)

    tmp_path = env_path.with_name(env_path.name + ".tmp")
    tmp_path.write_text("\n".join(updated) + "\n", encoding="utf-8")
    os.replace(tmp_path, env_path)
    return env_path


class AppSettings(BaseSettings):
    """Configuración central del transporte.

    Por qué pydantic-settings:
    - Tipado + validación en el borde (env vars) sin ensuciar el Core con lógica.
    - Un único contrato de configuración para CLI/adapters.
    """

    model_config = SettingsConfigDict(
        env_prefix="PEERDROP_",
        extra="ignore",
        case_sensitive=False,
        # Orden: proyecto primero (dev), luego config global de usuario.
        env_file=(".env", str(user_env_file())),
        env_file_encoding="utf-8",
    )

    connect_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout de conexión TCP + handshake TLS (segundos).",
    )
    read_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout de lectura por operación de socket (segundos).",
    )
    write_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout de escritura por operación de socket (segundos).",
    )
    pool_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Espera máxima por una conexión libre del pool (segundos).",
    )

    max_workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Hilos de I/O que ejecutan requests en paralelo.",
    )
    max_connections: int = Field(
        default=8,
        ge=1,
        le=256,
        description="Conexiones simultáneas máximas del pool HTTP.",
    )
    stream_chunk_size: int = Field(
        default=64 * 1024,
        ge=1024,
        description="Tamaño de bloque al volcar un archivo cpio al body.",
    )

    hostname_policy: HostnamePolicy = Field(
        default=HostnamePolicy.CHAIN_ONLY,
        description=(
            "chain-only: se acepta cualquier hostname y la confianza la da la cadena "
            "de certificados; verify: verificación de hostname estándar."
        ),
    )
    user_agent: str = Field(
        default="peerdrop/0.1",
        min_length=1,
        description="User-Agent enviado al peer.",
    )
    interface: str | None = Field(
        default=None,
        description="Interfaz de red por defecto para direcciones link-local (p.ej. 'wlan0').",
    )

    client_cert_path: Path | None = Field(
        default=None,
        description="Certificado cliente (PEM) presentado al peer.",
    )
    client_key_path: Path | None = Field(
        default=None,
        description="Clave privada (PEM) del certificado cliente.",
    )
    ca_bundle_path: Path | None = Field(
        default=None,
        description="CA(s) de confianza (PEM) para validar la cadena del peer.",
    )

    log_level: str = Field(
        default="WARNING",
        description="Nivel de logging para la CLI.",
    )
