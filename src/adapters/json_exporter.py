"""Exportación JSON de documentos de respuesta.

Por qué JSON:
- Interoperabilidad con otras herramientas y pipelines (jq, scripts).
- Un plist tiene tipos que JSON no: bytes -> base64, fechas -> ISO-8601.
"""

from __future__ import annotations

import base64
import json
from datetime import datetime
from pathlib import Path
from typing import Any

from core.domain.models import StructuredDocument


def to_jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def export_document_json(*, document: StructuredDocument, output_path: Path) -> Path:
    """Exporta el documento a JSON UTF-8 conservando el orden de claves."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(to_jsonable(document), ensure_ascii=False, indent=2) + "\n",
        encoding="utf-8",
    )
    return output_path
