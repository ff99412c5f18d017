"""Codec de property lists (binario / XML).

Por qué plistlib:
- Es el parser de plist de la librería estándar y entiende ambos formatos.
- Aquí solo normalizamos: validación de formas antes de codificar, detección
  de XML sin preámbulo y envoltura de errores en `EncodeError`/`DecodeError`.
"""

from __future__ import annotations

import codecs
import plistlib
from datetime import datetime
from enum import Enum
from typing import Any

from core.domain.errors import DecodeError, EncodeError
from core.domain.models import StructuredDocument

# Rango de enteros que acepta el formato binario.
_INT_MIN = -(1 << 63)
_INT_MAX = (1 << 64) - 1


class PlistFormat(str, Enum):
    BINARY = "binary"
    XML = "xml"

    @property
    def plistlib_fmt(self) -> plistlib.PlistFormat:
        return plistlib.FMT_BINARY if self is PlistFormat.BINARY else plistlib.FMT_XML


_LEAVE = object()


def _check_value(value: Any, path: str) -> None:
    # Recorrido con pila explícita: la profundidad del documento no depende
    # del límite de recursión del intérprete. `open_ids` son los contenedores
    # en el camino actual, para cortar ciclos.
    pending: list[tuple[Any, str]] = [(value, path)]
    open_ids: set[int] = set()
    while pending:
        current, where = pending.pop()
        if current is _LEAVE:
            open_ids.discard(int(where))
            continue
        # bool antes que int: bool es subclase de int.
        if isinstance(current, (bool, str, bytes, bytearray, float, datetime)):
            continue
        if isinstance(current, int):
            if not _INT_MIN <= current <= _INT_MAX:
                raise EncodeError(f"Integer out of range at {where}: {current}")
            continue
        # Solo list: una tupla volvería como list y el documento no sería igual.
        if not isinstance(current, (dict, list)):
            raise EncodeError(f"Unsupported value at {where}: {type(current).__name__}")
        if id(current) in open_ids:
            raise EncodeError(f"Circular reference at {where}")
        open_ids.add(id(current))
        pending.append((_LEAVE, str(id(current))))
        if isinstance(current, dict):
            for key, item in current.items():
                if not isinstance(key, str):
                    raise EncodeError(f"Non-string key at {where}: {key!r}")
                pending.append((item, f"{where}.{key}"))
        else:
            for i, item in enumerate(current):
                pending.append((item, f"{where}[{i}]"))


def encode(document: StructuredDocument, fmt: PlistFormat = PlistFormat.BINARY) -> bytes:
    """Serializa `document` conservando el orden de claves.

    Lanza `EncodeError` si algún valor no es representable en un plist.
    """

    if not isinstance(document, dict):
        raise EncodeError(f"Document must be a dict, got {type(document).__name__}")
    _check_value(document, "$")
    try:
        return plistlib.dumps(document, fmt=fmt.plistlib_fmt, sort_keys=False)
    except (TypeError, ValueError, OverflowError, RecursionError) as exc:
        raise EncodeError(f"Could not encode document: {exc}", cause=exc) from exc


def _detect_format(data: bytes) -> plistlib.PlistFormat | None:
    # plistlib solo reconoce XML si empieza con `<?xml` o `<plist`; los peers
    # también mandan `<dict>...</dict>` a secas.
    if data.lstrip()[:1] == b"<":
        return plistlib.FMT_XML
    return None


def decode(data: bytes) -> StructuredDocument:
    """Decodifica un plist binario o XML a un diccionario.

    Cualquier fallo de parseo, o una raíz que no sea diccionario, se normaliza
    a `DecodeError` con la excepción original como causa. Un BOM UTF-8 al
    inicio se descarta (un plist binario empieza siempre con `bplist`).
    """

    data = bytes(data)
    if data.startswith(codecs.BOM_UTF8):
        data = data[len(codecs.BOM_UTF8):]
    try:
        root = plistlib.loads(data, fmt=_detect_format(data))
    except Exception as exc:
        raise DecodeError(f"Malformed property list: {exc}", cause=exc) from exc

    if not isinstance(root, dict):
        raise DecodeError(f"Property list root is {type(root).__name__}, expected dict")
    return root
