"""Servicios del Core.

Por qué:
- Orquestan adaptadores (codec, conector, HTTP) detrás de contratos del Core.
"""
