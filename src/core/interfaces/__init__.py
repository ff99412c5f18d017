"""Interfaces/abstracciones del Core.

Por qué:
- Define contratos (Protocol) que implementan adaptadores concretos.
- Permite invertir dependencias: el Core depende de abstracciones (material
  TLS, contexto de entrega, callbacks), no de implementaciones.
"""
