"""Core del transporte: dominio, contratos, configuración y servicios."""
