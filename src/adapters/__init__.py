"""Adaptadores concretos: plist, sockets link-local, HTTP/TLS, exportación."""
