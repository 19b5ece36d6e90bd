"""Probe domains declared on Traefik IngressRoutes and export their availability."""

__version__ = "0.1.0"
