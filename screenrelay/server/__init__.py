"""Local HTTP server exposing the relay channels."""

from screenrelay.server.app import create_app

__all__ = ["create_app"]
