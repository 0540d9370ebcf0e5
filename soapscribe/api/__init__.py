"""HTTP transport for the presentation layer."""

from .app import create_app

__all__ = ["create_app"]
