"""HTTP API for items and collections."""

from .app import create_app

__all__ = ["create_app"]
