"""HTTP API for uploading recordings and editing workflow block graphs."""

from .server import create_app

__all__ = ["create_app"]
