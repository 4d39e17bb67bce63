"""HTTP service (FastAPI) exposing the signing pipeline."""

from .app import create_app

__all__ = ["create_app"]
