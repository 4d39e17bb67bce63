"""Network clients for a remote pdfsigner service."""

from .client import SigningClient

__all__ = ["SigningClient"]
