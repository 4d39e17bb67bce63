"""
Configuration management.

Import from this package directly instead of the individual submodules.
"""

from __future__ import annotations

from .settings import ServerSettings, get_remote_config, load_settings

__all__ = ["ServerSettings", "get_remote_config", "load_settings"]
