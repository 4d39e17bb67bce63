"""
Process settings for pdfsigner.

All settings come from environment variables (see ``constants.ENV_*``).
Paths and the digest algorithm are validated strictly; numeric values
fall back to their defaults with a logged warning.
"""

from __future__ import annotations

__all__ = ["ServerSettings", "get_remote_config", "load_settings"]

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from ..constants import (
    DEFAULT_CERT_PATH,
    DEFAULT_DIGEST,
    DEFAULT_HOST,
    DEFAULT_MAX_UPLOAD,
    DEFAULT_PASSPHRASE,
    DEFAULT_PORT,
    DEFAULT_REMOTE_TIMEOUT,
    DEFAULT_REMOTE_URL,
    ENV_CERT_PASSPHRASE,
    ENV_CERT_PASSPHRASE_ALIAS,
    ENV_CERT_PATH,
    ENV_CHAIN_PATH,
    ENV_DIGEST,
    ENV_HOST,
    ENV_KEY_PATH,
    ENV_MAX_UPLOAD,
    ENV_PORT,
    ENV_PORT_ALIAS,
    ENV_TIMEOUT,
    ENV_URL,
    ENV_URL_ALIAS,
    MAX_REMOTE_TIMEOUT,
    MIN_REMOTE_TIMEOUT,
    SUPPORTED_DIGESTS,
)
from ..errors import ConfigError

_logger = logging.getLogger(__name__)

_MAX_PORT = 65535


@dataclass(frozen=True)
class ServerSettings:
    """Resolved process configuration.

    ``passphrase`` is excluded from repr so settings can be logged.
    """

    cert_path: str = DEFAULT_CERT_PATH
    passphrase: str = DEFAULT_PASSPHRASE
    key_path: str | None = None
    chain_path: str | None = None
    digest: str = DEFAULT_DIGEST
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    max_upload: int = DEFAULT_MAX_UPLOAD

    def __repr__(self) -> str:
        return (
            f"ServerSettings(cert_path={self.cert_path!r}, key_path={self.key_path!r}, "
            f"chain_path={self.chain_path!r}, digest={self.digest!r}, host={self.host!r}, "
            f"port={self.port}, max_upload={self.max_upload})"
        )


def _first(env: Mapping[str, str], *names: str) -> str:
    """Return the first non-empty value among ``names``, stripped."""
    for name in names:
        value = env.get(name, "").strip()
        if value:
            return value
    return ""


def _int_setting(
    env: Mapping[str, str], names: tuple[str, ...], default: int, low: int, high: int
) -> int:
    raw = _first(env, *names)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        _logger.warning("Invalid %s value %r, using default", names[0], raw)
        return default
    if value < low or value > high:
        _logger.warning(
            "%s=%d out of range [%d, %d], using default", names[0], value, low, high
        )
        return default
    return value


def load_settings(environ: Mapping[str, str] | None = None) -> ServerSettings:
    """
    Build ServerSettings from the environment.

    Args:
        environ: Mapping to read instead of ``os.environ`` (tests).

    Raises:
        ConfigError: Empty certificate path or unsupported digest algorithm.
    """
    env = os.environ if environ is None else environ

    cert_path = env.get(ENV_CERT_PATH, DEFAULT_CERT_PATH).strip()
    if not cert_path:
        raise ConfigError(f"{ENV_CERT_PATH} must not be empty.")

    digest = (_first(env, ENV_DIGEST) or DEFAULT_DIGEST).lower().replace("-", "")
    if digest not in SUPPORTED_DIGESTS:
        raise ConfigError(
            f"{ENV_DIGEST}={digest!r} is not supported; "
            f"expected one of {', '.join(SUPPORTED_DIGESTS)}."
        )

    # The passphrase is taken verbatim: surrounding spaces may be part of it.
    passphrase = env.get(ENV_CERT_PASSPHRASE) or env.get(ENV_CERT_PASSPHRASE_ALIAS)
    if passphrase is None:
        passphrase = DEFAULT_PASSPHRASE

    settings = ServerSettings(
        cert_path=cert_path,
        passphrase=passphrase,
        key_path=_first(env, ENV_KEY_PATH) or None,
        chain_path=_first(env, ENV_CHAIN_PATH) or None,
        digest=digest,
        host=_first(env, ENV_HOST) or DEFAULT_HOST,
        port=_int_setting(env, (ENV_PORT_ALIAS, ENV_PORT), DEFAULT_PORT, 1, _MAX_PORT),
        max_upload=_int_setting(
            env, (ENV_MAX_UPLOAD,), DEFAULT_MAX_UPLOAD, 1, 2**63 - 1
        ),
    )
    _logger.debug("Loaded settings: %r", settings)
    return settings


def get_remote_config(environ: Mapping[str, str] | None = None) -> tuple[str, int]:
    """
    Resolve the remote service URL and timeout.

    Returns:
        (url, timeout) with trailing slashes stripped from the URL.
    """
    env = os.environ if environ is None else environ
    url = _first(env, ENV_URL, ENV_URL_ALIAS) or DEFAULT_REMOTE_URL
    timeout = _int_setting(
        env, (ENV_TIMEOUT,), DEFAULT_REMOTE_TIMEOUT, MIN_REMOTE_TIMEOUT, MAX_REMOTE_TIMEOUT
    )
    return url.rstrip("/"), timeout
