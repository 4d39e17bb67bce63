"""
Application-wide constants for pdfsigner.

Size limits, signature defaults, environment variable names, and other
magic numbers are centralized here for easy maintenance and configuration.
"""

from __future__ import annotations

import importlib.metadata

try:
    __version__ = importlib.metadata.version("pdfsigner")
except importlib.metadata.PackageNotFoundError:
    __version__ = "1.0.0"

__all__ = [
    "BYTES_PER_MB",
    "DEFAULT_CERT_PATH",
    "DEFAULT_CONTACT",
    "DEFAULT_DIGEST",
    "DEFAULT_HOST",
    "DEFAULT_LOCATION",
    "DEFAULT_MAX_UPLOAD",
    "DEFAULT_PASSPHRASE",
    "DEFAULT_PORT",
    "DEFAULT_REASON",
    "DEFAULT_REMOTE_TIMEOUT",
    "DEFAULT_REMOTE_URL",
    "DEFAULT_SIGNER_NAME",
    "ENV_CERT_PASSPHRASE",
    "ENV_CERT_PASSPHRASE_ALIAS",
    "ENV_CERT_PATH",
    "ENV_CHAIN_PATH",
    "ENV_DIGEST",
    "ENV_HOST",
    "ENV_KEY_PATH",
    "ENV_MAX_UPLOAD",
    "ENV_PORT",
    "ENV_PORT_ALIAS",
    "ENV_TIMEOUT",
    "ENV_URL",
    "ENV_URL_ALIAS",
    "MAX_REMOTE_TIMEOUT",
    "MAX_RESPONSE_SIZE",
    "MIN_REMOTE_TIMEOUT",
    "PDF_MAGIC",
    "RECV_BUFFER_SIZE",
    "SIGNATURE_ALGORITHM_LABEL",
    "SUPPORTED_DIGESTS",
    "__version__",
]

# ── Size units ────────────────────────────────────────────────────────

BYTES_PER_MB = 1024 * 1024


# ── Signature metadata defaults ─────────────────────────────────────

# Used when a caller omits an option or passes an empty string.
DEFAULT_REASON = "Document signed by server"
DEFAULT_LOCATION = "Server"
DEFAULT_CONTACT = "N/A"
DEFAULT_SIGNER_NAME = "PDF Signing Server"

# Human-readable label for the container format, reported by cert info
SIGNATURE_ALGORITHM_LABEL = "PKCS#7/CMS (Detached)"


# ── Digest algorithms ───────────────────────────────────────────────

DEFAULT_DIGEST = "sha256"
SUPPORTED_DIGESTS = ("sha256", "sha384", "sha512")


# ── Server defaults ─────────────────────────────────────────────────

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000
DEFAULT_CERT_PATH = "certs/signing-cert.p12"
DEFAULT_PASSPHRASE = "password"

# Maximum accepted request body (50 MB)
DEFAULT_MAX_UPLOAD = 50 * BYTES_PER_MB

# Remote client
DEFAULT_REMOTE_URL = "http://localhost:3000"
DEFAULT_REMOTE_TIMEOUT = 120

# Cap on a remote response body (signed PDF or JSON)
MAX_RESPONSE_SIZE = 200 * BYTES_PER_MB
RECV_BUFFER_SIZE = 64 * 1024
MIN_REMOTE_TIMEOUT = 1
MAX_REMOTE_TIMEOUT = 600


# ── Environment variable names ──────────────────────────────────────

ENV_CERT_PATH = "PDFSIGNER_CERT_PATH"
ENV_CERT_PASSPHRASE = "PDFSIGNER_CERT_PASSPHRASE"
ENV_CERT_PASSPHRASE_ALIAS = "CERT_PASSPHRASE"
ENV_KEY_PATH = "PDFSIGNER_KEY_PATH"
ENV_CHAIN_PATH = "PDFSIGNER_CHAIN_PATH"
ENV_DIGEST = "PDFSIGNER_DIGEST"
ENV_HOST = "PDFSIGNER_HOST"
ENV_PORT = "PDFSIGNER_PORT"
ENV_PORT_ALIAS = "PORT"
ENV_MAX_UPLOAD = "PDFSIGNER_MAX_UPLOAD"
ENV_URL = "PDFSIGNER_URL"
ENV_URL_ALIAS = "API_URL"
ENV_TIMEOUT = "PDFSIGNER_TIMEOUT"


# ── PDF ─────────────────────────────────────────────────────────────

# PDF file magic bytes
PDF_MAGIC = b"%PDF-"
