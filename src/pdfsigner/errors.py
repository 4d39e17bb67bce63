"""pdfsigner error types."""

from __future__ import annotations

__all__ = [
    "ConfigError",
    "IdentityLoadFailure",
    "InvalidDocument",
    "PdfSignerError",
    "PlaceholderOverflow",
    "RemoteError",
    "SigningFailure",
    "VerificationError",
]


class PdfSignerError(Exception):
    """Base error for pdfsigner operations.

    Every subclass carries a stable ``kind`` string so that transport
    layers can report the failure category without matching on types.
    """

    kind = "error"


class InvalidDocument(PdfSignerError):
    """Input is not a PDF, cannot be parsed, or is not a prepared document."""

    kind = "invalid_document"


class PlaceholderOverflow(PdfSignerError):
    """Reserved signature space cannot hold what must be written into it."""

    kind = "placeholder_overflow"


class SigningFailure(PdfSignerError):
    """The private key could not be used, or the signature does not fit."""

    kind = "signing_failure"


class IdentityLoadFailure(SigningFailure):
    """The signing key or certificate could not be read or decrypted.

    Subclass of SigningFailure: a wrong passphrase is a signing failure
    for callers that only distinguish the broad categories.
    """

    kind = "identity_load_failure"


class VerificationError(PdfSignerError):
    """A freshly signed document failed its own verification."""

    kind = "verification_failure"


class ConfigError(PdfSignerError):
    """Configuration validation error."""

    kind = "config_error"


class RemoteError(PdfSignerError):
    """A remote signing service could not be reached or rejected the request.

    ``status`` is the HTTP status code, or None when no response arrived.
    """

    kind = "remote_error"

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
