"""
Signing identity loading -- private key, certificate and chain.

The identity is loaded once at process start-up (server lifespan, CLI
command) and passed explicitly to every signing call. It is immutable
and never serialised; ``SigningIdentity.info()`` is its public,
non-secret projection.
"""

from __future__ import annotations

__all__ = [
    "IdentityInfo",
    "SigningIdentity",
    "load_identity",
    "load_identity_file",
    "load_pem",
    "load_pkcs12",
]

import datetime
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, TypedDict, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from ..constants import DEFAULT_DIGEST, SIGNATURE_ALGORITHM_LABEL, SUPPORTED_DIGESTS
from ..errors import IdentityLoadFailure

if TYPE_CHECKING:
    from ..config import ServerSettings

_logger = logging.getLogger(__name__)

SigningKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]


class IdentityInfo(TypedDict):
    """Public description of the loaded identity (no key material)."""

    loaded: bool
    loaded_at: str
    subject: str
    issuer: str
    serial_number: str
    not_valid_before: str
    not_valid_after: str
    key_type: str
    digest_algorithm: str
    algorithm: str
    has_private_key: bool


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class SigningIdentity:
    """Private key, signing certificate and optional extra chain certificates.

    Attributes:
        private_key: RSA or EC private key (never shown in repr).
        certificate: Certificate whose public key matches ``private_key``.
        chain: Additional certificates embedded in the CMS container.
        digest_algorithm: hashlib name used for both the document digest
            and the signature (``sha256``, ``sha384`` or ``sha512``).
        loaded_at: When the identity was loaded (UTC).
    """

    private_key: SigningKey = field(repr=False)
    certificate: x509.Certificate
    chain: tuple[x509.Certificate, ...] = ()
    digest_algorithm: str = DEFAULT_DIGEST
    loaded_at: datetime.datetime = field(default_factory=_utcnow)

    @property
    def key_type(self) -> str:
        if isinstance(self.private_key, rsa.RSAPrivateKey):
            return f"RSA-{self.private_key.key_size}"
        return f"EC-{self.private_key.curve.name}"

    @property
    def certificates(self) -> list[x509.Certificate]:
        """Signing certificate first, then the chain."""
        return [self.certificate, *self.chain]

    def info(self) -> IdentityInfo:
        cert = self.certificate
        return {
            "loaded": True,
            "loaded_at": self.loaded_at.isoformat(),
            "subject": cert.subject.rfc4514_string(),
            "issuer": cert.issuer.rfc4514_string(),
            "serial_number": format(cert.serial_number, "x"),
            "not_valid_before": cert.not_valid_before_utc.isoformat(),
            "not_valid_after": cert.not_valid_after_utc.isoformat(),
            "key_type": self.key_type,
            "digest_algorithm": self.digest_algorithm,
            "algorithm": SIGNATURE_ALGORITHM_LABEL,
            "has_private_key": True,
        }


def _encode_passphrase(passphrase: str | bytes | None) -> bytes | None:
    if passphrase is None or isinstance(passphrase, bytes):
        return passphrase
    return passphrase.encode("utf-8")


def _public_bytes(key: object) -> bytes:
    return key.public_bytes(  # type: ignore[attr-defined]
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )


def _check_validity(cert: x509.Certificate) -> None:
    """Warn (but do not fail) when the certificate is outside its validity window."""
    now = _utcnow()
    if now < cert.not_valid_before_utc:
        _logger.warning("Certificate is not yet valid (notBefore: %s)", cert.not_valid_before_utc)
    elif now > cert.not_valid_after_utc:
        _logger.warning("Certificate has expired (notAfter: %s)", cert.not_valid_after_utc)


def _build_identity(
    key: object,
    cert: x509.Certificate | None,
    chain: list[x509.Certificate],
    digest: str,
) -> SigningIdentity:
    """Validate the loaded pieces and assemble a SigningIdentity."""
    if digest not in SUPPORTED_DIGESTS:
        raise IdentityLoadFailure(
            f"Unsupported digest algorithm {digest!r}; expected one of {', '.join(SUPPORTED_DIGESTS)}"
        )
    if key is None:
        raise IdentityLoadFailure("No private key found in the signing identity.")
    if cert is None:
        raise IdentityLoadFailure("No certificate found in the signing identity.")
    if not isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        raise IdentityLoadFailure(
            f"Unsupported key type {type(key).__name__}; only RSA and EC keys can sign."
        )
    if _public_bytes(key.public_key()) != _public_bytes(cert.public_key()):
        raise IdentityLoadFailure("Certificate public key does not match the private key.")

    _check_validity(cert)
    identity = SigningIdentity(
        private_key=key, certificate=cert, chain=tuple(chain), digest_algorithm=digest
    )
    _logger.info(
        "Loaded signing identity: %s (%s, %d chain cert(s))",
        cert.subject.rfc4514_string(),
        identity.key_type,
        len(chain),
    )
    return identity


def load_pkcs12(
    data: bytes, passphrase: str | bytes | None, digest: str = DEFAULT_DIGEST
) -> SigningIdentity:
    """Load an identity from a PKCS#12 (.p12/.pfx) container.

    Raises:
        IdentityLoadFailure: Wrong passphrase, corrupt container, missing
            key or certificate, or an unsupported key type.
    """
    try:
        key, cert, extra = pkcs12.load_key_and_certificates(data, _encode_passphrase(passphrase))
    except (ValueError, TypeError) as e:
        raise IdentityLoadFailure(f"Cannot open PKCS#12 container: {e}") from e
    return _build_identity(key, cert, list(extra), digest)


def load_pem(
    key_data: bytes,
    cert_data: bytes,
    passphrase: str | bytes | None = None,
    chain_data: bytes | None = None,
    digest: str = DEFAULT_DIGEST,
) -> SigningIdentity:
    """Load an identity from a PEM private key and PEM certificate(s).

    ``cert_data`` may hold more than one certificate; the first is the
    signing certificate and the rest are added to the chain, followed by
    any certificates in ``chain_data``.

    Raises:
        IdentityLoadFailure: Unreadable key or certificate, wrong
            passphrase, or mismatched key pair.
    """
    password = _encode_passphrase(passphrase)
    try:
        try:
            key = serialization.load_pem_private_key(key_data, password)
        except TypeError:
            # A configured passphrase does not apply to an unencrypted key.
            if password is None:
                raise
            key = serialization.load_pem_private_key(key_data, None)
    except (ValueError, TypeError) as e:
        raise IdentityLoadFailure(f"Cannot load PEM private key: {e}") from e
    try:
        certs = x509.load_pem_x509_certificates(cert_data)
        if chain_data:
            certs.extend(x509.load_pem_x509_certificates(chain_data))
    except ValueError as e:
        raise IdentityLoadFailure(f"Cannot load PEM certificate: {e}") from e
    return _build_identity(key, certs[0], certs[1:], digest)


def _read(path: str | Path, what: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise IdentityLoadFailure(f"Cannot read {what} {path}: {e}") from e


def load_identity_file(
    cert_path: str | Path,
    passphrase: str | bytes | None,
    *,
    key_path: str | Path | None = None,
    chain_path: str | Path | None = None,
    digest: str = DEFAULT_DIGEST,
) -> SigningIdentity:
    """Load an identity from disk.

    Without ``key_path``, ``cert_path`` is a PKCS#12 container. With it,
    ``cert_path`` is a PEM certificate and ``key_path`` a PEM private key.
    """
    _logger.debug("Loading signing identity from %s", cert_path)
    if key_path is None:
        return load_pkcs12(_read(cert_path, "certificate container"), passphrase, digest)
    chain = _read(chain_path, "certificate chain") if chain_path else None
    return load_pem(
        _read(key_path, "private key"),
        _read(cert_path, "certificate"),
        passphrase,
        chain,
        digest,
    )


def load_identity(settings: ServerSettings) -> SigningIdentity:
    """Load the identity named by the process settings."""
    return load_identity_file(
        settings.cert_path,
        settings.passphrase,
        key_path=settings.key_path,
        chain_path=settings.chain_path,
        digest=settings.digest,
    )
