"""
Core signing functions -- placeholder preparation and detached signing.

The pipeline is two pure, buffer-in/buffer-out steps used in sequence:

1. :func:`prepare` reserves a fixed-size signature slot and writes the
   final /ByteRange, so every byte except the slot's hex digits is final.
2. :func:`sign` digests the /ByteRange spans, builds a detached CMS
   container with the identity, and splices it into the slot.

:func:`sign_pdf` runs both and verifies the result before returning it.
No function here keeps module-level mutable state, so concurrent calls
sharing one :class:`SigningIdentity` are independent.
"""

from __future__ import annotations

__all__ = [
    "PreparedDocument",
    "SignatureOptions",
    "prepare",
    "prepare_bytes",
    "sign",
    "sign_pdf",
]

import datetime
import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from ..constants import DEFAULT_CONTACT, DEFAULT_LOCATION, DEFAULT_REASON, DEFAULT_SIGNER_NAME
from ..errors import PlaceholderOverflow, SigningFailure, VerificationError
from .cms import build_detached_cms, estimate_cms_size
from .pdf import (
    CONTENTS_RESERVED_SIZE,
    SignatureMetadata,
    compute_byterange_digest,
    insert_cms,
    prepare_pdf_with_sig_field,
    read_prepared_byterange,
    verify_embedded_signature,
)

if TYPE_CHECKING:
    from .identity import SigningIdentity

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignatureOptions:
    """Text metadata written into the signature dictionary.

    Empty or ``None`` values take the server defaults; they are never
    an error.

    Attributes:
        reason: /Reason entry.
        location: /Location entry.
        contact: /ContactInfo entry.
        name: /Name entry (signer display name).
    """

    reason: str | None = None
    location: str | None = None
    contact: str | None = None
    name: str | None = None

    def resolve(self, signing_time: datetime.datetime) -> SignatureMetadata:
        return SignatureMetadata(
            reason=self.reason or DEFAULT_REASON,
            location=self.location or DEFAULT_LOCATION,
            contact=self.contact or DEFAULT_CONTACT,
            name=self.name or DEFAULT_SIGNER_NAME,
            signing_time=signing_time,
        )


_OPTIONS_FIELDS = frozenset(("reason", "location", "contact", "name"))


def _resolve_options(
    options: SignatureOptions | None,
    kwargs: dict[str, str | None],
) -> SignatureOptions:
    """Merge explicit keyword arguments into an options instance.

    Keyword arguments override the corresponding fields in *options*.
    Unknown keys raise TypeError.
    """
    unknown = set(kwargs) - _OPTIONS_FIELDS
    if unknown:
        raise TypeError(f"Unexpected keyword arguments: {', '.join(sorted(unknown))}")

    if options is None:
        options = SignatureOptions()
    if not kwargs:
        return options
    return replace(options, **kwargs)


@dataclass(frozen=True)
class PreparedDocument:
    """A document with a reserved, empty signature slot.

    Attributes:
        pdf: Intermediate document bytes; final except for the slot.
        hex_start: Offset of the first reserved hex digit.
        hex_len: Number of reserved hex digits (twice the byte capacity).
        byte_range: The (0, len1, off2, len2) written into /ByteRange.
    """

    pdf: bytes
    hex_start: int
    hex_len: int
    byte_range: tuple[int, int, int, int]


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def prepare(
    pdf_bytes: bytes,
    options: SignatureOptions | None = None,
    *,
    contents_size: int = CONTENTS_RESERVED_SIZE,
    signing_time: datetime.datetime | None = None,
    **kwargs: str | None,
) -> PreparedDocument:
    """
    Reserve an invisible signature field in a PDF.

    Args:
        pdf_bytes: Raw PDF file content.
        options: Signature metadata. Individual keyword arguments
            (reason, location, contact, name) are also accepted and
            override the corresponding options fields.
        contents_size: Reserved signature capacity in bytes.
        signing_time: Value of /M (default: now, UTC).

    Raises:
        InvalidDocument: Not a PDF, unparseable, or already signed.
        PlaceholderOverflow: Capacity below the minimum, or document too
            large for the fixed-width /ByteRange.
    """
    opts = _resolve_options(options, kwargs)
    meta = opts.resolve(signing_time or _now())
    _logger.debug("Preparing PDF: %d bytes, capacity=%d", len(pdf_bytes), contents_size)
    pdf, hex_start, hex_len, byte_range = prepare_pdf_with_sig_field(
        pdf_bytes, meta, contents_size
    )
    _logger.debug("Prepared PDF: %d bytes, ByteRange=%s", len(pdf), list(byte_range))
    return PreparedDocument(pdf=pdf, hex_start=hex_start, hex_len=hex_len, byte_range=byte_range)


def prepare_bytes(
    pdf_bytes: bytes,
    options: SignatureOptions | None = None,
    *,
    contents_size: int = CONTENTS_RESERVED_SIZE,
    signing_time: datetime.datetime | None = None,
    **kwargs: str | None,
) -> bytes:
    """Like :func:`prepare`, returning only the intermediate document bytes."""
    return prepare(
        pdf_bytes, options, contents_size=contents_size, signing_time=signing_time, **kwargs
    ).pdf


def _sign_prepared(
    prepared_pdf: bytes,
    identity: SigningIdentity,
    signing_time: datetime.datetime | None,
) -> tuple[bytes, bytes]:
    """Sign a prepared document; return (signed_pdf, byterange_digest)."""
    byte_range, hex_start, hex_len = read_prepared_byterange(prepared_pdf)

    estimate = estimate_cms_size(identity)
    if estimate * 2 > hex_len:
        raise PlaceholderOverflow(
            f"Signature container needs about {estimate} bytes but only "
            f"{hex_len // 2} are reserved."
        )

    digest = compute_byterange_digest(prepared_pdf, byte_range, identity.digest_algorithm)
    _logger.debug("ByteRange %s digest: %s", identity.digest_algorithm, digest.hex())

    cms_der = build_detached_cms(digest, identity, signing_time)
    signed_pdf = insert_cms(prepared_pdf, hex_start, hex_len, cms_der)
    if len(signed_pdf) != len(prepared_pdf):
        raise SigningFailure(
            f"insert_cms changed PDF size: {len(prepared_pdf)} -> {len(signed_pdf)}"
        )
    return signed_pdf, digest


def sign(
    prepared_pdf: bytes,
    identity: SigningIdentity,
    *,
    signing_time: datetime.datetime | None = None,
) -> bytes:
    """
    Fill the reserved slot of a prepared document with a detached signature.

    Args:
        prepared_pdf: Output of :func:`prepare` (or :func:`prepare_bytes`).
        identity: Loaded signing identity.
        signing_time: Value of the CMS signing-time attribute (default: now).

    Returns:
        The signed document; same length as ``prepared_pdf``.

    Raises:
        InvalidDocument: ``prepared_pdf`` has no valid, empty signature slot.
        PlaceholderOverflow: The identity's container cannot fit the slot.
        SigningFailure: The key cannot sign, or the container does not fit.
    """
    signed_pdf, _digest = _sign_prepared(prepared_pdf, identity, signing_time)
    return signed_pdf


def sign_pdf(
    pdf_bytes: bytes,
    identity: SigningIdentity,
    options: SignatureOptions | None = None,
    *,
    contents_size: int = CONTENTS_RESERVED_SIZE,
    signing_time: datetime.datetime | None = None,
    **kwargs: str | None,
) -> bytes:
    """
    Sign a PDF with an embedded, invisible detached signature.

    Workflow:
    1. Prepare the PDF with an empty signature field
    2. Digest the ByteRange spans and build the CMS container
    3. Insert the CMS into the reserved /Contents
    4. Verify the result against the digest computed in step 2

    Returns:
        Complete signed PDF.

    Raises:
        VerificationError: The produced document fails its own
            verification; it is not returned.
    """
    moment = signing_time or _now()
    _logger.info("Signing PDF: %d bytes", len(pdf_bytes))

    prepared = prepare(
        pdf_bytes, options, contents_size=contents_size, signing_time=moment, **kwargs
    )
    signed_pdf, digest = _sign_prepared(prepared.pdf, identity, moment)

    result = verify_embedded_signature(signed_pdf, expected_digest=digest)
    if not result["valid"]:
        detail_str = "\n  ".join(result["details"])
        _logger.error("Post-sign verification failed: %s", detail_str)
        raise VerificationError(
            f"Post-sign verification FAILED:\n  {detail_str}\n"
            "The signed PDF may be corrupt -- not returned."
        )

    _logger.info("Signed PDF complete: %d bytes", len(signed_pdf))
    return signed_pdf
