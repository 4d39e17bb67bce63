"""
Verification of embedded PDF signatures.

Extracts ByteRange data and CMS blobs, verifies hash consistency,
checks the signature over the signed attributes with the embedded
certificate, and checks structural validity. Supports multi-signature PDFs.
"""

from __future__ import annotations

import hashlib
import io
import logging
from typing import TypedDict

from asn1crypto import cms as asn1_cms
from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from ...errors import InvalidDocument, PdfSignerError
from .. import require_pikepdf as _require_pikepdf
from .asn1 import ASN1_SEQUENCE_TAG, MIN_CMS_SIZE
from .cms_extraction import extract_signature_data_from_range, find_all_byteranges
from .cms_info import extract_digest_info, extract_signer_info, load_signer_info

_logger = logging.getLogger(__name__)

_HASHES: dict[str, type[hashes.HashAlgorithm]] = {
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}

# Universal SET tag; signed attributes are signed as an explicit SET OF,
# not with the [0] IMPLICIT tag they carry inside SignerInfo.
_ASN1_SET_TAG = 0x31


class VerificationResult(TypedDict):
    """Result of signature verification (single signature)."""

    valid: bool  # Overall result
    structure_ok: bool  # ByteRange and CMS structure valid
    hash_ok: bool  # Hash matches expected value
    signature_ok: bool  # Signature over signed attributes verifies
    details: list[str]  # Human-readable messages
    signer: dict[str, str | None] | None  # Certificate info (name, email, org, dn)


def _failed(message: str) -> VerificationResult:
    return {
        "valid": False,
        "structure_ok": False,
        "hash_ok": False,
        "signature_ok": False,
        "details": [message],
        "signer": None,
    }


def _find_signer_cert(
    signed_data: asn1_cms.SignedData, signer_info: asn1_cms.SignerInfo
) -> x509.Certificate | None:
    """Return the certificate named by the SignerInfo's issuer and serial."""
    certs = signed_data["certificates"]
    if not certs:
        return None
    sid = signer_info["sid"]
    wanted_serial = None
    if sid.name == "issuer_and_serial_number":
        wanted_serial = sid.chosen["serial_number"].native
    for choice in certs:
        cert = choice.chosen
        if wanted_serial is None or cert.serial_number == wanted_serial:
            return x509.load_der_x509_certificate(cert.dump())
    return None


def check_cms_signature(cms_der: bytes) -> tuple[bool, str]:
    """Verify the SignerInfo signature over the DER of its signed attributes.

    Returns:
        (ok, message) -- never raises on a bad signature.
    """
    signer_info = load_signer_info(cms_der)
    if signer_info is None:
        return False, "CMS has no SignerInfo"
    try:
        signed_data = asn1_cms.ContentInfo.load(cms_der)["content"]
        cert = _find_signer_cert(signed_data, signer_info)
        if cert is None:
            return False, "Signer certificate not embedded in CMS"

        signed_attrs = signer_info["signed_attrs"]
        if not signed_attrs:
            return False, "CMS has no signed attributes"
        attrs_der = bytes([_ASN1_SET_TAG]) + signed_attrs.dump()[1:]

        digest_name = signer_info["digest_algorithm"]["algorithm"].native
        hash_cls = _HASHES.get(digest_name)
        if hash_cls is None:
            return False, f"Unsupported digest algorithm: {digest_name}"

        signature = signer_info["signature"].native
        public_key = cert.public_key()
        if isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(signature, attrs_der, padding.PKCS1v15(), hash_cls())
        elif isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(signature, attrs_der, ec.ECDSA(hash_cls()))
        else:
            return False, f"Unsupported public key type: {type(public_key).__name__}"
    except InvalidSignature:
        return False, "Signature does NOT verify against the signer certificate"
    except (ValueError, TypeError, KeyError, UnsupportedAlgorithm) as e:
        _logger.debug("CMS signature check failed", exc_info=True)
        return False, f"Cannot check signature: {e}"
    return True, "Signature OK -- verifies against the embedded signer certificate"


def _check_cms(
    data: bytes, cms_der: bytes, expected_digest: bytes | None, details: list[str]
) -> tuple[bool, bool, bool]:
    """Run the structure, hash and signature checks for one CMS blob."""
    structure_ok = True
    if len(cms_der) < MIN_CMS_SIZE:
        structure_ok = False
        details.append(f"CMS too small ({len(cms_der)} bytes) -- likely corrupt")
    elif cms_der[0] != ASN1_SEQUENCE_TAG:
        structure_ok = False
        details.append("CMS does not start with ASN.1 SEQUENCE tag (0x30)")
    else:
        details.append(f"CMS: {len(cms_der)} bytes, valid ASN.1 structure")

    hash_ok = False
    digest_info = extract_digest_info(cms_der)
    if digest_info is None:
        details.append("Could not extract digest info -- hash verification unavailable")
    else:
        algo_name, cms_digest = digest_info
        actual = hashlib.new(algo_name, data).digest()
        algo_upper = algo_name.upper()
        if actual != cms_digest:
            details.append(
                f"Hash MISMATCH!\n"
                f"  ByteRange {algo_upper}:  {actual.hex()}\n"
                f"  CMS messageDigest: {cms_digest.hex()}"
            )
        elif expected_digest is not None and actual != expected_digest:
            details.append(
                f"Hash MISMATCH!\n"
                f"  ByteRange {algo_upper}: {actual.hex()}\n"
                f"  Expected:         {expected_digest.hex()}"
            )
        else:
            hash_ok = True
            details.append(f"Hash OK -- {algo_upper} matches CMS messageDigest: {actual.hex()}")

    signature_ok, message = check_cms_signature(cms_der)
    details.append(message)
    return structure_ok, hash_ok, signature_ok


def _verify_byte_range(
    pdf_bytes: bytes,
    byte_range: tuple[int, int, int, int],
    expected_digest: bytes | None = None,
) -> VerificationResult:
    """Core verification logic for a single /ByteRange."""
    try:
        signed_data, cms_der = extract_signature_data_from_range(pdf_bytes, byte_range)
    except PdfSignerError as e:
        return _failed(f"Structure error: {e}")

    details = [f"ByteRange OK -- signed data: {len(signed_data)} bytes"]
    _off1, _len1, off2, len2 = byte_range
    covers_all = off2 + len2 == len(pdf_bytes)
    if not covers_all:
        details.append(
            f"ByteRange ends at {off2 + len2}, document has {len(pdf_bytes)} bytes "
            "-- later updates are not covered"
        )

    signer = extract_signer_info(cms_der)
    if signer and signer.get("name"):
        details.append(f"Signer: {signer['name']}")

    structure_ok, hash_ok, signature_ok = _check_cms(
        signed_data, cms_der, expected_digest, details
    )
    return {
        "valid": structure_ok and hash_ok and signature_ok,
        "structure_ok": structure_ok,
        "hash_ok": hash_ok,
        "signature_ok": signature_ok,
        "details": details,
        "signer": signer,
    }


def _pikepdf_detail(pdf_bytes: bytes) -> str:
    """Informational structural check; never overrides signature validity."""
    pikepdf = _require_pikepdf()
    try:
        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            return f"pikepdf: valid PDF, {len(pdf.pages)} page(s)"
    except (ValueError, RuntimeError, OSError, pikepdf.PdfError) as e:
        _logger.warning("pikepdf structural check failed (non-fatal): %s", e)
        return f"pikepdf: structural warning -- {e}"


def verify_embedded_signature(
    pdf_bytes: bytes, expected_digest: bytes | None = None
) -> VerificationResult:
    """
    Verify the last embedded PDF signature.

    Checks:
    1. Structure -- ByteRange is valid, CMS is present and parseable
    2. Hash -- digest of the ByteRange data equals the CMS messageDigest
       (and ``expected_digest`` when given)
    3. Signature -- the SignerInfo signature verifies with the embedded
       certificate's public key

    Never raises on verification failure -- returns valid=False with details.
    """
    byte_ranges = find_all_byteranges(pdf_bytes)
    if not byte_ranges:
        return _failed("Structure error: No /ByteRange found in PDF -- not a signed PDF?")

    result = _verify_byte_range(pdf_bytes, byte_ranges[-1], expected_digest)
    result["details"].append(_pikepdf_detail(pdf_bytes))
    return result


def verify_all_embedded_signatures(pdf_bytes: bytes) -> list[VerificationResult]:
    """
    Verify ALL embedded signatures in a PDF, in file order.

    Raises:
        InvalidDocument: If the PDF has no embedded signatures.
    """
    byte_ranges = find_all_byteranges(pdf_bytes)
    if not byte_ranges:
        raise InvalidDocument("No /ByteRange found in PDF -- not a signed PDF?")

    pikepdf_detail = _pikepdf_detail(pdf_bytes)
    results: list[VerificationResult] = []
    for byte_range in byte_ranges:
        result = _verify_byte_range(pdf_bytes, byte_range)
        result["details"].append(pikepdf_detail)
        results.append(result)
    return results


# ── Detached signature verification ──────────────────────────────


def verify_detached_signature(data_bytes: bytes, cms_der: bytes) -> VerificationResult:
    """Verify a detached CMS/PKCS#7 signature against the original data."""
    details: list[str] = []
    signer = extract_signer_info(cms_der)
    if signer and signer.get("name"):
        details.append(f"Signer: {signer['name']}")

    structure_ok, hash_ok, signature_ok = _check_cms(data_bytes, cms_der, None, details)
    return {
        "valid": structure_ok and hash_ok and signature_ok,
        "structure_ok": structure_ok,
        "hash_ok": hash_ok,
        "signature_ok": signature_ok,
        "details": details,
        "signer": signer,
    }
