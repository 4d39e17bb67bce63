"""ByteRange and CMS extraction from signed PDFs."""

from __future__ import annotations

import re

from ...errors import InvalidDocument
from .asn1 import extract_der_from_padded_hex

# Regex pattern to find ByteRange arrays in PDF (fixed-width slots are
# right-aligned, so leading spaces inside the brackets are expected)
BYTERANGE_PATTERN = rb"/ByteRange\s*\[\s*(\d+)\s+(\d+)\s+(\d+)\s+(\d+)\s*\]"


def _match_to_range(br_match: re.Match[bytes]) -> tuple[int, int, int, int]:
    off1, len1, off2, len2 = (int(br_match.group(i)) for i in range(1, 5))
    return off1, len1, off2, len2


def find_last_byterange(pdf_bytes: bytes) -> tuple[int, int, int, int]:
    """Return the last /ByteRange in the file as a 4-tuple.

    Raises:
        InvalidDocument: If the document has no /ByteRange.
    """
    br_matches = list(re.finditer(BYTERANGE_PATTERN, pdf_bytes))
    if not br_matches:
        raise InvalidDocument("No /ByteRange found in PDF -- not a prepared or signed PDF?")
    return _match_to_range(br_matches[-1])


def extract_cms_from_byterange(
    pdf_bytes: bytes,
    len1: int,
    off2: int,
) -> bytes:
    """
    Extract CMS DER blob from a PDF given ByteRange parameters.

    This is the canonical low-level extraction function used by both
    signature verification and CMS inspection.

    Args:
        pdf_bytes: Complete PDF file bytes.
        len1: Length of first chunk (from ByteRange[1]).
        off2: Offset of second chunk (from ByteRange[2]).

    Returns:
        DER-encoded CMS/PKCS#7 blob.

    Raises:
        InvalidDocument: If the CMS blob cannot be located or parsed.
    """
    if len1 <= 0:
        raise InvalidDocument(f"Invalid ByteRange: len1 must be positive, got {len1}")
    if off2 <= len1 + 1:
        raise InvalidDocument(f"Invalid ByteRange: off2 ({off2}) must exceed len1 ({len1}) + 1")
    if off2 > len(pdf_bytes):
        raise InvalidDocument(
            f"Invalid ByteRange: off2 ({off2}) exceeds PDF size ({len(pdf_bytes)})"
        )

    # ByteRange structure: [0 len1 off2 len2]
    # The gap is the whole hex string token: "<" at len1, ">" at off2 - 1
    if pdf_bytes[len1 : len1 + 1] != b"<":
        raise InvalidDocument(
            f"Expected '<' at offset {len1}, got {pdf_bytes[len1 : len1 + 1]!r}"
        )
    if pdf_bytes[off2 - 1 : off2] != b">":
        raise InvalidDocument(
            f"Expected '>' at offset {off2 - 1}, got {pdf_bytes[off2 - 1 : off2]!r}"
        )

    hex_str = pdf_bytes[len1 + 1 : off2 - 1].decode("ascii", errors="replace").strip()

    # Exact CMS length comes from the ASN.1 header; rstrip("0") would
    # corrupt blobs ending in 0x00 bytes.
    try:
        return extract_der_from_padded_hex(hex_str)
    except ValueError as e:
        raise InvalidDocument(f"Invalid hex in CMS blob: {e}") from e


def extract_signature_data_from_range(
    pdf_bytes: bytes, byte_range: tuple[int, int, int, int]
) -> tuple[bytes, bytes]:
    """Extract ByteRange data and CMS blob for one signature.

    Returns:
        (signed_data, cms_der) -- the concatenated ByteRange chunks and the CMS blob.

    Raises:
        InvalidDocument: If the ByteRange is invalid or CMS extraction fails.
    """
    off1, len1, off2, len2 = byte_range

    if off1 != 0:
        raise InvalidDocument(f"ByteRange offset1 should be 0, got {off1}")
    if off2 <= len1:
        raise InvalidDocument(f"ByteRange offset2 ({off2}) <= len1 ({len1})")
    if off2 + len2 > len(pdf_bytes):
        raise InvalidDocument(f"ByteRange extends beyond EOF: {off2}+{len2} > {len(pdf_bytes)}")

    signed_data = pdf_bytes[off1 : off1 + len1] + pdf_bytes[off2 : off2 + len2]
    cms_der = extract_cms_from_byterange(pdf_bytes, len1, off2)
    return signed_data, cms_der


def find_all_byteranges(pdf_bytes: bytes) -> list[tuple[int, int, int, int]]:
    """Return every /ByteRange in file order."""
    return [_match_to_range(m) for m in re.finditer(BYTERANGE_PATTERN, pdf_bytes)]


def extract_signature_data(pdf_bytes: bytes) -> tuple[bytes, bytes]:
    """
    Extract ByteRange data and CMS blob from the last signature in a signed PDF.

    Returns:
        (signed_data, cms_der) -- the data that was signed and the CMS signature.

    Raises:
        InvalidDocument: If the PDF has no valid embedded signature.
    """
    return extract_signature_data_from_range(pdf_bytes, find_last_byterange(pdf_bytes))
