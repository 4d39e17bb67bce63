"""PDF signature field preparation.

High-level API for preparing PDFs with an empty signature field,
digesting the /ByteRange, and splicing a CMS container into the
reserved /Contents.

Low-level PDF object building is in objects.py.
Structure analysis and update assembly is in incremental.py.
Post-sign verification is in verify.py.
"""

from __future__ import annotations

import hashlib
import io
import logging

from ...constants import PDF_MAGIC
from ...errors import InvalidDocument, PlaceholderOverflow, SigningFailure
from .. import require_pikepdf as _require_pikepdf
from .cms_extraction import find_last_byterange
from .incremental import DocumentLayout, analyze_document, assemble_incremental_update, patch_byterange
from .objects import (
    CONTENTS_RESERVED_SIZE,
    MIN_CONTENTS_SIZE,
    ObjRef,
    SignatureMetadata,
    allocate_sig_objects,
    build_acroform_override,
    build_catalog_override,
    build_page_override,
    build_sig_dict,
    build_sig_widget,
)

_logger = logging.getLogger(__name__)

# ── Helpers ────────────────────────────────────────────────────────────


def _to_bytes(raw: str | bytes) -> bytes:
    """Convert a raw PDF object (str or bytes) to bytes."""
    return raw if isinstance(raw, bytes) else raw.encode("latin-1")


def validate_pdf(pdf_bytes: bytes) -> None:
    """Raise InvalidDocument if bytes don't start with the PDF header."""
    if not pdf_bytes or not pdf_bytes.startswith(PDF_MAGIC):
        raise InvalidDocument("Input does not appear to be a PDF file.")


def normalize_pdf(pdf_bytes: bytes) -> bytes:
    """Rewrite a PDF as a flat file with a classic cross-reference table.

    Object streams are disabled so every object sits at an offset listed
    in the xref table; the /ID is derived from content so the same input
    always normalises to the same bytes.

    Raises:
        InvalidDocument: If pikepdf cannot parse the document or it is
            encrypted.
    """
    pikepdf = _require_pikepdf()
    try:
        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            if pdf.is_encrypted:
                raise InvalidDocument("Encrypted PDFs cannot be signed.")
            buf = io.BytesIO()
            pdf.save(
                buf,
                object_stream_mode=pikepdf.ObjectStreamMode.disable,
                deterministic_id=True,
                fix_metadata_version=False,
            )
    except pikepdf.PdfError as e:
        raise InvalidDocument(f"Cannot parse PDF: {e}") from e
    return buf.getvalue()


def prepare_pdf_with_sig_field(
    pdf_bytes: bytes,
    meta: SignatureMetadata,
    contents_size: int = CONTENTS_RESERVED_SIZE,
) -> tuple[bytes, int, int, tuple[int, int, int, int]]:
    """
    Prepare a PDF with an empty, invisible signature field.

    The document is first normalised to a flat layout; the signature
    dictionary, its widget, and overrides of the first page and the form
    root are then appended as an update section whose offsets are tracked
    byte by byte. Finally the /ByteRange placeholder is patched in place.

    Args:
        pdf_bytes: Raw PDF content.
        meta: Resolved signature metadata (reason, location, contact,
            name, signing time).
        contents_size: Reserved /Contents capacity in bytes; the slot
            holds twice as many hex digits.

    Returns:
        (pdf_bytes, contents_hex_offset, contents_hex_length, byte_range)

    Raises:
        InvalidDocument: Not a PDF, unparseable, encrypted, or already signed.
        PlaceholderOverflow: ``contents_size`` below the minimum, or the
            document too large for the /ByteRange slots.
    """
    validate_pdf(pdf_bytes)
    if contents_size < MIN_CONTENTS_SIZE:
        raise PlaceholderOverflow(
            f"Reserved signature space of {contents_size} bytes is below the "
            f"minimum of {MIN_CONTENTS_SIZE} bytes."
        )

    normalized = normalize_pdf(pdf_bytes)
    _logger.debug("Normalised PDF: %d -> %d bytes", len(pdf_bytes), len(normalized))

    layout = analyze_document(normalized)
    raw_objects, new_size = _build_objects(normalized, layout, meta, contents_size)

    full_pdf = assemble_incremental_update(normalized, raw_objects, layout, new_size)
    update_start = len(normalized)
    hex_len = contents_size * 2
    patched, hex_start, byte_range = patch_byterange(full_pdf, update_start, hex_len)
    if len(patched) != len(full_pdf):
        raise PlaceholderOverflow("ByteRange patch changed the document length.")
    return patched, hex_start, hex_len, byte_range


def _build_objects(
    pdf_bytes: bytes,
    layout: DocumentLayout,
    meta: SignatureMetadata,
    contents_size: int,
) -> tuple[list[tuple[bytes, ObjRef]], int]:
    """Build every raw object of the update section, in append order."""
    obj_nums = allocate_sig_objects(layout.size)
    sig_ref = ObjRef(obj_nums.sig)
    annot_ref = ObjRef(obj_nums.annot)
    field_name = layout.next_field_name()

    sig_dict_raw = build_sig_dict(obj_nums.sig, meta, contents_size)
    widget_raw = build_sig_widget(obj_nums, layout.page, field_name)
    page_override = build_page_override(
        pdf_bytes, layout.page, [*layout.page_annots, str(annot_ref)]
    )

    fields = [*layout.fields, str(annot_ref)]
    if layout.acroform is not None:
        form_ref = layout.acroform
        form_override = build_acroform_override(form_ref, layout.acroform_entries, fields)
    else:
        form_ref = layout.root
        form_override = build_catalog_override(
            pdf_bytes, layout.root, layout.acroform_entries, fields
        )

    raw_objects = [
        (_to_bytes(sig_dict_raw), sig_ref),
        (_to_bytes(widget_raw), annot_ref),
        (_to_bytes(page_override), layout.page),
        (_to_bytes(form_override), form_ref),
    ]
    return raw_objects, obj_nums.new_size


def compute_byterange_digest(
    pdf_bytes: bytes, byte_range: tuple[int, int, int, int], algorithm: str = "sha256"
) -> bytes:
    """Digest the /ByteRange spans (everything except the /Contents string)."""
    off1, len1, off2, len2 = byte_range
    h = hashlib.new(algorithm)
    h.update(pdf_bytes[off1 : off1 + len1])
    h.update(pdf_bytes[off2 : off2 + len2])
    return h.digest()


def read_prepared_byterange(pdf_bytes: bytes) -> tuple[tuple[int, int, int, int], int, int]:
    """Recover and validate the /ByteRange of a prepared, unsigned document.

    Returns:
        (byte_range, hex_start, hex_len)

    Raises:
        InvalidDocument: If the /ByteRange is missing, inconsistent with
            the document length, does not frame a ``<...>`` hex string,
            or the reserved slot is not empty.
    """
    validate_pdf(pdf_bytes)
    byte_range = find_last_byterange(pdf_bytes)
    off1, len1, off2, len2 = byte_range
    if off1 != 0 or len1 <= 0 or off2 <= len1 + 1:
        raise InvalidDocument(f"Malformed /ByteRange {list(byte_range)}")
    if off2 + len2 != len(pdf_bytes):
        raise InvalidDocument(
            f"/ByteRange covers {off2 + len2} bytes but document has {len(pdf_bytes)}"
        )
    if pdf_bytes[len1 : len1 + 1] != b"<" or pdf_bytes[off2 - 1 : off2] != b">":
        raise InvalidDocument("/ByteRange gap does not frame the /Contents hex string")

    hex_start = len1 + 1
    hex_len = off2 - 1 - hex_start
    if pdf_bytes[hex_start : hex_start + hex_len].strip(b"0"):
        raise InvalidDocument("Signature slot is not empty; document is already signed.")
    return byte_range, hex_start, hex_len


def insert_cms(pdf_bytes: bytes, hex_start: int, hex_len: int, cms_der: bytes) -> bytes:
    """Write the CMS DER bytes as hex into the reserved /Contents digits.

    Raises:
        SigningFailure: If the container does not fit (never truncated).
    """
    cms_hex = cms_der.hex()
    if len(cms_hex) > hex_len:
        raise SigningFailure(f"CMS too large: {len(cms_hex)} hex chars > {hex_len} reserved")
    cms_hex_padded = cms_hex + "0" * (hex_len - len(cms_hex))

    result = bytearray(pdf_bytes)
    result[hex_start : hex_start + hex_len] = cms_hex_padded.encode("ascii")
    return bytes(result)
