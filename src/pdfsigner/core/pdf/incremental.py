"""PDF structure analysis and update-section assembly.

Functions for reading the structure of a normalised PDF (trailer, root,
first page, AcroForm) and for appending new objects after it with an
offset-tracked xref table, then patching the fixed-width /ByteRange.

Object-level construction (types, allocation, overrides) is in objects.py.
High-level preparation API is in builder.py.
"""

from __future__ import annotations

import io
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ...errors import InvalidDocument, PdfSignerError, PlaceholderOverflow
from .. import require_pikepdf as _require_pikepdf
from .objects import (
    BYTERANGE_DIGITS,
    BYTERANGE_MAX_VALUE,
    BYTERANGE_PLACEHOLDER,
    CONTENTS_KEY,
    ObjRef,
    array_items,
    dict_entries,
)

if TYPE_CHECKING:
    import pikepdf

_DEFAULT_FIELD_PREFIX = "Signature"


@dataclass(frozen=True)
class DocumentLayout:
    """Everything the preparer needs to know about the document it extends."""

    root: ObjRef
    prev_xref: int
    size: int
    trailer_extra: list[str]
    page: ObjRef
    page_annots: list[str]
    acroform: ObjRef | None  # None when absent or a direct dictionary
    acroform_entries: list[str]  # existing entries minus /Fields and /SigFlags
    fields: list[str]
    field_names: set[str] = field(default_factory=set)

    def next_field_name(self) -> str:
        """Return the first ``SignatureN`` name not already used by a field."""
        n = 1
        while f"{_DEFAULT_FIELD_PREFIX}{n}" in self.field_names:
            n += 1
        return f"{_DEFAULT_FIELD_PREFIX}{n}"


# ── PDF structure analysis ───────────────────────────────────────────


def find_root_obj_num(pdf_bytes: bytes) -> ObjRef:
    """Find the catalog /Root reference from the trailer.

    Uses the LAST match -- updates may redefine /Root in later
    trailers, and the last one is always authoritative.
    """
    matches = list(re.finditer(rb"/Root\s+(\d+)\s+(\d+)\s+R", pdf_bytes))
    if not matches:
        raise InvalidDocument("Cannot find /Root reference in PDF trailer.")
    m = matches[-1]
    return ObjRef(int(m.group(1)), int(m.group(2)))


def find_prev_startxref(pdf_bytes: bytes) -> int:
    """Return the offset named by the last ``startxref`` in the file."""
    matches = list(re.finditer(rb"startxref\s+(\d+)\s+%%EOF", pdf_bytes))
    if not matches:
        raise InvalidDocument("Cannot find startxref in PDF.")
    return int(matches[-1].group(1))


def _extract_trailer_entries(trailer: pikepdf.Dictionary) -> list[str]:
    """Carry /Info and /ID forward into the new trailer.

    Per PDF spec S7.5.6 an update trailer repeats the entries of the
    previous one, except /Prev and /Size which are recomputed.
    """
    pikepdf = _require_pikepdf()
    extra: list[str] = []
    if "/Info" in trailer:
        info_obj = trailer["/Info"]
        if isinstance(info_obj, pikepdf.Object) and info_obj.is_indirect:
            extra.append(f"/Info {info_obj.objgen[0]} {info_obj.objgen[1]} R")
    if "/ID" in trailer:
        id_array = trailer["/ID"]
        extra.append(f"/ID {id_array.unparse(resolved=True).decode('latin-1')}")
    return extra


def _collect_field_names(fields: pikepdf.Array, names: set[str], depth: int = 0) -> bool:
    """Record partial field names; return True if a signed /Sig field exists."""
    signed = False
    if depth > 32:
        return signed
    for fld in fields:
        if "/T" in fld:
            names.add(str(fld["/T"]))
        if fld.get("/FT") == "/Sig" and "/V" in fld:
            signed = True
        if "/Kids" in fld:
            signed = _collect_field_names(fld["/Kids"], names, depth + 1) or signed
    return signed


def analyze_document(pdf_bytes: bytes) -> DocumentLayout:
    """Read the structure of a normalised PDF without modifying it.

    Raises:
        InvalidDocument: If the trailer, page tree, or xref cannot be read,
            or if the document already carries a signed signature field.
    """
    root = find_root_obj_num(pdf_bytes)
    prev_xref = find_prev_startxref(pdf_bytes)

    pikepdf = _require_pikepdf()
    try:
        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            size = int(pdf.trailer["/Size"])
            trailer_extra = _extract_trailer_entries(pdf.trailer)

            if len(pdf.pages) == 0:
                raise InvalidDocument("PDF has no pages.")
            page_obj = pdf.pages[0].obj
            page = ObjRef(*page_obj.objgen)
            page_annots = array_items(page_obj.get("/Annots"))

            acroform: ObjRef | None = None
            existing: list[str] = []
            fields: list[str] = []
            names: set[str] = set()
            catalog = pdf.Root
            if "/AcroForm" in catalog:
                form = catalog["/AcroForm"]
                if form.is_indirect:
                    acroform = ObjRef(*form.objgen)
                existing = dict_entries(form, skip_keys=("/Fields", "/SigFlags"))
                form_fields = form.get("/Fields")
                fields = array_items(form_fields)
                if form_fields is not None and _collect_field_names(form_fields, names):
                    raise InvalidDocument(
                        "PDF already carries a signature; re-signing is not supported."
                    )
    except (pikepdf.PdfError, KeyError, ValueError, TypeError) as e:
        raise InvalidDocument(f"Cannot read PDF structure: {e}") from e

    return DocumentLayout(
        root=root,
        prev_xref=prev_xref,
        size=size,
        trailer_extra=trailer_extra,
        page=page,
        page_annots=page_annots,
        acroform=acroform,
        acroform_entries=existing,
        fields=fields,
        field_names=names,
    )


# ── Update assembly ──────────────────────────────────────────────────


def assemble_incremental_update(
    pdf_bytes: bytes,
    raw_objects: list[tuple[bytes, ObjRef]],
    layout: DocumentLayout,
    new_size: int,
) -> bytes:
    """Append raw objects, an xref section and a trailer after the document.

    Offsets are tracked while the objects are laid out, so every xref
    entry points at the first byte of its ``N G obj`` line.
    """
    base = pdf_bytes
    if not base.endswith(b"\n"):
        base = base + b"\n"

    running_offset = len(base)
    xref_entries: dict[int, tuple[int, int]] = {}
    for raw_bytes, ref in raw_objects:
        xref_entries[ref.num] = (running_offset, ref.gen)
        running_offset += len(raw_bytes)

    all_objects = b"".join(raw for raw, _ref in raw_objects)
    xref_data = build_xref_and_trailer(
        xref_entries=xref_entries,
        new_size=new_size,
        prev_xref=layout.prev_xref,
        root=layout.root,
        trailer_extra=layout.trailer_extra,
        xref_offset=running_offset,
    )
    return base + all_objects + xref_data


def build_xref_and_trailer(
    xref_entries: dict[int, tuple[int, int]],
    new_size: int,
    prev_xref: int,
    root: ObjRef,
    trailer_extra: list[str],
    xref_offset: int,
) -> bytes:
    """Build an xref section and trailer for appended objects.

    Args:
        xref_entries: Object number -> (byte offset, generation).
        new_size: Total object count (/Size value).
        prev_xref: Previous xref offset (/Prev value).
        root: Catalog reference for /Root.
        trailer_extra: Extra trailer entries to carry forward (/Info, /ID).
        xref_offset: Byte offset where this xref section starts.

    Returns:
        Raw bytes of the xref table, trailer, and %%EOF.
    """
    if not xref_entries:
        raise PdfSignerError("Cannot build xref table: no objects to reference.")

    # Group consecutive object numbers into subsections
    sorted_nums = sorted(xref_entries)
    groups: list[list[int]] = [[sorted_nums[0]]]
    for n in sorted_nums[1:]:
        if n == groups[-1][-1] + 1:
            groups[-1].append(n)
        else:
            groups.append([n])

    lines = ["xref"]
    for group in groups:
        lines.append(f"{group[0]} {len(group)}")
        # Each entry is exactly 20 bytes: "oooooooooo ggggg n\r\n".
        # The \r is here; the \n comes from the join below.
        for num in group:
            offset, gen = xref_entries[num]
            lines.append(f"{offset:010d} {gen:05d} n\r")

    lines.append("trailer")
    lines.append("<<")
    lines.append(f"  /Size {new_size}")
    lines.append(f"  /Prev {prev_xref}")
    lines.append(f"  /Root {root}")
    lines.extend(f"  {extra}" for extra in trailer_extra)
    lines.append(">>")
    lines.append("startxref")
    lines.append(str(xref_offset))
    lines.append("%%EOF")
    lines.append("")

    return "\n".join(lines).encode("latin-1")


def patch_byterange(
    full_pdf: bytes, update_start: int, contents_hex_len: int
) -> tuple[bytes, int, tuple[int, int, int, int]]:
    """Write the real /ByteRange over its fixed-width placeholder.

    The excluded gap is the whole /Contents string token, angle
    brackets included. The document length does not change.

    Args:
        full_pdf: Assembled document with both placeholders.
        update_start: Offset where the appended section begins; both
            placeholders are searched for only after it.
        contents_hex_len: Number of reserved hex digits.

    Returns:
        (pdf, hex_start, byte_range) where hex_start is the offset of the
        first reserved hex digit.

    Raises:
        PlaceholderOverflow: If a value needs more digits than reserved.
    """
    contents_marker = CONTENTS_KEY + b"0" * contents_hex_len + b">"
    contents_pos = full_pdf.find(contents_marker, update_start)
    if contents_pos == -1:
        raise PdfSignerError("Cannot find Contents placeholder in prepared PDF.")

    gap_start = contents_pos + len(CONTENTS_KEY) - 1  # the "<"
    gap_end = gap_start + contents_hex_len + 2  # one past the ">"
    byte_range = (0, gap_start, gap_end, len(full_pdf) - gap_end)

    if max(byte_range) > BYTERANGE_MAX_VALUE:
        raise PlaceholderOverflow(
            f"Document too large for the /ByteRange placeholder: {len(full_pdf)} bytes "
            f"needs more than {BYTERANGE_DIGITS} digits."
        )

    br_pos = full_pdf.find(BYTERANGE_PLACEHOLDER, update_start)
    if br_pos == -1:
        raise PdfSignerError("Cannot find ByteRange placeholder in prepared PDF.")

    slots = " ".join(f"{value:>{BYTERANGE_DIGITS}d}" for value in byte_range)
    value = f"/ByteRange [{slots}]".encode("latin-1")
    patched = full_pdf[:br_pos] + value + full_pdf[br_pos + len(BYTERANGE_PLACEHOLDER) :]

    return patched, gap_start + 1, byte_range
