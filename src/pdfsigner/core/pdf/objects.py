"""Low-level PDF object construction.

Types, constants, and helpers for the raw PDF objects appended by the
placeholder preparer: the signature dictionary, its widget annotation,
and overrides of existing objects (page, catalog, AcroForm).

Document structure analysis and update assembly is in incremental.py.
High-level preparation API is in builder.py.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from ...constants import __version__
from .. import require_pikepdf as _require_pikepdf

if TYPE_CHECKING:
    import pikepdf

_logger = logging.getLogger(__name__)


# ── Constants ────────────────────────────────────────────────────────

# Reserved /Contents capacity in bytes. A 4096-bit RSA signature with a
# two-certificate chain encodes to roughly 3 KB of DER.
CONTENTS_RESERVED_SIZE = 8192

# Anything smaller cannot hold even a bare certificate plus signature.
MIN_CONTENTS_SIZE = 1024

# Each /ByteRange slot is a right-aligned field of this many digits.
BYTERANGE_DIGITS = 10
BYTERANGE_MAX_VALUE = 10**BYTERANGE_DIGITS - 1

BYTERANGE_PLACEHOLDER = (
    b"/ByteRange [" + b" ".join([b" " * (BYTERANGE_DIGITS - 1) + b"0"] * 4) + b"]"
)
BYTERANGE_PLACEHOLDER_STR = BYTERANGE_PLACEHOLDER.decode("ascii")

CONTENTS_KEY = b"/Contents <"

# PDF annotation flags for signature widget (/F entry).
# Print flag is 4, Locked flag is 128; combined value is 132.
# See PDF Reference 1.7, Table 165 -- Annotation flags.
_ANNOT_FLAG_PRINT = 4
_ANNOT_FLAG_LOCKED = 128
ANNOT_FLAGS_SIG_WIDGET = _ANNOT_FLAG_PRINT | _ANNOT_FLAG_LOCKED  # 132

# AcroForm /SigFlags: SignaturesExist (1) | AppendOnly (2)
SIG_FLAGS = 3


@dataclass(frozen=True)
class ObjRef:
    """An indirect object reference (object number, generation)."""

    num: int
    gen: int = 0

    def __str__(self) -> str:
        return f"{self.num} {self.gen} R"


@dataclass(frozen=True)
class SigObjectNums:
    """Object numbers allocated for the new signature objects."""

    sig: int
    annot: int
    new_size: int


@dataclass(frozen=True)
class SignatureMetadata:
    """Resolved text entries written into the signature dictionary."""

    reason: str
    location: str
    contact: str
    name: str
    signing_time: datetime


# ── PDF string/object helpers ────────────────────────────────────────


def pdf_string(text: str) -> str:
    """Escape text for a PDF literal string.

    Handles backslash, parentheses, control characters, and non-Latin1
    characters (replaced with '?' since PDFDocEncoding has limited
    Unicode support).

    Logs a warning if any characters are replaced, as this indicates
    data loss in the PDF output.
    """
    result: list[str] = []
    replaced_count = 0
    for char in text:
        code = ord(char)
        if char == "\\":
            result.append("\\\\")
        elif char == "(":
            result.append("\\(")
        elif char == ")":
            result.append("\\)")
        elif char == "\n":
            result.append("\\n")
        elif char == "\r":
            result.append("\\r")
        elif char == "\t":
            result.append("\\t")
        elif code < 0x20 or code == 0x7F:
            result.append(f"\\{code:03o}")
        elif code > 0xFF:
            result.append("?")
            replaced_count += 1
        else:
            result.append(char)
    if replaced_count > 0:
        _logger.warning(
            "pdf_string: %d non-Latin1 character(s) replaced with '?' in: %r", replaced_count, text
        )
    return "".join(result)


def pdf_date(moment: datetime) -> str:
    """Format a datetime as a PDF date string in UTC (``D:YYYYMMDDHHmmSS+00'00'``)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("D:%Y%m%d%H%M%S+00'00'")


def serialize_pikepdf_obj(obj: None | bool | int | float | pikepdf.Object) -> str:
    """Serialize a pikepdf object to a raw PDF string for embedding.

    Indirect objects are emitted as references ("N G R"); everything
    else goes through pikepdf's unparse(), which produces correct PDF
    syntax for names, strings, arrays and dictionaries.
    """
    if obj is None:
        return "null"
    if isinstance(obj, bool):
        return "true" if obj else "false"
    if isinstance(obj, int):
        return str(obj)
    if isinstance(obj, float):
        return str(int(obj)) if obj % 1 == 0.0 else f"{obj:.6f}"
    pikepdf = _require_pikepdf()
    if isinstance(obj, pikepdf.Object) and obj.is_indirect:
        return f"{obj.objgen[0]} {obj.objgen[1]} R"
    return obj.unparse(resolved=True).decode("latin-1")


def dict_entries(obj: pikepdf.Dictionary, skip_keys: tuple[str, ...] = ()) -> list[str]:
    """Serialize a dictionary's entries as ``/Key value`` strings.

    Keys in ``skip_keys`` are left out so callers can replace them.
    """
    entries: list[str] = []
    # pikepdf dict requires .keys() -- __iter__ yields values, not keys
    for key in list(obj.keys()):
        if key in skip_keys:
            continue
        entries.append(f"{key} {serialize_pikepdf_obj(obj[key])}")
    return entries


def array_items(obj: pikepdf.Array | None) -> list[str]:
    """Serialize the items of a PDF array (references stay references)."""
    if obj is None:
        return []
    return [serialize_pikepdf_obj(obj[i]) for i in range(len(obj))]


# ── Object override builders ─────────────────────────────────────────


def format_object(ref: ObjRef, entries: list[str]) -> str:
    """Render a dictionary object definition from its entries."""
    body = "\n".join(f"  {entry}" for entry in entries)
    return f"{ref.num} {ref.gen} obj\n<<\n{body}\n>>\nendobj\n"


def build_object_override(
    pdf_bytes: bytes,
    ref: ObjRef,
    skip_keys: tuple[str, ...],
    new_entries: list[str],
) -> str:
    """Build a raw override of an existing dictionary object.

    Opens the PDF read-only, copies every entry of the target object
    except ``skip_keys``, then appends ``new_entries``.

    Args:
        pdf_bytes: Raw PDF content.
        ref: Target object reference.
        skip_keys: Keys to omit from the original (e.g. ``("/Annots",)``).
        new_entries: Entries to append (e.g. ``["/Annots [5 0 R]"]``).

    Returns:
        Raw PDF object definition.
    """
    pikepdf = _require_pikepdf()
    with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
        obj = pdf.get_object((ref.num, ref.gen))
        entries = dict_entries(obj, skip_keys)
    return format_object(ref, [*entries, *new_entries])


def build_page_override(pdf_bytes: bytes, page: ObjRef, annots: list[str]) -> str:
    """Build a raw override of the page object with a replaced /Annots."""
    return build_object_override(
        pdf_bytes,
        page,
        skip_keys=("/Annots",),
        new_entries=[f"/Annots [{' '.join(annots)}]"],
    )


def acroform_entries(existing: list[str], fields: list[str]) -> list[str]:
    """AcroForm entries with the merged /Fields array and /SigFlags set."""
    return [*existing, f"/Fields [{' '.join(fields)}]", f"/SigFlags {SIG_FLAGS}"]


def build_catalog_override(
    pdf_bytes: bytes,
    root: ObjRef,
    acroform_existing: list[str],
    fields: list[str],
) -> str:
    """Build a raw override of the catalog carrying an inline /AcroForm."""
    inline = " ".join(acroform_entries(acroform_existing, fields))
    return build_object_override(
        pdf_bytes,
        root,
        skip_keys=("/AcroForm",),
        new_entries=[f"/AcroForm << {inline} >>"],
    )


def build_acroform_override(
    acroform: ObjRef, acroform_existing: list[str], fields: list[str]
) -> str:
    """Build a raw override of an indirect AcroForm dictionary."""
    return format_object(acroform, acroform_entries(acroform_existing, fields))


# ── Signature objects ────────────────────────────────────────────────


def allocate_sig_objects(prev_size: int) -> SigObjectNums:
    """Allocate object numbers for the signature dictionary and its widget.

    New objects start at the previous trailer's /Size (the first free
    object number).
    """
    return SigObjectNums(sig=prev_size, annot=prev_size + 1, new_size=prev_size + 2)


def build_sig_dict(obj_num: int, meta: SignatureMetadata, contents_size: int) -> str:
    """Build the /Type /Sig dictionary with reserved /ByteRange and /Contents."""
    contents_zeros = "0" * (contents_size * 2)
    return (
        f"{obj_num} 0 obj\n"
        f"<<\n"
        f"  /Type /Sig\n"
        f"  /Filter /Adobe.PPKLite\n"
        f"  /SubFilter /adbe.pkcs7.detached\n"
        f"  {BYTERANGE_PLACEHOLDER_STR}\n"
        f"  /Contents <{contents_zeros}>\n"
        f"  /M ({pdf_date(meta.signing_time)})\n"
        f"  /Reason ({pdf_string(meta.reason)})\n"
        f"  /Location ({pdf_string(meta.location)})\n"
        f"  /ContactInfo ({pdf_string(meta.contact)})\n"
        f"  /Name ({pdf_string(meta.name)})\n"
        f"  /Prop_Build << /App << /Name /pdfsigner /REx ({__version__}) >> "
        f"/Filter << /Name /Adobe.PPKLite >> >>\n"
        f">>\n"
        f"endobj\n"
    )


def build_sig_widget(obj_nums: SigObjectNums, page: ObjRef, field_name: str) -> str:
    """Build the invisible widget annotation that is the signature field.

    /Rect [0 0 0 0] and no /AP: the signature is cryptographically
    present but has no visual representation on the page.
    """
    return (
        f"{obj_nums.annot} 0 obj\n"
        f"<<\n"
        f"  /Type /Annot\n"
        f"  /Subtype /Widget\n"
        f"  /FT /Sig\n"
        f"  /Rect [0 0 0 0]\n"
        f"  /V {obj_nums.sig} 0 R\n"
        f"  /T ({pdf_string(field_name)})\n"
        f"  /F {ANNOT_FLAGS_SIG_WIDGET}\n"
        f"  /P {page}\n"
        f">>\n"
        f"endobj\n"
    )
