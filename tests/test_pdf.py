"""Tests for pdfsigner.core.pdf -- placeholder preparation, byte ranges and CMS slots."""

from __future__ import annotations

import datetime
import io

import pikepdf
import pytest

from pdfsigner.core.pdf import (
    CONTENTS_RESERVED_SIZE,
    MIN_CONTENTS_SIZE,
    ObjRef,
    SignatureMetadata,
    allocate_sig_objects,
    build_xref_and_trailer,
    compute_byterange_digest,
    extract_cms_from_byterange,
    extract_signature_data,
    find_last_byterange,
    insert_cms,
    pdf_string,
    prepare_pdf_with_sig_field,
    read_prepared_byterange,
)
from pdfsigner.core.pdf.asn1 import extract_der_from_padded_hex
from pdfsigner.core.pdf.incremental import DocumentLayout
from pdfsigner.core.pdf.objects import pdf_date
from pdfsigner.errors import InvalidDocument, PlaceholderOverflow, SigningFailure

from .conftest import FIXED_TIME, make_blank_pdf

META = SignatureMetadata(
    reason="Approved",
    location="Berlin",
    contact="ops@example.com",
    name="PDF Signing Server",
    signing_time=FIXED_TIME,
)


def _open(pdf_bytes: bytes) -> pikepdf.Pdf:
    return pikepdf.open(io.BytesIO(pdf_bytes))


def _save(pdf: pikepdf.Pdf) -> bytes:
    buf = io.BytesIO()
    pdf.save(buf)
    return buf.getvalue()


# ── PDF string helpers ────────────────────────────────────────────


def test_pdf_string_escapes():
    assert pdf_string("a(b)c") == "a\\(b\\)c"
    assert pdf_string("back\\slash") == "back\\\\slash"
    assert pdf_string("line\nbreak") == "line\\nbreak"
    assert pdf_string("\x01") == "\\001"


def test_pdf_string_latin1_kept_other_replaced():
    assert pdf_string("Zürich") == "Zürich"
    assert pdf_string("日本") == "??"


def test_pdf_date_utc():
    assert pdf_date(FIXED_TIME) == "D:20240501123000+00'00'"


def test_pdf_date_converts_offset():
    tz = datetime.timezone(datetime.timedelta(hours=2))
    moment = datetime.datetime(2024, 5, 1, 14, 30, 0, tzinfo=tz)
    assert pdf_date(moment) == "D:20240501123000+00'00'"


# ── Object allocation and xref ────────────────────────────────────


def test_objref_str():
    assert str(ObjRef(12)) == "12 0 R"
    assert str(ObjRef(3, 1)) == "3 1 R"


def test_allocate_sig_objects():
    nums = allocate_sig_objects(7)
    assert (nums.sig, nums.annot, nums.new_size) == (7, 8, 9)


def test_xref_entries_are_20_bytes():
    data = build_xref_and_trailer(
        xref_entries={5: (1000, 0), 6: (2000, 0), 9: (3000, 0)},
        new_size=10,
        prev_xref=500,
        root=ObjRef(1),
        trailer_extra=["/Info 2 0 R"],
        xref_offset=4000,
    )
    text = data.decode("latin-1")
    assert "5 2\n" in text
    assert "9 1\n" in text
    entries = [line for line in data.split(b"\n") if line.endswith(b" n\r")]
    assert len(entries) == 3
    assert all(len(line) + 1 == 20 for line in entries)
    assert "/Prev 500" in text
    assert "/Info 2 0 R" in text
    assert text.endswith("startxref\n4000\n%%EOF\n")


def test_next_field_name_skips_used():
    layout = DocumentLayout(
        root=ObjRef(1),
        prev_xref=0,
        size=5,
        trailer_extra=[],
        page=ObjRef(3),
        page_annots=[],
        acroform=None,
        acroform_entries=[],
        fields=[],
        field_names={"Signature1", "Signature2"},
    )
    assert layout.next_field_name() == "Signature3"


# ── prepare_pdf_with_sig_field ────────────────────────────────────


def test_prepare_byterange_invariants(valid_pdf_bytes):
    pdf, hex_start, hex_len, byte_range = prepare_pdf_with_sig_field(valid_pdf_bytes, META)
    off1, len1, off2, len2 = byte_range

    assert hex_len == CONTENTS_RESERVED_SIZE * 2
    assert off1 == 0
    assert len1 + len2 == len(pdf) - (hex_len + 2)
    assert off2 + len2 == len(pdf)
    assert pdf[len1 : len1 + 1] == b"<"
    assert pdf[off2 - 1 : off2] == b">"
    assert hex_start == len1 + 1
    assert pdf[hex_start : hex_start + hex_len] == b"0" * hex_len
    assert find_last_byterange(pdf) == byte_range


def test_prepare_starts_with_original_normalized_prefix(valid_pdf_bytes):
    pdf, _, _, _ = prepare_pdf_with_sig_field(valid_pdf_bytes, META)
    assert pdf.startswith(b"%PDF-")
    assert pdf.rstrip().endswith(b"%%EOF")


def test_prepare_produces_signature_field(valid_pdf_bytes):
    pdf_bytes, _, _, _ = prepare_pdf_with_sig_field(valid_pdf_bytes, META)
    with _open(pdf_bytes) as pdf:
        form = pdf.Root.AcroForm
        assert int(form.SigFlags) == 3
        assert len(form.Fields) == 1
        widget = form.Fields[0]
        assert widget.FT == "/Sig"
        assert str(widget.T) == "Signature1"
        assert [float(v) for v in widget.Rect] == [0, 0, 0, 0]
        assert "/AP" not in widget
        assert len(pdf.pages[0].obj.Annots) == 1

        sig = widget.V
        assert sig.Type == "/Sig"
        assert sig.Filter == "/Adobe.PPKLite"
        assert sig.SubFilter == "/adbe.pkcs7.detached"
        assert str(sig.Reason) == "Approved"
        assert str(sig.Location) == "Berlin"
        assert str(sig.ContactInfo) == "ops@example.com"
        assert str(sig.Name) == "PDF Signing Server"
        assert str(sig.M) == "D:20240501123000+00'00'"


def test_prepare_multi_page():
    pdf_bytes, _, _, _ = prepare_pdf_with_sig_field(make_blank_pdf(3), META)
    with _open(pdf_bytes) as pdf:
        assert len(pdf.pages) == 3
        assert len(pdf.pages[0].obj.Annots) == 1
        assert "/Annots" not in pdf.pages[1].obj


def test_prepare_keeps_existing_annotations():
    src = pikepdf.Pdf.new()
    src.add_blank_page(page_size=(612, 792))
    link = src.make_indirect(
        pikepdf.Dictionary(
            Type=pikepdf.Name.Annot, Subtype=pikepdf.Name.Link, Rect=[10, 10, 50, 50]
        )
    )
    src.pages[0].obj.Annots = src.make_indirect(pikepdf.Array([link]))

    pdf_bytes, _, _, _ = prepare_pdf_with_sig_field(_save(src), META)
    with _open(pdf_bytes) as pdf:
        annots = pdf.pages[0].obj.Annots
        assert len(annots) == 2
        assert annots[0].Subtype == "/Link"
        assert annots[1].FT == "/Sig"


def _pdf_with_form(field_name: str, field_type: str = "/Tx") -> bytes:
    src = pikepdf.Pdf.new()
    src.add_blank_page(page_size=(612, 792))
    field = src.make_indirect(
        pikepdf.Dictionary(
            FT=pikepdf.Name(field_type), T=pikepdf.String(field_name), Rect=[0, 0, 100, 20]
        )
    )
    src.Root.AcroForm = src.make_indirect(
        pikepdf.Dictionary(
            Fields=pikepdf.Array([field]), DA=pikepdf.String("/Helv 0 Tf 0 g")
        )
    )
    return _save(src)


def test_prepare_merges_existing_acroform():
    pdf_bytes, _, _, _ = prepare_pdf_with_sig_field(_pdf_with_form("FullName"), META)
    with _open(pdf_bytes) as pdf:
        form = pdf.Root.AcroForm
        assert len(form.Fields) == 2
        assert str(form.Fields[0].T) == "FullName"
        assert form.Fields[1].FT == "/Sig"
        assert str(form.DA) == "/Helv 0 Tf 0 g"
        assert int(form.SigFlags) == 3


def test_prepare_picks_unused_field_name():
    pdf_bytes, _, _, _ = prepare_pdf_with_sig_field(_pdf_with_form("Signature1", "/Sig"), META)
    with _open(pdf_bytes) as pdf:
        assert str(pdf.Root.AcroForm.Fields[1].T) == "Signature2"


def test_prepare_custom_contents_size(valid_pdf_bytes):
    pdf, _, hex_len, byte_range = prepare_pdf_with_sig_field(valid_pdf_bytes, META, 4096)
    assert hex_len == 8192
    assert byte_range[2] - byte_range[1] == 8192 + 2


def test_prepare_rejects_small_contents_size(valid_pdf_bytes):
    with pytest.raises(PlaceholderOverflow):
        prepare_pdf_with_sig_field(valid_pdf_bytes, META, MIN_CONTENTS_SIZE - 1)


def test_prepare_byterange_overflow(valid_pdf_bytes, monkeypatch):
    monkeypatch.setattr("pdfsigner.core.pdf.incremental.BYTERANGE_MAX_VALUE", 100)
    with pytest.raises(PlaceholderOverflow):
        prepare_pdf_with_sig_field(valid_pdf_bytes, META)


@pytest.mark.parametrize("data", [b"", b"hello world", b"<html></html>"])
def test_prepare_rejects_non_pdf(data):
    with pytest.raises(InvalidDocument):
        prepare_pdf_with_sig_field(data, META)


def test_prepare_rejects_corrupt_pdf():
    with pytest.raises(InvalidDocument):
        prepare_pdf_with_sig_field(b"%PDF-1.7\nthis is not a pdf body", META)


def test_prepare_rejects_signed_pdf(signed_pdf_bytes):
    with pytest.raises(InvalidDocument, match="already"):
        prepare_pdf_with_sig_field(signed_pdf_bytes, META)


def test_prepare_is_deterministic(valid_pdf_bytes):
    first = prepare_pdf_with_sig_field(valid_pdf_bytes, META)
    second = prepare_pdf_with_sig_field(valid_pdf_bytes, META)
    assert first == second


# ── read_prepared_byterange / digest ──────────────────────────────


def test_read_prepared_byterange_roundtrip(valid_pdf_bytes):
    pdf, hex_start, hex_len, byte_range = prepare_pdf_with_sig_field(valid_pdf_bytes, META)
    assert read_prepared_byterange(pdf) == (byte_range, hex_start, hex_len)


def test_read_prepared_byterange_requires_byterange(valid_pdf_bytes):
    with pytest.raises(InvalidDocument, match="ByteRange"):
        read_prepared_byterange(valid_pdf_bytes)


def test_read_prepared_byterange_length_mismatch(valid_pdf_bytes):
    pdf, _, _, _ = prepare_pdf_with_sig_field(valid_pdf_bytes, META)
    with pytest.raises(InvalidDocument, match="covers"):
        read_prepared_byterange(pdf + b"\n")


def test_read_prepared_byterange_rejects_filled_slot(valid_pdf_bytes):
    pdf, hex_start, hex_len, _ = prepare_pdf_with_sig_field(valid_pdf_bytes, META)
    filled = insert_cms(pdf, hex_start, hex_len, b"\x30\x03\x02\x01\x01")
    with pytest.raises(InvalidDocument, match="already signed"):
        read_prepared_byterange(filled)


def test_digest_excludes_contents_slot(valid_pdf_bytes):
    pdf, hex_start, hex_len, byte_range = prepare_pdf_with_sig_field(valid_pdf_bytes, META)
    before = compute_byterange_digest(pdf, byte_range)
    filled = insert_cms(pdf, hex_start, hex_len, b"\x30\x03\x02\x01\x01")
    assert compute_byterange_digest(filled, byte_range) == before

    tampered = bytearray(pdf)
    tampered[10] ^= 0x01
    assert compute_byterange_digest(bytes(tampered), byte_range) != before


def test_digest_algorithms(valid_pdf_bytes):
    pdf, _, _, byte_range = prepare_pdf_with_sig_field(valid_pdf_bytes, META)
    assert len(compute_byterange_digest(pdf, byte_range, "sha256")) == 32
    assert len(compute_byterange_digest(pdf, byte_range, "sha512")) == 64


# ── insert_cms ────────────────────────────────────────────────────


def test_insert_cms_basic():
    pdf = b"AAAA<" + b"0" * 20 + b">BBBB"
    result = insert_cms(pdf, 5, 20, b"\xab\xcd")
    assert result == b"AAAA<abcd" + b"0" * 16 + b">BBBB"
    assert len(result) == len(pdf)


def test_insert_cms_exact_fit():
    pdf = b"<" + b"0" * 4 + b">"
    assert insert_cms(pdf, 1, 4, b"\x12\x34") == b"<1234>"


def test_insert_cms_too_large():
    pdf = b"<" + b"0" * 4 + b">"
    with pytest.raises(SigningFailure, match="too large"):
        insert_cms(pdf, 1, 4, b"\x12\x34\x56")


# ── ASN.1 and CMS extraction ──────────────────────────────────────


def test_der_from_padded_hex_keeps_trailing_zero_byte():
    der = bytes.fromhex("3003020100")  # SEQUENCE { INTEGER 0 }
    assert extract_der_from_padded_hex(der.hex() + "0" * 40) == der


def test_der_from_padded_hex_not_sequence():
    with pytest.raises(ValueError, match="SEQUENCE"):
        extract_der_from_padded_hex("0201000000")


def test_der_from_padded_hex_too_short():
    with pytest.raises(ValueError):
        extract_der_from_padded_hex("30")


def _fake_signed(cms_hex: str) -> tuple[bytes, int, int]:
    head = b"%PDF-1.7\n/Contents "
    len1 = len(head)
    off2 = len1 + len(cms_hex) + 2
    tail = b"\n%%EOF\n"
    return head + b"<" + cms_hex.encode() + b">" + tail, len1, off2


def test_extract_cms_from_byterange():
    der = bytes.fromhex("3003020101")
    pdf, len1, off2 = _fake_signed(der.hex() + "00" * 8)
    assert extract_cms_from_byterange(pdf, len1, off2) == der


def test_extract_cms_missing_open_bracket():
    pdf, len1, off2 = _fake_signed("3003020101")
    with pytest.raises(InvalidDocument, match="'<'"):
        extract_cms_from_byterange(pdf, len1 - 1, off2)


def test_extract_cms_missing_close_bracket():
    pdf, len1, off2 = _fake_signed("3003020101")
    with pytest.raises(InvalidDocument, match="'>'"):
        extract_cms_from_byterange(pdf, len1, off2 + 1)


def test_extract_cms_invalid_hex():
    pdf, len1, off2 = _fake_signed("30zz020101")
    with pytest.raises(InvalidDocument, match="Invalid hex"):
        extract_cms_from_byterange(pdf, len1, off2)


def test_extract_cms_bad_offsets():
    pdf, len1, _off2 = _fake_signed("3003020101")
    with pytest.raises(InvalidDocument):
        extract_cms_from_byterange(pdf, 0, 10)
    with pytest.raises(InvalidDocument):
        extract_cms_from_byterange(pdf, len1, len(pdf) + 10)


def test_extract_no_byterange(valid_pdf_bytes):
    with pytest.raises(InvalidDocument, match="No /ByteRange"):
        extract_signature_data(valid_pdf_bytes)


def test_extract_signature_data_from_signed(signed_pdf_bytes):
    data, cms_der = extract_signature_data(signed_pdf_bytes)
    byte_range = find_last_byterange(signed_pdf_bytes)
    assert len(data) == byte_range[1] + byte_range[3]
    assert cms_der[0] == 0x30
