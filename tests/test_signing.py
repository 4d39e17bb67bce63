"""Tests for pdfsigner.core.signing -- the prepare/sign pipeline."""

from __future__ import annotations

import dataclasses
import datetime
import io
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

import pikepdf
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from pdfsigner.core.identity import load_pkcs12
from pdfsigner.core.pdf import (
    extract_signature_data,
    find_last_byterange,
    verify_embedded_signature,
)
from pdfsigner.core.signing import (
    SignatureOptions,
    prepare,
    prepare_bytes,
    sign,
    sign_pdf,
)
from pdfsigner.errors import (
    InvalidDocument,
    PlaceholderOverflow,
    SigningFailure,
    VerificationError,
)

from .conftest import FIXED_TIME, P12_PASSPHRASE, make_blank_pdf


def _sig_dict(pdf_bytes: bytes) -> dict[str, str]:
    with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
        sig = pdf.Root.AcroForm.Fields[-1].V
        return {
            "reason": str(sig.Reason),
            "location": str(sig.Location),
            "contact": str(sig.ContactInfo),
            "name": str(sig.Name),
            "m": str(sig.M),
        }


# ── SignatureOptions ──────────────────────────────────────────────


def test_options_defaults():
    meta = SignatureOptions().resolve(FIXED_TIME)
    assert meta.reason == "Document signed by server"
    assert meta.location == "Server"
    assert meta.contact == "N/A"
    assert meta.name == "PDF Signing Server"
    assert meta.signing_time == FIXED_TIME


def test_options_empty_strings_use_defaults():
    meta = SignatureOptions(reason="", location="", contact="").resolve(FIXED_TIME)
    assert meta.reason == "Document signed by server"
    assert meta.location == "Server"
    assert meta.contact == "N/A"


def test_prepare_rejects_unknown_kwargs(valid_pdf_bytes):
    with pytest.raises(TypeError, match="colour"):
        prepare(valid_pdf_bytes, colour="red")


# ── prepare / sign ────────────────────────────────────────────────


def test_prepare_then_sign(valid_pdf_bytes, rsa_identity):
    prepared = prepare(valid_pdf_bytes, reason="Two step")
    signed = sign(prepared.pdf, rsa_identity)

    assert len(signed) == len(prepared.pdf)
    assert find_last_byterange(signed) == prepared.byte_range
    assert verify_embedded_signature(signed)["valid"]
    assert _sig_dict(signed)["reason"] == "Two step"


def test_prepare_bytes_matches_prepare(valid_pdf_bytes):
    assert prepare_bytes(valid_pdf_bytes, signing_time=FIXED_TIME) == prepare(
        valid_pdf_bytes, signing_time=FIXED_TIME
    ).pdf


def test_sign_rejects_unprepared(valid_pdf_bytes, rsa_identity):
    with pytest.raises(InvalidDocument):
        sign(valid_pdf_bytes, rsa_identity)


def test_sign_rejects_already_signed(signed_pdf_bytes, rsa_identity):
    with pytest.raises(InvalidDocument, match="already signed"):
        sign(signed_pdf_bytes, rsa_identity)


def test_sign_key_failure(valid_pdf_bytes, rsa_identity):
    key = MagicMock(spec=rsa.RSAPrivateKey)
    key.key_size = 2048
    key.sign.side_effect = ValueError("key is no longer usable")
    identity = dataclasses.replace(rsa_identity, private_key=key)
    prepared = prepare(valid_pdf_bytes)
    with pytest.raises(SigningFailure, match="cannot sign"):
        sign(prepared.pdf, identity)
    key.sign.assert_called_once()


def test_sign_placeholder_too_small(valid_pdf_bytes, rsa_identity):
    prepared = prepare(valid_pdf_bytes, contents_size=1024)
    with patch("pdfsigner.core.signing.estimate_cms_size", return_value=4096):
        with pytest.raises(PlaceholderOverflow):
            sign(prepared.pdf, rsa_identity)


# ── sign_pdf ──────────────────────────────────────────────────────


def test_sign_pdf_end_to_end(valid_pdf_bytes, rsa_identity):
    signed = sign_pdf(valid_pdf_bytes, rsa_identity)
    assert signed.startswith(b"%PDF-")

    result = verify_embedded_signature(signed)
    assert result["valid"], result["details"]
    assert result["signer"]["name"] == "Test Signer"

    with pikepdf.open(io.BytesIO(signed)) as pdf:
        assert len(pdf.pages) == 1


def test_sign_pdf_ec(valid_pdf_bytes, ec_identity):
    signed = sign_pdf(valid_pdf_bytes, ec_identity)
    assert verify_embedded_signature(signed)["valid"]


def test_sign_pdf_defaults(valid_pdf_bytes, rsa_identity):
    meta = _sig_dict(sign_pdf(valid_pdf_bytes, rsa_identity))
    assert meta["reason"] == "Document signed by server"
    assert meta["location"] == "Server"
    assert meta["contact"] == "N/A"
    assert meta["name"] == "PDF Signing Server"


def test_sign_pdf_custom_metadata(valid_pdf_bytes, rsa_identity):
    options = SignatureOptions(reason="Approved", location="Berlin")
    signed = sign_pdf(valid_pdf_bytes, rsa_identity, options, contact="me@example.com")
    meta = _sig_dict(signed)
    assert meta["reason"] == "Approved"
    assert meta["location"] == "Berlin"
    assert meta["contact"] == "me@example.com"


def test_sign_pdf_signature_bytes_hex_in_slot(valid_pdf_bytes, rsa_identity):
    signed = sign_pdf(valid_pdf_bytes, rsa_identity)
    _data, cms_der = extract_signature_data(signed)
    _off1, len1, off2, _len2 = find_last_byterange(signed)
    slot = signed[len1 + 1 : off2 - 1]
    assert slot.startswith(cms_der.hex().encode())
    assert set(slot[len(cms_der) * 2 :]) <= {ord("0")}


def test_sign_pdf_is_deterministic_for_rsa(valid_pdf_bytes, rsa_identity):
    first = sign_pdf(valid_pdf_bytes, rsa_identity, signing_time=FIXED_TIME)
    second = sign_pdf(valid_pdf_bytes, rsa_identity, signing_time=FIXED_TIME)
    assert first == second
    assert _sig_dict(first)["m"] == "D:20240501123000+00'00'"


def test_sign_pdf_non_pdf(rsa_identity):
    with pytest.raises(InvalidDocument):
        sign_pdf(b"just some text", rsa_identity)


def test_sign_pdf_small_contents_size(valid_pdf_bytes, rsa_identity):
    with pytest.raises(PlaceholderOverflow):
        sign_pdf(valid_pdf_bytes, rsa_identity, contents_size=512)


def test_sign_pdf_wrong_passphrase(p12_bytes):
    with pytest.raises(SigningFailure):
        load_pkcs12(p12_bytes, P12_PASSPHRASE + "x")


def test_sign_pdf_verification_failure(valid_pdf_bytes, rsa_identity):
    failed = {
        "valid": False,
        "structure_ok": True,
        "hash_ok": False,
        "signature_ok": True,
        "details": ["Hash MISMATCH!"],
        "signer": None,
    }
    with patch("pdfsigner.core.signing.verify_embedded_signature", return_value=failed):
        with pytest.raises(VerificationError, match="Hash MISMATCH"):
            sign_pdf(valid_pdf_bytes, rsa_identity)


def test_sign_pdf_concurrent(rsa_identity):
    documents = [make_blank_pdf(n) for n in (1, 2, 3, 4)]
    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(lambda pdf: sign_pdf(pdf, rsa_identity), documents))

    for document, signed in zip(documents, results):
        assert verify_embedded_signature(signed)["valid"]
        with pikepdf.open(io.BytesIO(signed)) as pdf, pikepdf.open(io.BytesIO(document)) as src:
            assert len(pdf.pages) == len(src.pages)


def test_sign_pdf_signing_time_after_2049(valid_pdf_bytes, rsa_identity):
    moment = datetime.datetime(2050, 1, 2, tzinfo=datetime.timezone.utc)
    signed = sign_pdf(valid_pdf_bytes, rsa_identity, signing_time=moment)
    assert verify_embedded_signature(signed)["valid"]
    assert _sig_dict(signed)["m"] == "D:20500102000000+00'00'"
