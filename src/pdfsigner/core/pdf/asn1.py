"""ASN.1/DER helpers for pulling a CMS blob out of a zero-padded slot."""

from __future__ import annotations

from asn1crypto import parser as asn1_parser

# ASN.1 SEQUENCE tag -- first byte of any valid CMS/PKCS#7 blob
ASN1_SEQUENCE_TAG = 0x30

# Minimum plausible CMS blob size in bytes (header + basic content)
MIN_CMS_SIZE = 100


def extract_der_from_padded_hex(hex_str: str) -> bytes:
    """Return the exact DER value at the start of a zero-padded hex string.

    The TLV header decides where the value ends, so a blob whose last
    content byte is 0x00 survives intact (stripping trailing zeros would
    corrupt it).

    Raises:
        ValueError: If the hex is invalid, the first value is not a DER
            SEQUENCE, or the declared length runs past the available data.
    """
    if len(hex_str) < 4:
        raise ValueError("Hex string too short for ASN.1 TLV header")

    data = bytes.fromhex(hex_str)
    if data[0] != ASN1_SEQUENCE_TAG:
        raise ValueError(f"Expected ASN.1 SEQUENCE (0x30), got 0x{data[0]:02x}")
    if data[1] == 0x80:
        raise ValueError("Indefinite length encoding is not valid in DER")

    # strict=False: the zero padding after the value is expected
    _class, _method, _tag, header, contents, _trailer = asn1_parser.parse(data, strict=False)
    return data[: len(header) + len(contents)]
