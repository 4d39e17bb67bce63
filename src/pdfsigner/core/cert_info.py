# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""
Signer certificate information from CMS/PKCS#7 blobs.

Used by verification and CMS inspection to describe the signer.
"""

from __future__ import annotations

__all__ = ["extract_cert_info_from_cms"]

import datetime
import logging
from typing import TYPE_CHECKING

from asn1crypto import cms as asn1_cms

from ..errors import InvalidDocument

if TYPE_CHECKING:
    from asn1crypto import x509 as asn1_x509

_logger = logging.getLogger(__name__)

# OIDs for common subject fields
_OID_CN = "2.5.4.3"
_OID_EMAIL = "1.2.840.113549.1.9.1"
_OID_ORG = "2.5.4.10"


def _signer_fields(cert: asn1_x509.Certificate) -> dict[str, str | None]:
    """Extract CN, email, org, dn and serial from an asn1crypto certificate.

    Also logs warnings for expired or not-yet-valid certificates.
    """
    try:
        not_before = cert.not_valid_before
        not_after = cert.not_valid_after
        now = datetime.datetime.now(datetime.timezone.utc)
        if not_before and now < not_before:
            _logger.warning("Certificate is not yet valid (notBefore: %s)", not_before)
        elif not_after and now > not_after:
            _logger.warning("Certificate has expired (notAfter: %s)", not_after)
    except (KeyError, TypeError, ValueError) as e:
        _logger.debug("Cannot check certificate validity dates: %s", e)

    fields: dict[str, str | None] = {"name": None, "email": None, "organization": None}
    oid_map = {_OID_CN: "name", _OID_EMAIL: "email", _OID_ORG: "organization"}

    for rdn in cert.subject.chosen:
        for attr in rdn:
            oid = attr["type"].dotted
            if oid in oid_map:
                fields[oid_map[oid]] = attr["value"].native

    fields["dn"] = cert.subject.human_friendly
    fields["serial_number"] = format(cert.serial_number, "x")
    return fields


def extract_cert_info_from_cms(cms_der: bytes) -> dict[str, str | None]:
    """
    Extract signer certificate info from a CMS/PKCS#7 DER blob.

    Args:
        cms_der: Raw DER-encoded CMS/PKCS#7 bytes.

    Returns:
        dict with keys: name (CN), email, organization, dn (full subject),
        serial_number (lowercase hex).

    Raises:
        InvalidDocument: If parsing fails or no certificate is embedded.
    """
    try:
        content_info = asn1_cms.ContentInfo.load(cms_der)
        signed_data = content_info["content"]
        certs = signed_data["certificates"]
    except (ValueError, TypeError, KeyError, OSError) as e:
        raise InvalidDocument(f"Failed to parse CMS/PKCS#7 blob: {e}") from e

    if not certs:
        raise InvalidDocument("No certificate found in CMS blob.")

    cert = certs[0].chosen
    return _signer_fields(cert)

