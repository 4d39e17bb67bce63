# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""
Detached CMS SignedData construction (adbe.pkcs7.detached).

The container carries no encapsulated content. Its single SignerInfo
signs the DER of the signed attributes (content type, message digest,
signing time and an ESS signing-certificate-v2 reference), so the
document digest is bound through the messageDigest attribute.
"""

from __future__ import annotations

__all__ = ["build_detached_cms", "estimate_cms_size"]

import datetime
import hashlib
import logging
from typing import TYPE_CHECKING

from asn1crypto import algos, cms, core, tsp
from asn1crypto import x509 as asn1_x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from ..errors import SigningFailure

if TYPE_CHECKING:
    from .identity import SigningIdentity

_logger = logging.getLogger(__name__)

_HASHES: dict[str, type[hashes.HashAlgorithm]] = {
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}

# DER SEQUENCE of two INTEGERs, each at most one byte longer than the
# curve order (sign byte), plus tag/length headers.
_ECDSA_DER_OVERHEAD = 9

# GeneralizedTime encodes two bytes longer than UTCTime.
_LONGEST_TIME = datetime.datetime(2050, 1, 1, tzinfo=datetime.timezone.utc)


def _to_asn1(cert: object) -> asn1_x509.Certificate:
    der = cert.public_bytes(serialization.Encoding.DER)  # type: ignore[attr-defined]
    return asn1_x509.Certificate.load(der)


def _signature_mechanism(identity: SigningIdentity) -> str:
    if isinstance(identity.private_key, rsa.RSAPrivateKey):
        return "rsassa_pkcs1v15"
    return f"{identity.digest_algorithm}_ecdsa"


def _max_signature_size(identity: SigningIdentity) -> int:
    key = identity.private_key
    if isinstance(key, rsa.RSAPrivateKey):
        return (key.key_size + 7) // 8
    if isinstance(key, ec.EllipticCurvePrivateKey):
        return 2 * ((key.curve.key_size + 7) // 8 + 1) + _ECDSA_DER_OVERHEAD
    raise SigningFailure(f"Unsupported key type {type(key).__name__}")


def _signing_time(moment: datetime.datetime) -> cms.Time:
    # UTCTime only covers 1950-2049.
    if moment.year >= 2050:
        return cms.Time({"generalized_time": core.GeneralizedTime(moment)})
    return cms.Time({"utc_time": core.UTCTime(moment)})


def _signing_certificate_v2(
    signing_cert: asn1_x509.Certificate, digest_algorithm: str
) -> tsp.SigningCertificateV2:
    cert_hash = hashlib.new(digest_algorithm, signing_cert.dump()).digest()
    ess_cert_id = tsp.ESSCertIDv2(
        {
            "hash_algorithm": algos.DigestAlgorithm({"algorithm": digest_algorithm}),
            "cert_hash": cert_hash,
            "issuer_serial": tsp.IssuerSerial(
                {
                    "issuer": [asn1_x509.GeneralName({"directory_name": signing_cert.issuer})],
                    "serial_number": signing_cert.serial_number,
                }
            ),
        }
    )
    return tsp.SigningCertificateV2({"certs": [ess_cert_id]})


def _signed_attrs(
    digest: bytes, signing_cert: asn1_x509.Certificate, digest_algorithm: str, signing_time: datetime.datetime
) -> cms.CMSAttributes:
    return cms.CMSAttributes(
        [
            cms.CMSAttribute({"type": "content_type", "values": ["data"]}),
            cms.CMSAttribute({"type": "signing_time", "values": [_signing_time(signing_time)]}),
            cms.CMSAttribute({"type": "message_digest", "values": [digest]}),
            cms.CMSAttribute(
                {
                    "type": "signing_certificate_v2",
                    "values": [_signing_certificate_v2(signing_cert, digest_algorithm)],
                }
            ),
        ]
    )


def _sign_raw(identity: SigningIdentity, data: bytes) -> bytes:
    """Sign ``data`` with the identity's key (PKCS#1 v1.5 or ECDSA)."""
    hash_algo = _HASHES[identity.digest_algorithm]()
    key = identity.private_key
    try:
        if isinstance(key, rsa.RSAPrivateKey):
            return key.sign(data, padding.PKCS1v15(), hash_algo)
        if isinstance(key, ec.EllipticCurvePrivateKey):
            return key.sign(data, ec.ECDSA(hash_algo))
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise SigningFailure(f"Private key cannot sign: {e}") from e
    raise SigningFailure(f"Unsupported key type {type(key).__name__}")


def _assemble(
    identity: SigningIdentity,
    digest: bytes,
    signing_time: datetime.datetime,
    signature: bytes | None,
) -> bytes:
    """Build the ContentInfo; ``signature=None`` computes the real one."""
    certs = [_to_asn1(c) for c in identity.certificates]
    signing_cert = certs[0]
    attrs = _signed_attrs(digest, signing_cert, identity.digest_algorithm, signing_time)
    if signature is None:
        signature = _sign_raw(identity, attrs.dump())

    digest_algorithm_obj = algos.DigestAlgorithm({"algorithm": identity.digest_algorithm})
    signer_info = cms.SignerInfo(
        {
            "version": "v1",
            "sid": cms.SignerIdentifier(
                {
                    "issuer_and_serial_number": cms.IssuerAndSerialNumber(
                        {
                            "issuer": signing_cert.issuer,
                            "serial_number": signing_cert.serial_number,
                        }
                    )
                }
            ),
            "digest_algorithm": digest_algorithm_obj,
            "signature_algorithm": algos.SignedDigestAlgorithm(
                {"algorithm": _signature_mechanism(identity)}
            ),
            "signed_attrs": attrs,
            "signature": signature,
        }
    )
    signed_data = cms.SignedData(
        {
            "version": "v1",
            "digest_algorithms": cms.DigestAlgorithms((digest_algorithm_obj,)),
            "encap_content_info": {"content_type": "data"},
            "certificates": certs,
            "signer_infos": [signer_info],
        }
    )
    return cms.ContentInfo({"content_type": "signed_data", "content": signed_data}).dump()


def _utc(moment: datetime.datetime | None) -> datetime.datetime:
    # The signing-time attribute has one-second resolution; drop
    # microseconds so it round-trips exactly.
    moment = moment or datetime.datetime.now(datetime.timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.timezone.utc)
    return moment.astimezone(datetime.timezone.utc).replace(microsecond=0)


def build_detached_cms(
    digest: bytes,
    identity: SigningIdentity,
    signing_time: datetime.datetime | None = None,
) -> bytes:
    """
    Build a DER-encoded detached CMS SignedData over a precomputed digest.

    Args:
        digest: Digest of the signed content, computed with
            ``identity.digest_algorithm``.
        identity: Key, certificate and chain.
        signing_time: Value of the signing-time attribute (default: now).

    Raises:
        SigningFailure: If the digest length does not match the algorithm
            or the key cannot produce a signature.
    """
    expected = hashlib.new(identity.digest_algorithm).digest_size
    if len(digest) != expected:
        raise SigningFailure(
            f"Expected {expected}-byte {identity.digest_algorithm} digest, got {len(digest)} bytes."
        )
    cms_der = _assemble(identity, digest, _utc(signing_time), None)
    _logger.debug("Built detached CMS: %d bytes", len(cms_der))
    return cms_der


def estimate_cms_size(identity: SigningIdentity) -> int:
    """Upper-bound size in bytes of the container ``build_detached_cms`` produces.

    Builds the container with a maximum-length placeholder signature, so
    no private-key operation is performed.
    """
    digest_size = hashlib.new(identity.digest_algorithm).digest_size
    placeholder = b"\xff" * _max_signature_size(identity)
    return len(_assemble(identity, b"\x00" * digest_size, _LONGEST_TIME, placeholder))
