"""Shared test fixtures for the pdfsigner test suite."""

from __future__ import annotations

import datetime
import io

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from pdfsigner.core.identity import SigningIdentity

P12_PASSPHRASE = "secret"

# Fixed moment used by deterministic-output tests.
FIXED_TIME = datetime.datetime(2024, 5, 1, 12, 30, 0, tzinfo=datetime.timezone.utc)


def make_blank_pdf(num_pages: int = 1) -> bytes:
    import pikepdf

    pdf = pikepdf.Pdf.new()
    for _ in range(num_pages):
        pdf.add_blank_page(page_size=(612, 792))
    buf = io.BytesIO()
    pdf.save(buf)
    return buf.getvalue()


def make_cert(
    key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey,
    common_name: str = "Test Signer",
    *,
    days_valid: int = 365,
    not_before: datetime.datetime | None = None,
) -> x509.Certificate:
    """Self-signed certificate for ``key``."""
    name = x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Example Org"),
            x509.NameAttribute(NameOID.EMAIL_ADDRESS, "signer@example.com"),
        ]
    )
    start = not_before or datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(days=1)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(start)
        .not_valid_after(start + datetime.timedelta(days=days_valid))
        .sign(key, hashes.SHA256())
    )


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ec_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="session")
def rsa_cert(rsa_key) -> x509.Certificate:
    return make_cert(rsa_key)


@pytest.fixture(scope="session")
def rsa_identity(rsa_key, rsa_cert) -> SigningIdentity:
    return SigningIdentity(private_key=rsa_key, certificate=rsa_cert)


@pytest.fixture(scope="session")
def ec_identity(ec_key) -> SigningIdentity:
    return SigningIdentity(private_key=ec_key, certificate=make_cert(ec_key, "EC Signer"))


@pytest.fixture(scope="session")
def p12_bytes(rsa_key, rsa_cert) -> bytes:
    return pkcs12.serialize_key_and_certificates(
        b"signer",
        rsa_key,
        rsa_cert,
        None,
        serialization.BestAvailableEncryption(P12_PASSPHRASE.encode()),
    )


@pytest.fixture
def p12_file(tmp_path, p12_bytes):
    path = tmp_path / "signing-cert.p12"
    path.write_bytes(p12_bytes)
    return path


@pytest.fixture
def pem_files(tmp_path, rsa_key, rsa_cert):
    """(cert_path, key_path) for an unencrypted PEM pair."""
    key_path = tmp_path / "key.pem"
    cert_path = tmp_path / "cert.pem"
    key_path.write_bytes(
        rsa_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    cert_path.write_bytes(rsa_cert.public_bytes(serialization.Encoding.PEM))
    return cert_path, key_path


@pytest.fixture
def valid_pdf_bytes() -> bytes:
    """A minimal one-page PDF created with pikepdf."""
    return make_blank_pdf()


@pytest.fixture
def signed_pdf_bytes(valid_pdf_bytes, rsa_identity) -> bytes:
    from pdfsigner.core.signing import sign_pdf

    return sign_pdf(valid_pdf_bytes, rsa_identity)
