"""
pdfsigner -- server-side PDF signing with detached CMS signatures.

Prepares a PDF with a reserved signature slot, signs the /ByteRange spans
with a locally held key, and splices the signature back in. Usable as a
library, from the command line, and as an HTTP service.
"""

from __future__ import annotations

from .constants import __version__
from .core.identity import (
    IdentityInfo,
    SigningIdentity,
    load_identity,
    load_identity_file,
    load_pem,
    load_pkcs12,
)
from .core.pdf import (
    inspect_cms_blob,
    verify_all_embedded_signatures,
    verify_detached_signature,
    verify_embedded_signature,
)
from .core.signing import (
    PreparedDocument,
    SignatureOptions,
    prepare,
    prepare_bytes,
    sign,
    sign_pdf,
)
from .errors import (
    ConfigError,
    IdentityLoadFailure,
    InvalidDocument,
    PdfSignerError,
    PlaceholderOverflow,
    SigningFailure,
    VerificationError,
)

__all__ = [
    "ConfigError",
    "IdentityInfo",
    "IdentityLoadFailure",
    "InvalidDocument",
    "PdfSignerError",
    "PlaceholderOverflow",
    "PreparedDocument",
    "SignatureOptions",
    "SigningFailure",
    "SigningIdentity",
    "VerificationError",
    "__version__",
    "inspect_cms_blob",
    "load_identity",
    "load_identity_file",
    "load_pem",
    "load_pkcs12",
    "prepare",
    "prepare_bytes",
    "sign",
    "sign_pdf",
    "verify_all_embedded_signatures",
    "verify_detached_signature",
    "verify_embedded_signature",
]
