"""PDF preparation, verification, and incremental update assembly."""

from .builder import (
    compute_byterange_digest,
    insert_cms,
    normalize_pdf,
    prepare_pdf_with_sig_field,
    read_prepared_byterange,
)
from .cms_extraction import (
    BYTERANGE_PATTERN,
    extract_cms_from_byterange,
    extract_signature_data,
    find_last_byterange,
)
from .cms_info import CmsInspection, inspect_cms_blob
from .incremental import (
    DocumentLayout,
    analyze_document,
    assemble_incremental_update,
    build_xref_and_trailer,
    find_prev_startxref,
    find_root_obj_num,
    patch_byterange,
)
from .objects import (
    ANNOT_FLAGS_SIG_WIDGET,
    BYTERANGE_PLACEHOLDER_STR,
    CONTENTS_RESERVED_SIZE,
    MIN_CONTENTS_SIZE,
    ObjRef,
    SignatureMetadata,
    SigObjectNums,
    allocate_sig_objects,
    pdf_string,
)
from .verify import (
    VerificationResult,
    verify_all_embedded_signatures,
    verify_detached_signature,
    verify_embedded_signature,
)

__all__ = [
    "ANNOT_FLAGS_SIG_WIDGET",
    "BYTERANGE_PATTERN",
    "BYTERANGE_PLACEHOLDER_STR",
    "CONTENTS_RESERVED_SIZE",
    "MIN_CONTENTS_SIZE",
    "CmsInspection",
    "DocumentLayout",
    "ObjRef",
    "SigObjectNums",
    "SignatureMetadata",
    "VerificationResult",
    "allocate_sig_objects",
    "analyze_document",
    "assemble_incremental_update",
    "build_xref_and_trailer",
    "compute_byterange_digest",
    "extract_cms_from_byterange",
    "extract_signature_data",
    "find_last_byterange",
    "find_prev_startxref",
    "find_root_obj_num",
    "insert_cms",
    "inspect_cms_blob",
    "normalize_pdf",
    "patch_byterange",
    "pdf_string",
    "prepare_pdf_with_sig_field",
    "read_prepared_byterange",
    "verify_all_embedded_signatures",
    "verify_detached_signature",
    "verify_embedded_signature",
]
