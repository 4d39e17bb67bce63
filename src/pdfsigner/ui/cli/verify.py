"""
Signature verification and inspection.

``check`` verifies every embedded signature of a PDF; ``info`` inspects a
detached CMS blob (.p7s) without the original data.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

from ...core.pdf import inspect_cms_blob, verify_all_embedded_signatures
from ...errors import PdfSignerError
from ..helpers import format_size_kb, safe_read_file

if TYPE_CHECKING:
    import argparse


def cmd_check(args: argparse.Namespace) -> None:
    """Check all embedded PDF signatures."""
    pdf_path = Path(args.pdf)
    pdf_bytes = safe_read_file(pdf_path, "PDF")
    if pdf_bytes is None:
        sys.exit(1)

    print(f"Checking {pdf_path.name} ({format_size_kb(len(pdf_bytes))})...")

    try:
        results = verify_all_embedded_signatures(pdf_bytes)
    except PdfSignerError as e:
        print(f"  ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    total = len(results)
    failed = 0
    for i, result in enumerate(results):
        if total > 1:
            signer = (result["signer"] or {}).get("name") or "unknown signer"
            print(f"\n  Signature {i + 1}/{total} ({signer}):")
            indent = "    "
        else:
            indent = "  "
        for detail in result["details"]:
            for line in detail.splitlines():
                print(f"{indent}{line}")
        if not result["valid"]:
            failed += 1

    print()
    if not failed:
        sig_word = "signature" if total == 1 else f"all {total} signatures"
        print(f"  RESULT: {sig_word.capitalize()} VALID")
    else:
        print(f"  RESULT: {failed} of {total} signature(s) FAILED")
        sys.exit(1)


def cmd_info(args: argparse.Namespace) -> None:
    """Show info about a CMS signature file."""
    sig_path = Path(args.signature)
    sig_bytes = safe_read_file(sig_path, "signature")
    if sig_bytes is None:
        sys.exit(1)

    print(f"Signature: {sig_path.name} ({len(sig_bytes)} bytes)")
    inspection = inspect_cms_blob(sig_bytes)
    for line in inspection["details"]:
        print(f"  {line}")

    signer = inspection["signer"]
    if signer is None:
        print("  No signer certificate found.", file=sys.stderr)
        sys.exit(1)
    print(f"  Subject: {signer.get('dn')}")
    print(f"  Serial:  {signer.get('serial_number')}")
