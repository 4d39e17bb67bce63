"""Signing command handler for pdfsigner CLI."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from ...config import load_settings
from ...core.identity import SigningIdentity, load_identity_file
from ...core.signing import SignatureOptions, sign_pdf
from ...errors import PdfSignerError
from ..helpers import atomic_write, default_output_path, format_size_kb, safe_read_file

_logger = logging.getLogger(__name__)


def _load_cli_identity(args: argparse.Namespace) -> SigningIdentity:
    """Load the identity from settings, with --cert/--key/--passphrase-env overrides.

    Raises:
        PdfSignerError: ConfigError for bad settings, IdentityLoadFailure
            for an unreadable identity.
    """
    settings = load_settings()
    passphrase: str = settings.passphrase
    if args.passphrase_env:
        env_value = os.environ.get(args.passphrase_env)
        if env_value is None:
            _logger.warning("%s is not set; using the configured passphrase", args.passphrase_env)
        else:
            passphrase = env_value

    cert_path = args.cert or settings.cert_path
    key_path = args.key or (None if args.cert else settings.key_path)
    chain_path = None if args.cert else settings.chain_path
    return load_identity_file(
        cert_path,
        passphrase,
        key_path=key_path,
        chain_path=chain_path,
        digest=settings.digest,
    )


def _sign_one(
    pdf_path: Path, out: Path, identity: SigningIdentity, options: SignatureOptions
) -> bool:
    """Sign a single PDF and print progress. Returns True on success."""
    pdf_bytes = safe_read_file(pdf_path, "PDF")
    if pdf_bytes is None:
        return False

    print(f"  Signing {pdf_path.name} ({format_size_kb(len(pdf_bytes))})...", end=" ", flush=True)
    try:
        signed = sign_pdf(pdf_bytes, identity, options)
        atomic_write(out, signed)
    except (PdfSignerError, OSError) as e:
        print("FAILED", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        return False

    print(f"OK -> {out.name} ({format_size_kb(len(signed))})")
    return True


def cmd_sign(args: argparse.Namespace) -> None:
    """Sign one or more PDF files with the local identity."""
    if args.output and len(args.files) > 1:
        print("Error: -o/--output can only be used with a single file", file=sys.stderr)
        sys.exit(1)

    try:
        identity = _load_cli_identity(args)
    except PdfSignerError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    options = SignatureOptions(reason=args.reason, location=args.location, contact=args.contact)

    failed = 0
    for file_str in args.files:
        pdf_path = Path(file_str)
        out = Path(args.output) if args.output else default_output_path(pdf_path)
        if not _sign_one(pdf_path, out, identity, options):
            failed += 1

    total = len(args.files)
    if total > 1:
        print(f"\n{total - failed} of {total} file(s) signed.")
    if failed:
        sys.exit(1)
