"""``pdfsigner remote`` -- talk to a running pdfsigner service."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from ...config import get_remote_config
from ...errors import PdfSignerError
from ...network import SigningClient
from ..helpers import atomic_write, default_output_path, format_size_kb, safe_read_file

if TYPE_CHECKING:
    import argparse


def _client(args: argparse.Namespace) -> SigningClient:
    url, timeout = get_remote_config()
    return SigningClient(args.url or url, timeout)


def _remote_sign(client: SigningClient, args: argparse.Namespace) -> None:
    pdf_path = Path(args.file)
    pdf_bytes = safe_read_file(pdf_path, "PDF")
    if pdf_bytes is None:
        sys.exit(1)

    out = Path(args.output) if args.output else default_output_path(pdf_path)
    meta = {"reason": args.reason, "location": args.location, "contact": args.contact}
    print(f"  Signing {pdf_path.name} via {client.base_url}...", end=" ", flush=True)
    if args.base64:
        signed = client.sign_base64(pdf_bytes, **meta)
    else:
        signed = client.sign_file(pdf_bytes, pdf_path.name, **meta)
    atomic_write(out, signed)
    print(f"OK -> {out.name} ({format_size_kb(len(signed))})")


def cmd_remote(args: argparse.Namespace) -> None:
    """Dispatch ``remote health|cert-info|sign``."""
    try:
        client = _client(args)
        if args.remote_command == "health":
            print(json.dumps(client.health(), indent=2))
        elif args.remote_command == "cert-info":
            print(json.dumps(client.cert_info(), indent=2))
        else:
            _remote_sign(client, args)
    except (PdfSignerError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
