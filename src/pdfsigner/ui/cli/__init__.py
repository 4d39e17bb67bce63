"""
Command-line interface for pdfsigner.

Argument parsing and dispatch. Command handlers live in the sibling
modules: ``sign``, ``verify`` (check/info), ``serve`` and ``remote``.
"""

from __future__ import annotations

import argparse
import logging
import sys

from ...constants import DEFAULT_PORT, DEFAULT_REMOTE_URL, __version__
from ..helpers import configure_logging
from .remote import cmd_remote
from .serve import cmd_serve
from .sign import cmd_sign
from .verify import cmd_check, cmd_info


def _add_metadata_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--reason", default=None, help="Signature reason (default: 'Document signed by server')"
    )
    parser.add_argument("--location", default=None, help="Signing location (default: 'Server')")
    parser.add_argument("--contact", default=None, help="Signer contact info (default: 'N/A')")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdfsigner",
        description="Sign PDF documents with a detached CMS signature.",
        epilog=(
            "Environment variables:\n"
            "  PDFSIGNER_CERT_PATH        PKCS#12 container (or PEM certificate with KEY_PATH)\n"
            "  PDFSIGNER_CERT_PASSPHRASE  Passphrase (alias: CERT_PASSPHRASE)\n"
            "  PDFSIGNER_KEY_PATH         PEM private key\n"
            "  PDFSIGNER_CHAIN_PATH       PEM chain certificates\n"
            "  PDFSIGNER_DIGEST           sha256 (default), sha384 or sha512\n"
            f"  PORT / PDFSIGNER_PORT      Server port (default: {DEFAULT_PORT})\n"
            f"  PDFSIGNER_URL              Remote service URL (default: {DEFAULT_REMOTE_URL})\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-V", "--version", action="version", version=f"pdfsigner {__version__}")
    parser.add_argument(
        "-v", "--verbose", action="store_true", default=False, help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command", help="Available commands")

    # sign
    p_sign = sub.add_parser("sign", help="Sign PDF document(s) with the local identity")
    p_sign.add_argument("files", nargs="+", help="PDF file(s) to sign")
    p_sign.add_argument("-o", "--output", help="Output file path (single file only)")
    _add_metadata_args(p_sign)
    p_sign.add_argument("--cert", default=None, help="PKCS#12 container, or PEM certificate with --key")
    p_sign.add_argument("--key", default=None, help="PEM private key")
    p_sign.add_argument(
        "--passphrase-env",
        default=None,
        metavar="VAR",
        help="Read the passphrase from this environment variable",
    )

    # check
    p_check = sub.add_parser("check", help="Check the embedded signatures of a PDF")
    p_check.add_argument("pdf", help="Signed PDF file")

    # info
    p_info = sub.add_parser("info", help="Show signature file details")
    p_info.add_argument("signature", help="CMS signature file (.p7s)")

    # serve
    p_serve = sub.add_parser("serve", help="Run the HTTP signing service")
    p_serve.add_argument("--host", default=None, help="Bind address (default: PDFSIGNER_HOST)")
    p_serve.add_argument("--port", type=int, default=None, help="Bind port (default: PORT)")

    # remote
    p_remote = sub.add_parser("remote", help="Use a running signing service")
    p_remote.add_argument("--url", default=None, help="Service URL (default: PDFSIGNER_URL)")
    remote_sub = p_remote.add_subparsers(dest="remote_command", required=True)
    remote_sub.add_parser("health", help="Check service health")
    remote_sub.add_parser("cert-info", help="Show the service's certificate info")
    p_rsign = remote_sub.add_parser("sign", help="Sign a PDF via the service")
    p_rsign.add_argument("file", help="PDF file to sign")
    p_rsign.add_argument("-o", "--output", help="Output file path")
    p_rsign.add_argument(
        "--base64", action="store_true", default=False, help="Use the base64 JSON endpoint"
    )
    _add_metadata_args(p_rsign)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        configure_logging(logging.DEBUG)
    elif args.command != "serve":
        configure_logging(logging.WARNING)

    if args.command == "sign":
        cmd_sign(args)
    elif args.command == "check":
        cmd_check(args)
    elif args.command == "info":
        cmd_info(args)
    elif args.command == "serve":
        cmd_serve(args)
    elif args.command == "remote":
        cmd_remote(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
