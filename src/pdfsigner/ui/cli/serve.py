"""``pdfsigner serve`` -- run the HTTP service with uvicorn."""

from __future__ import annotations

import dataclasses
import logging
import sys
from typing import TYPE_CHECKING

from ...config import load_settings
from ...core.identity import load_identity
from ...errors import PdfSignerError
from ..helpers import configure_logging

if TYPE_CHECKING:
    import argparse

_logger = logging.getLogger(__name__)


def cmd_serve(args: argparse.Namespace) -> None:
    """Load settings and identity, then serve until interrupted.

    The identity is loaded before uvicorn starts so a bad certificate or
    passphrase aborts start-up with a non-zero exit instead of a server
    that cannot sign.
    """
    import uvicorn

    from ...server import create_app

    if not args.verbose:
        configure_logging(logging.INFO)

    try:
        settings = load_settings()
        overrides = {k: v for k, v in (("host", args.host), ("port", args.port)) if v is not None}
        if overrides:
            settings = dataclasses.replace(settings, **overrides)
        identity = load_identity(settings)
    except PdfSignerError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    app = create_app(settings, identity)
    print(f"PDF Signing Server running on http://{settings.host}:{settings.port}")
    print("  GET  /health             - Health check")
    print("  POST /api/sign           - Sign PDF (multipart)")
    print("  POST /api/sign/base64    - Sign PDF (base64)")
    print("  GET  /api/cert/info      - Certificate info")
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")
