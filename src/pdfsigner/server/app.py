"""
HTTP service for pdfsigner.

A thin FastAPI layer over :func:`pdfsigner.core.signing.sign_pdf`: the
identity is loaded once in the lifespan, uploads are bounded, and the
CPU-bound pipeline runs in a worker thread so the event loop stays free.
"""

from __future__ import annotations

__all__ = ["create_app"]

import base64
import binascii
import logging
import re
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from ..config import ServerSettings, load_settings
from ..constants import __version__
from ..core.identity import SigningIdentity, load_identity
from ..core.signing import SignatureOptions, sign_pdf
from ..errors import InvalidDocument, PdfSignerError, PlaceholderOverflow

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

_logger = logging.getLogger(__name__)

_SIGN_ERROR = "Failed to sign PDF"
_UNSAFE_FILENAME_CHARS = re.compile(r'[^A-Za-z0-9._ -]')


class SignBase64Request(BaseModel):
    """Body of POST /api/sign/base64."""

    pdf: str | None = None
    reason: str | None = None
    location: str | None = None
    contact: str | None = None


def _status_for(exc: PdfSignerError) -> int:
    if isinstance(exc, InvalidDocument):
        return 400
    if isinstance(exc, PlaceholderOverflow):
        return 413
    return 500


def _error(status: int, error: str, details: str | None = None, kind: str | None = None) -> JSONResponse:
    content: dict[str, str] = {"error": error}
    if details is not None:
        content["details"] = details
    if kind is not None:
        content["kind"] = kind
    return JSONResponse(status_code=status, content=content)


def _download_name(filename: str | None) -> str:
    """``signed-<name>`` with header-unsafe characters replaced."""
    name = (filename or "document.pdf").rsplit("/", 1)[-1].rsplit("\\", 1)[-1]
    return "signed-" + _UNSAFE_FILENAME_CHARS.sub("_", name or "document.pdf")


def _is_pdf_upload(upload: UploadFile) -> bool:
    return upload.content_type == "application/pdf" or (upload.filename or "").lower().endswith(
        ".pdf"
    )


def create_app(
    settings: ServerSettings | None = None,
    identity: SigningIdentity | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Process settings (default: read from the environment).
        identity: Pre-loaded identity; when omitted the lifespan loads it
            from ``settings`` and a failure aborts start-up.
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if identity is not None:
            app.state.identity = identity
        else:
            try:
                app.state.identity = load_identity(settings)
            except PdfSignerError:
                _logger.exception("Failed to load signing identity from %s", settings.cert_path)
                raise
        _logger.info(
            "PDF Signing Server ready: %s", app.state.identity.certificate.subject.rfc4514_string()
        )
        yield
        _logger.info("PDF Signing Server shutting down")

    app = FastAPI(
        title="PDF Signing Server",
        description="Signs PDF documents with a detached CMS signature.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    @app.middleware("http")
    async def limit_body_size(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        length = request.headers.get("content-length")
        if length and length.isdigit() and int(length) > settings.max_upload:
            return _error(413, "Request body too large", f"Limit is {settings.max_upload} bytes")
        return await call_next(request)

    @app.exception_handler(PdfSignerError)
    async def _handle_signer_error(request: Request, exc: PdfSignerError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            _logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        else:
            _logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc)
        return _error(status, _SIGN_ERROR, str(exc), exc.kind)

    @app.exception_handler(RequestValidationError)
    async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(400, "Invalid request", str(exc.errors()))

    async def _sign(request: Request, pdf_bytes: bytes, options: SignatureOptions) -> bytes:
        return await run_in_threadpool(sign_pdf, pdf_bytes, request.app.state.identity, options)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "message": "PDF Signing Server is running"}

    @app.post("/api/sign", response_model=None)
    async def sign_upload(
        request: Request,
        pdf: UploadFile | None = File(None),  # noqa: B008 -- FastAPI dependency marker
        reason: str | None = Form(None),  # noqa: B008
        location: str | None = Form(None),  # noqa: B008
        contact: str | None = Form(None),  # noqa: B008
        reason_query: str | None = Query(None, alias="reason"),  # noqa: B008
        location_query: str | None = Query(None, alias="location"),  # noqa: B008
        contact_query: str | None = Query(None, alias="contact"),  # noqa: B008
    ) -> Response:
        if pdf is None:
            return _error(400, "No PDF file provided")
        if not _is_pdf_upload(pdf):
            return _error(400, "Only PDF files are allowed")

        pdf_bytes = await pdf.read()
        if len(pdf_bytes) > settings.max_upload:
            return _error(413, "Request body too large", f"Limit is {settings.max_upload} bytes")

        # Form fields win; query parameters are accepted for older clients.
        options = SignatureOptions(
            reason=reason or reason_query,
            location=location or location_query,
            contact=contact or contact_query,
        )
        signed = await _sign(request, pdf_bytes, options)
        _logger.info("Signed upload %r: %d -> %d bytes", pdf.filename, len(pdf_bytes), len(signed))
        return Response(
            content=signed,
            media_type="application/pdf",
            headers={
                "Content-Disposition": f'attachment; filename="{_download_name(pdf.filename)}"'
            },
        )

    @app.post("/api/sign/base64", response_model=None)
    async def sign_base64(request: Request, body: SignBase64Request) -> Response:
        if not body.pdf:
            return _error(400, "No PDF data provided")
        try:
            pdf_bytes = base64.b64decode(body.pdf, validate=True)
        except (binascii.Error, ValueError) as e:
            return _error(400, "Invalid base64 PDF data", str(e))

        options = SignatureOptions(reason=body.reason, location=body.location, contact=body.contact)
        signed = await _sign(request, pdf_bytes, options)
        _logger.info("Signed base64 PDF: %d -> %d bytes", len(pdf_bytes), len(signed))
        return JSONResponse({"signedPdf": base64.b64encode(signed).decode("ascii")})

    @app.get("/api/cert/info", response_model=None)
    async def cert_info(request: Request) -> dict[str, object]:
        info: dict[str, object] = dict(request.app.state.identity.info())
        info["message"] = "Certificate is loaded and ready for signing"
        return info

    return app
