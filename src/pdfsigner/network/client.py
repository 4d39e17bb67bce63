"""
HTTP client for a running pdfsigner service.

``urllib.request`` transport: multipart upload for ``/api/sign`` (body
encoded by httpx), JSON for ``/api/sign/base64``, GET for health and
certificate info. Response bodies are read with a size cap, and
HTTPS-to-HTTP redirects are refused.
"""

from __future__ import annotations

__all__ = ["SigningClient"]

import base64
import binascii
import json
import logging
import urllib.error
import urllib.request
from typing import TYPE_CHECKING, Protocol
from urllib.parse import urlparse

import httpx

from ..constants import BYTES_PER_MB, DEFAULT_REMOTE_TIMEOUT, MAX_RESPONSE_SIZE, RECV_BUFFER_SIZE
from ..errors import RemoteError

if TYPE_CHECKING:
    import http.client

_logger = logging.getLogger(__name__)


class _Readable(Protocol):
    def read(self, amt: int = ...) -> bytes: ...


def _read_with_limit(response: _Readable, url: str) -> bytes:
    """Read an HTTP response body with size limit to prevent memory exhaustion."""
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = response.read(RECV_BUFFER_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > MAX_RESPONSE_SIZE:
            raise RemoteError(
                f"Response from {url} exceeds {MAX_RESPONSE_SIZE // BYTES_PER_MB} MB limit"
            )
        chunks.append(chunk)
    return b"".join(chunks)


class _SafeRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Redirect handler that refuses HTTPS to HTTP downgrades."""

    def redirect_request(  # type: ignore[override]  # urllib stubs use incompatible signature
        self,
        req: urllib.request.Request,
        fp: http.client.HTTPResponse,
        code: int,
        msg: str,
        headers: http.client.HTTPMessage,
        newurl: str,
    ) -> urllib.request.Request | None:
        parsed_orig = urlparse(req.full_url)
        parsed_new = urlparse(newurl)
        if parsed_orig.scheme == "https" and parsed_new.scheme == "http":
            raise RemoteError(f"Refused redirect from HTTPS to HTTP: {newurl}")
        return super().redirect_request(req, fp, code, msg, headers, newurl)


_safe_opener = urllib.request.build_opener(_SafeRedirectHandler)


def _safe_urlopen(
    url_or_request: str | urllib.request.Request, *, timeout: int
) -> http.client.HTTPResponse:
    """Open a URL/Request with safe redirect handling. Thin wrapper to simplify testing."""
    return _safe_opener.open(url_or_request, timeout=timeout)


def _error_detail(body: bytes) -> str:
    """Best-effort message from a JSON error body."""
    try:
        payload = json.loads(body)
    except ValueError:
        return body.decode("utf-8", errors="replace")[:500]
    if isinstance(payload, dict):
        details = payload.get("details") or payload.get("detail") or payload.get("error")
        if details:
            return str(details)
    return str(payload)[:500]


def _encode_multipart(
    url: str, filename: str, pdf_bytes: bytes, fields: dict[str, str]
) -> tuple[bytes, str]:
    """Encode text fields plus the PDF as multipart/form-data; returns (body, content-type)."""
    request = httpx.Request(
        "POST", url, data=fields, files={"pdf": (filename, pdf_bytes, "application/pdf")}
    )
    return request.read(), request.headers["Content-Type"]


def _metadata(reason: str | None, location: str | None, contact: str | None) -> dict[str, str]:
    fields = {"reason": reason, "location": location, "contact": contact}
    return {k: v for k, v in fields.items() if v}


class SigningClient:
    """Client for the pdfsigner HTTP API.

    Args:
        base_url: Service root, e.g. ``http://localhost:3000``.
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, base_url: str, timeout: int = DEFAULT_REMOTE_TIMEOUT) -> None:
        scheme = urlparse(base_url).scheme.lower()
        if scheme not in ("http", "https"):
            raise RemoteError(f"Unsupported URL scheme {scheme!r} in {base_url}")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(
        self,
        method: str,
        path: str,
        body: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> tuple[bytes, str]:
        """Send a request; return (body, content-type) or raise RemoteError."""
        url = f"{self.base_url}{path}"
        _logger.debug("%s %s (timeout=%ds, %d bytes)", method, url, self.timeout, len(body or b""))
        req = urllib.request.Request(url, data=body, method=method)  # noqa: S310 -- scheme checked in __init__
        for k, v in (headers or {}).items():
            req.add_header(k, v)
        try:
            with _safe_urlopen(req, timeout=self.timeout) as response:
                data = _read_with_limit(response, url)
                content_type = response.headers.get("Content-Type", "")
        except urllib.error.HTTPError as exc:
            detail = _error_detail(exc.read())
            raise RemoteError(f"HTTP {exc.code} from {url}: {detail}", status=exc.code) from exc
        except urllib.error.URLError as exc:
            raise RemoteError(f"HTTP request failed: {url}: {exc.reason}") from exc
        except TimeoutError as exc:
            raise RemoteError(f"Connection timed out after {self.timeout}s: {url}") from exc
        _logger.debug("%s %s -> %d bytes", method, url, len(data))
        return data, content_type

    def _json(self, method: str, path: str, payload: dict[str, str] | None = None) -> dict[str, object]:
        body = None
        headers = {"Accept": "application/json"}
        if payload is not None:
            body = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        data, _ = self._request(method, path, body, headers)
        try:
            result = json.loads(data)
        except ValueError as exc:
            raise RemoteError(f"Invalid JSON from {path}: {exc}") from exc
        if not isinstance(result, dict):
            raise RemoteError(f"Unexpected JSON from {path}: {result!r}")
        return result

    def health(self) -> dict[str, object]:
        """GET /health."""
        return self._json("GET", "/health")

    def cert_info(self) -> dict[str, object]:
        """GET /api/cert/info."""
        return self._json("GET", "/api/cert/info")

    def sign_file(
        self,
        pdf_bytes: bytes,
        filename: str = "document.pdf",
        *,
        reason: str | None = None,
        location: str | None = None,
        contact: str | None = None,
    ) -> bytes:
        """POST /api/sign as a multipart upload; returns the signed PDF."""
        body, content_type = _encode_multipart(
            f"{self.base_url}/api/sign", filename, pdf_bytes, _metadata(reason, location, contact)
        )
        data, response_type = self._request(
            "POST", "/api/sign", body, {"Content-Type": content_type}
        )
        if not response_type.startswith("application/pdf"):
            raise RemoteError(f"Expected application/pdf, got {response_type or 'no content type'}")
        return data

    def sign_base64(
        self,
        pdf_bytes: bytes,
        *,
        reason: str | None = None,
        location: str | None = None,
        contact: str | None = None,
    ) -> bytes:
        """POST /api/sign/base64; returns the decoded signed PDF."""
        payload = {"pdf": base64.b64encode(pdf_bytes).decode("ascii")}
        payload.update(_metadata(reason, location, contact))
        result = self._json("POST", "/api/sign/base64", payload)
        signed = result.get("signedPdf")
        if not isinstance(signed, str):
            raise RemoteError("Response has no signedPdf field")
        try:
            return base64.b64decode(signed, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise RemoteError(f"signedPdf is not valid base64: {exc}") from exc
