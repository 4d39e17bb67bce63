"""
Common CLI helper functions for pdfsigner.

File reading, atomic output, and size formatting shared by the
signing, verification and remote commands.
"""

from __future__ import annotations

import logging
import os
import sys
import tempfile
from pathlib import Path

__all__ = [
    "atomic_write",
    "configure_logging",
    "default_output_path",
    "format_size_kb",
    "safe_read_file",
]

_BYTES_PER_KB = 1024  # Local constant avoids importing BYTES_PER_MB for a KB conversion

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: int) -> None:
    """Send log records to stderr at ``level``."""
    logging.basicConfig(level=level, format=_LOG_FORMAT, stream=sys.stderr)


def format_size_kb(size_bytes: int) -> str:
    """Format a byte count as a human-readable KB string (e.g. '123.4 KB')."""
    return f"{size_bytes / _BYTES_PER_KB:.1f} KB"


def default_output_path(pdf_path: Path) -> Path:
    """Compute default output path for a signed PDF: '<stem>-signed.pdf'."""
    return pdf_path.with_name(f"{pdf_path.stem}-signed.pdf")


def safe_read_file(path: Path, kind: str = "file") -> bytes | None:
    """
    Read a file with uniform error handling.

    Args:
        path: Path to the file to read.
        kind: Descriptive name for error messages (e.g., "PDF", "signature").

    Returns:
        File contents as bytes, or None if the file doesn't exist or can't be read.
    """
    if not path.exists():
        print(f"Error: {kind} not found: {path}", file=sys.stderr)
        return None

    try:
        return path.read_bytes()
    except OSError as e:
        print(f"Error reading {kind}: {e}", file=sys.stderr)
        return None


def atomic_write(path: Path, data: bytes) -> None:
    """Write data to a file atomically using temp file + rename.

    A signed PDF is never left half-written if the process is interrupted.
    """
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        os.write(fd, data)
        os.fsync(fd)
        os.close(fd)
        fd = -1
        tmp.replace(path)
    except Exception:
        if fd >= 0:
            os.close(fd)
        tmp.unlink(missing_ok=True)
        raise
