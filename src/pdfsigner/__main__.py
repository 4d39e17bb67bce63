"""
Entry point for `python -m pdfsigner`.

Usage:
    python -m pdfsigner sign document.pdf
    python -m pdfsigner check document-signed.pdf
    python -m pdfsigner serve --port 3000
"""

from .ui.cli import main

main()
