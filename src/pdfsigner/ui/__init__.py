"""User-facing entry points (command line)."""
