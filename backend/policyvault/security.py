"""Data security utilities for PII handling.

Uploaded policy sheets carry personal data (dates of birth, addresses,
phone numbers). These utilities enforce restrictive file/directory
permissions and keep row contents out of log entries.
"""

import os
from pathlib import Path


def secure_directory(path: Path, mode: int = 0o700) -> None:
    """Create directory with restrictive permissions. Creates parent dirs if needed."""
    path.mkdir(parents=True, exist_ok=True)
    os.chmod(path, mode)


def secure_file(path: Path, mode: int = 0o600) -> None:
    """Set restrictive permissions on a file."""
    if path.exists():
        os.chmod(path, mode)


def sanitize_ingest_log(filename: str, row_count: int, duration_ms: float, success: bool) -> str:
    """Create a log entry for an ingestion request.

    Logs the file's base name, row count and timing but NOT any row
    content.
    """
    status = "OK" if success else "FAIL"
    base_name = Path(filename).name if filename else "<none>"
    return f"[ingest] {base_name} {status} rows={row_count} {duration_ms:.1f}ms"
