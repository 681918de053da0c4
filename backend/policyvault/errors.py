"""Domain errors raised across ingestion, persistence and lookups.

Each error carries an ``error_code`` so API handlers and logs can tell
failure classes apart without inspecting messages.
"""

from __future__ import annotations


class PolicyVaultError(Exception):
    """Base class for all policyvault failures."""

    error_code = "POLICYVAULT_ERROR"


class NoFileError(PolicyVaultError):
    """Raised when an upload request carries no file."""

    error_code = "NO_FILE"


class IngestionError(PolicyVaultError):
    """Raised when the ingestion worker fails or terminates abnormally."""

    error_code = "INGESTION_ERROR"


class UnsupportedFormatError(IngestionError):
    """Raised for file extensions other than xlsx and csv."""

    error_code = "UNSUPPORTED_FORMAT"

    def __init__(self, extension: str) -> None:
        self.extension = extension
        super().__init__(
            f"Unsupported file type: '{extension}'. Supported types: csv, xlsx"
        )


class PersistenceError(PolicyVaultError):
    """Raised when a bulk insert into the record store fails.

    Collections written before the failure are not rolled back; they are
    listed in ``written`` so callers can report the partial write.
    """

    error_code = "PERSISTENCE_ERROR"

    def __init__(self, collection: str, written: list[str]) -> None:
        self.collection = collection
        self.written = list(written)
        super().__init__(
            f"Bulk insert into '{collection}' failed "
            f"(already written: {', '.join(written) or 'none'})"
        )


class NotFoundError(PolicyVaultError):
    """Raised when a lookup matches no stored entity."""

    error_code = "NOT_FOUND"


class InvalidScheduleError(PolicyVaultError):
    """Raised when a scheduled message's day/time cannot be parsed."""

    error_code = "INVALID_SCHEDULE"
