"""Ingestion coordinator: upload in, six persisted batches out.

Dispatches one fresh IngestionWorker run per request, bounded by a
semaphore, and writes the resulting batches to the record store one
collection at a time.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Protocol

from policyvault.db.repositories import RecordStore
from policyvault.errors import IngestionError, NoFileError, PersistenceError
from policyvault.ingestion.records import IngestionBatches
from policyvault.security import sanitize_ingest_log

logger = logging.getLogger(__name__)


class Worker(Protocol):
    async def run(self, file_buffer: bytes, original_filename: str) -> IngestionBatches: ...


@dataclass
class IngestionSummary:
    """Outcome of a successful ingestion request."""

    filename: str
    row_count: int
    inserted: dict[str, int] = field(default_factory=dict)


class IngestionCoordinator:
    """Runs uploads through an isolated worker and persists the result.

    Args:
        store: Record store receiving the six batches.
        worker: Object whose async run() parses a buffer in isolation.
        max_concurrent: Upper bound on simultaneously running workers;
            further requests wait for a free slot.
    """

    def __init__(self, store: RecordStore, worker: Worker, max_concurrent: int = 4) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._store = store
        self._worker = worker
        self._slots = asyncio.Semaphore(max_concurrent)

    async def ingest(self, file_buffer: bytes | None, filename: str | None) -> IngestionSummary:
        """Ingest one uploaded file.

        Raises:
            NoFileError: No file was attached to the request.
            UnsupportedFormatError: The file is neither csv nor xlsx.
            IngestionError: The worker failed or terminated abnormally.
            PersistenceError: A bulk insert failed; earlier collections
                stay written.
        """
        if file_buffer is None or not filename:
            raise NoFileError("No file uploaded")

        started = time.monotonic()
        try:
            async with self._slots:
                batches = await self._worker.run(file_buffer, filename)
        except IngestionError:
            elapsed = (time.monotonic() - started) * 1000
            logger.warning(sanitize_ingest_log(filename, 0, elapsed, success=False))
            raise

        inserted = self._persist(batches)
        elapsed = (time.monotonic() - started) * 1000
        logger.info(sanitize_ingest_log(filename, batches.row_count, elapsed, success=True))
        return IngestionSummary(filename=filename, row_count=batches.row_count, inserted=inserted)

    def _persist(self, batches: IngestionBatches) -> dict[str, int]:
        inserted: dict[str, int] = {}
        for collection, records in batches.collections():
            try:
                inserted[collection] = self._store.insert_many(collection, records)
            except Exception as exc:
                logger.error("Bulk insert into %s failed: %s", collection, exc)
                raise PersistenceError(collection, list(inserted)) from exc
        return inserted
