"""Isolated ingestion worker.

Each call to IngestionWorker.run() starts a fresh OS process that parses
and normalizes one uploaded buffer, then sends back exactly one
WorkerReply over a one-way pipe. Anything that goes wrong in the child,
including a hard crash, reaches the caller as an IngestionError (or
UnsupportedFormatError); the caller's process is never affected.
"""

from __future__ import annotations

import asyncio
import logging
import multiprocessing
from collections.abc import Callable
from multiprocessing.connection import Connection
from typing import Any

from policyvault.errors import IngestionError, UnsupportedFormatError
from policyvault.ingestion.normalizer import normalize_rows
from policyvault.ingestion.parsers import parse_buffer
from policyvault.ingestion.records import IngestionBatches, WorkerReply

logger = logging.getLogger(__name__)


def extract_extension(filename: str) -> str:
    """Return the lower-cased text after the final '.', or '' if there is none."""
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


def ingest_buffer(file_buffer: bytes, original_filename: str) -> IngestionBatches:
    """Parse and normalize a buffer in the current process."""
    result = parse_buffer(file_buffer, extract_extension(original_filename))
    for warning in result.warnings:
        logger.warning("%s: %s", original_filename, warning)
    return normalize_rows(result.rows)


def build_reply(file_buffer: bytes, original_filename: str) -> WorkerReply:
    """Run the pipeline and wrap its outcome in a tagged WorkerReply."""
    try:
        batches = ingest_buffer(file_buffer, original_filename)
    except UnsupportedFormatError as exc:
        return WorkerReply(
            ok=False,
            error_kind="unsupported_format",
            message=str(exc),
            extension=exc.extension,
        )
    except Exception as exc:
        logger.exception("Error processing %s in worker", original_filename)
        return WorkerReply(
            ok=False,
            error_kind="ingestion",
            message=f"{type(exc).__name__}: {exc}",
        )
    return WorkerReply(ok=True, batches=batches)


def worker_main(conn: Connection, file_buffer: bytes, original_filename: str) -> None:
    """Child-process entry point: send one reply and close the pipe."""
    try:
        conn.send(build_reply(file_buffer, original_filename))
    finally:
        conn.close()


class IngestionWorker:
    """Runs one ingestion per fresh child process.

    Args:
        start_method: multiprocessing start method ("spawn", "fork",
            "forkserver").
        timeout: Seconds to wait for the reply before terminating the
            child; None waits indefinitely.
        target: Child entry point, called as target(conn, buffer, filename).
    """

    def __init__(
        self,
        start_method: str = "spawn",
        timeout: float | None = None,
        target: Callable[[Connection, bytes, str], None] = worker_main,
    ) -> None:
        self._ctx = multiprocessing.get_context(start_method)
        self._timeout = timeout
        self._target = target

    async def run(self, file_buffer: bytes, original_filename: str) -> IngestionBatches:
        """Ingest a buffer in an isolated process and return its batches.

        Raises:
            UnsupportedFormatError: The extension is not csv or xlsx.
            IngestionError: The child failed, crashed, exited non-zero or
                timed out.
        """
        # Forked children of a thread-pool thread exit non-zero, so the
        # child is started here and only the blocking wait is offloaded.
        recv_conn, process = self._start(file_buffer, original_filename)
        reply = await asyncio.to_thread(self._wait, recv_conn, process, original_filename)

        if reply.ok and reply.batches is not None:
            return reply.batches
        if reply.error_kind == "unsupported_format":
            raise UnsupportedFormatError(reply.extension or "")
        raise IngestionError(reply.message or "Worker returned no result")

    def _start(self, file_buffer: bytes, original_filename: str) -> tuple[Connection, Any]:
        recv_conn, send_conn = self._ctx.Pipe(duplex=False)
        process = self._ctx.Process(
            target=self._target,
            args=(send_conn, file_buffer, original_filename),
            daemon=True,
        )
        try:
            process.start()
        except BaseException:
            recv_conn.close()
            raise
        finally:
            # The child owns the send end now; closing ours lets recv() see EOF
            send_conn.close()
        return recv_conn, process

    def _wait(self, recv_conn: Connection, process: Any, original_filename: str) -> WorkerReply:
        try:
            reply = self._receive(recv_conn, process)
        finally:
            recv_conn.close()
            process.join(timeout=self._timeout)
            if process.is_alive():
                process.kill()
                process.join()

        if process.exitcode != 0:
            logger.error(
                "Ingestion worker for %s exited with code %s",
                original_filename, process.exitcode,
            )
            raise IngestionError(f"Worker stopped with exit code {process.exitcode}")
        if not isinstance(reply, WorkerReply):
            raise IngestionError("Worker sent an unrecognized reply")
        return reply

    def _receive(self, conn: Connection, process: Any) -> Any:
        if not conn.poll(self._timeout):
            process.terminate()
            raise IngestionError(f"Worker timed out after {self._timeout}s")
        try:
            return conn.recv()
        except (EOFError, OSError):
            process.join()
            raise IngestionError(
                f"Worker stopped with exit code {process.exitcode} before replying"
            ) from None
        except Exception as exc:
            raise IngestionError(f"Unreadable worker reply: {exc}") from exc
