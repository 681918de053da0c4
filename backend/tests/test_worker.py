"""Tests for policyvault.ingestion.worker — isolated ingestion processes.

These tests start real child processes, so they exercise the pickling of
requests and replies across the process boundary.
"""

from __future__ import annotations

import io
import os
from multiprocessing.connection import Connection

import openpyxl
import pytest

from policyvault.errors import IngestionError, UnsupportedFormatError
from policyvault.ingestion.records import AgentRecord, WorkerReply
from policyvault.ingestion.worker import (
    IngestionWorker,
    build_reply,
    extract_extension,
    ingest_buffer,
)

CSV_BYTES = b"firstname,agent,policy_number\nAlice,Bob,P100\n"


# Child entry points used to simulate misbehaving workers. They live at
# module level so the spawn start method can import them.

def _crashing_target(conn: Connection, file_buffer: bytes, original_filename: str) -> None:
    os._exit(3)


def _silent_target(conn: Connection, file_buffer: bytes, original_filename: str) -> None:
    conn.close()


def _reply_then_fail_target(conn: Connection, file_buffer: bytes, original_filename: str) -> None:
    conn.send(build_reply(file_buffer, original_filename))
    conn.close()
    os._exit(2)


def _hanging_target(conn: Connection, file_buffer: bytes, original_filename: str) -> None:
    import time

    time.sleep(60)


class TestExtractExtension:

    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("data.csv", "csv"),
            ("DATA.CSV", "csv"),
            ("archive.tar.xlsx", "xlsx"),
            ("noextension", ""),
            ("trailingdot.", ""),
        ],
    )
    def test_extract_extension(self, filename: str, expected: str):
        assert extract_extension(filename) == expected


class TestBuildReply:
    """build_reply tags every outcome; it never raises."""

    def test_success_reply(self):
        reply = build_reply(CSV_BYTES, "upload.csv")
        assert reply.ok is True
        assert reply.batches is not None
        assert reply.batches.agents == [AgentRecord(agent_name="Bob")]

    def test_unsupported_format_reply(self):
        reply = build_reply(b"hello", "notes.txt")
        assert reply.ok is False
        assert reply.error_kind == "unsupported_format"
        assert reply.extension == "txt"

    def test_parse_failure_reply(self):
        reply = build_reply(b"not a zip", "broken.xlsx")
        assert reply.ok is False
        assert reply.error_kind == "ingestion"
        assert reply.batches is None

    def test_zero_rows_is_success_not_failure(self):
        reply = build_reply(b"", "empty.csv")
        assert reply.ok is True
        assert reply.batches is not None
        assert reply.batches.row_count == 0

    def test_ingest_buffer_runs_in_process(self):
        batches = ingest_buffer(CSV_BYTES, "upload.CSV")
        assert batches.users[0].first_name == "Alice"
        assert batches.policy_infos[0].policy_number == "P100"


class TestIngestionWorkerProcess:
    """IngestionWorker.run crosses a real process boundary."""

    @pytest.mark.asyncio
    async def test_csv_success(self):
        worker = IngestionWorker()
        batches = await worker.run(CSV_BYTES, "upload.csv")
        assert batches.row_count == 1
        assert batches.users[0].first_name == "Alice"
        assert batches.agents[0].agent_name == "Bob"
        assert batches.policy_infos[0].policy_number == "P100"

    @pytest.mark.asyncio
    async def test_xlsx_success(self):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.append(["firstname", "dob"])
        ws.append(["Alice", "1990-05-17"])
        buf = io.BytesIO()
        wb.save(buf)

        batches = await IngestionWorker().run(buf.getvalue(), "upload.xlsx")
        assert batches.users[0].date_of_birth == "1990-05-17"

    @pytest.mark.asyncio
    async def test_unsupported_format(self):
        with pytest.raises(UnsupportedFormatError) as exc_info:
            await IngestionWorker().run(b"hello", "notes.txt")
        assert exc_info.value.extension == "txt"

    @pytest.mark.asyncio
    async def test_malformed_spreadsheet_is_ingestion_error(self):
        with pytest.raises(IngestionError) as exc_info:
            await IngestionWorker().run(b"\x00\x01garbage", "broken.xlsx")
        assert not isinstance(exc_info.value, UnsupportedFormatError)

    @pytest.mark.asyncio
    async def test_crash_is_ingestion_error_and_caller_survives(self):
        crashing = IngestionWorker(target=_crashing_target)
        with pytest.raises(IngestionError):
            await crashing.run(CSV_BYTES, "upload.csv")

        # The caller keeps serving requests after a worker crash
        batches = await IngestionWorker().run(CSV_BYTES, "upload.csv")
        assert batches.row_count == 1

    @pytest.mark.asyncio
    async def test_exit_without_reply_is_ingestion_error(self):
        with pytest.raises(IngestionError):
            await IngestionWorker(target=_silent_target).run(CSV_BYTES, "upload.csv")

    @pytest.mark.asyncio
    async def test_nonzero_exit_after_reply_is_ingestion_error(self):
        with pytest.raises(IngestionError, match="exit code 2"):
            await IngestionWorker(target=_reply_then_fail_target).run(CSV_BYTES, "upload.csv")

    @pytest.mark.asyncio
    async def test_timeout_terminates_worker(self):
        worker = IngestionWorker(target=_hanging_target, timeout=1.0)
        with pytest.raises(IngestionError, match="timed out"):
            await worker.run(CSV_BYTES, "upload.csv")

    @pytest.mark.asyncio
    async def test_fork_start_method(self):
        """A forked child started from the event loop exits cleanly."""
        worker = IngestionWorker(start_method="fork")
        batches = await worker.run(CSV_BYTES, "upload.csv")
        assert isinstance(batches.agents[0], AgentRecord)


def test_worker_reply_defaults():
    reply = WorkerReply(ok=False)
    assert reply.batches is None
    assert reply.error_kind is None
