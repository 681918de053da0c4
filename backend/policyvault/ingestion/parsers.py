"""Format parsers for uploaded CSV and XLSX buffers.

Provides parse_buffer() as the single entry point. Implementations:
- CSV: CSVRowParser, a push parser fed byte chunks. Encoding detection via
  chardet with BOM handling, delimiter sniffing, quote-aware record
  boundaries so rows are emitted as soon as they are complete.
- XLSX: openpyxl in read-only mode, first worksheet, first row as headers.

Any other extension is rejected before a byte is parsed.
"""

from __future__ import annotations

import codecs
import csv
import io
import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

import chardet
import openpyxl

from policyvault.errors import UnsupportedFormatError

logger = logging.getLogger(__name__)

RawRow = dict[str, Any]

SUPPORTED_TYPES = {"csv", "xlsx"}

# Bytes handed to chardet when detecting the encoding of the first chunk.
_DETECT_SAMPLE_SIZE = 64 * 1024

# One physical line including its terminator, or a trailing unterminated line.
_LINE_RE = re.compile(r"[^\r\n]*(?:\r\n|\r|\n)|[^\r\n]+")


@dataclass
class ParseResult:
    """Result of parsing an uploaded buffer.

    Attributes:
        rows: List of column:value dicts (one per data row).
        column_names: Ordered list of header names.
        warnings: Irregularities tolerated during parsing.
        file_type: The format that was parsed (csv/xlsx).
    """

    rows: list[RawRow]
    column_names: list[str]
    warnings: list[str] = field(default_factory=list)
    file_type: str = ""

    @property
    def row_count(self) -> int:
        return len(self.rows)


def normalize_extension(extension: str) -> str:
    """Lower-case an extension and drop a leading dot."""
    return extension.strip().lower().lstrip(".")


def parse_buffer(buffer: bytes, extension: str) -> ParseResult:
    """Parse an uploaded buffer according to its declared extension.

    Args:
        buffer: Raw file contents.
        extension: File extension, case-insensitive, with or without a dot.

    Returns:
        ParseResult with rows, column_names and warnings. An empty buffer
        yields an empty result for either format.

    Raises:
        UnsupportedFormatError: If the extension is not csv or xlsx.
    """
    file_type = normalize_extension(extension)

    if file_type not in SUPPORTED_TYPES:
        raise UnsupportedFormatError(file_type)

    if not buffer:
        return ParseResult(rows=[], column_names=[], file_type=file_type)

    if file_type == "csv":
        return _parse_csv(buffer)
    return _parse_xlsx(buffer)


# ---------------------------------------------------------------------------
# CSV Parser
# ---------------------------------------------------------------------------


def _detect_encoding(raw_bytes: bytes) -> str:
    """Detect the encoding of raw bytes using chardet.

    Returns a safe encoding string. Falls back to 'utf-8' if detection fails.
    """
    if raw_bytes[:3] == b"\xef\xbb\xbf":
        return "utf-8-sig"

    result = chardet.detect(raw_bytes[:_DETECT_SAMPLE_SIZE])
    encoding = result.get("encoding")
    if encoding is None:
        return "utf-8"
    enc_lower = encoding.lower()
    if enc_lower in ("ascii", "utf-8", "utf8"):
        return "utf-8"
    try:
        codecs.lookup(encoding)
    except LookupError:
        return "utf-8"
    return encoding


_CANDIDATE_DELIMITERS = ",;\t|"


def _sniff_delimiter(sample: str) -> str:
    try:
        return csv.Sniffer().sniff(sample, delimiters=_CANDIDATE_DELIMITERS).delimiter
    except csv.Error:
        return ","


def _ends_inside_quotes(record: str, delimiters: str) -> bool:
    """Whether a record stops inside a quoted field, using csv quoting rules.

    A quote opens a quoted field only at the start of a field; anywhere
    else it is a literal character. Inside a quoted field a doubled quote
    is an escaped quote.
    """
    in_quotes = False
    field_start = True
    i = 0
    while i < len(record):
        ch = record[i]
        if in_quotes:
            if ch == '"':
                if record.startswith('""', i):
                    i += 2
                    continue
                in_quotes = False
        elif ch == '"' and field_start:
            in_quotes = True
            field_start = False
        else:
            field_start = ch in delimiters or ch in "\r\n"
        i += 1
    return in_quotes


class CSVRowParser:
    """Incremental CSV parser.

    Feed byte chunks with feed(); each call returns the rows completed by
    that chunk. Call close() once the input is exhausted to flush a final
    unterminated row. The first record is the header.

    Usage:
        parser = CSVRowParser()
        for chunk in chunks:
            rows.extend(parser.feed(chunk))
        rows.extend(parser.close())
    """

    def __init__(self, delimiter: str | None = None) -> None:
        self._delimiter = delimiter
        self._decoder: codecs.IncrementalDecoder | None = None
        self._pending_line = ""
        self._record = ""
        self._line_number = 0
        self._record_start = 1
        self._closed = False
        self.fieldnames: list[str] | None = None
        self.warnings: list[str] = []

    @property
    def delimiter(self) -> str | None:
        return self._delimiter

    def feed(self, chunk: bytes) -> list[RawRow]:
        """Decode a chunk and return every row it completes."""
        if self._closed:
            raise ValueError("CSVRowParser is closed")
        if not chunk:
            return []
        if self._decoder is None:
            encoding = _detect_encoding(chunk)
            self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        return self._consume(self._decoder.decode(chunk), final=False)

    def close(self) -> list[RawRow]:
        """Flush buffered input and return the remaining rows."""
        if self._closed:
            return []
        self._closed = True
        tail = self._decoder.decode(b"", final=True) if self._decoder else ""
        return self._consume(tail, final=True)

    def _consume(self, text: str, final: bool) -> list[RawRow]:
        lines = _LINE_RE.findall(self._pending_line + text)
        self._pending_line = ""
        if lines and not final and not lines[-1].endswith(("\n", "\r")):
            self._pending_line = lines.pop()

        rows: list[RawRow] = []
        for line in lines:
            self._line_number += 1
            if not self._record:
                self._record_start = self._line_number
            self._record += line
            # A quoted field spans lines
            if _ends_inside_quotes(self._record, self._delimiter or _CANDIDATE_DELIMITERS):
                continue
            row = self._emit_record()
            if row is not None:
                rows.append(row)

        if final and self._record:
            self.warnings.append(
                f"Line {self._record_start}: unterminated quoted field"
            )
            row = self._emit_record()
            if row is not None:
                rows.append(row)
        return rows

    def _emit_record(self) -> RawRow | None:
        record, self._record = self._record, ""
        # Blank lines carry no row
        if not record.strip():
            return None
        if self.fieldnames is None and self._delimiter is None:
            self._delimiter = _sniff_delimiter(record)
        values = next(csv.reader(io.StringIO(record), delimiter=self._delimiter), [])
        if not values:
            return None

        if self.fieldnames is None:
            self.fieldnames = [name.strip().lstrip("\ufeff") for name in values]
            return None

        if len(values) > len(self.fieldnames):
            self.warnings.append(
                f"Line {self._record_start}: has extra columns "
                f"(expected {len(self.fieldnames)} columns)"
            )
        elif len(values) < len(self.fieldnames):
            self.warnings.append(
                f"Line {self._record_start}: has fewer columns than header "
                f"(expected {len(self.fieldnames)})"
            )

        row: RawRow = {}
        for idx, name in enumerate(self.fieldnames):
            row[name] = values[idx] if idx < len(values) else None
        return row


def iter_csv_rows(chunks: Iterable[bytes], delimiter: str | None = None) -> Iterator[RawRow]:
    """Pull-style wrapper around CSVRowParser: yield rows as chunks arrive."""
    parser = CSVRowParser(delimiter=delimiter)
    for chunk in chunks:
        yield from parser.feed(chunk)
    yield from parser.close()


def _parse_csv(buffer: bytes) -> ParseResult:
    """Parse a CSV buffer by feeding it through CSVRowParser in one call."""
    parser = CSVRowParser()
    rows = parser.feed(buffer)
    rows.extend(parser.close())
    for warning in parser.warnings:
        logger.debug("csv: %s", warning)
    return ParseResult(
        rows=rows,
        column_names=parser.fieldnames or [],
        warnings=parser.warnings,
        file_type="csv",
    )


# ---------------------------------------------------------------------------
# XLSX Parser
# ---------------------------------------------------------------------------


def _parse_xlsx(buffer: bytes) -> ParseResult:
    """Parse an XLSX buffer using openpyxl in read-only mode.

    Only the first worksheet in declared order is read. Fully empty rows
    are skipped with a warning. Errors opening the workbook propagate.
    """
    wb = openpyxl.load_workbook(io.BytesIO(buffer), read_only=True, data_only=True)

    try:
        if not wb.worksheets:
            return ParseResult(rows=[], column_names=[], file_type="xlsx")

        ws = wb.worksheets[0]
        rows_iter = ws.iter_rows(values_only=True)

        try:
            header_row = next(rows_iter)
        except StopIteration:
            return ParseResult(rows=[], column_names=[], file_type="xlsx")

        column_names = [
            str(value).strip() if value is not None else f"column_{i}"
            for i, value in enumerate(header_row, start=1)
        ]

        rows: list[RawRow] = []
        warnings: list[str] = []

        for row_idx, values in enumerate(rows_iter, start=2):
            if all(v is None or (isinstance(v, str) and not v.strip()) for v in values):
                warnings.append(f"Row {row_idx}: empty row, skipped")
                continue

            row: RawRow = {}
            for idx, col_name in enumerate(column_names):
                row[col_name] = values[idx] if idx < len(values) else None
            rows.append(row)

        return ParseResult(
            rows=rows,
            column_names=column_names,
            warnings=warnings,
            file_type="xlsx",
        )
    finally:
        wb.close()
