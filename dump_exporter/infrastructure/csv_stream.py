"""
Incremental CSV tokenizer for dump files too large to hold in memory.

Bytes may arrive in chunks of any size; a chunk can end in the middle of a
multi-byte character, a field, or a quoted section. The parser keeps only
the unterminated tail between chunks, so memory is bounded by that tail plus
the current chunk regardless of file size.

Record boundaries are found before tokenizing, but the boundary scan tracks
quote parity: a newline inside a quoted field does not end the record. A
quoted record longer than `max_record_length` characters is taken to be an
unbalanced quote and is cut at its first newline, so a stray quote costs one
row instead of the rest of the file.
"""

import codecs
import itertools
import logging
import re
from pathlib import Path
from typing import Iterator, List, Optional

from ..application.domain import Record, RecordReader

from .row_estimator import DEFAULT_SAMPLE_COUNT, estimate_rows

DEFAULT_CHUNK_SIZE = 1024 * 1024
DEFAULT_MAX_RECORD_LENGTH = 1024 * 1024

_LINE_BREAKS = re.compile(r"[\r\n]+")

# Columns whose line breaks are flattened before records reach consumers.
_FLATTENED_COLUMNS = frozenset({"description"})


def tokenize(line: str) -> List[str]:
    """
    Splits one record into fields.

    Outside quotes a comma ends the field and a double quote opens a quoted
    section. Inside it commas and newlines are literal, a doubled quote
    yields one quote and a lone quote closes the section. An empty line has
    no fields at all.
    """
    if not line:
        return []
    if '"' not in line:
        return line.split(",")

    fields = []
    field = []
    in_quotes = False
    i = 0
    length = len(line)
    while i < length:
        char = line[i]
        if in_quotes:
            if char == '"':
                if i + 1 < length and line[i + 1] == '"':
                    field.append('"')
                    i += 2
                    continue
                in_quotes = False
            else:
                field.append(char)
        elif char == ",":
            fields.append("".join(field))
            field = []
        elif char == '"':
            in_quotes = True
        else:
            field.append(char)
        i += 1
    fields.append("".join(field))
    return fields


class StreamingCsvParser:
    """
    Turns a stream of byte chunks into header-mapped records.

    The first record is taken as the header. Every later record is zipped
    with it: missing trailing fields become empty strings and surplus fields
    are dropped. Values are never coerced.

    Usage:
        parser = StreamingCsvParser()
        for chunk in chunks:
            for record in parser.feed(chunk):
                ...
        for record in parser.close():
            ...
    """

    def __init__(self, max_record_length: int = DEFAULT_MAX_RECORD_LENGTH):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.max_record_length = max_record_length
        self._decoder = codecs.getincrementaldecoder("utf-8-sig")(
            errors="replace"
        )
        self._buffer = ""
        # Where the next newline search starts, and the quote parity of
        # everything in the buffer before that point.
        self._scan_pos = 0
        self._in_quotes = False
        self.header: Optional[List[str]] = None

    def feed(self, chunk: bytes) -> List[Record]:
        """Consumes a chunk and returns the records it completed."""
        self._buffer += self._decoder.decode(chunk)
        return self._drain()

    def close(self) -> List[Record]:
        """Flushes the final, possibly unterminated, record."""
        self._buffer += self._decoder.decode(b"", final=True)
        records = self._drain()
        tail, self._buffer = self._buffer, ""
        self._scan_pos = 0
        self._in_quotes = False
        record = self._to_record(tail)
        if record is not None:
            records.append(record)
        return records

    def _drain(self) -> List[Record]:
        """Extracts every complete record and keeps the remainder."""
        records = []
        buffer = self._buffer
        start = 0
        pos = self._scan_pos
        in_quotes = self._in_quotes

        while True:
            newline = buffer.find("\n", pos)
            end = len(buffer) if newline == -1 else newline
            if buffer.count('"', pos, end) % 2:
                in_quotes = not in_quotes
            pos = end if newline == -1 else newline + 1

            if in_quotes and pos - start > self.max_record_length:
                cut = buffer.find("\n", start, pos)
                if cut != -1:
                    self.logger.warning(
                        f"Unbalanced quote in a record longer than "
                        f"{self.max_record_length} characters; "
                        f"cutting it at the end of its first line"
                    )
                    record = self._to_record(buffer[start:cut])
                    if record is not None:
                        records.append(record)
                    start = pos = cut + 1
                    in_quotes = False
                    continue

            if newline == -1:
                break
            if not in_quotes:
                record = self._to_record(buffer[start:newline])
                if record is not None:
                    records.append(record)
                start = pos

        self._buffer = buffer[start:]
        self._scan_pos = pos - start
        self._in_quotes = in_quotes
        return records

    def _to_record(self, line: str) -> Optional[Record]:
        """Tokenizes a line and maps it onto the header."""
        if line.endswith("\r"):
            line = line[:-1]
        fields = tokenize(line)
        if not fields:
            return None
        if self.header is None:
            self.header = fields
            return None

        record = {}
        values = itertools.islice(fields, len(self.header))
        for column, value in itertools.zip_longest(
            self.header, values, fillvalue=""
        ):
            if column in _FLATTENED_COLUMNS:
                value = _LINE_BREAKS.sub(" ", value)
            record[column] = value
        return record


def iter_records(
    path: Path,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_record_length: int = DEFAULT_MAX_RECORD_LENGTH,
) -> Iterator[Record]:
    """Lazily yields the records of a CSV file, reading it chunk by chunk."""
    parser = StreamingCsvParser(max_record_length)
    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            yield from parser.feed(chunk)
    yield from parser.close()


class CsvRecordReader(RecordReader):
    """An adapter that implements the RecordReader port for dump CSVs."""

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        sample_count: int = DEFAULT_SAMPLE_COUNT,
        max_record_length: int = DEFAULT_MAX_RECORD_LENGTH,
    ):
        """Initializes the reader."""
        self.chunk_size = chunk_size
        self.sample_count = sample_count
        self.max_record_length = max_record_length

    def estimate_rows(self, path: Path) -> int:
        return estimate_rows(path, self.sample_count)

    def records(self, path: Path) -> Iterator[Record]:
        return iter_records(path, self.chunk_size, self.max_record_length)
