"""
Streaming ingestion of Meta insight reports.

The report is consumed as an async stream of byte chunks and never held in
memory as a whole. Rows are mapped one at a time and written to the storage
sink in fixed-size batches; the next chunk is not read until the pending
batch has been written, so at most one batch of records, one chunk of text
and one open record of up to MAX_RECORD_LINES lines are alive at any point.
"""
import codecs
import csv
import inspect
import io
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, Dict, Iterator, List, Optional, Set

from adscale.services.header_normalizer import normalize_headers
from adscale.services.record_mapper import REQUIRED_FIELDS, PerformanceRecord, ReportGrain, map_row
from adscale.utils.logger import log

DEFAULT_BATCH_SIZE = 1000
MAX_LOGGED_ERRORS = 3
MAX_RECORD_LINES = 50


@dataclass
class IngestionResult:
    """Outcome of one report stream."""
    records_saved: int = 0
    errors_count: int = 0
    rows_read: int = 0
    batches: int = 0
    duration_seconds: float = 0.0
    ad_account_ids: Set[str] = field(default_factory=set)
    # account_id values as reported inside the rows
    sample_errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "records_saved": self.records_saved,
            "errors_count": self.errors_count,
            "rows_read": self.rows_read,
            "batches": self.batches,
            "duration_seconds": round(self.duration_seconds, 2),
        }


# Field states while scanning a record
_START, _FIELD, _QUOTED, _QUOTE_IN_QUOTED = range(4)


def _scan(line: str, state: int) -> int:
    """Advance the field state over one line, the way csv.reader reads quotes."""
    for ch in line:
        if state == _QUOTED:
            if ch == '"':
                state = _QUOTE_IN_QUOTED
        elif state == _QUOTE_IN_QUOTED:
            if ch == '"':
                state = _QUOTED
            else:
                state = _START if ch == "," else _FIELD
        elif ch == ",":
            state = _START
        elif ch == '"' and state == _START:
            state = _QUOTED
        else:
            state = _FIELD
    return state


class _RecordSplitter:
    """Splits decoded text into complete CSV records.

    A record ends at a newline outside a quoted field. A quote only opens a
    field at the start of it, so a stray quote inside plain text is literal.
    A record still open after max_lines lines is given up: its first line is
    emitted alone (and rejected by the parser) and the rest are read again.
    """

    def __init__(self, max_lines: int = MAX_RECORD_LINES):
        if max_lines < 1:
            raise ValueError(f"max_lines must be positive, got {max_lines}")
        self.max_lines = max_lines
        self._tail = ""
        self._pending: List[str] = []
        self._state = _START

    def feed(self, text: str) -> Iterator[str]:
        self._tail += text
        *lines, self._tail = self._tail.split("\n")
        for line in lines:
            yield from self._push(line + "\n")

    def close(self) -> Iterator[str]:
        if self._tail:
            tail, self._tail = self._tail, ""
            yield from self._push(tail)
        # Unterminated quote at EOF
        while self._pending:
            yield from self._give_up()

    def _push(self, line: str) -> Iterator[str]:
        self._pending.append(line)
        self._state = _scan(line, self._state)
        if self._state != _QUOTED:
            record = "".join(self._pending)
            self._pending, self._state = [], _START
            yield record
        elif len(self._pending) >= self.max_lines:
            yield from self._give_up()

    def _give_up(self) -> Iterator[str]:
        first, *rest = self._pending
        self._pending, self._state = [], _START
        yield first
        for line in rest:
            yield from self._push(line)


def _parse_record(text: str) -> Optional[List[str]]:
    """Parse one CSV record; None for a blank line."""
    if not text.strip():
        return None
    reader = csv.reader(io.StringIO(text), strict=True)
    values = next(reader, None)
    if next(reader, None) is not None:
        raise csv.Error("record spans more than one row")
    return values


class ReportIngestionPipeline:
    """
    Streams one report into a storage sink.

    The sink only needs a save_batch(records) method; it may be a plain
    function or a coroutine function. A failing save_batch propagates, since
    a storage failure means the import as a whole did not happen.
    """

    def __init__(
        self,
        sink,
        ad_account_id: str,
        batch_size: int = DEFAULT_BATCH_SIZE,
        grain: ReportGrain = ReportGrain.AGGREGATE,
        encoding: str = "utf-8-sig",
        max_record_lines: int = MAX_RECORD_LINES,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.sink = sink
        self.ad_account_id = ad_account_id
        self.batch_size = batch_size
        self.grain = ReportGrain(grain)
        self.encoding = encoding
        self.max_record_lines = max_record_lines

    async def ingest(self, chunks: AsyncIterable[bytes]) -> IngestionResult:
        """Consume the stream to the end and return counts."""
        start = time.time()
        result = IngestionResult()
        decoder = codecs.getincrementaldecoder(self.encoding)(errors="replace")
        splitter = _RecordSplitter(self.max_record_lines)
        headers: Optional[List[str]] = None
        batch: List[PerformanceRecord] = []

        async for chunk in chunks:
            text = decoder.decode(chunk) if isinstance(chunk, (bytes, bytearray)) else chunk
            for record_text in splitter.feed(text):
                headers = self._handle(record_text, headers, batch, result)
                if len(batch) >= self.batch_size:
                    await self._flush(batch, result)

        for record_text in splitter.feed(decoder.decode(b"", final=True)):
            headers = self._handle(record_text, headers, batch, result)
            if len(batch) >= self.batch_size:
                await self._flush(batch, result)
        for record_text in splitter.close():
            headers = self._handle(record_text, headers, batch, result)
            if len(batch) >= self.batch_size:
                await self._flush(batch, result)

        if batch:
            await self._flush(batch, result)

        result.duration_seconds = time.time() - start
        log.info(
            f"Report ingestion for {self.ad_account_id}: {result.records_saved} saved, "
            f"{result.errors_count} errors, {result.batches} batches in {result.duration_seconds:.1f}s"
        )
        return result

    def _handle(
        self,
        record_text: str,
        headers: Optional[List[str]],
        batch: List[PerformanceRecord],
        result: IngestionResult,
    ) -> Optional[List[str]]:
        """Parse one record into the batch; returns the (possibly new) header."""
        if headers is None:
            try:
                values = _parse_record(record_text)
            except csv.Error as e:
                # Without a header nothing after it can be mapped
                raise ValueError(f"Unreadable report header: {e}") from e
            if values is None:
                return None
            headers = normalize_headers(values)
            missing = [key for key in REQUIRED_FIELDS if key not in headers]
            if missing:
                log.warning(f"Report for {self.ad_account_id} has no column for: {', '.join(missing)}")
            return headers

        try:
            values = _parse_record(record_text)
            if values is None:
                return headers
            result.rows_read += 1
            row: Dict[str, str] = {}
            for key, value in zip(headers, values):
                if key and key not in row:
                    row[key] = value
            record = map_row(row, self.ad_account_id, grain=self.grain)
        except Exception as e:
            result.errors_count += 1
            if result.errors_count <= MAX_LOGGED_ERRORS:
                message = f"Row {result.rows_read}: {e}"
                result.sample_errors.append(message)
                log.warning(f"Skipping report row for {self.ad_account_id}. {message}")
            return headers

        batch.append(record)
        result.ad_account_ids.add(record.account_id)
        return headers

    async def _flush(self, batch: List[PerformanceRecord], result: IngestionResult):
        records = list(batch)
        saved = self.sink.save_batch(records)
        if inspect.isawaitable(saved):
            await saved
        result.records_saved += len(records)
        result.batches += 1
        batch.clear()


def validate_ingestion_result(result: IngestionResult) -> List[str]:
    """Log and return warnings about a suspicious import."""
    warnings = []

    if result.errors_count > result.records_saved:
        warnings.append(
            f"More row errors ({result.errors_count}) than saved records ({result.records_saved})"
        )

    if len(result.ad_account_ids) > 1:
        warnings.append(
            f"Records span {len(result.ad_account_ids)} ad accounts: "
            f"{', '.join(sorted(result.ad_account_ids))}"
        )

    for warning in warnings:
        log.warning(f"Report validation: {warning}")

    return warnings
