"""
Streaming report ingestion tests.

Guards against:
1. Batch sizes drifting from ceil(valid rows / batch size)
2. One bad row aborting the whole import
3. Quoted fields with embedded newlines being split into two rows
4. Multi-byte characters broken across chunk boundaries
5. Storage failures being silently swallowed
6. A stray or unterminated quote swallowing the rest of the report
"""
import asyncio

import pytest

from adscale.services.report_ingestion import (
    IngestionResult,
    ReportIngestionPipeline,
    validate_ingestion_result,
)

HEADER = "Account ID,Account name,Campaign ID,Campaign name,Ad Set ID,Ad set name,Impressions,Clicks,Amount spent (USD)\n"


def _run(coro):
    return asyncio.run(coro)


async def _chunks(data: bytes, size: int):
    for i in range(0, len(data), size):
        yield data[i:i + size]


def _csv(valid: int, bad_every: int = 0) -> bytes:
    lines = [HEADER]
    for i in range(valid):
        if bad_every and i % bad_every == 0:
            # No ad set id
            lines.append(f"123,Shop,c1,Spring,,Broken {i},10,1,1.00\n")
        lines.append(f"123,Shop,c1,Spring,a{i},Ad set {i},{1000 + i},{10 + i},{5.5 + i}\n")
    return "".join(lines).encode("utf-8")


class RecordingSink:
    def __init__(self):
        self.batches = []

    def save_batch(self, records):
        self.batches.append(list(records))
        return {"created": len(records), "updated": 0}


class AsyncRecordingSink(RecordingSink):
    async def save_batch(self, records):
        await asyncio.sleep(0)
        return super().save_batch(records)


class FailingSink:
    def save_batch(self, records):
        raise RuntimeError("database is locked")


# ---------------------------------------------------------------------------
# Batching
# ---------------------------------------------------------------------------

def test_batches_are_full_except_last():
    sink = RecordingSink()
    pipeline = ReportIngestionPipeline(sink, "act_123", batch_size=3)

    result = _run(pipeline.ingest(_chunks(_csv(10), 7)))

    assert [len(b) for b in sink.batches] == [3, 3, 3, 1]
    assert result.records_saved == 10
    assert result.batches == 4
    assert result.errors_count == 0


def test_bad_rows_counted_and_skipped():
    sink = RecordingSink()
    pipeline = ReportIngestionPipeline(sink, "act_123", batch_size=4)

    result = _run(pipeline.ingest(_chunks(_csv(10, bad_every=4), 16)))

    # rows 0, 4 and 8 each get a broken sibling
    assert result.errors_count == 3
    assert result.records_saved == 10
    assert result.rows_read == 13
    assert result.batches == 3
    assert len(result.sample_errors) == 3
    assert all(len(b) <= 4 for b in sink.batches)


def test_async_sink_is_awaited():
    sink = AsyncRecordingSink()
    pipeline = ReportIngestionPipeline(sink, "act_123", batch_size=5)

    result = _run(pipeline.ingest(_chunks(_csv(7), 64)))

    assert [len(b) for b in sink.batches] == [5, 2]
    assert result.records_saved == 7


def test_header_only_report_saves_nothing():
    sink = RecordingSink()
    result = _run(ReportIngestionPipeline(sink, "act_123").ingest(_chunks(HEADER.encode(), 5)))
    assert sink.batches == []
    assert result.records_saved == 0
    assert result.batches == 0


def test_sink_failure_propagates():
    pipeline = ReportIngestionPipeline(FailingSink(), "act_123", batch_size=2)
    with pytest.raises(RuntimeError):
        _run(pipeline.ingest(_chunks(_csv(3), 32)))


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        ReportIngestionPipeline(RecordingSink(), "act_123", batch_size=0)


# ---------------------------------------------------------------------------
# CSV parsing across chunks
# ---------------------------------------------------------------------------

def test_quoted_newline_stays_in_one_field():
    data = (
        HEADER
        + '123,Shop,c1,"Spring\nSale",a1,"Ad set, ""one""",1000,10,5\n'
        + "123,Shop,c1,Spring,a2,Two,2000,20,6\n"
    ).encode("utf-8")
    sink = RecordingSink()

    result = _run(ReportIngestionPipeline(sink, "act_123").ingest(_chunks(data, 3)))

    records = sink.batches[0]
    assert result.records_saved == 2
    assert records[0].campaign_name == "Spring\nSale"
    assert records[0].adset_name == 'Ad set, "one"'
    assert records[1].adset_id == "a2"


def test_multibyte_characters_split_across_chunks():
    data = (
        "\ufeff" + HEADER
        + "123,Cửa hàng,c1,Chiến dịch mùa xuân,a1,Nhóm quảng cáo,1000,10,150000\n"
    ).encode("utf-8")
    sink = RecordingSink()

    _run(ReportIngestionPipeline(sink, "act_123").ingest(_chunks(data, 1)))

    record = sink.batches[0][0]
    assert record.account_id == "123"
    assert record.campaign_name == "Chiến dịch mùa xuân"
    assert record.amount_spent == 150000


def test_crlf_line_endings_and_missing_final_newline():
    data = (HEADER.replace("\n", "\r\n") + "123,Shop,c1,Spring,a1,One,1000,10,5").encode("utf-8")
    sink = RecordingSink()

    result = _run(ReportIngestionPipeline(sink, "act_123").ingest(_chunks(data, 8)))

    assert result.records_saved == 1
    assert sink.batches[0][0].amount_spent == 5


def test_blank_lines_are_ignored():
    data = (HEADER + "\n123,Shop,c1,Spring,a1,One,1000,10,5\n\n").encode("utf-8")
    result = _run(ReportIngestionPipeline(RecordingSink(), "act_123").ingest(_chunks(data, 4)))
    assert result.records_saved == 1
    assert result.errors_count == 0


def test_stray_quote_inside_plain_field_is_literal():
    data = (
        HEADER
        + '123,Shop,c1,Spring,a0,Banner 5" wide,1000,10,5\n'
        + "".join(f"123,Shop,c1,Spring,a{i},Ad set {i},1000,10,5\n" for i in range(1, 6))
    ).encode("utf-8")
    sink = RecordingSink()

    result = _run(ReportIngestionPipeline(sink, "act_123", batch_size=2).ingest(_chunks(data, 9)))

    assert result.records_saved == 6
    assert result.errors_count == 0
    assert sink.batches[0][0].adset_name == 'Banner 5" wide'


def test_unterminated_quote_costs_one_row():
    data = (
        HEADER
        + '123,Shop,c1,Spring,a0,"Banner 5 wide,1000,10,5\n'
        + "".join(f"123,Shop,c1,Spring,a{i},Ad set {i},1000,10,5\n" for i in range(1, 6))
    ).encode("utf-8")
    sink = RecordingSink()

    result = _run(ReportIngestionPipeline(sink, "act_123", batch_size=2).ingest(_chunks(data, 9)))

    assert result.records_saved == 5
    assert result.errors_count == 1
    assert [r.adset_id for b in sink.batches for r in b] == ["a1", "a2", "a3", "a4", "a5"]


def test_open_record_is_given_up_after_line_limit():
    data = (
        HEADER
        + '123,Shop,c1,Spring,a0,"Banner 5 wide,1000,10,5\n'
        + "".join(f"123,Shop,c1,Spring,a{i},Ad set {i},1000,10,5\n" for i in range(1, 8))
    ).encode("utf-8")
    sink = RecordingSink()
    pipeline = ReportIngestionPipeline(sink, "act_123", batch_size=2, max_record_lines=3)

    result = _run(pipeline.ingest(_chunks(data, 9)))

    assert result.records_saved == 7
    assert result.errors_count == 1
    assert [len(b) for b in sink.batches] == [2, 2, 2, 1]
    assert sink.batches[0][0].adset_id == "a1"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def test_validation_flags_error_heavy_import():
    warnings = validate_ingestion_result(IngestionResult(records_saved=1, errors_count=5, ad_account_ids={"123"}))
    assert len(warnings) == 1
    assert "errors" in warnings[0]


def test_validation_flags_mixed_accounts():
    warnings = validate_ingestion_result(IngestionResult(records_saved=10, ad_account_ids={"123", "456"}))
    assert any("2 ad accounts" in w for w in warnings)


def test_validation_clean_import():
    assert validate_ingestion_result(IngestionResult(records_saved=10, ad_account_ids={"123"})) == []
