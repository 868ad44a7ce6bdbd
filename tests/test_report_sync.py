"""
Insights report sync tests.

Guards against:
1. A report that never completes being imported as an empty success
2. One account's failure stopping the others from syncing
3. Import runs not recorded in the audit log
4. Account sync time stamped on a failed import
"""
import asyncio
from datetime import datetime

import pytest

from adscale.exceptions import ReportNotReadyError
from adscale.repositories.base import AdAccountInfo
from adscale.repositories.entity_repository import SqlAdAccountRepository
from adscale.repositories.import_log_repository import ReportImportLogRepository
from adscale.repositories.performance_repository import SqlPerformanceRepository
from adscale.services.record_mapper import ReportGrain
from adscale.services.report_sync_service import ReportSyncService

NOW = datetime(2024, 3, 10, 12, 0)

REPORT = (
    "Account ID,Campaign ID,Campaign name,Ad Set ID,Ad set name,Impressions,CTR (all),Amount spent (USD)\n"
    "123,c1,Spring,a1,One,1000,0.03,12.50\n"
    "123,c1,Spring,a2,Two,2000,0.01,20.00\n"
    "123,c1,Spring,,Broken,5,0.5,1.00\n"
).encode("utf-8")


def _run(coro):
    return asyncio.run(coro)


class FakePlatform:
    def __init__(self, not_ready=()):
        self.not_ready = set(not_ready)
        self.created = []

    async def create_async_report(self, ad_account_id, since, until, grain=ReportGrain.AGGREGATE):
        self.created.append((ad_account_id, since, until, ReportGrain(grain)))
        return f"run_{ad_account_id}"

    async def poll_report_status(self, report_run_id):
        account = report_run_id[len("run_"):]
        if account in self.not_ready:
            raise ReportNotReadyError(report_run_id, 3, 40)
        return {"async_status": "Job Completed"}

    def get_report_file_url(self, report_run_id):
        return f"https://export.example/{report_run_id}.csv"

    async def stream_report(self, file_url):
        for i in range(0, len(REPORT), 32):
            yield REPORT[i:i + 32]


def _service(db, platform):
    accounts = SqlAdAccountRepository(db)
    accounts.save(AdAccountInfo(ad_account_id="act_1", name="One", currency="USD"))
    accounts.save(AdAccountInfo(ad_account_id="act_2", name="Two", currency="USD"))
    service = ReportSyncService(
        platform,
        SqlPerformanceRepository(db),
        accounts,
        import_log=ReportImportLogRepository(db),
        grain=ReportGrain.AGGREGATE,
        batch_size=1,
        ready_delay=0,
        lookback_days=30,
    )
    return service, accounts


def test_sync_account_imports_report(db):
    platform = FakePlatform()
    service, accounts = _service(db, platform)

    result = _run(service.sync_account(AdAccountInfo(ad_account_id="act_1"), now=NOW))

    assert result["success"]
    assert result["records_saved"] == 2
    assert result["errors_count"] == 1
    assert result["file_url"] == "https://export.example/run_act_1.csv"
    assert platform.created[0][1].isoformat() == "2024-02-09"
    assert platform.created[0][2].isoformat() == "2024-03-10"

    latest = SqlPerformanceRepository(db).find_latest_by_adset("act_1", "a1")
    assert latest.ctr == pytest.approx(0.03)
    assert latest.amount_spent == pytest.approx(12.5)

    log_entry = ReportImportLogRepository(db).latest("act_1")
    assert log_entry.status == "completed"
    assert log_entry.records_saved == 2
    assert accounts.find_by_id("act_1").last_sync_at is not None


def test_report_not_ready_is_retryable_failure(db):
    service, accounts = _service(db, FakePlatform(not_ready={"act_1"}))

    result = _run(service.sync_account(AdAccountInfo(ad_account_id="act_1"), now=NOW))

    assert not result["success"]
    assert result["retryable"] is True
    assert "not ready" in result["error"]
    assert ReportImportLogRepository(db).latest("act_1").status == "failed"
    assert accounts.find_by_id("act_1").last_sync_at is None
    assert SqlPerformanceRepository(db).find_latest_by_adset("act_1", "a1") is None


def test_sync_all_continues_after_failure(db):
    service, _ = _service(db, FakePlatform(not_ready={"act_1"}))

    summary = _run(service.sync_all(now=NOW))

    assert not summary["success"]
    assert summary["accounts_synced"] == 1
    assert summary["records_saved"] == 2
    assert len(summary["errors"]) == 1
    assert summary["errors"][0].startswith("act_1:")
