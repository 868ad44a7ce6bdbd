"""
Report Sync Service

Imports ad set insights for each active ad account:

  1. start an async insights report on Meta
  2. poll until it completes (bounded; a report still running afterwards is
     a retryable failure, never a success)
  3. wait briefly for the export to become downloadable
  4. stream the CSV through the ingestion pipeline into storage
  5. record the import and stamp the account's last sync time

A failure for one account is logged, written to the import log and
reported in the summary; the remaining accounts are still synced.
"""
import asyncio
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from adscale.config import get_settings
from adscale.repositories.base import AdAccountInfo, AdAccountRepository, PerformanceRepository
from adscale.services.record_mapper import ReportGrain
from adscale.services.report_ingestion import ReportIngestionPipeline, validate_ingestion_result
from adscale.utils.logger import log
from adscale.utils.retry import is_retryable_error

settings = get_settings()


class ReportSyncService:

    def __init__(
        self,
        platform,
        performance: PerformanceRepository,
        accounts: AdAccountRepository,
        import_log=None,
        grain: Optional[ReportGrain] = None,
        batch_size: Optional[int] = None,
        ready_delay: Optional[float] = None,
        lookback_days: Optional[int] = None,
    ):
        self.platform = platform
        self.performance = performance
        self.accounts = accounts
        self.import_log = import_log
        self.grain = ReportGrain(grain or settings.report_grain)
        self.batch_size = batch_size or settings.report_batch_size
        self.ready_delay = settings.report_ready_delay_seconds if ready_delay is None else ready_delay
        self.lookback_days = lookback_days or settings.report_lookback_days

    async def sync_account(self, account: AdAccountInfo, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Import one ad account's report. Never raises."""
        now = now or datetime.utcnow()
        until = now.date()
        since = until - timedelta(days=self.lookback_days)
        time_range = f"{since.isoformat()}:{until.isoformat()}"
        start = time.time()
        report_run_id = None
        entry = None

        try:
            if self.import_log is not None:
                entry = self.import_log.start(account.ad_account_id, self.grain.value, time_range)

            log.info(f"Syncing insights for {account.ad_account_id} ({time_range}, {self.grain.value})")
            report_run_id = await self.platform.create_async_report(
                account.ad_account_id, since, until, grain=self.grain
            )
            await self.platform.poll_report_status(report_run_id)

            if self.ready_delay:
                await asyncio.sleep(self.ready_delay)

            file_url = self.platform.get_report_file_url(report_run_id)
            pipeline = ReportIngestionPipeline(
                self.performance,
                account.ad_account_id,
                batch_size=self.batch_size,
                grain=self.grain,
            )
            result = await pipeline.ingest(self.platform.stream_report(file_url))
            warnings = validate_ingestion_result(result)

            if entry is not None:
                self.import_log.complete(entry, report_run_id, file_url, result.records_saved, result.errors_count)
            self.accounts.mark_synced(account.ad_account_id, datetime.utcnow())

            log.info(
                f"Insights sync for {account.ad_account_id} completed: {result.records_saved} records "
                f"in {time.time() - start:.1f}s"
            )
            return {
                "success": True,
                "ad_account_id": account.ad_account_id,
                "report_run_id": report_run_id,
                "file_url": file_url,
                **result.to_dict(),
                "warnings": warnings,
                "duration_seconds": time.time() - start,
            }

        except Exception as e:
            log.error(f"Insights sync for {account.ad_account_id} failed: {e}")
            if entry is not None:
                try:
                    self.import_log.fail(entry, str(e), report_run_id=report_run_id)
                except Exception as log_error:
                    log.error(f"Could not record failed import for {account.ad_account_id}: {log_error}")
            return {
                "success": False,
                "ad_account_id": account.ad_account_id,
                "report_run_id": report_run_id,
                "error": str(e),
                "retryable": is_retryable_error(e),
                "duration_seconds": time.time() - start,
            }

    async def sync_all(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Import every active ad account in turn."""
        start = time.time()
        accounts = self.accounts.find_active()
        summary = {
            "success": True,
            "accounts_synced": 0,
            "records_saved": 0,
            "errors": [],
            "results": [],
        }

        for account in accounts:
            result = await self.sync_account(account, now=now)
            summary["results"].append(result)
            if result["success"]:
                summary["accounts_synced"] += 1
                summary["records_saved"] += result["records_saved"]
            else:
                summary["errors"].append(f"{account.ad_account_id}: {result['error']}")

        summary["success"] = not summary["errors"]
        summary["duration_seconds"] = time.time() - start
        log.info(
            f"Insights sync finished: {summary['accounts_synced']}/{len(accounts)} accounts, "
            f"{summary['records_saved']} records, {len(summary['errors'])} errors"
        )
        return summary
