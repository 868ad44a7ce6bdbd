"""
Scheduler wiring tests.

Guards against:
1. A pipeline job missing from the schedule
2. Manual runs of unknown jobs raising instead of reporting
3. The analysis job not running both ad set and campaign cycles
"""
import asyncio
from datetime import datetime, timedelta

from adscale.models.account_setting import AdAccountSetting
from adscale.models.ad_entity import AdAccount, AdSet
from adscale.repositories.performance_repository import SqlPerformanceRepository
from adscale.scheduler import SchedulerService
from adscale.services.record_mapper import PerformanceRecord


def _run(coro):
    return asyncio.run(coro)


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    async def notify(self, suggestions):
        self.calls.append(list(suggestions))


def test_all_jobs_registered():
    service = SchedulerService(notifier=RecordingNotifier())
    service.setup_jobs()

    jobs = {job["id"]: job for job in service.get_jobs()}

    assert set(jobs) == {"sync_entities", "sync_insights", "analyze_suggestions"}
    assert jobs["analyze_suggestions"]["name"] == "Analyze Suggestions"


def test_setup_jobs_is_idempotent():
    service = SchedulerService(notifier=RecordingNotifier())
    service.setup_jobs()
    service.setup_jobs()
    assert len(service.get_jobs()) == 3


def test_run_now_unknown_job():
    result = _run(SchedulerService(notifier=RecordingNotifier()).run_now("sync_everything"))
    assert not result["success"]
    assert "Unknown job" in result["error"]


def test_run_now_analyze_suggestions(db):
    now = datetime.utcnow()
    db.add(AdAccount(ad_account_id="act_123", name="Shop", currency="USD", is_active=True))
    db.add(AdAccountSetting(ad_account_id="act_123", ctr=0.02, scale_percent=20, init_scale_day=7))
    db.add(AdSet(adset_id="a1", ad_account_id="act_123", campaign_id="c1", status="ACTIVE",
                 daily_budget=100.0, start_time=now - timedelta(days=10)))
    db.commit()
    SqlPerformanceRepository(db).save_batch([PerformanceRecord(
        ad_account_id="act_123", account_id="123", campaign_id="c1", adset_id="a1",
        impressions=1000, ctr=0.03, imported_at=now,
    )])
    notifier = RecordingNotifier()
    service = SchedulerService(session_factory=lambda: db, notifier=notifier)

    result = _run(service.run_now("analyze_suggestions"))

    assert result["success"]
    assert result["result"]["adset"]["suggestions_created"] == 1
    assert result["result"]["campaign"]["suggestions_created"] == 0
    assert len(notifier.calls) == 1


def test_run_now_reports_job_failure():
    def broken_session():
        raise RuntimeError("database unavailable")

    service = SchedulerService(session_factory=broken_session, notifier=RecordingNotifier())
    result = _run(service.run_now("sync_insights"))

    assert not result["success"]
    assert result["error"] == "database unavailable"
