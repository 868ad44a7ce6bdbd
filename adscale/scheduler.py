"""
Scheduler for the suggestion pipeline

Uses APScheduler to run, in order each night:
- entity sync:           ad account, ad set and campaign metadata
- insights sync:         async insight reports streamed into storage
- suggestion analysis:   ad set and campaign cycles, Slack summary of new suggestions

SchedulerService owns the APScheduler instance and the named job handles;
build one at process start, call start(), and stop() on shutdown.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
import asyncio
import time
from typing import Any, Callable, Dict, Optional

from adscale.config import get_settings
from adscale.connectors.meta_ads import MetaAdsConnector
from adscale.models.base import SessionLocal, init_db
from adscale.repositories.entity_repository import SqlAdAccountRepository, SqlEntityRepository
from adscale.repositories.import_log_repository import ReportImportLogRepository
from adscale.repositories.performance_repository import SqlPerformanceRepository
from adscale.repositories.setting_repository import SqlThresholdConfigStore
from adscale.repositories.suggestion_repository import SqlSuggestionRepository
from adscale.services.entity_sync_service import EntitySyncService
from adscale.services.report_sync_service import ReportSyncService
from adscale.services.suggestion_lifecycle import SuggestionType
from adscale.services.suggestion_notifier import SlackSuggestionNotifier
from adscale.services.suggestion_pipeline import SuggestionPipeline
from adscale.utils.logger import log

settings = get_settings()


def build_suggestion_pipeline(db, notifier=None) -> SuggestionPipeline:
    return SuggestionPipeline(
        entities=SqlEntityRepository(db),
        configs=SqlThresholdConfigStore(db),
        performance=SqlPerformanceRepository(db),
        suggestions=SqlSuggestionRepository(db),
        notifier=notifier,
        link_base=settings.ads_manager_url,
    )


class SchedulerService:
    """Named pipeline jobs on an AsyncIOScheduler."""

    def __init__(
        self,
        session_factory: Callable = SessionLocal,
        platform_factory: Callable = MetaAdsConnector,
        notifier=None,
        timezone: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.platform_factory = platform_factory
        self.notifier = notifier if notifier is not None else SlackSuggestionNotifier()
        self.timezone = timezone or settings.scheduler_timezone
        self.scheduler = AsyncIOScheduler(timezone=self.timezone)
        self.jobs: Dict[str, Any] = {}
        self.job_functions: Dict[str, Callable] = {
            "sync_entities": self.sync_entities,
            "sync_insights": self.sync_insights,
            "analyze_suggestions": self.analyze_suggestions,
        }
        self.schedules: Dict[str, str] = {
            "sync_entities": settings.sync_entities_schedule,
            "sync_insights": settings.sync_insights_schedule,
            "analyze_suggestions": settings.analyze_suggestions_schedule,
        }

    # Jobs

    async def sync_entities(self) -> Dict[str, Any]:
        """Refresh ad account, ad set and campaign metadata"""
        start = time.time()
        db = self.session_factory()
        try:
            service = EntitySyncService(
                self.platform_factory(), SqlEntityRepository(db), SqlAdAccountRepository(db)
            )
            result = await service.sync_all()
            log.info(f"Entity sync finished in {time.time() - start:.1f}s: {result['accounts_synced']} accounts")
            return result
        finally:
            db.close()

    async def sync_insights(self) -> Dict[str, Any]:
        """Import insight reports for every active ad account"""
        db = self.session_factory()
        try:
            service = ReportSyncService(
                self.platform_factory(),
                SqlPerformanceRepository(db),
                SqlAdAccountRepository(db),
                import_log=ReportImportLogRepository(db),
            )
            return await service.sync_all()
        finally:
            db.close()

    async def analyze_suggestions(self) -> Dict[str, Any]:
        """Run the ad set and campaign analysis cycles"""
        db = self.session_factory()
        try:
            pipeline = build_suggestion_pipeline(db, notifier=self.notifier)
            results = {}
            for suggestion_type in (SuggestionType.ADSET, SuggestionType.CAMPAIGN):
                cycle = await pipeline.run(suggestion_type)
                results[suggestion_type.value] = cycle.to_dict()
            results["success"] = all(r["success"] for r in results.values())
            return results
        finally:
            db.close()

    # Lifecycle

    def setup_jobs(self):
        """Register every job with its cron trigger (idempotent)."""
        for name, func in self.job_functions.items():
            if name in self.jobs:
                continue
            self.jobs[name] = self.scheduler.add_job(
                func,
                trigger=CronTrigger.from_crontab(self.schedules[name], timezone=self.timezone),
                id=name,
                name=name.replace("_", " ").title(),
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )

    def start(self):
        """Start the scheduler (must be called with an event loop running)"""
        self.setup_jobs()
        self.scheduler.start()
        log.info(f"Scheduler started with jobs: {', '.join(self.jobs)}")

    def stop(self):
        """Stop the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self.jobs.clear()
        log.info("Scheduler stopped")

    async def run_now(self, job_name: str) -> Dict[str, Any]:
        """
        Run one job immediately, outside its schedule

        Returns:
            Dict with success and either the job result or an error
        """
        if job_name not in self.job_functions:
            return {
                "success": False,
                "error": f"Unknown job: {job_name}. Valid options: {', '.join(self.job_functions)}",
            }

        try:
            log.info(f"Manually triggering {job_name}...")
            result = await self.job_functions[job_name]()
            return {"success": True, "job": job_name, "result": result}
        except Exception as e:
            log.error(f"Error running {job_name}: {str(e)}")
            return {"success": False, "job": job_name, "error": str(e)}

    def get_jobs(self) -> list:
        """List registered jobs with their next run time"""
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            })
        return jobs


# CLI

async def _serve(service: SchedulerService):
    service.start()
    try:
        await asyncio.Event().wait()
    finally:
        service.stop()


if __name__ == "__main__":
    import sys

    if len(sys.argv) < 2:
        print("Usage: python -m adscale.scheduler <command> [job_name]")
        print("\nCommands:")
        print("  start          Start the scheduler")
        print("  run <job>      Run a job now")
        print("  list           List scheduled jobs")
        print("\nJobs:")
        print("  sync_entities, sync_insights, analyze_suggestions")
        sys.exit(1)

    init_db()
    service = SchedulerService()
    command = sys.argv[1]

    if command == "start":
        print("Starting scheduler...")
        try:
            asyncio.run(_serve(service))
        except (KeyboardInterrupt, SystemExit):
            print("\nScheduler stopped")

    elif command == "run":
        if len(sys.argv) < 3:
            print("Error: Please specify a job name")
            sys.exit(1)
        result = asyncio.run(service.run_now(sys.argv[2]))
        if result["success"]:
            print(f"✓ {sys.argv[2]} finished: {result['result']}")
        else:
            print(f"✗ Error: {result['error']}")
            sys.exit(1)

    elif command == "list":
        service.setup_jobs()
        for job in service.get_jobs():
            print(f"\nID:       {job['id']}")
            print(f"Name:     {job['name']}")
            print(f"Trigger:  {job['trigger']}")

    else:
        print(f"Unknown command: {command}")
        sys.exit(1)
