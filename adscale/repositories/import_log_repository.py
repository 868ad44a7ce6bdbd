"""
Report import audit log
"""
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from adscale.models.report_import import ReportImportLog


class ReportImportLogRepository:

    def __init__(self, db: Session):
        self.db = db

    def start(self, ad_account_id: str, grain: str, time_range: Optional[str] = None) -> ReportImportLog:
        entry = ReportImportLog(
            ad_account_id=ad_account_id,
            grain=grain,
            time_range=time_range,
            status="running",
            started_at=datetime.utcnow(),
        )
        self.db.add(entry)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return entry

    def complete(
        self,
        entry: ReportImportLog,
        report_run_id: Optional[str],
        file_url: Optional[str],
        records_saved: int,
        errors_count: int,
    ) -> ReportImportLog:
        entry.report_run_id = report_run_id
        entry.file_url = file_url
        entry.records_saved = records_saved
        entry.errors_count = errors_count
        entry.status = "completed"
        entry.completed_at = datetime.utcnow()
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return entry

    def fail(self, entry: ReportImportLog, error_message: str, report_run_id: Optional[str] = None) -> ReportImportLog:
        # The failing operation may have left the session mid-transaction
        self.db.rollback()
        entry.report_run_id = report_run_id or entry.report_run_id
        entry.status = "failed"
        entry.error_message = error_message[:2000]
        entry.completed_at = datetime.utcnow()
        self.db.commit()
        return entry

    def latest(self, ad_account_id: str) -> Optional[ReportImportLog]:
        return (
            self.db.query(ReportImportLog)
            .filter(ReportImportLog.ad_account_id == ad_account_id)
            .order_by(ReportImportLog.started_at.desc())
            .first()
        )
