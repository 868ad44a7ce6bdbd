"""
Audit log of Meta insight report imports
"""
from sqlalchemy import Column, Integer, String, Text, DateTime
from datetime import datetime

from adscale.models.base import Base


class ReportImportLog(Base):
    """One async report sync for one ad account"""
    __tablename__ = "report_import_logs"

    id = Column(Integer, primary_key=True, index=True)
    ad_account_id = Column(String, nullable=False, index=True)
    report_run_id = Column(String, nullable=True)
    file_url = Column(String, nullable=True)
    grain = Column(String, nullable=False)
    time_range = Column(String, nullable=True)
    # "YYYY-MM-DD:YYYY-MM-DD"

    status = Column(String, nullable=False, default="running")
    # running | completed | failed
    records_saved = Column(Integer, default=0)
    errors_count = Column(Integer, default=0)
    error_message = Column(Text, nullable=True)

    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<ReportImportLog {self.ad_account_id} {self.report_run_id} [{self.status}]>"
