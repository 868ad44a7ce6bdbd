"""
SQLAlchemy storage for imported ad set performance records
"""
from dataclasses import fields
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import desc, nullslast
from sqlalchemy.orm import Session

from adscale.config import get_settings
from adscale.models.performance import AdSetPerformance
from adscale.repositories.base import PerformanceRepository
from adscale.services.record_mapper import AGGREGATE_GRAIN_KEY, PerformanceRecord, ReportGrain
from adscale.utils.logger import log

settings = get_settings()

_RECORD_FIELDS = tuple(f.name for f in fields(PerformanceRecord))


def _to_record(row: AdSetPerformance) -> PerformanceRecord:
    return PerformanceRecord(**{name: getattr(row, name) for name in _RECORD_FIELDS})


class SqlPerformanceRepository(PerformanceRepository):
    """Idempotent upserts keyed by (ad_account_id, adset_id, grain_key)."""

    def __init__(self, db: Session, grain: Optional[ReportGrain] = None):
        self.db = db
        # Campaign roll-ups only read rows of the grain currently imported
        self.grain = ReportGrain(grain or settings.report_grain)

    def save_batch(self, records: Sequence[PerformanceRecord]) -> Dict[str, int]:
        counts = {"created": 0, "updated": 0}
        if not records:
            return counts

        # Later rows win when a report repeats a key
        by_key: Dict[Tuple[str, str, str], PerformanceRecord] = {}
        for record in records:
            by_key[(record.ad_account_id, record.adset_id, record.grain_key)] = record

        account_ids = {key[0] for key in by_key}
        adset_ids = {key[1] for key in by_key}
        existing_rows = (
            self.db.query(AdSetPerformance)
            .filter(AdSetPerformance.ad_account_id.in_(account_ids))
            .filter(AdSetPerformance.adset_id.in_(adset_ids))
            .all()
        )
        existing = {(r.ad_account_id, r.adset_id, r.grain_key): r for r in existing_rows}

        try:
            for key, record in by_key.items():
                values = record.to_dict()
                row = existing.get(key)
                if row:
                    for k, v in values.items():
                        setattr(row, k, v)
                    counts["updated"] += 1
                else:
                    self.db.add(AdSetPerformance(**values))
                    counts["created"] += 1
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        log.debug(f"Performance batch saved: {counts['created']} created, {counts['updated']} updated")
        return counts

    def _adset_query(self, ad_account_id: str, adset_id: str):
        return (
            self.db.query(AdSetPerformance)
            .filter(AdSetPerformance.ad_account_id == ad_account_id)
            .filter(AdSetPerformance.adset_id == adset_id)
        )

    def find_latest_by_adset(self, ad_account_id: str, adset_id: str) -> Optional[PerformanceRecord]:
        row = (
            self._adset_query(ad_account_id, adset_id)
            .order_by(nullslast(desc(AdSetPerformance.date_start)), desc(AdSetPerformance.imported_at))
            .first()
        )
        return _to_record(row) if row else None

    def find_all_by_adset(self, ad_account_id: str, adset_id: str) -> List[PerformanceRecord]:
        rows = self._adset_query(ad_account_id, adset_id).order_by(desc(AdSetPerformance.date_start)).all()
        return [_to_record(r) for r in rows]

    def find_all_by_campaign(self, ad_account_id: str, campaign_id: str) -> List[PerformanceRecord]:
        query = (
            self.db.query(AdSetPerformance)
            .filter(AdSetPerformance.ad_account_id == ad_account_id)
            .filter(AdSetPerformance.campaign_id == campaign_id)
        )
        if self.grain == ReportGrain.DAILY:
            query = query.filter(AdSetPerformance.grain_key != AGGREGATE_GRAIN_KEY)
        else:
            query = query.filter(AdSetPerformance.grain_key == AGGREGATE_GRAIN_KEY)
        return [_to_record(r) for r in query.all()]
