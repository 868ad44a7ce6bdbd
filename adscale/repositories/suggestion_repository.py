"""
SQLAlchemy storage for scale suggestions
"""
from typing import List, Optional, Sequence

from sqlalchemy import desc
from sqlalchemy.orm import Session

from adscale.models.suggestion import Suggestion
from adscale.repositories.base import Page, SuggestionRepository
from adscale.services.suggestion_lifecycle import SuggestionData, SuggestionStatus, SuggestionType
from adscale.services.threshold_analyzer import QualifyingMetric

_COPIED_FIELDS = (
    "ad_account_id",
    "ad_account_name",
    "campaign_id",
    "campaign_name",
    "adset_id",
    "adset_name",
    "adset_link",
    "currency",
    "budget",
    "budget_after_scale",
    "scale_percent",
    "note",
    "metrics_exceeded_count",
    "recent_scale_at",
    "created_at",
    "updated_at",
)


def to_suggestion_data(row: Suggestion) -> SuggestionData:
    return SuggestionData(
        id=row.id,
        type=SuggestionType(row.type),
        status=SuggestionStatus(row.status),
        metrics=tuple(
            QualifyingMetric(metric_name=m["metric_name"], value=m["value"]) for m in (row.metrics or [])
        ),
        **{name: getattr(row, name) for name in _COPIED_FIELDS},
    )


def _apply(row: Suggestion, data: SuggestionData):
    row.type = SuggestionType(data.type).value
    row.status = SuggestionStatus(data.status).value
    row.metrics = [m.to_dict() for m in data.metrics]
    for name in _COPIED_FIELDS:
        value = getattr(data, name)
        if name in ("created_at", "updated_at") and value is None:
            continue
        setattr(row, name, value)


def _entity_column(suggestion_type: SuggestionType):
    if SuggestionType(suggestion_type) == SuggestionType.ADSET:
        return Suggestion.adset_id
    return Suggestion.campaign_id


class SqlSuggestionRepository(SuggestionRepository):

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, suggestion_id: int) -> Optional[SuggestionData]:
        row = self.db.query(Suggestion).filter(Suggestion.id == suggestion_id).first()
        return to_suggestion_data(row) if row else None

    def find_pending_by_entity(self, suggestion_type: SuggestionType, entity_id: str) -> List[SuggestionData]:
        rows = (
            self.db.query(Suggestion)
            .filter(Suggestion.type == SuggestionType(suggestion_type).value)
            .filter(_entity_column(suggestion_type) == entity_id)
            .filter(Suggestion.status == SuggestionStatus.PENDING.value)
            .order_by(desc(Suggestion.created_at), desc(Suggestion.id))
            .all()
        )
        return [to_suggestion_data(r) for r in rows]

    def save(self, suggestion: SuggestionData) -> SuggestionData:
        row = None
        if suggestion.id is not None:
            row = self.db.query(Suggestion).filter(Suggestion.id == suggestion.id).first()
        if row is None:
            row = Suggestion()
            self.db.add(row)
        _apply(row, suggestion)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(row)
        return to_suggestion_data(row)

    def delete_bulk(self, suggestion_ids: Sequence[int]) -> int:
        if not suggestion_ids:
            return 0
        try:
            deleted = (
                self.db.query(Suggestion)
                .filter(Suggestion.id.in_(list(suggestion_ids)))
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return deleted

    def _paginate(self, query, page: int, page_size: int) -> Page[SuggestionData]:
        page = max(page, 1)
        total = query.count()
        rows = (
            query.order_by(desc(Suggestion.created_at), desc(Suggestion.id))
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return Page(items=[to_suggestion_data(r) for r in rows], total=total, page=page, page_size=page_size)

    def find_by_status(
        self,
        suggestion_type: SuggestionType,
        status: SuggestionStatus,
        page: int = 1,
        page_size: int = 20,
    ) -> Page[SuggestionData]:
        query = (
            self.db.query(Suggestion)
            .filter(Suggestion.type == SuggestionType(suggestion_type).value)
            .filter(Suggestion.status == SuggestionStatus(status).value)
        )
        return self._paginate(query, page, page_size)

    def find_by_entity_and_status(
        self,
        suggestion_type: SuggestionType,
        entity_id: str,
        status: SuggestionStatus,
        page: int = 1,
        page_size: int = 20,
    ) -> Page[SuggestionData]:
        query = (
            self.db.query(Suggestion)
            .filter(Suggestion.type == SuggestionType(suggestion_type).value)
            .filter(_entity_column(suggestion_type) == entity_id)
            .filter(Suggestion.status == SuggestionStatus(status).value)
        )
        return self._paginate(query, page, page_size)
