"""
SQLAlchemy storage for ad accounts, ad sets and campaigns
"""
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from adscale.models.ad_entity import AdAccount, AdSet, Campaign
from adscale.repositories.base import AdAccountInfo, AdAccountRepository, EntityRepository, EntitySnapshot
from adscale.services.suggestion_lifecycle import ScaleTarget, SuggestionType

ACTIVE_STATUS = "ACTIVE"


def _adset_target(row: AdSet, account: Optional[AdAccount] = None) -> ScaleTarget:
    return ScaleTarget(
        type=SuggestionType.ADSET,
        ad_account_id=row.ad_account_id,
        ad_account_name=account.name if account else None,
        campaign_id=row.campaign_id,
        campaign_name=row.campaign_name,
        adset_id=row.adset_id,
        adset_name=row.adset_name,
        budget=row.daily_budget,
        currency=row.currency or (account.currency if account else None),
        status=row.status,
        start_time=row.start_time,
        last_scaled_at=row.last_scaled_at,
    )


def _campaign_target(row: Campaign, account: Optional[AdAccount] = None) -> ScaleTarget:
    return ScaleTarget(
        type=SuggestionType.CAMPAIGN,
        ad_account_id=row.ad_account_id,
        ad_account_name=account.name if account else None,
        campaign_id=row.campaign_id,
        campaign_name=row.campaign_name,
        budget=row.daily_budget,
        currency=row.currency or (account.currency if account else None),
        status=row.status,
        start_time=row.start_time,
        last_scaled_at=row.last_scaled_at,
    )


class SqlEntityRepository(EntityRepository):
    """Ad sets and campaigns; budgets are in the account currency's major unit."""

    def __init__(self, db: Session):
        self.db = db

    def _accounts(self, ad_account_ids) -> Dict[str, AdAccount]:
        rows = self.db.query(AdAccount).filter(AdAccount.ad_account_id.in_(set(ad_account_ids))).all()
        return {r.ad_account_id: r for r in rows}

    def find_eligible(self, suggestion_type: SuggestionType, ad_account_id: Optional[str] = None) -> List[ScaleTarget]:
        if SuggestionType(suggestion_type) == SuggestionType.ADSET:
            query = (
                self.db.query(AdSet)
                .filter(AdSet.status == ACTIVE_STATUS)
                .filter(AdSet.daily_budget > 0)
            )
            if ad_account_id:
                query = query.filter(AdSet.ad_account_id == ad_account_id)
            rows = query.all()
            accounts = self._accounts(r.ad_account_id for r in rows)
            return [_adset_target(r, accounts.get(r.ad_account_id)) for r in rows]

        # Campaign budget optimisation with a daily budget; lifetime budgets are not scaled
        query = (
            self.db.query(Campaign)
            .filter(Campaign.status == ACTIVE_STATUS)
            .filter(Campaign.daily_budget > 0)
        )
        if ad_account_id:
            query = query.filter(Campaign.ad_account_id == ad_account_id)
        rows = query.all()
        accounts = self._accounts(r.ad_account_id for r in rows)
        return [_campaign_target(r, accounts.get(r.ad_account_id)) for r in rows]

    def find_by_id(self, suggestion_type: SuggestionType, entity_id: str) -> Optional[ScaleTarget]:
        if SuggestionType(suggestion_type) == SuggestionType.ADSET:
            row = self.db.query(AdSet).filter(AdSet.adset_id == entity_id).first()
            if not row:
                return None
            return _adset_target(row, self._accounts([row.ad_account_id]).get(row.ad_account_id))
        row = self.db.query(Campaign).filter(Campaign.campaign_id == entity_id).first()
        if not row:
            return None
        return _campaign_target(row, self._accounts([row.ad_account_id]).get(row.ad_account_id))

    def mark_scaled(
        self,
        suggestion_type: SuggestionType,
        entity_id: str,
        scaled_at: datetime,
        new_daily_budget: Optional[float] = None,
    ) -> bool:
        if SuggestionType(suggestion_type) == SuggestionType.ADSET:
            row = self.db.query(AdSet).filter(AdSet.adset_id == entity_id).first()
        else:
            row = self.db.query(Campaign).filter(Campaign.campaign_id == entity_id).first()
        if not row:
            return False
        row.last_scaled_at = scaled_at
        if new_daily_budget is not None:
            row.daily_budget = new_daily_budget
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return True

    def save_snapshots(self, snapshots: Sequence[EntitySnapshot]) -> Dict[str, int]:
        counts = {"created": 0, "updated": 0}
        now = datetime.utcnow()
        try:
            for snap in snapshots:
                if SuggestionType(snap.type) == SuggestionType.ADSET:
                    row = self.db.query(AdSet).filter(AdSet.adset_id == snap.entity_id).first()
                    values = {
                        "adset_name": snap.name,
                        "ad_account_id": snap.ad_account_id,
                        "campaign_id": snap.campaign_id,
                        "campaign_name": snap.campaign_name,
                        "end_time": snap.end_time,
                        "platform_updated_at": snap.updated_time,
                    }
                    model, key = AdSet, {"adset_id": snap.entity_id}
                else:
                    row = self.db.query(Campaign).filter(Campaign.campaign_id == snap.entity_id).first()
                    values = {
                        "campaign_name": snap.name,
                        "ad_account_id": snap.ad_account_id,
                    }
                    model, key = Campaign, {"campaign_id": snap.entity_id}

                values.update(
                    status=snap.status,
                    daily_budget=snap.daily_budget,
                    lifetime_budget=snap.lifetime_budget,
                    currency=snap.currency,
                    start_time=snap.start_time,
                    synced_at=now,
                )
                if row:
                    for k, v in values.items():
                        setattr(row, k, v)
                    counts["updated"] += 1
                else:
                    self.db.add(model(**key, **values))
                    counts["created"] += 1
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return counts


class SqlAdAccountRepository(AdAccountRepository):

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _info(row: AdAccount) -> AdAccountInfo:
        return AdAccountInfo(
            ad_account_id=row.ad_account_id,
            name=row.name,
            currency=row.currency,
            is_active=row.is_active,
            last_sync_at=row.last_sync_at,
        )

    def find_active(self) -> List[AdAccountInfo]:
        rows = self.db.query(AdAccount).filter(AdAccount.is_active.is_(True)).all()
        return [self._info(r) for r in rows]

    def find_by_id(self, ad_account_id: str) -> Optional[AdAccountInfo]:
        row = self.db.query(AdAccount).filter(AdAccount.ad_account_id == ad_account_id).first()
        return self._info(row) if row else None

    def mark_synced(self, ad_account_id: str, synced_at: datetime) -> None:
        row = self.db.query(AdAccount).filter(AdAccount.ad_account_id == ad_account_id).first()
        if row:
            row.last_sync_at = synced_at
            try:
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

    def mark_entities_synced(self, ad_account_id: str, synced_at: datetime) -> None:
        row = self.db.query(AdAccount).filter(AdAccount.ad_account_id == ad_account_id).first()
        if row:
            row.last_entity_sync_at = synced_at
            try:
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

    def save(self, account: AdAccountInfo) -> AdAccountInfo:
        row = self.db.query(AdAccount).filter(AdAccount.ad_account_id == account.ad_account_id).first()
        if row is None:
            row = AdAccount(ad_account_id=account.ad_account_id)
            self.db.add(row)
        row.name = account.name
        row.currency = account.currency
        row.is_active = account.is_active
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return self._info(row)
