"""
Ad accounts and the entities a suggestion can target (ad sets, campaigns)

Budgets are stored in the account currency's major unit.
"""
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime
from datetime import datetime

from adscale.models.base import Base


class AdAccount(Base):
    """Meta ad account connected to the pipeline"""
    __tablename__ = "ad_accounts"

    id = Column(Integer, primary_key=True, index=True)
    ad_account_id = Column(String, unique=True, nullable=False, index=True)
    # Without the "act_" prefix

    name = Column(String, nullable=True)
    currency = Column(String, nullable=True)
    timezone_name = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    last_sync_at = Column(DateTime, nullable=True)
    # Last successful insights import
    last_entity_sync_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<AdAccount {self.ad_account_id} - {self.name}>"


class AdSet(Base):
    """Ad set metadata synced from the Graph API"""
    __tablename__ = "ad_sets"

    id = Column(Integer, primary_key=True, index=True)
    adset_id = Column(String, unique=True, nullable=False, index=True)
    adset_name = Column(String, nullable=True)
    ad_account_id = Column(String, nullable=False, index=True)
    campaign_id = Column(String, nullable=True, index=True)
    campaign_name = Column(String, nullable=True)

    status = Column(String, nullable=True)
    # ACTIVE, PAUSED, DELETED, ARCHIVED

    daily_budget = Column(Float, nullable=True)
    lifetime_budget = Column(Float, nullable=True)
    currency = Column(String, nullable=True)

    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    last_scaled_at = Column(DateTime, nullable=True)
    # Set when a suggestion for this ad set is approved

    platform_updated_at = Column(DateTime, nullable=True)
    synced_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<AdSet {self.adset_id} - {self.adset_name}>"


class Campaign(Base):
    """Campaign metadata synced from the Graph API"""
    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True, index=True)
    campaign_id = Column(String, unique=True, nullable=False, index=True)
    campaign_name = Column(String, nullable=True)
    ad_account_id = Column(String, nullable=False, index=True)

    status = Column(String, nullable=True)
    objective = Column(String, nullable=True)

    daily_budget = Column(Float, nullable=True)
    lifetime_budget = Column(Float, nullable=True)
    currency = Column(String, nullable=True)

    start_time = Column(DateTime, nullable=True)
    last_scaled_at = Column(DateTime, nullable=True)

    synced_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Campaign {self.campaign_id} - {self.campaign_name}>"
