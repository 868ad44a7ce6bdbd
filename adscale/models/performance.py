"""
Ad set performance records imported from Meta async insight reports
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Date, UniqueConstraint, Index
from datetime import datetime

from adscale.models.base import Base


class AdSetPerformance(Base):
    """One ad set on one reporting grain (all-time aggregate or a single day)"""
    __tablename__ = "adset_performance"
    __table_args__ = (
        UniqueConstraint("ad_account_id", "adset_id", "grain_key", name="uq_adset_performance_grain"),
        Index("ix_adset_performance_campaign", "ad_account_id", "campaign_id"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Identification
    ad_account_id = Column(String, nullable=False, index=True)
    account_id = Column(String, nullable=False)
    account_name = Column(String, nullable=True)
    campaign_id = Column(String, nullable=False)
    campaign_name = Column(String, nullable=True)
    adset_id = Column(String, nullable=False, index=True)
    adset_name = Column(String, nullable=True)

    # Grain: "all" for aggregate reports, ISO date for daily reports
    grain_key = Column(String, nullable=False)
    date_start = Column(Date, nullable=True)
    date_stop = Column(Date, nullable=True)

    # Volume metrics
    impressions = Column(Float, nullable=True)
    clicks = Column(Float, nullable=True)
    amount_spent = Column(Float, nullable=True)
    reach = Column(Float, nullable=True)
    purchases = Column(Float, nullable=True)
    purchases_conversion_value = Column(Float, nullable=True)
    post_comments = Column(Float, nullable=True)
    total_messaging_contacts = Column(Float, nullable=True)
    three_second_video_plays = Column(Float, nullable=True)

    # Rate metrics
    cpm = Column(Float, nullable=True)
    cpc = Column(Float, nullable=True)
    ctr = Column(Float, nullable=True)
    frequency = Column(Float, nullable=True)
    inline_link_ctr = Column(Float, nullable=True)
    cost_per_inline_link_click = Column(Float, nullable=True)
    purchase_roas = Column(Float, nullable=True)
    cost_per_result = Column(Float, nullable=True)

    # Derived at import time
    cost_per_purchase = Column(Float, nullable=True)
    cost_per_interaction = Column(Float, nullable=True)
    cost_divide_revenue = Column(Float, nullable=True)

    # Metadata
    imported_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<AdSetPerformance {self.adset_id} - {self.grain_key}>"
