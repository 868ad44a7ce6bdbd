"""
Budget scaling suggestions awaiting operator review
"""
from sqlalchemy import Column, Integer, String, Float, Text, DateTime, JSON, Index
from datetime import datetime

from adscale.models.base import Base


class Suggestion(Base):
    """Scale suggestion for an ad set or campaign"""
    __tablename__ = "suggestions"
    __table_args__ = (
        Index("ix_suggestions_adset_status", "adset_id", "status"),
        Index("ix_suggestions_campaign_status", "campaign_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)

    type = Column(String, nullable=False, index=True)
    # adset | campaign

    # Target
    ad_account_id = Column(String, nullable=False, index=True)
    ad_account_name = Column(String, nullable=True)
    campaign_id = Column(String, nullable=False)
    campaign_name = Column(String, nullable=True)
    adset_id = Column(String, nullable=True)
    adset_name = Column(String, nullable=True)
    adset_link = Column(String, nullable=True)
    # Ads Manager deep link

    # Budget
    currency = Column(String, nullable=True)
    budget = Column(Float, nullable=False)
    budget_after_scale = Column(Float, nullable=False)
    scale_percent = Column(Float, nullable=True)
    note = Column(Text, nullable=True)

    # Qualifying metrics: [{"metric_name": "ctr", "value": 0.03}, ...]
    metrics = Column(JSON, nullable=False, default=list)
    metrics_exceeded_count = Column(Integer, nullable=False, default=0)

    status = Column(String, nullable=False, default="pending", index=True)
    # pending | approved | rejected

    recent_scale_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        target = self.adset_id if self.type == "adset" else self.campaign_id
        return f"<Suggestion {self.id} {self.type}:{target} [{self.status}]>"
