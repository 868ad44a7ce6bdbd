"""
Per ad account scaling thresholds
"""
from sqlalchemy import Column, Integer, String, Float, Text, DateTime
from datetime import datetime

from adscale.models.base import Base


class AdAccountSetting(Base):
    """Threshold configuration for one ad account.

    A threshold of 0 or NULL means the metric is not part of the check.
    """
    __tablename__ = "ad_account_settings"

    id = Column(Integer, primary_key=True, index=True)
    ad_account_id = Column(String, unique=True, nullable=False, index=True)

    # Cost metrics (qualify below threshold)
    cpm = Column(Float, nullable=True)
    frequency = Column(Float, nullable=True)
    cost_per_inline_link_click = Column(Float, nullable=True)

    # Performance metrics (qualify above threshold)
    ctr = Column(Float, nullable=True)
    inline_link_ctr = Column(Float, nullable=True)
    purchase_roas = Column(Float, nullable=True)

    # Scaling
    scale_percent = Column(Float, nullable=True)
    init_scale_day = Column(Integer, nullable=True)
    # Minimum entity age in days before the first scale
    recur_scale_day = Column(Integer, nullable=True)
    # Minimum days since last scale before scaling again
    note = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<AdAccountSetting {self.ad_account_id}>"
