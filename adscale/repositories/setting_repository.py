"""
SQLAlchemy storage for per ad account threshold settings
"""
from typing import Optional

from sqlalchemy.orm import Session

from adscale.models.account_setting import AdAccountSetting
from adscale.repositories.base import ThresholdConfigStore
from adscale.services.threshold_analyzer import ThresholdConfig

_SETTING_FIELDS = (
    "cpm",
    "ctr",
    "frequency",
    "inline_link_ctr",
    "cost_per_inline_link_click",
    "purchase_roas",
    "scale_percent",
    "init_scale_day",
    "recur_scale_day",
    "note",
)


class SqlThresholdConfigStore(ThresholdConfigStore):

    def __init__(self, db: Session):
        self.db = db

    def find_by_account(self, ad_account_id: str) -> Optional[ThresholdConfig]:
        setting = (
            self.db.query(AdAccountSetting)
            .filter(AdAccountSetting.ad_account_id == ad_account_id)
            .first()
        )
        return ThresholdConfig.from_model(setting) if setting else None

    def save(self, config: ThresholdConfig) -> ThresholdConfig:
        setting = (
            self.db.query(AdAccountSetting)
            .filter(AdAccountSetting.ad_account_id == config.ad_account_id)
            .first()
        )
        if setting is None:
            setting = AdAccountSetting(ad_account_id=config.ad_account_id)
            self.db.add(setting)
        for name in _SETTING_FIELDS:
            setattr(setting, name, getattr(config, name))
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return ThresholdConfig.from_model(setting)
