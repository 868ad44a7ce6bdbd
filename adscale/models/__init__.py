"""Database models for the AdScale suggestion pipeline"""

from adscale.models.ad_entity import (
    AdAccount,
    AdSet,
    Campaign,
)

from adscale.models.account_setting import AdAccountSetting

from adscale.models.performance import AdSetPerformance

from adscale.models.suggestion import Suggestion

from adscale.models.report_import import ReportImportLog

__all__ = [
    "AdAccount",
    "AdSet",
    "Campaign",
    "AdAccountSetting",
    "AdSetPerformance",
    "Suggestion",
    "ReportImportLog",
]
