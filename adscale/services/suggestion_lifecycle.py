"""
Suggestion Lifecycle Manager

Plain immutable suggestion values plus the functions that create, supersede
and resolve them. Every function returns a new value; persistence is the
repository's business.

    pending --approve--> approved
    pending --reject---> rejected
    pending --update---> pending (same id and created_at)

Approved and rejected suggestions are terminal. A later qualifying cycle for
the same entity creates a fresh suggestion instead of touching them.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

from adscale.exceptions import InvalidBudgetError, InvalidMetricNameError, InvalidTransitionError
from adscale.services.metric_catalog import is_known_metric
from adscale.services.threshold_analyzer import QualifyingMetric, ThresholdConfig

ADS_MANAGER_URL = "https://business.facebook.com/adsmanager/manage"


class SuggestionType(str, Enum):
    ADSET = "adset"
    CAMPAIGN = "campaign"


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ScaleTarget:
    """The entity a suggestion is about, as seen at analysis time."""
    type: SuggestionType
    ad_account_id: str
    campaign_id: str
    budget: Optional[float]
    adset_id: Optional[str] = None
    ad_account_name: Optional[str] = None
    campaign_name: Optional[str] = None
    adset_name: Optional[str] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    start_time: Optional[datetime] = None
    last_scaled_at: Optional[datetime] = None

    @property
    def entity_id(self) -> str:
        return self.adset_id if self.type == SuggestionType.ADSET else self.campaign_id


@dataclass(frozen=True)
class SuggestionData:
    type: SuggestionType
    ad_account_id: str
    campaign_id: str
    budget: float
    budget_after_scale: float
    status: SuggestionStatus = SuggestionStatus.PENDING
    id: Optional[int] = None
    ad_account_name: Optional[str] = None
    campaign_name: Optional[str] = None
    adset_id: Optional[str] = None
    adset_name: Optional[str] = None
    adset_link: Optional[str] = None
    currency: Optional[str] = None
    scale_percent: Optional[float] = None
    note: Optional[str] = None
    metrics: Tuple[QualifyingMetric, ...] = field(default_factory=tuple)
    metrics_exceeded_count: int = 0
    recent_scale_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def entity_id(self) -> str:
        return self.adset_id if self.type == SuggestionType.ADSET else self.campaign_id

    @property
    def is_pending(self) -> bool:
        return self.status == SuggestionStatus.PENDING


def calculate_budget_after_scale(budget: float, scale_percent: Optional[float]) -> float:
    """budget * (1 + scale_percent / 100); no scale percent means no change."""
    return budget * (1 + (scale_percent or 0) / 100)


def build_ads_manager_link(
    suggestion_type: SuggestionType,
    ad_account_id: str,
    campaign_id: str,
    adset_id: Optional[str] = None,
    base_url: str = ADS_MANAGER_URL,
) -> str:
    """Deep link that opens the entity selected in Ads Manager."""
    base_url = base_url.rstrip("/")
    account = ad_account_id[len("act_"):] if ad_account_id.startswith("act_") else ad_account_id
    if SuggestionType(suggestion_type) == SuggestionType.CAMPAIGN:
        return f"{base_url}/campaigns?act={account}&selected_campaign_ids={campaign_id}"
    return (
        f"{base_url}/adsets?act={account}"
        f"&selected_campaign_ids={campaign_id}&selected_adset_ids={adset_id}"
    )


def _validate(budget: Optional[float], metrics: Sequence[QualifyingMetric]):
    if budget is None or budget <= 0:
        raise InvalidBudgetError(budget)
    for metric in metrics:
        if not is_known_metric(metric.metric_name):
            raise InvalidMetricNameError(metric.metric_name)


def create_suggestion(
    target: ScaleTarget,
    qualifying_metrics: Iterable[QualifyingMetric],
    config: ThresholdConfig,
    now: Optional[datetime] = None,
    link_base: str = ADS_MANAGER_URL,
) -> SuggestionData:
    """
    New pending suggestion for a qualifying entity.

    Raises:
        InvalidBudgetError: target budget missing or not positive
        InvalidMetricNameError: a metric outside the configurable vocabulary
    """
    metrics = tuple(qualifying_metrics)
    _validate(target.budget, metrics)
    now = now or datetime.utcnow()

    return SuggestionData(
        type=SuggestionType(target.type),
        ad_account_id=target.ad_account_id,
        ad_account_name=target.ad_account_name,
        campaign_id=target.campaign_id,
        campaign_name=target.campaign_name,
        adset_id=target.adset_id,
        adset_name=target.adset_name,
        adset_link=build_ads_manager_link(
            target.type, target.ad_account_id, target.campaign_id, target.adset_id, base_url=link_base
        ),
        currency=target.currency,
        budget=target.budget,
        budget_after_scale=calculate_budget_after_scale(target.budget, config.scale_percent),
        scale_percent=config.scale_percent,
        note=config.note,
        metrics=metrics,
        metrics_exceeded_count=len(metrics),
        status=SuggestionStatus.PENDING,
        recent_scale_at=target.last_scaled_at,
        created_at=now,
        updated_at=now,
    )


def update_pending_suggestion(
    existing: SuggestionData,
    target: ScaleTarget,
    qualifying_metrics: Iterable[QualifyingMetric],
    config: ThresholdConfig,
    now: Optional[datetime] = None,
) -> SuggestionData:
    """Supersede a pending suggestion with a newer analysis, keeping its identity."""
    if not existing.is_pending:
        raise InvalidTransitionError(SuggestionStatus(existing.status).value, "update")

    metrics = tuple(qualifying_metrics)
    _validate(target.budget, metrics)

    return replace(
        existing,
        ad_account_name=target.ad_account_name or existing.ad_account_name,
        campaign_name=target.campaign_name or existing.campaign_name,
        adset_name=target.adset_name or existing.adset_name,
        currency=target.currency or existing.currency,
        budget=target.budget,
        budget_after_scale=calculate_budget_after_scale(target.budget, config.scale_percent),
        scale_percent=config.scale_percent,
        note=config.note,
        metrics=metrics,
        metrics_exceeded_count=len(metrics),
        recent_scale_at=target.last_scaled_at,
        updated_at=now or datetime.utcnow(),
    )


def approve_suggestion(suggestion: SuggestionData, now: Optional[datetime] = None) -> SuggestionData:
    if not suggestion.is_pending:
        raise InvalidTransitionError(SuggestionStatus(suggestion.status).value, "approve")
    return replace(suggestion, status=SuggestionStatus.APPROVED, updated_at=now or datetime.utcnow())


def reject_suggestion(suggestion: SuggestionData, now: Optional[datetime] = None) -> SuggestionData:
    if not suggestion.is_pending:
        raise InvalidTransitionError(SuggestionStatus(suggestion.status).value, "reject")
    return replace(suggestion, status=SuggestionStatus.REJECTED, updated_at=now or datetime.utcnow())


def split_pending(
    pending: Sequence[SuggestionData],
) -> Tuple[Optional[SuggestionData], List[SuggestionData]]:
    """
    Pick the canonical pending suggestion for one entity.

    Returns (most recent, the rest). The rest are duplicates to delete.
    """
    if not pending:
        return None, []
    ordered = sorted(
        pending,
        key=lambda s: (s.created_at or datetime.min, s.id or 0),
        reverse=True,
    )
    return ordered[0], ordered[1:]
