"""
Threshold Analyzer

Decides whether an entity's aggregated metrics justify a scale suggestion.

The rule is conjunctive: every threshold the account configured must be
met on its own. A threshold of 0 or None is "not configured" and takes no
part in the check. A configured metric the report did not measure counts
as configured but not met.
"""
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple

from adscale.services.metric_catalog import CONFIGURABLE_METRICS, MetricDirection, metric_direction


@dataclass(frozen=True)
class ThresholdConfig:
    """Per ad account thresholds and scaling parameters."""
    ad_account_id: str
    cpm: Optional[float] = None
    ctr: Optional[float] = None
    frequency: Optional[float] = None
    inline_link_ctr: Optional[float] = None
    cost_per_inline_link_click: Optional[float] = None
    purchase_roas: Optional[float] = None
    scale_percent: Optional[float] = None
    init_scale_day: Optional[int] = None
    recur_scale_day: Optional[int] = None
    note: Optional[str] = None

    @classmethod
    def from_model(cls, setting) -> "ThresholdConfig":
        """Build from an AdAccountSetting row."""
        return cls(
            ad_account_id=setting.ad_account_id,
            cpm=setting.cpm,
            ctr=setting.ctr,
            frequency=setting.frequency,
            inline_link_ctr=setting.inline_link_ctr,
            cost_per_inline_link_click=setting.cost_per_inline_link_click,
            purchase_roas=setting.purchase_roas,
            scale_percent=setting.scale_percent,
            init_scale_day=setting.init_scale_day,
            recur_scale_day=setting.recur_scale_day,
            note=setting.note,
        )

    def threshold(self, metric_name: str) -> Optional[float]:
        return getattr(self, metric_name)


@dataclass(frozen=True)
class QualifyingMetric:
    metric_name: str
    value: float

    def to_dict(self) -> dict:
        return {"metric_name": self.metric_name, "value": self.value}


@dataclass(frozen=True)
class AnalysisResult:
    qualifying_metrics: Tuple[QualifyingMetric, ...] = field(default_factory=tuple)
    configured_count: int = 0
    met_count: int = 0

    @property
    def all_conditions_met(self) -> bool:
        return self.configured_count > 0 and self.met_count == self.configured_count


def is_configured(threshold: Optional[float]) -> bool:
    return threshold is not None and threshold > 0


def has_valid_thresholds(config: Optional[ThresholdConfig]) -> bool:
    """At least one metric has a threshold."""
    if config is None:
        return False
    return any(is_configured(config.threshold(name)) for name in CONFIGURABLE_METRICS)


def has_all_thresholds(config: Optional[ThresholdConfig]) -> bool:
    """Every configurable metric has a threshold (required for campaigns)."""
    if config is None:
        return False
    return all(is_configured(config.threshold(name)) for name in CONFIGURABLE_METRICS)


def meets_threshold(metric_name: str, measured: float, threshold: float) -> bool:
    if metric_direction(metric_name) == MetricDirection.COST:
        return measured < threshold
    return measured > threshold


def analyze_metrics(metrics: Mapping[str, Any], config: ThresholdConfig) -> AnalysisResult:
    """
    Compare measured metrics with the configured thresholds.

    `metrics` is anything with a .get(name) (AggregatedMetrics or a dict).
    """
    qualifying: List[QualifyingMetric] = []
    configured = 0
    met = 0

    for name in CONFIGURABLE_METRICS:
        threshold = config.threshold(name)
        if not is_configured(threshold):
            continue
        configured += 1

        measured = metrics.get(name)
        if measured is None:
            continue

        if meets_threshold(name, measured, threshold):
            qualifying.append(QualifyingMetric(metric_name=name, value=measured))
            met += 1

    return AnalysisResult(
        qualifying_metrics=tuple(qualifying),
        configured_count=configured,
        met_count=met,
    )
