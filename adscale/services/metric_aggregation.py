"""
Aggregation Engine

Collapses stored PerformanceRecords into the one metric set the threshold
analyzer looks at:

- ad sets use the latest stored record as-is
- campaigns roll up all child ad set records: volume metrics are summed,
  rate metrics are impression-weighted, and ratio metrics are recomputed
  from the summed components

Nothing here is cached; every analysis pass aggregates afresh.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence

from adscale.services.metric_catalog import ALL_METRICS, RATE_METRICS, VOLUME_METRICS
from adscale.services.record_mapper import PerformanceRecord


@dataclass(frozen=True)
class AggregatedMetrics:
    """Metric values for one entity for one analysis pass."""
    values: Dict[str, Optional[float]] = field(default_factory=dict)
    record_count: int = 0
    latest_date: Optional[date] = None

    def get(self, name: str) -> Optional[float]:
        return self.values.get(name)

    def __getitem__(self, name: str) -> Optional[float]:
        return self.values.get(name)


def _recency_key(record: PerformanceRecord):
    return (
        record.date_start or date.min,
        record.imported_at or datetime.min,
    )


def latest_metrics(records: Iterable[PerformanceRecord]) -> Optional[AggregatedMetrics]:
    """Latest-record mode: the most recent record, or None when there is none."""
    records = list(records)
    if not records:
        return None
    latest = max(records, key=_recency_key)
    return AggregatedMetrics(
        values={name: latest.metric(name) for name in ALL_METRICS},
        record_count=1,
        latest_date=latest.date_start,
    )


def _sum_present(records: Sequence[PerformanceRecord], name: str) -> Optional[float]:
    present = [r.metric(name) for r in records if r.metric(name) is not None]
    return sum(present) if present else None


def weighted_average(records: Sequence[PerformanceRecord], name: str) -> Optional[float]:
    """
    Impression-weighted average of a rate metric.

    Records without impressions, or with zero impressions, or without the
    metric itself carry no weight.
    """
    weighted_sum = 0.0
    total_weight = 0.0
    for record in records:
        value = record.metric(name)
        if value is None or not record.impressions or record.impressions <= 0:
            continue
        weighted_sum += value * record.impressions
        total_weight += record.impressions
    if total_weight == 0:
        return None
    return weighted_sum / total_weight


def _ratio(numerator: Optional[float], denominator: Optional[float], scale: float = 1.0) -> Optional[float]:
    if numerator is None or not denominator:
        return None
    return numerator / denominator * scale


def roll_up(records: Iterable[PerformanceRecord]) -> Optional[AggregatedMetrics]:
    """
    Roll-up mode: campaign-level metrics from child ad set records.

    Only records with impressions > 0 take part; returns None when none do.
    """
    records: List[PerformanceRecord] = [
        r for r in records if r.impressions is not None and r.impressions > 0
    ]
    if not records:
        return None

    values: Dict[str, Optional[float]] = {}

    for name in VOLUME_METRICS:
        values[name] = _sum_present(records, name)

    for name in RATE_METRICS:
        values[name] = weighted_average(records, name)

    impressions = values["impressions"]
    spent = values["amount_spent"]

    # Ratios come from the summed components
    values["frequency"] = _ratio(impressions, values["reach"])
    if spent is not None:
        values["cpm"] = _ratio(spent, impressions, scale=1000.0)
        if values["clicks"]:
            values["cpc"] = _ratio(spent, values["clicks"])

    interactions = None
    if values["post_comments"] is not None or values["total_messaging_contacts"] is not None:
        interactions = (values["post_comments"] or 0.0) + (values["total_messaging_contacts"] or 0.0)

    values["cost_per_purchase"] = _ratio(spent, values["purchases"])
    values["cost_per_interaction"] = _ratio(spent, interactions)
    values["cost_divide_revenue"] = _ratio(spent, values["purchases_conversion_value"])

    dates = [r.date_start for r in records if r.date_start]
    return AggregatedMetrics(
        values=values,
        record_count=len(records),
        latest_date=max(dates) if dates else None,
    )
