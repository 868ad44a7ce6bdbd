"""
Canonical metric vocabulary shared by ingestion, aggregation and analysis.

The keys here are the join between a normalized report column and the
threshold an account configures, so renaming one is a schema change.
"""
from enum import Enum
from typing import Dict, Tuple


class MetricDirection(str, Enum):
    COST = "cost"  # lower is better
    PERFORMANCE = "performance"  # higher is better


# Metrics an ad account can put a threshold on, in evaluation order
METRIC_DIRECTIONS: Dict[str, MetricDirection] = {
    "cpm": MetricDirection.COST,
    "ctr": MetricDirection.PERFORMANCE,
    "frequency": MetricDirection.COST,
    "inline_link_ctr": MetricDirection.PERFORMANCE,
    "cost_per_inline_link_click": MetricDirection.COST,
    "purchase_roas": MetricDirection.PERFORMANCE,
}

CONFIGURABLE_METRICS: Tuple[str, ...] = tuple(METRIC_DIRECTIONS)

COST_METRICS = frozenset(
    name for name, direction in METRIC_DIRECTIONS.items() if direction == MetricDirection.COST
)
PERFORMANCE_METRICS = frozenset(
    name for name, direction in METRIC_DIRECTIONS.items() if direction == MetricDirection.PERFORMANCE
)

# Summed in a roll-up
VOLUME_METRICS: Tuple[str, ...] = (
    "impressions",
    "clicks",
    "amount_spent",
    "reach",
    "purchases",
    "purchases_conversion_value",
    "post_comments",
    "total_messaging_contacts",
    "three_second_video_plays",
)

# Impression-weighted in a roll-up
RATE_METRICS: Tuple[str, ...] = (
    "cpm",
    "cpc",
    "ctr",
    "inline_link_ctr",
    "cost_per_inline_link_click",
    "purchase_roas",
    "cost_per_result",
)

# Recomputed from summed components in a roll-up
RATIO_METRICS: Tuple[str, ...] = (
    "frequency",
    "cost_per_purchase",
    "cost_per_interaction",
    "cost_divide_revenue",
)

ALL_METRICS: Tuple[str, ...] = VOLUME_METRICS + RATE_METRICS + RATIO_METRICS


def is_known_metric(name: str) -> bool:
    return name in METRIC_DIRECTIONS


def metric_direction(name: str) -> MetricDirection:
    """Static cost/performance classification; KeyError for unknown names."""
    return METRIC_DIRECTIONS[name]
