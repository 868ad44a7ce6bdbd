"""
Record Mapper

Turns one normalized report row into a PerformanceRecord. Numeric fields are
parsed permissively: anything missing or unparseable stays None so that a
measured zero can be told apart from a column the report never had.
"""
import re
from dataclasses import dataclass, fields
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from adscale.exceptions import MissingRequiredFieldError

REQUIRED_FIELDS = ("account_id", "campaign_id", "adset_id")

AGGREGATE_GRAIN_KEY = "all"

_NUMERIC_NOISE = re.compile(r"[$€£¥₫,\s]")


class ReportGrain(str, Enum):
    AGGREGATE = "aggregate"  # one all-time row per ad set
    DAILY = "daily"  # one row per ad set per reporting day


@dataclass(frozen=True)
class PerformanceRecord:
    """One ad set on one reporting grain."""
    ad_account_id: str
    account_id: str
    campaign_id: str
    adset_id: str
    grain_key: str = AGGREGATE_GRAIN_KEY
    account_name: Optional[str] = None
    campaign_name: Optional[str] = None
    adset_name: Optional[str] = None
    date_start: Optional[date] = None
    date_stop: Optional[date] = None

    # Raw metrics
    impressions: Optional[float] = None
    clicks: Optional[float] = None
    amount_spent: Optional[float] = None
    reach: Optional[float] = None
    purchases: Optional[float] = None
    purchases_conversion_value: Optional[float] = None
    post_comments: Optional[float] = None
    total_messaging_contacts: Optional[float] = None
    three_second_video_plays: Optional[float] = None
    cpm: Optional[float] = None
    cpc: Optional[float] = None
    ctr: Optional[float] = None
    frequency: Optional[float] = None
    inline_link_ctr: Optional[float] = None
    cost_per_inline_link_click: Optional[float] = None
    purchase_roas: Optional[float] = None
    cost_per_result: Optional[float] = None

    # Derived
    cost_per_purchase: Optional[float] = None
    cost_per_interaction: Optional[float] = None
    cost_divide_revenue: Optional[float] = None

    imported_at: Optional[datetime] = None

    def metric(self, name: str) -> Optional[float]:
        return getattr(self, name, None)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# Row keys copied straight through parse_numeric
NUMERIC_FIELDS = (
    "impressions",
    "clicks",
    "amount_spent",
    "reach",
    "purchases",
    "purchases_conversion_value",
    "post_comments",
    "total_messaging_contacts",
    "three_second_video_plays",
    "cpm",
    "cpc",
    "ctr",
    "frequency",
    "inline_link_ctr",
    "cost_per_inline_link_click",
    "purchase_roas",
    "cost_per_result",
)


def parse_numeric(value: Any) -> Optional[float]:
    """Parse "$1,234.50"-style strings; None when absent or not a number."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
    else:
        text = _NUMERIC_NOISE.sub("", str(value))
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    # nan/inf parse fine but are never real measurements
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def parse_report_date(value: Any) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def _text(row: Mapping[str, Any], key: str) -> Optional[str]:
    value = row.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _safe_divide(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    if numerator is None or not denominator:
        return None
    return numerator / denominator


def _interaction_count(comments: Optional[float], messaging: Optional[float]) -> Optional[float]:
    if comments is None and messaging is None:
        return None
    return (comments or 0.0) + (messaging or 0.0)


def map_row(
    row: Mapping[str, Any],
    ad_account_id: str,
    grain: ReportGrain = ReportGrain.AGGREGATE,
    imported_at: Optional[datetime] = None,
) -> PerformanceRecord:
    """
    Map a normalized row to a PerformanceRecord.

    Raises:
        MissingRequiredFieldError: account, campaign or ad set id is blank,
            or a daily row has no reporting date.
    """
    ids = {key: _text(row, key) for key in REQUIRED_FIELDS}
    missing = [key for key, value in ids.items() if not value]
    if missing:
        raise MissingRequiredFieldError(missing)

    date_start = parse_report_date(row.get("date_start"))
    if grain == ReportGrain.DAILY:
        if date_start is None:
            raise MissingRequiredFieldError(["date_start"])
        grain_key = date_start.isoformat()
    else:
        grain_key = AGGREGATE_GRAIN_KEY

    metrics = {name: parse_numeric(row.get(name)) for name in NUMERIC_FIELDS}

    spent = metrics["amount_spent"]
    interactions = _interaction_count(metrics["post_comments"], metrics["total_messaging_contacts"])

    return PerformanceRecord(
        ad_account_id=ad_account_id,
        account_id=ids["account_id"],
        campaign_id=ids["campaign_id"],
        adset_id=ids["adset_id"],
        grain_key=grain_key,
        account_name=_text(row, "account_name"),
        campaign_name=_text(row, "campaign_name"),
        adset_name=_text(row, "adset_name"),
        date_start=date_start,
        date_stop=parse_report_date(row.get("date_stop")),
        cost_per_purchase=_safe_divide(spent, metrics["purchases"]),
        cost_per_interaction=_safe_divide(spent, interactions),
        cost_divide_revenue=_safe_divide(spent, metrics["purchases_conversion_value"]),
        imported_at=imported_at or datetime.utcnow(),
        **metrics,
    )
