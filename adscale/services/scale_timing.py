"""
Scale-Timing Gate

An entity is only analyzed when it is old enough for a first scale, or,
once it has been scaled, when the cool-down since the last scale is over.
"""
from datetime import datetime, timezone
from typing import Optional

from adscale.services.threshold_analyzer import ThresholdConfig

SECONDS_PER_DAY = 86400


def _naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is not None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def days_since(moment: datetime, now: Optional[datetime] = None) -> float:
    """Fractional days elapsed since `moment` (naive datetimes are UTC)."""
    now = _naive_utc(now or datetime.utcnow())
    return (now - _naive_utc(moment)).total_seconds() / SECONDS_PER_DAY


def age_in_days(start_time: Optional[datetime], now: Optional[datetime] = None) -> Optional[float]:
    """Entity age, or None when it has no start time."""
    if start_time is None:
        return None
    return days_since(start_time, now)


def meets_initial_scale_threshold(
    age: Optional[float],
    last_scaled_at: Optional[datetime],
    config: ThresholdConfig,
) -> bool:
    """Never scaled, age known, init_scale_day configured and reached."""
    if last_scaled_at is not None:
        return False
    if age is None:
        return False
    if not config.init_scale_day or config.init_scale_day <= 0:
        return False
    return age >= config.init_scale_day


def meets_recurring_scale_threshold(
    last_scaled_at: Optional[datetime],
    config: ThresholdConfig,
    now: Optional[datetime] = None,
) -> bool:
    """Scaled before, recur_scale_day configured and elapsed since."""
    if last_scaled_at is None:
        return False
    if not config.recur_scale_day or config.recur_scale_day <= 0:
        return False
    return days_since(last_scaled_at, now) >= config.recur_scale_day


def passes_timing_gate(
    start_time: Optional[datetime],
    last_scaled_at: Optional[datetime],
    config: ThresholdConfig,
    now: Optional[datetime] = None,
) -> bool:
    """Apply whichever predicate matches the entity's scale history."""
    if last_scaled_at is None:
        return meets_initial_scale_threshold(age_in_days(start_time, now), None, config)
    return meets_recurring_scale_threshold(last_scaled_at, config, now)
