"""
Threshold analysis and scale-timing tests.

Guards against:
1. Suggesting a scale when only some configured thresholds are met
2. A zero threshold acting as a real (impossible) target
3. Cost and performance metrics compared in the wrong direction
4. An already-scaled entity passing the first-scale age check
5. Timezone-aware timestamps breaking the day arithmetic
"""
from datetime import datetime, timedelta, timezone

import pytest

from adscale.services.metric_catalog import (
    CONFIGURABLE_METRICS,
    MetricDirection,
    is_known_metric,
    metric_direction,
)
from adscale.services.scale_timing import (
    age_in_days,
    meets_initial_scale_threshold,
    meets_recurring_scale_threshold,
    passes_timing_gate,
)
from adscale.services.threshold_analyzer import (
    ThresholdConfig,
    analyze_metrics,
    has_all_thresholds,
    has_valid_thresholds,
    meets_threshold,
)

NOW = datetime(2024, 3, 10, 12, 0)


def _config(**kwargs):
    return ThresholdConfig(ad_account_id="act_123", **kwargs)


# ---------------------------------------------------------------------------
# Metric catalog
# ---------------------------------------------------------------------------

def test_metric_directions():
    assert metric_direction("cpm") == MetricDirection.COST
    assert metric_direction("frequency") == MetricDirection.COST
    assert metric_direction("cost_per_inline_link_click") == MetricDirection.COST
    assert metric_direction("ctr") == MetricDirection.PERFORMANCE
    assert metric_direction("inline_link_ctr") == MetricDirection.PERFORMANCE
    assert metric_direction("purchase_roas") == MetricDirection.PERFORMANCE
    assert len(CONFIGURABLE_METRICS) == 6


def test_unknown_metric():
    assert not is_known_metric("cpc")
    with pytest.raises(KeyError):
        metric_direction("cpc")


# ---------------------------------------------------------------------------
# Comparisons
# ---------------------------------------------------------------------------

def test_cost_metric_must_be_below():
    assert meets_threshold("cpm", 4.0, 5.0)
    assert not meets_threshold("cpm", 6.0, 5.0)
    assert not meets_threshold("cpm", 5.0, 5.0)


def test_performance_metric_must_be_above():
    assert meets_threshold("ctr", 0.03, 0.02)
    assert not meets_threshold("ctr", 0.01, 0.02)
    assert not meets_threshold("ctr", 0.02, 0.02)


# ---------------------------------------------------------------------------
# Conjunctive analysis
# ---------------------------------------------------------------------------

class TestAnalyzeMetrics:

    def test_single_threshold_met(self):
        result = analyze_metrics({"ctr": 0.03}, _config(ctr=0.02))
        assert result.all_conditions_met
        assert [m.metric_name for m in result.qualifying_metrics] == ["ctr"]
        assert result.qualifying_metrics[0].value == pytest.approx(0.03)

    def test_partial_match_does_not_qualify(self):
        result = analyze_metrics({"ctr": 0.03, "cpm": 8.0}, _config(ctr=0.02, cpm=5.0))
        assert not result.all_conditions_met
        assert result.configured_count == 2
        assert result.met_count == 1

    def test_zero_threshold_is_unconfigured(self):
        result = analyze_metrics({"ctr": 0.03, "cpm": 80.0}, _config(ctr=0.02, cpm=0))
        assert result.all_conditions_met
        assert result.configured_count == 1

    def test_unmeasured_metric_is_not_met(self):
        result = analyze_metrics({"ctr": 0.03}, _config(ctr=0.02, purchase_roas=1.5))
        assert not result.all_conditions_met

    def test_nothing_configured_never_qualifies(self):
        result = analyze_metrics({"ctr": 0.5}, _config())
        assert not result.all_conditions_met
        assert result.qualifying_metrics == ()

    def test_all_six_met(self):
        config = _config(cpm=20, ctr=0.02, frequency=3, inline_link_ctr=0.01,
                         cost_per_inline_link_click=2, purchase_roas=1.5)
        metrics = {"cpm": 10, "ctr": 0.03, "frequency": 2, "inline_link_ctr": 0.02,
                   "cost_per_inline_link_click": 1, "purchase_roas": 2}
        result = analyze_metrics(metrics, config)
        assert result.all_conditions_met
        assert len(result.qualifying_metrics) == 6


def test_has_valid_thresholds():
    assert has_valid_thresholds(_config(ctr=0.02))
    assert not has_valid_thresholds(_config(ctr=0, cpm=None))
    assert not has_valid_thresholds(None)


def test_has_all_thresholds():
    full = _config(cpm=20, ctr=0.02, frequency=3, inline_link_ctr=0.01,
                   cost_per_inline_link_click=2, purchase_roas=1.5)
    assert has_all_thresholds(full)
    assert not has_all_thresholds(_config(ctr=0.02))


# ---------------------------------------------------------------------------
# Timing gate
# ---------------------------------------------------------------------------

class TestTimingGate:

    def test_initial_scale_after_age(self):
        config = _config(init_scale_day=7)
        assert passes_timing_gate(NOW - timedelta(days=8), None, config, NOW)
        assert not passes_timing_gate(NOW - timedelta(days=3), None, config, NOW)

    def test_initial_scale_requires_start_time(self):
        assert not passes_timing_gate(None, None, _config(init_scale_day=7), NOW)

    def test_initial_scale_requires_positive_days(self):
        assert not passes_timing_gate(NOW - timedelta(days=30), None, _config(init_scale_day=0), NOW)

    def test_scaled_entity_never_passes_initial_check(self):
        assert not meets_initial_scale_threshold(100.0, NOW - timedelta(days=1), _config(init_scale_day=7))

    def test_scaled_entity_uses_cool_down(self):
        config = _config(init_scale_day=7, recur_scale_day=3)
        old_start = NOW - timedelta(days=60)
        assert not passes_timing_gate(old_start, NOW - timedelta(days=2), config, NOW)
        assert passes_timing_gate(old_start, NOW - timedelta(days=4), config, NOW)

    def test_cool_down_unconfigured_blocks_rescale(self):
        config = _config(init_scale_day=7)
        assert not passes_timing_gate(NOW - timedelta(days=60), NOW - timedelta(days=30), config, NOW)

    def test_recurring_requires_previous_scale(self):
        assert not meets_recurring_scale_threshold(None, _config(recur_scale_day=3), NOW)

    def test_timezone_aware_start_time(self):
        start = datetime(2024, 3, 3, 19, 0, tzinfo=timezone(timedelta(hours=7)))
        # 12:00 UTC on 3 Mar -> exactly 7 days before NOW
        assert age_in_days(start, NOW) == pytest.approx(7.0)
        assert passes_timing_gate(start, None, _config(init_scale_day=7), NOW)
