"""
Suggestion Pipeline

One analysis cycle over every eligible ad set or campaign:

    config -> timing gate -> aggregate -> analyze -> find pending -> create/update

Each entity ends the cycle in exactly one EntityOutcome. A failure for one
entity is logged and recorded in the cycle's error list; the cycle carries
on with the next entity and always returns a CycleResult.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from adscale.repositories.base import (
    EntityRepository,
    PerformanceRepository,
    SuggestionRepository,
    ThresholdConfigStore,
)
from adscale.services.metric_aggregation import AggregatedMetrics, latest_metrics, roll_up
from adscale.services.scale_timing import passes_timing_gate
from adscale.services.suggestion_lifecycle import (
    ADS_MANAGER_URL,
    ScaleTarget,
    SuggestionData,
    SuggestionType,
    create_suggestion,
    split_pending,
    update_pending_suggestion,
)
from adscale.services.threshold_analyzer import (
    AnalysisResult,
    ThresholdConfig,
    analyze_metrics,
    has_all_thresholds,
    has_valid_thresholds,
)
from adscale.utils.logger import log


class EntityOutcome(str, Enum):
    SKIPPED_NO_CONFIG = "skipped_no_config"
    SKIPPED_TIMING = "skipped_timing"
    SKIPPED_NO_DATA = "skipped_no_data"
    SKIPPED_NOT_QUALIFYING = "skipped_not_qualifying"
    CREATED = "created"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass
class CycleResult:
    suggestion_type: SuggestionType
    counts: Dict[str, int] = field(default_factory=lambda: {o.value: 0 for o in EntityOutcome})
    created_suggestions: List[SuggestionData] = field(default_factory=list)
    updated_suggestions: List[SuggestionData] = field(default_factory=list)
    duplicates_removed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def record(self, outcome: EntityOutcome):
        self.counts[outcome.value] += 1

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "type": self.suggestion_type.value,
            "counts": dict(self.counts),
            "suggestions_created": len(self.created_suggestions),
            "suggestions_updated": len(self.updated_suggestions),
            "duplicates_removed": self.duplicates_removed,
            "errors": list(self.errors),
        }


class SuggestionPipeline:
    """Runs analysis cycles against the storage capabilities it is given."""

    def __init__(
        self,
        entities: EntityRepository,
        configs: ThresholdConfigStore,
        performance: PerformanceRepository,
        suggestions: SuggestionRepository,
        notifier=None,
        link_base: str = ADS_MANAGER_URL,
    ):
        self.entities = entities
        self.configs = configs
        self.performance = performance
        self.suggestions = suggestions
        self.notifier = notifier
        self.link_base = link_base

    async def run(
        self,
        suggestion_type: SuggestionType,
        ad_account_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CycleResult:
        """Run a cycle and announce what it created."""
        result = self.run_cycle(suggestion_type, ad_account_id=ad_account_id, now=now)
        if self.notifier is not None and result.created_suggestions:
            try:
                await self.notifier.notify(result.created_suggestions)
            except Exception as e:
                # Notification is best-effort
                log.error(f"Suggestion notification failed: {e}")
        return result

    def run_cycle(
        self,
        suggestion_type: SuggestionType,
        ad_account_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CycleResult:
        suggestion_type = SuggestionType(suggestion_type)
        now = now or datetime.utcnow()
        result = CycleResult(suggestion_type=suggestion_type)

        log.info(f"Starting {suggestion_type.value} suggestion analysis")
        targets = self.entities.find_eligible(suggestion_type, ad_account_id=ad_account_id)

        by_account: Dict[str, List[ScaleTarget]] = defaultdict(list)
        for target in targets:
            by_account[target.ad_account_id].append(target)

        for account_id, account_targets in by_account.items():
            try:
                config = self._load_config(account_id, suggestion_type)
            except Exception as e:
                message = f"Ad account {account_id}: {e}"
                log.error(f"Suggestion analysis failed. {message}")
                result.errors.append(message)
                for _ in account_targets:
                    result.record(EntityOutcome.FAILED)
                continue

            for target in account_targets:
                outcome = self._process_entity(target, config, now, result)
                result.record(outcome)

        log.info(
            f"{suggestion_type.value.capitalize()} analysis completed: "
            f"{len(result.created_suggestions)} created, {len(result.updated_suggestions)} updated, "
            f"{len(result.errors)} errors across {len(targets)} entities"
        )
        return result

    def _load_config(self, ad_account_id: str, suggestion_type: SuggestionType) -> Optional[ThresholdConfig]:
        """Config usable for this entity type, or None."""
        config = self.configs.find_by_account(ad_account_id)
        if not has_valid_thresholds(config):
            log.info(f"No thresholds configured for ad account {ad_account_id}")
            return None
        if suggestion_type == SuggestionType.CAMPAIGN and not has_all_thresholds(config):
            log.info(f"Campaign analysis for {ad_account_id} needs every threshold configured")
            return None
        return config

    def _process_entity(
        self,
        target: ScaleTarget,
        config: Optional[ThresholdConfig],
        now: datetime,
        result: CycleResult,
    ) -> EntityOutcome:
        label = f"{target.type.value} {target.entity_id}"
        try:
            if config is None:
                return EntityOutcome.SKIPPED_NO_CONFIG

            if not passes_timing_gate(target.start_time, target.last_scaled_at, config, now):
                return EntityOutcome.SKIPPED_TIMING

            metrics = self.aggregate(target)
            if metrics is None:
                log.debug(f"No performance data for {label}")
                return EntityOutcome.SKIPPED_NO_DATA

            analysis = analyze_metrics(metrics, config)
            if not analysis.all_conditions_met:
                return EntityOutcome.SKIPPED_NOT_QUALIFYING

            outcome, suggestion, removed = self.upsert_suggestion(target, analysis, config, now)
            result.duplicates_removed += removed
            if outcome == EntityOutcome.CREATED:
                result.created_suggestions.append(suggestion)
            else:
                result.updated_suggestions.append(suggestion)
            return outcome

        except Exception as e:
            message = f"{label}: {e}"
            log.error(f"Suggestion analysis failed for {message}")
            result.errors.append(message)
            return EntityOutcome.FAILED

    def aggregate(self, target: ScaleTarget) -> Optional[AggregatedMetrics]:
        """Latest record for an ad set, roll-up of its ad sets for a campaign."""
        if target.type == SuggestionType.ADSET:
            latest = self.performance.find_latest_by_adset(target.ad_account_id, target.adset_id)
            return latest_metrics([latest] if latest else [])
        return roll_up(self.performance.find_all_by_campaign(target.ad_account_id, target.campaign_id))

    def resolve_pending(self, suggestion_type: SuggestionType, entity_id: str) -> Tuple[Optional[SuggestionData], int]:
        """
        Canonical pending suggestion for an entity.

        Duplicate pending suggestions are deleted; returns the survivor (or
        None) and how many were removed.
        """
        pending = self.suggestions.find_pending_by_entity(suggestion_type, entity_id)
        canonical, duplicates = split_pending(pending)
        if not duplicates:
            return canonical, 0

        duplicate_ids = [d.id for d in duplicates]
        log.warning(
            f"Found {len(pending)} pending suggestions for {SuggestionType(suggestion_type).value} "
            f"{entity_id}; keeping {canonical.id}, deleting {duplicate_ids}"
        )
        removed = self.suggestions.delete_bulk(duplicate_ids)
        return canonical, removed

    def upsert_suggestion(
        self,
        target: ScaleTarget,
        analysis: AnalysisResult,
        config: ThresholdConfig,
        now: datetime,
    ) -> Tuple[EntityOutcome, SuggestionData, int]:
        existing, removed = self.resolve_pending(target.type, target.entity_id)

        if existing is None:
            suggestion = create_suggestion(
                target, analysis.qualifying_metrics, config, now=now, link_base=self.link_base
            )
            saved = self.suggestions.save(suggestion)
            log.info(
                f"Created suggestion {saved.id} for {target.type.value} {target.entity_id}: "
                f"{saved.budget} -> {saved.budget_after_scale} ({saved.metrics_exceeded_count} metrics)"
            )
            return EntityOutcome.CREATED, saved, removed

        suggestion = update_pending_suggestion(existing, target, analysis.qualifying_metrics, config, now=now)
        saved = self.suggestions.save(suggestion)
        log.info(f"Updated pending suggestion {saved.id} for {target.type.value} {target.entity_id}")
        return EntityOutcome.UPDATED, saved, removed
