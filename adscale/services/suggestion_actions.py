"""
Approve / reject use cases for scale suggestions.

Approval is the only place a budget change reaches the ad platform. The
lifecycle transition is validated first so a resolved suggestion can never
trigger a second budget update.
"""
from datetime import datetime
from typing import Optional

from adscale.exceptions import EntityNotFoundError, SuggestionNotFoundError
from adscale.repositories.base import EntityRepository, SuggestionRepository
from adscale.services.suggestion_lifecycle import SuggestionData, approve_suggestion, reject_suggestion
from adscale.utils.logger import audit_log


class SuggestionActions:

    def __init__(self, suggestions: SuggestionRepository, entities: EntityRepository, platform):
        self.suggestions = suggestions
        self.entities = entities
        self.platform = platform

    def _load(self, suggestion_id: int) -> SuggestionData:
        suggestion = self.suggestions.find_by_id(suggestion_id)
        if suggestion is None:
            raise SuggestionNotFoundError(suggestion_id)
        return suggestion

    async def approve(self, suggestion_id: int, now: Optional[datetime] = None) -> SuggestionData:
        """
        Approve a pending suggestion and apply its budget.

        Raises:
            SuggestionNotFoundError: no suggestion with this id
            EntityNotFoundError: the ad set or campaign is not in local storage
            InvalidTransitionError: suggestion already approved or rejected
            AdPlatformError: the budget update failed; the suggestion stays pending
        """
        now = now or datetime.utcnow()
        suggestion = self._load(suggestion_id)
        approved = approve_suggestion(suggestion, now=now)

        if self.entities.find_by_id(suggestion.type, suggestion.entity_id) is None:
            raise EntityNotFoundError(suggestion.type.value, suggestion.entity_id)

        await self.platform.update_budget(
            suggestion.type,
            suggestion.entity_id,
            suggestion.budget_after_scale,
            currency=suggestion.currency,
        )

        self.entities.mark_scaled(
            suggestion.type, suggestion.entity_id, now, new_daily_budget=suggestion.budget_after_scale
        )

        saved = self.suggestions.save(approved)
        audit_log.info(
            f"Approved suggestion {saved.id}: {saved.ad_account_id} {saved.type.value} {saved.entity_id} "
            f"budget {saved.budget} -> {saved.budget_after_scale} ({saved.currency or 'account currency'})"
        )
        return saved

    async def reject(self, suggestion_id: int, now: Optional[datetime] = None) -> SuggestionData:
        suggestion = self._load(suggestion_id)
        rejected = reject_suggestion(suggestion, now=now)
        saved = self.suggestions.save(rejected)
        audit_log.info(f"Rejected suggestion {saved.id}: {saved.ad_account_id} {saved.type.value} {saved.entity_id}")
        return saved
