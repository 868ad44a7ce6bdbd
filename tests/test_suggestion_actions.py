"""
Approve / reject and notification tests.

Guards against:
1. Approval not pushing the new budget to the ad platform
2. A failed budget update leaving the suggestion approved
3. A second approval sending a second budget update
4. Local scale history not being stamped after approval
5. An unconfigured Slack webhook raising into the analysis cycle
6. Approving a suggestion whose entity is not stored locally
7. Budget changes missing from the audit log
"""
import asyncio
from datetime import datetime, timedelta

import pytest

from adscale.exceptions import (
    AdPlatformError,
    EntityNotFoundError,
    InvalidTransitionError,
    SuggestionNotFoundError,
)
from adscale.repositories.base import EntitySnapshot
from adscale.repositories.entity_repository import SqlEntityRepository
from adscale.repositories.suggestion_repository import SqlSuggestionRepository
from adscale.services.suggestion_actions import SuggestionActions
from adscale.services.suggestion_lifecycle import SuggestionData, SuggestionStatus, SuggestionType
from adscale.services.suggestion_notifier import SlackSuggestionNotifier, build_message
from adscale.services.threshold_analyzer import QualifyingMetric
from adscale.utils.logger import is_audit_record, log

NOW = datetime(2024, 3, 10, 12, 0)


def _run(coro):
    return asyncio.run(coro)


class FakePlatform:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def update_budget(self, entity_type, entity_id, new_budget, currency=None):
        self.calls.append((SuggestionType(entity_type), entity_id, new_budget, currency))
        if self.fail:
            raise AdPlatformError("(#100) Invalid parameter", status=400)
        return True


def _suggestion(**overrides):
    values = dict(
        type=SuggestionType.ADSET,
        ad_account_id="act_123",
        ad_account_name="Shop",
        campaign_id="c1",
        campaign_name="Spring",
        adset_id="a1",
        adset_name="Prospecting",
        currency="VND",
        budget=150000.0,
        budget_after_scale=180000.0,
        scale_percent=20.0,
        metrics=(QualifyingMetric("ctr", 0.031),),
        metrics_exceeded_count=1,
        created_at=NOW - timedelta(hours=2),
        updated_at=NOW - timedelta(hours=2),
    )
    values.update(overrides)
    return SuggestionData(**values)


def _setup(db, platform, suggestion_type=SuggestionType.ADSET):
    entities = SqlEntityRepository(db)
    entity_id = "a1" if suggestion_type == SuggestionType.ADSET else "c1"
    entities.save_snapshots([EntitySnapshot(
        type=suggestion_type,
        entity_id=entity_id,
        ad_account_id="act_123",
        campaign_id="c1",
        status="ACTIVE",
        daily_budget=150000.0,
        currency="VND",
    )])
    suggestions = SqlSuggestionRepository(db)
    return SuggestionActions(suggestions, entities, platform), suggestions, entities


# ---------------------------------------------------------------------------
# Approve
# ---------------------------------------------------------------------------

class TestApprove:

    def test_approve_applies_budget_and_stamps_entity(self, db):
        platform = FakePlatform()
        actions, suggestions, entities = _setup(db, platform)
        saved = suggestions.save(_suggestion())

        approved = _run(actions.approve(saved.id, now=NOW))

        assert approved.status == SuggestionStatus.APPROVED
        assert platform.calls == [(SuggestionType.ADSET, "a1", 180000.0, "VND")]
        target = entities.find_by_id(SuggestionType.ADSET, "a1")
        assert target.last_scaled_at == NOW
        assert target.budget == pytest.approx(180000.0)

    def test_approve_campaign(self, db):
        platform = FakePlatform()
        actions, suggestions, entities = _setup(db, platform, SuggestionType.CAMPAIGN)
        saved = suggestions.save(_suggestion(type=SuggestionType.CAMPAIGN, adset_id=None, adset_name=None))

        _run(actions.approve(saved.id, now=NOW))

        assert platform.calls[0][:2] == (SuggestionType.CAMPAIGN, "c1")
        assert entities.find_by_id(SuggestionType.CAMPAIGN, "c1").last_scaled_at == NOW

    def test_second_approve_rejected_without_platform_call(self, db):
        platform = FakePlatform()
        actions, suggestions, _ = _setup(db, platform)
        saved = suggestions.save(_suggestion())
        _run(actions.approve(saved.id, now=NOW))

        with pytest.raises(InvalidTransitionError):
            _run(actions.approve(saved.id, now=NOW))
        assert len(platform.calls) == 1

    def test_approve_unknown_entity_skips_platform(self, db):
        platform = FakePlatform()
        actions, suggestions, _ = _setup(db, platform)
        saved = suggestions.save(_suggestion(adset_id="missing"))

        with pytest.raises(EntityNotFoundError):
            _run(actions.approve(saved.id, now=NOW))
        assert platform.calls == []
        assert suggestions.find_by_id(saved.id).status == SuggestionStatus.PENDING

    def test_platform_failure_keeps_suggestion_pending(self, db):
        actions, suggestions, entities = _setup(db, FakePlatform(fail=True))
        saved = suggestions.save(_suggestion())

        with pytest.raises(AdPlatformError):
            _run(actions.approve(saved.id, now=NOW))

        assert suggestions.find_by_id(saved.id).status == SuggestionStatus.PENDING
        assert entities.find_by_id(SuggestionType.ADSET, "a1").last_scaled_at is None

    def test_unknown_suggestion(self, db):
        actions, _, _ = _setup(db, FakePlatform())
        with pytest.raises(SuggestionNotFoundError):
            _run(actions.approve(999, now=NOW))


# ---------------------------------------------------------------------------
# Reject
# ---------------------------------------------------------------------------

def test_reject_does_not_touch_platform(db):
    platform = FakePlatform()
    actions, suggestions, entities = _setup(db, platform)
    saved = suggestions.save(_suggestion())

    rejected = _run(actions.reject(saved.id, now=NOW))

    assert rejected.status == SuggestionStatus.REJECTED
    assert platform.calls == []
    assert entities.find_by_id(SuggestionType.ADSET, "a1").last_scaled_at is None
    with pytest.raises(InvalidTransitionError):
        _run(actions.reject(saved.id, now=NOW))


def test_approve_and_reject_reach_audit_trail(db):
    messages = []
    handler_id = log.add(messages.append, filter=is_audit_record, format="{message}")
    try:
        actions, suggestions, _ = _setup(db, FakePlatform())
        approved = suggestions.save(_suggestion())
        rejected = suggestions.save(_suggestion(adset_id="a2"))

        _run(actions.approve(approved.id, now=NOW))
        _run(actions.reject(rejected.id, now=NOW))
        log.info("analysis cycle finished")
    finally:
        log.remove(handler_id)

    assert len(messages) == 2
    assert f"Approved suggestion {approved.id}: act_123 adset a1 budget 150000.0 -> 180000.0 (VND)" in messages[0]
    assert messages[1].startswith(f"Rejected suggestion {rejected.id}")


# ---------------------------------------------------------------------------
# Slack notification
# ---------------------------------------------------------------------------

def test_build_message_groups_by_account():
    message = build_message(
        [
            _suggestion(id=1),
            _suggestion(id=2, type=SuggestionType.CAMPAIGN, adset_id=None, adset_name=None),
            _suggestion(id=3, ad_account_id="act_9", ad_account_name="Other", adset_name="Retargeting"),
        ],
        frontend_url="https://adscale.example/",
    )

    assert message.startswith("*3 new budget scale suggestion(s)*")
    assert "*Shop*" in message
    assert "*Other*" in message
    assert "_Ad sets_" in message
    assert "_Campaigns_" in message
    assert "Prospecting: 150,000.00 -> 180,000.00 VND (ctr=0.031)" in message
    assert message.endswith("Review: https://adscale.example/suggestions")


def test_unconfigured_slack_reports_without_raising():
    result = _run(SlackSuggestionNotifier(webhook_url="").notify([_suggestion(id=1)]))
    assert not result.success
    assert result.final_error == "Slack not configured"
    assert result.attempts == 0


def test_nothing_to_notify_is_success():
    result = _run(SlackSuggestionNotifier(webhook_url="https://hooks.example/x").notify([]))
    assert result.success
    assert result.attempts == 0
