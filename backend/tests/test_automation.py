"""
Tests for the automation orchestrator: rule lifecycle, actions and run history.
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from campaign_builder.errors import NotFoundError
from campaign_builder.models import PerformanceData, SearchTerm
from campaign_builder.repositories import AdGroupRepository, CampaignRepository, NegativeKeywordRepository
from campaign_builder.services.automation_service import AutomationService, compute_next_run
from campaign_builder.utils import utcnow


def test_compute_next_run_for_schedules():
    now = datetime(2026, 10, 1, 12, 0)
    assert compute_next_run("scheduled", {"schedule": "hourly"}, now) == now + timedelta(hours=1)
    assert compute_next_run("scheduled", {"schedule": "weekly"}, now) == now + timedelta(days=7)
    assert compute_next_run("manual", {}, now) is None


def test_templates_are_copies():
    templates = AutomationService.templates()
    assert {t["action_type"] for t in templates} >= {"generate_recommendations", "sync_sheets_data"}
    templates[0]["name"] = "changed"
    assert AutomationService.templates()[0]["name"] != "changed"


@pytest.mark.anyio
async def test_rule_crud(db, settings):
    service = AutomationService(db, settings)
    rule = await service.create_rule(
        name="Nightly",
        trigger_type="scheduled",
        action_type="generate_recommendations",
        trigger_config={"schedule": "daily"},
    )
    assert rule.next_run_at is not None
    assert rule.enabled is True

    updated = await service.update_rule(rule.id, {"trigger_type": "manual", "enabled": False})
    assert updated.enabled is False
    assert updated.next_run_at is None

    await service.delete_rule(rule.id)
    with pytest.raises(NotFoundError) as exc_info:
        await service.get_rule(rule.id)
    assert exc_info.value.code == "RULE_NOT_FOUND"


@pytest.mark.anyio
async def test_add_negatives_records_history(db, settings, make_campaign):
    campaign = await make_campaign()
    service = AutomationService(db, settings)
    rule = await service.create_rule(
        name="Common negatives",
        trigger_type="manual",
        action_type="add_negatives",
        action_config={"negative_keywords": ["free", "jobs"], "match_type": "phrase"},
    )
    await NegativeKeywordRepository(db).create(campaign.id, "FREE")

    result = await service.execute_automation(rule.id)

    assert result["status"] == "completed"
    assert result["entities_affected"] == 1
    assert result["changes_made"][0]["keyword"] == "jobs"
    history = await service.get_history(rule.id)
    assert len(history) == 1
    assert history[0].status == "completed"
    assert history[0].run_type == "manual"
    assert (await service.get_rule(rule.id)).run_count == 1


@pytest.mark.anyio
async def test_add_negatives_without_keywords_is_partial(db, settings, make_campaign):
    await make_campaign()
    service = AutomationService(db, settings)
    rule = await service.create_rule(name="Empty", trigger_type="manual", action_type="add_negatives")

    result = await service.execute_automation(rule.id)
    assert result["status"] == "partial"
    assert result["errors"] == ["No negative keywords configured"]


@pytest.mark.anyio
async def test_not_implemented_action_is_partial(db, settings):
    service = AutomationService(db, settings)
    rule = await service.create_rule(name="Bids", trigger_type="manual", action_type="adjust_bids")
    result = await service.execute_automation(rule.id)
    assert result["status"] == "partial"
    assert "not yet implemented" in result["errors"][0]


@pytest.mark.anyio
async def test_adjust_budget_both_directions(db, settings, make_campaign):
    campaign = await make_campaign(budget=100.0)
    service = AutomationService(db, settings)
    up = await service.create_rule(
        name="Up", trigger_type="manual", action_type="increase_budget",
        action_config={"adjustment_percent": 20, "campaign_ids": [campaign.id]},
    )
    down = await service.create_rule(
        name="Down", trigger_type="manual", action_type="decrease_budget",
        action_config={"adjustment_percent": 50, "campaign_ids": [campaign.id]},
    )

    await service.execute_automation(up.id)
    assert (await CampaignRepository(db).find_by_id(campaign.id)).budget == 120.0
    await service.execute_automation(down.id)
    assert (await CampaignRepository(db).find_by_id(campaign.id)).budget == 60.0


@pytest.mark.anyio
async def test_add_keywords_action(db, settings, make_campaign, make_ad_group):
    campaign = await make_campaign()
    group = await make_ad_group(campaign.id, keywords=["emergency plumber"])
    service = AutomationService(db, settings)
    rule = await service.create_rule(
        name="Keywords", trigger_type="manual", action_type="add_keywords",
        action_config={"ad_group_id": group.id, "keywords": ["Emergency Plumber", "boiler repair"]},
    )

    result = await service.execute_automation(rule.id)
    assert result["status"] == "completed"
    assert [c["keyword"] for c in result["changes_made"]] == ["boiler repair"]
    reloaded = await AdGroupRepository(db).find_by_id(group.id)
    assert len(reloaded.keywords) == 2


@pytest.mark.anyio
async def test_generate_then_apply_recommendations(db, settings, make_campaign, make_ad_group):
    campaign = await make_campaign()
    group = await make_ad_group(campaign.id)
    db.add(SearchTerm(
        campaign_id=campaign.id, ad_group_id=group.id, search_term="plumbing jobs",
        impressions=300, clicks=1, cost=60.0, conversions=0,
    ))
    await db.flush()
    service = AutomationService(db, settings)

    generate = await service.create_rule(name="Gen", trigger_type="manual", action_type="generate_recommendations")
    gen_result = await service.execute_automation(generate.id)
    assert gen_result["status"] == "completed"
    assert gen_result["entities_affected"] > 0

    apply = await service.create_rule(
        name="Apply", trigger_type="manual", action_type="apply_recommendations",
        action_config={"priority_filter": ["critical", "high"], "auto_apply_only": True},
    )
    apply_result = await service.execute_automation(apply.id)
    applied = [c for c in apply_result["changes_made"] if c["type"] == "recommendation_applied"]
    assert applied
    negatives = await NegativeKeywordRepository(db).find_by_campaign_id(campaign.id)
    assert [n.keyword_text for n in negatives].count("plumbing jobs") >= 1


@pytest.mark.anyio
async def test_failing_action_rolls_back_and_records_failure(db, settings, make_campaign):
    campaign = await make_campaign(budget=100.0)
    service = AutomationService(db, settings)
    rule = await service.create_rule(
        name="Up", trigger_type="manual", action_type="increase_budget",
        action_config={"adjustment_percent": 20, "campaign_ids": [campaign.id]},
    )

    original = AutomationService._adjust_budget

    async def adjust_then_fail(self, config, log, increase):
        await original(self, config, log, increase)
        raise RuntimeError("downstream failure")

    with patch.object(AutomationService, "_adjust_budget", adjust_then_fail):
        result = await service.execute_automation(rule.id)

    assert result["status"] == "failed"
    assert result["changes_made"] == []
    assert result["errors"] == ["downstream failure"]
    reloaded = await CampaignRepository(db).find_by_id(campaign.id)
    await db.refresh(reloaded)
    assert reloaded.budget == 100.0


@pytest.mark.anyio
async def test_sync_sheets_without_config_is_partial(db, settings):
    service = AutomationService(db, settings)
    rule = await service.create_rule(name="Sheets", trigger_type="manual", action_type="sync_sheets_data")
    result = await service.execute_automation(rule.id)
    assert result["status"] == "partial"
    assert result["errors"] == ["Google Sheets not configured"]


@pytest.mark.anyio
async def test_run_due_automations_only_runs_due_rules(db, settings):
    service = AutomationService(db, settings)
    due = await service.create_rule(
        name="Due", trigger_type="scheduled", action_type="generate_recommendations",
        trigger_config={"schedule": "daily"},
    )
    not_due = await service.create_rule(
        name="Later", trigger_type="scheduled", action_type="generate_recommendations",
        trigger_config={"schedule": "daily"},
    )
    due.next_run_at = datetime(2020, 1, 1)
    await db.flush()

    with patch.object(AutomationService, "execute_automation", new_callable=AsyncMock, return_value={"status": "completed"}) as run:
        results = await service.run_due_automations()

    run.assert_awaited_once_with(due.id, run_type="scheduled")
    assert [r["rule_id"] for r in results] == [due.id]
    assert not_due.id not in [r["rule_id"] for r in results]


@pytest.mark.anyio
async def test_stats(db, settings):
    service = AutomationService(db, settings)
    rule = await service.create_rule(name="Bids", trigger_type="manual", action_type="adjust_bids")
    await service.execute_automation(rule.id)
    stats = await service.stats()
    assert stats["total_rules"] == 1


async def _add_performance(db, entity_type, entity_id, impressions, clicks, days_ago=1):
    start = (utcnow() - timedelta(days=days_ago)).date()
    db.add(PerformanceData(
        entity_type=entity_type, entity_id=entity_id,
        date_range_start=start, date_range_end=start,
        impressions=impressions, clicks=clicks,
    ))
    await db.flush()


async def _pause_rule(service, **config):
    return await service.create_rule(
        name="Pause weak", trigger_type="manual", action_type="pause_low_performers",
        action_config={"ctr_threshold": 0.01, "min_impressions": 1000, "date_range_days": 7, **config},
    )


@pytest.mark.anyio
async def test_pause_low_performers_pauses_weak_ad_group(db, settings, make_campaign, make_ad_group):
    campaign = await make_campaign()
    weak = await make_ad_group(campaign.id, name="Weak")
    strong = await make_ad_group(campaign.id, name="Strong")
    await _add_performance(db, "ad_group", weak.id, impressions=5000, clicks=10)
    await _add_performance(db, "ad_group", strong.id, impressions=5000, clicks=200)
    service = AutomationService(db, settings)

    result = await service.execute_automation((await _pause_rule(service)).id)

    assert result["status"] == "completed"
    assert result["entities_affected"] == 1
    change = result["changes_made"][0]
    assert change["type"] == "paused"
    assert change["entity_id"] == weak.id
    assert change["ctr"] == 0.002
    repo = AdGroupRepository(db)
    assert (await repo.find_by_id(weak.id)).status == "paused"
    assert (await repo.find_by_id(strong.id)).status == "active"


@pytest.mark.anyio
async def test_pause_low_performers_needs_enough_recent_impressions(db, settings, make_campaign, make_ad_group):
    campaign = await make_campaign()
    sparse = await make_ad_group(campaign.id, name="Sparse")
    stale = await make_ad_group(campaign.id, name="Stale")
    await _add_performance(db, "ad_group", sparse.id, impressions=999, clicks=0)
    await _add_performance(db, "ad_group", stale.id, impressions=5000, clicks=0, days_ago=30)
    service = AutomationService(db, settings)

    result = await service.execute_automation((await _pause_rule(service)).id)

    assert result["status"] == "completed"
    assert result["entities_affected"] == 0
    repo = AdGroupRepository(db)
    assert (await repo.find_by_id(sparse.id)).status == "active"
    assert (await repo.find_by_id(stale.id)).status == "active"


@pytest.mark.anyio
async def test_pause_low_performers_skips_inactive_entities(db, settings, make_campaign, make_ad_group):
    campaign = await make_campaign()
    paused = await make_ad_group(campaign.id, name="Paused", status="paused")
    draft = await make_ad_group(campaign.id, name="Draft", status="draft")
    await _add_performance(db, "ad_group", paused.id, impressions=5000, clicks=0)
    await _add_performance(db, "ad_group", draft.id, impressions=5000, clicks=0)
    service = AutomationService(db, settings)

    result = await service.execute_automation((await _pause_rule(service)).id)

    assert result["entities_affected"] == 0
    assert result["changes_made"] == []
    repo = AdGroupRepository(db)
    assert (await repo.find_by_id(paused.id)).status == "paused"
    assert (await repo.find_by_id(draft.id)).status == "draft"


@pytest.mark.anyio
async def test_pause_low_performers_campaign_level(db, settings, make_campaign):
    campaign = await make_campaign()
    await _add_performance(db, "campaign", campaign.id, impressions=2000, clicks=1)
    service = AutomationService(db, settings)

    result = await service.execute_automation((await _pause_rule(service, entity_type="campaign")).id)

    assert result["entities_affected"] == 1
    assert (await CampaignRepository(db).find_by_id(campaign.id)).status == "paused"


@pytest.mark.anyio
async def test_pause_low_performers_rejects_unknown_entity_type(db, settings):
    service = AutomationService(db, settings)
    rule = await _pause_rule(service, entity_type="keyword")

    result = await service.execute_automation(rule.id)

    assert result["status"] == "failed"
    assert result["errors"] == ["Unsupported entity_type for pausing: keyword"]
    history = await service.get_history(rule.id)
    assert history[0].status == "failed"
