"""
Automation Orchestrator — stored rules that run one action each, manually or
when an external cron caller asks for the rules that are due.

Every run appends an automation_history row:
  started → completed   (no errors collected)
          → partial     (action finished but recorded errors)
          → failed      (action raised)
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_builder.config import Settings, get_settings
from campaign_builder.errors import NotFoundError
from campaign_builder.models import (
    Ad, AdGroup, ActionType, AutomationHistory, AutomationRule, Campaign, EntityStatus,
    MatchType, NegativeSource, PerformanceData, RunStatus, RunType, TriggerType,
)
from campaign_builder.repositories import (
    AdGroupRepository, AutomationRepository, CampaignRepository, NegativeKeywordRepository,
    RecommendationRepository,
)
from campaign_builder.services.recommendation_engine import GenerationOptions, RecommendationEngine
from campaign_builder.services.sheets_service import SheetsService
from campaign_builder.utils import utcnow

logger = logging.getLogger(__name__)

SCHEDULE_INTERVALS = {
    "hourly": timedelta(hours=1),
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
}

NOT_IMPLEMENTED_ACTIONS = {
    ActionType.REFRESH_ADS.value,
    ActionType.ADJUST_BIDS.value,
    ActionType.GENERATE_REPORT.value,
}

TEMPLATES = [
    {
        "name": "Daily Recommendations",
        "description": "Generate fresh recommendations for all active campaigns every day",
        "trigger_type": TriggerType.SCHEDULED.value,
        "trigger_config": {"schedule": "daily"},
        "action_type": ActionType.GENERATE_RECOMMENDATIONS.value,
        "action_config": {},
        "filters": {},
    },
    {
        "name": "Weekly Performance Review",
        "description": "Apply critical and high-priority auto-apply recommendations once a week",
        "trigger_type": TriggerType.SCHEDULED.value,
        "trigger_config": {"schedule": "weekly"},
        "action_type": ActionType.APPLY_RECOMMENDATIONS.value,
        "action_config": {"priority_filter": ["critical", "high"], "auto_apply_only": True},
        "filters": {},
    },
    {
        "name": "Auto-Sync Google Sheets",
        "description": "Pull performance, search term and asset data from Google Sheets every day",
        "trigger_type": TriggerType.SCHEDULED.value,
        "trigger_config": {"schedule": "daily"},
        "action_type": ActionType.SYNC_SHEETS_DATA.value,
        "action_config": {},
        "filters": {},
    },
    {
        "name": "Add Common Negatives",
        "description": "Add a standard list of irrelevant terms as negatives to active campaigns",
        "trigger_type": TriggerType.MANUAL.value,
        "trigger_config": {},
        "action_type": ActionType.ADD_NEGATIVES.value,
        "action_config": {
            "negative_keywords": ["free", "cheap", "download", "torrent", "crack", "jobs", "salary"],
            "match_type": MatchType.PHRASE.value,
        },
        "filters": {},
    },
    {
        "name": "Budget Increase for Winners",
        "description": "Raise budgets by 20% for campaigns that are limited by budget",
        "trigger_type": TriggerType.MANUAL.value,
        "trigger_config": {},
        "action_type": ActionType.INCREASE_BUDGET.value,
        "action_config": {"adjustment_percent": 20},
        "filters": {},
    },
]


def compute_next_run(trigger_type: str, trigger_config: Optional[dict], now: Optional[datetime] = None) -> Optional[datetime]:
    """Next fire time for scheduled rules; None for everything else."""
    if trigger_type != TriggerType.SCHEDULED.value:
        return None
    interval = SCHEDULE_INTERVALS.get((trigger_config or {}).get("schedule"))
    if interval is None:
        return None
    return (now or utcnow()) + interval


class _RunLog:
    """Mutable accumulator passed to each action handler."""

    def __init__(self):
        self.entities_affected = 0
        self.changes: list[dict] = []
        self.errors: list[str] = []

    def change(self, **entry):
        self.changes.append(entry)
        self.entities_affected += 1


class AutomationService:
    """Rule CRUD plus execution of the eleven action types."""

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.rules = AutomationRepository(db)
        self.campaigns = CampaignRepository(db)
        self.ad_groups = AdGroupRepository(db)
        self.negatives = NegativeKeywordRepository(db)
        self.recommendations = RecommendationRepository(db)

    # ── Rule CRUD ─────────────────────────────────────────────────────

    async def list_rules(self, enabled: Optional[bool] = None) -> list[AutomationRule]:
        return await self.rules.find_all(enabled)

    async def get_rule(self, rule_id: str) -> AutomationRule:
        rule = await self.rules.find_by_id(rule_id)
        if rule is None:
            raise NotFoundError(f"Automation rule {rule_id} not found", code="RULE_NOT_FOUND")
        return rule

    async def create_rule(
        self,
        name: str,
        trigger_type: str,
        action_type: str,
        description: Optional[str] = None,
        trigger_config: Optional[dict] = None,
        action_config: Optional[dict] = None,
        filters: Optional[dict] = None,
        enabled: bool = True,
    ) -> AutomationRule:
        rule = AutomationRule(
            name=name,
            description=description,
            trigger_type=trigger_type,
            trigger_config=trigger_config or {},
            action_type=action_type,
            action_config=action_config or {},
            filters=filters or {},
            enabled=enabled,
            next_run_at=compute_next_run(trigger_type, trigger_config),
        )
        await self.rules.create(rule)
        logger.info(f"Created automation rule '{name}' ({action_type}, {trigger_type})")
        return rule

    async def update_rule(self, rule_id: str, data: dict) -> AutomationRule:
        rule = await self.get_rule(rule_id)
        for field in ("name", "description", "trigger_type", "trigger_config",
                      "action_type", "action_config", "filters", "enabled"):
            if data.get(field) is not None:
                setattr(rule, field, data[field])
        rule.next_run_at = compute_next_run(rule.trigger_type, rule.trigger_config)
        await self.db.flush()
        return rule

    async def delete_rule(self, rule_id: str) -> None:
        if not await self.rules.delete(rule_id):
            raise NotFoundError(f"Automation rule {rule_id} not found", code="RULE_NOT_FOUND")

    # ── Execution ─────────────────────────────────────────────────────

    async def execute_automation(self, rule_id: str, run_type: str = RunType.MANUAL.value) -> dict:
        rule = await self.get_rule(rule_id)

        history = AutomationHistory(
            rule_id=rule.id,
            run_type=run_type,
            status=RunStatus.STARTED.value,
            run_metadata={"rule_name": rule.name, "action_type": rule.action_type},
        )
        await self.rules.add_history(history)

        log = _RunLog()
        started = time.monotonic()
        try:
            # A raising action leaves no half-applied changes behind.
            async with self.db.begin_nested():
                await self._dispatch(rule, log)
            status = RunStatus.PARTIAL.value if log.errors else RunStatus.COMPLETED.value
        except Exception as exc:
            logger.error(f"Automation '{rule.name}' failed: {exc}", exc_info=True)
            log.errors.append(str(exc))
            log.changes, log.entities_affected = [], 0
            status = RunStatus.FAILED.value
        elapsed_ms = int((time.monotonic() - started) * 1000)

        now = utcnow()
        history.status = status
        history.entities_affected = log.entities_affected
        history.changes_made = log.changes
        history.errors = log.errors
        history.execution_time_ms = elapsed_ms
        history.completed_at = now

        rule.last_run_at = now
        rule.next_run_at = compute_next_run(rule.trigger_type, rule.trigger_config, now)
        rule.run_count = (rule.run_count or 0) + 1
        await self.db.flush()

        logger.info(
            f"Automation '{rule.name}' {status}: {log.entities_affected} affected, "
            f"{len(log.errors)} error(s) in {elapsed_ms}ms"
        )
        return {
            "history_id": history.id,
            "status": status,
            "entities_affected": log.entities_affected,
            "changes_made": log.changes,
            "errors": log.errors,
            "execution_time_ms": elapsed_ms,
        }

    async def _dispatch(self, rule: AutomationRule, log: _RunLog) -> None:
        config = rule.action_config or {}
        filters = rule.filters or {}
        action = rule.action_type

        if action == ActionType.GENERATE_RECOMMENDATIONS.value:
            await self._generate_recommendations(config, log)
        elif action == ActionType.APPLY_RECOMMENDATIONS.value:
            await self._apply_recommendations(config, filters, log)
        elif action == ActionType.PAUSE_LOW_PERFORMERS.value:
            await self._pause_low_performers(config, log)
        elif action == ActionType.ADD_NEGATIVES.value:
            await self._add_negatives(config, log)
        elif action == ActionType.ADD_KEYWORDS.value:
            await self._add_keywords(config, log)
        elif action == ActionType.INCREASE_BUDGET.value:
            await self._adjust_budget(config, log, increase=True)
        elif action == ActionType.DECREASE_BUDGET.value:
            await self._adjust_budget(config, log, increase=False)
        elif action == ActionType.SYNC_SHEETS_DATA.value:
            await self._sync_sheets(log)
        elif action in NOT_IMPLEMENTED_ACTIONS:
            log.errors.append(f"{action} not yet implemented")
        else:
            raise ValueError(f"Unknown action type: {action}")

    async def _target_campaigns(self, campaign_ids: Optional[list[str]]) -> list[Campaign]:
        if campaign_ids:
            return await self.campaigns.find_by_ids(campaign_ids)
        return await self.campaigns.find_by_status(EntityStatus.ACTIVE.value)

    async def _generate_recommendations(self, config: dict, log: _RunLog) -> None:
        engine = RecommendationEngine(self.db)
        recs = await engine.generate_recommendations(
            GenerationOptions(campaign_ids=config.get("campaign_ids") or None)
        )
        log.entities_affected += len(recs)
        log.changes.append({"type": "recommendations_generated", "count": len(recs)})

    async def _apply_recommendations(self, config: dict, filters: dict, log: _RunLog) -> None:
        campaigns = await self._target_campaigns(filters.get("campaign_ids"))
        pending = await self.recommendations.find_pending_eligible(
            [c.id for c in campaigns],
            config.get("priority_filter") or ["critical", "high"],
            auto_apply_only=config.get("auto_apply_only", True),
        )
        engine = RecommendationEngine(self.db)
        for rec_id, title in [(r.id, r.title) for r in pending]:
            outcome = await engine.apply_recommendation(rec_id)
            if outcome["success"]:
                log.change(type="recommendation_applied", recommendation_id=rec_id, title=title)
            else:
                log.errors.append(f"{title}: {outcome['message']}")

    async def _pause_low_performers(self, config: dict, log: _RunLog) -> None:
        entity_type = config.get("entity_type", "ad_group")
        ctr_threshold = float(config.get("ctr_threshold", 0.01))
        min_impressions = int(config.get("min_impressions", 1000))
        days = int(config.get("date_range_days", 7))
        since = (utcnow() - timedelta(days=days)).date()

        model = {"ad_group": AdGroup, "ad": Ad, "campaign": Campaign}.get(entity_type)
        if model is None:
            raise ValueError(f"Unsupported entity_type for pausing: {entity_type}")

        result = await self.db.execute(
            select(
                PerformanceData.entity_id,
                func.sum(PerformanceData.impressions),
                func.sum(PerformanceData.clicks),
            )
            .where(PerformanceData.entity_type == entity_type, PerformanceData.date_range_start >= since)
            .group_by(PerformanceData.entity_id)
        )
        for entity_id, impressions, clicks in result.all():
            impressions = impressions or 0
            if impressions < min_impressions:
                continue
            ctr = (clicks or 0) / impressions
            if ctr >= ctr_threshold:
                continue
            entity = (await self.db.execute(select(model).where(model.id == entity_id))).scalar_one_or_none()
            if entity is None or entity.status != EntityStatus.ACTIVE.value:
                continue
            entity.status = EntityStatus.PAUSED.value
            log.change(type="paused", entity_type=entity_type, entity_id=entity_id, ctr=round(ctr, 4))
        await self.db.flush()

    async def _add_negatives(self, config: dict, log: _RunLog) -> None:
        keywords = [k for k in config.get("negative_keywords") or [] if str(k).strip()]
        if not keywords:
            log.errors.append("No negative keywords configured")
            return
        match_type = config.get("match_type") or MatchType.PHRASE.value
        for campaign in await self._target_campaigns(config.get("campaign_ids")):
            for keyword in keywords:
                if await self.negatives.exists(campaign.id, keyword):
                    continue
                await self.negatives.create(
                    campaign_id=campaign.id,
                    keyword_text=keyword,
                    match_type=match_type,
                    source=NegativeSource.AUTOMATED.value,
                )
                log.change(type="negative_added", campaign_id=campaign.id, keyword=keyword)

    async def _add_keywords(self, config: dict, log: _RunLog) -> None:
        ad_group_id = config.get("ad_group_id")
        keywords = config.get("keywords") or []
        if not ad_group_id or not keywords:
            log.errors.append("add_keywords requires ad_group_id and keywords")
            return
        ad_group = await self.ad_groups.find_by_id(ad_group_id)
        if ad_group is None:
            log.errors.append(f"Ad group {ad_group_id} not found")
            return
        for text in await self.ad_groups.add_keywords(ad_group, keywords):
            log.change(type="keyword_added", ad_group_id=ad_group_id, keyword=text)

    async def _adjust_budget(self, config: dict, log: _RunLog, increase: bool) -> None:
        percent = float(config.get("adjustment_percent", 10))
        factor = 1 + percent / 100 if increase else 1 - percent / 100
        for campaign in await self._target_campaigns(config.get("campaign_ids")):
            old = campaign.budget or 0.0
            campaign.budget = round(old * factor, 2)
            log.change(type="budget_adjusted", campaign_id=campaign.id, old_budget=old, new_budget=campaign.budget)
        await self.db.flush()

    async def _sync_sheets(self, log: _RunLog) -> None:
        sheets = SheetsService(self.db, self.settings)
        if await sheets.get_config() is None:
            log.errors.append("Google Sheets not configured")
            return
        result = await sheets.sync()
        imported = result["performance_rows"] + result["search_term_rows"] + result["asset_rows"]
        log.entities_affected += imported
        log.changes.append({"type": "sheets_synced", **{k: v for k, v in result.items() if k != "errors"}})
        log.errors.extend(result["errors"])

    # ── Scheduling & reporting ────────────────────────────────────────

    async def run_due_automations(self) -> list[dict]:
        due = await self.rules.find_due(utcnow())
        results = []
        for rule in due:
            outcome = await self.execute_automation(rule.id, run_type=RunType.SCHEDULED.value)
            results.append({"rule_id": rule.id, "rule_name": rule.name, **outcome})
        if due:
            logger.info(f"Ran {len(due)} due automation rule(s)")
        return results

    async def get_history(self, rule_id: Optional[str] = None, limit: int = 50) -> list[AutomationHistory]:
        return await self.rules.find_history(rule_id, limit)

    async def stats(self) -> dict:
        return await self.rules.stats()

    @staticmethod
    def templates() -> list[dict]:
        return [dict(t) for t in TEMPLATES]
