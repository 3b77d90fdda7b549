from datetime import datetime
from typing import Optional

from sqlalchemy import case, func, select

from campaign_builder.models import AutomationHistory, AutomationRule, RunStatus, TriggerType
from campaign_builder.repositories.base import BaseRepository


class AutomationRepository(BaseRepository[AutomationRule]):
    """Rules and their append-only execution history."""

    model = AutomationRule

    async def create(self, rule: AutomationRule) -> AutomationRule:
        self.db.add(rule)
        await self.db.flush()
        return rule

    async def find_all(self, enabled: Optional[bool] = None) -> list[AutomationRule]:
        query = select(AutomationRule).order_by(AutomationRule.created_at.desc())
        if enabled is not None:
            query = query.where(AutomationRule.enabled.is_(enabled))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_due(self, now: datetime) -> list[AutomationRule]:
        result = await self.db.execute(
            select(AutomationRule)
            .where(
                AutomationRule.enabled.is_(True),
                AutomationRule.trigger_type == TriggerType.SCHEDULED.value,
                AutomationRule.next_run_at.is_not(None),
                AutomationRule.next_run_at <= now,
            )
            .order_by(AutomationRule.next_run_at.asc())
        )
        return list(result.scalars().all())

    async def add_history(self, entry: AutomationHistory) -> AutomationHistory:
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def find_history(self, rule_id: Optional[str] = None, limit: int = 50) -> list[AutomationHistory]:
        query = select(AutomationHistory)
        if rule_id:
            query = query.where(AutomationHistory.rule_id == rule_id)
        query = query.order_by(AutomationHistory.started_at.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def stats(self) -> dict:
        total_rules = await self.count()
        enabled_rules = await self.count(AutomationRule.enabled.is_(True))

        row = (await self.db.execute(
            select(
                func.count(AutomationHistory.id),
                func.sum(case((AutomationHistory.status == RunStatus.COMPLETED.value, 1), else_=0)),
                func.sum(case((AutomationHistory.status == RunStatus.FAILED.value, 1), else_=0)),
                func.avg(AutomationHistory.execution_time_ms),
            )
        )).one()

        next_row = (await self.db.execute(
            select(AutomationRule)
            .where(AutomationRule.enabled.is_(True), AutomationRule.next_run_at.is_not(None))
            .order_by(AutomationRule.next_run_at.asc())
            .limit(1)
        )).scalar_one_or_none()

        return {
            "total_rules": total_rules,
            "enabled_rules": enabled_rules,
            "total_executions": row[0] or 0,
            "successful_executions": int(row[1] or 0),
            "failed_executions": int(row[2] or 0),
            "avg_execution_time_ms": round(row[3]) if row[3] is not None else 0,
            "next_scheduled": {
                "rule_id": next_row.id,
                "rule_name": next_row.name,
                "next_run_at": next_row.next_run_at.isoformat(),
            } if next_row else None,
        }
