from typing import Optional

from sqlalchemy import case, func, select

from campaign_builder.models import Recommendation, RecommendationStatus
from campaign_builder.repositories.base import BaseRepository

PRIORITY_RANK = {"critical": 4, "high": 3, "medium": 2, "low": 1}

_priority_order = case(PRIORITY_RANK, value=Recommendation.priority, else_=0)


class RecommendationRepository(BaseRepository[Recommendation]):
    model = Recommendation

    async def add_all(self, recommendations: list[Recommendation]) -> list[Recommendation]:
        self.db.add_all(recommendations)
        await self.db.flush()
        return recommendations

    async def find_for_campaign(self, campaign_id: str, status: Optional[str] = None) -> list[Recommendation]:
        query = select(Recommendation).where(Recommendation.campaign_id == campaign_id)
        if status:
            query = query.where(Recommendation.status == status)
        query = query.order_by(_priority_order.desc(), Recommendation.created_at.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_filtered(
        self,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        campaign_id: Optional[str] = None,
        recommendation_type: Optional[str] = None,
        limit: int = 100,
    ) -> list[Recommendation]:
        query = select(Recommendation)
        if status:
            query = query.where(Recommendation.status == status)
        if priority:
            query = query.where(Recommendation.priority == priority)
        if campaign_id:
            query = query.where(Recommendation.campaign_id == campaign_id)
        if recommendation_type:
            query = query.where(Recommendation.recommendation_type == recommendation_type)
        query = query.order_by(_priority_order.desc(), Recommendation.created_at.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_pending_eligible(
        self,
        campaign_ids: list[str],
        priorities: list[str],
        auto_apply_only: bool = True,
    ) -> list[Recommendation]:
        if not campaign_ids:
            return []
        query = select(Recommendation).where(
            Recommendation.status == RecommendationStatus.PENDING.value,
            Recommendation.campaign_id.in_(campaign_ids),
        )
        if priorities:
            query = query.where(Recommendation.priority.in_(priorities))
        if auto_apply_only:
            query = query.where(Recommendation.auto_apply_eligible.is_(True))
        query = query.order_by(_priority_order.desc(), Recommendation.created_at.asc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_status(self, rec_id: str, status: str) -> Optional[Recommendation]:
        rec = await self.find_by_id(rec_id)
        if rec is None:
            return None
        rec.status = status
        await self.db.flush()
        return rec

    async def stats(self) -> dict:
        total = await self.count()

        by_status = dict((await self.db.execute(
            select(Recommendation.status, func.count()).group_by(Recommendation.status)
        )).all())
        by_priority = dict((await self.db.execute(
            select(Recommendation.priority, func.count()).group_by(Recommendation.priority)
        )).all())
        type_rows = (await self.db.execute(
            select(Recommendation.recommendation_type, func.count().label("n"))
            .group_by(Recommendation.recommendation_type)
            .order_by(func.count().desc())
            .limit(10)
        )).all()
        auto_apply_eligible = await self.count(
            Recommendation.status == RecommendationStatus.PENDING.value,
            Recommendation.auto_apply_eligible.is_(True),
        )
        return {
            "total": total,
            "by_status": by_status,
            "by_priority": by_priority,
            "by_type": [{"type": t, "count": n} for t, n in type_rows],
            "auto_apply_eligible": auto_apply_eligible,
        }
