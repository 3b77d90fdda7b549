from typing import Optional

from sqlalchemy import select

from campaign_builder.models import Campaign, EntityStatus
from campaign_builder.repositories.base import BaseRepository

UPDATABLE_FIELDS = (
    "name", "budget", "status", "location", "start_date", "end_date",
    "final_url", "path1", "path2", "global_descriptions",
)


class CampaignRepository(BaseRepository[Campaign]):
    model = Campaign

    async def create(self, data: dict) -> Campaign:
        campaign = Campaign(
            name=data["name"],
            budget=data.get("budget") if data.get("budget") is not None else 0.0,
            status=data.get("status") or EntityStatus.DRAFT.value,
            location=data.get("location") or "United States",
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            final_url=data.get("final_url") or "",
            path1=data.get("path1") or "",
            path2=data.get("path2") or "",
            global_descriptions=list(data.get("global_descriptions") or []),
        )
        self.db.add(campaign)
        await self.db.flush()
        return campaign

    async def find_all(self, status: Optional[str] = None) -> list[Campaign]:
        query = select(Campaign).order_by(Campaign.created_at.desc())
        if status:
            query = query.where(Campaign.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_by_status(self, status: str) -> list[Campaign]:
        return await self.find_all(status=status)

    async def find_by_ids(self, ids: list[str]) -> list[Campaign]:
        if not ids:
            return []
        result = await self.db.execute(select(Campaign).where(Campaign.id.in_(ids)))
        return list(result.scalars().all())

    async def search_by_name(self, query_text: str) -> list[Campaign]:
        result = await self.db.execute(
            select(Campaign)
            .where(Campaign.name.ilike(f"%{query_text}%"))
            .order_by(Campaign.created_at.desc())
        )
        return list(result.scalars().all())

    async def find_by_name(self, name: str) -> Optional[Campaign]:
        result = await self.db.execute(select(Campaign).where(Campaign.name == name).limit(1))
        return result.scalar_one_or_none()

    async def update(self, campaign_id: str, data: dict) -> Optional[Campaign]:
        campaign = await self.find_by_id(campaign_id)
        if campaign is None:
            return None
        self._apply(campaign, data, UPDATABLE_FIELDS)
        await self.db.flush()
        return campaign
