from typing import Optional

from sqlalchemy import func, select

from campaign_builder.models import MatchType, NegativeKeyword, NegativeLevel, NegativeSource
from campaign_builder.repositories.base import BaseRepository


class NegativeKeywordRepository(BaseRepository[NegativeKeyword]):
    model = NegativeKeyword

    async def create(
        self,
        campaign_id: str,
        keyword_text: str,
        match_type: str = MatchType.PHRASE.value,
        ad_group_id: Optional[str] = None,
        source: str = NegativeSource.MANUAL.value,
    ) -> NegativeKeyword:
        negative = NegativeKeyword(
            campaign_id=campaign_id,
            ad_group_id=ad_group_id,
            keyword_text=keyword_text.strip(),
            match_type=match_type,
            level=NegativeLevel.AD_GROUP.value if ad_group_id else NegativeLevel.CAMPAIGN.value,
            source=source,
        )
        self.db.add(negative)
        await self.db.flush()
        return negative

    async def find_by_campaign_id(self, campaign_id: str) -> list[NegativeKeyword]:
        result = await self.db.execute(
            select(NegativeKeyword)
            .where(NegativeKeyword.campaign_id == campaign_id)
            .order_by(NegativeKeyword.created_at.asc())
        )
        return list(result.scalars().all())

    async def count_for_campaign(self, campaign_id: str) -> int:
        return await self.count(NegativeKeyword.campaign_id == campaign_id)

    async def exists(self, campaign_id: str, keyword_text: str, ad_group_id: Optional[str] = None) -> bool:
        query = select(func.count()).select_from(NegativeKeyword).where(
            NegativeKeyword.campaign_id == campaign_id,
            func.lower(NegativeKeyword.keyword_text) == keyword_text.strip().lower(),
        )
        if ad_group_id:
            query = query.where(NegativeKeyword.ad_group_id == ad_group_id)
        result = await self.db.execute(query)
        return (result.scalar() or 0) > 0
