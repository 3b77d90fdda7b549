from typing import Optional

from sqlalchemy import select

from campaign_builder.models import Ad, AdGroup, EntityStatus, HeadlineCategory
from campaign_builder.repositories.base import BaseRepository

_CATEGORIES = {c.value for c in HeadlineCategory}


def normalize_headlines(raw: list) -> list[dict]:
    """Coerce strings or {text, category} dicts into stored headline dicts."""
    headlines = []
    for item in raw or []:
        if isinstance(item, str):
            text, category = item, HeadlineCategory.GENERAL.value
        elif isinstance(item, dict):
            text = item.get("text") or ""
            category = (item.get("category") or HeadlineCategory.GENERAL.value).upper()
        else:
            continue
        text = text.strip()
        if not text:
            continue
        if category not in _CATEGORIES:
            category = HeadlineCategory.GENERAL.value
        headlines.append({"text": text, "category": category})
    return headlines


def normalize_descriptions(raw: list) -> list[str]:
    descriptions = []
    for item in raw or []:
        text = item.get("text", "") if isinstance(item, dict) else str(item)
        if text.strip():
            descriptions.append(text.strip())
    return descriptions


class AdRepository(BaseRepository[Ad]):
    model = Ad

    async def create(self, data: dict) -> Ad:
        ad = Ad(
            ad_group_id=data["ad_group_id"],
            headlines=normalize_headlines(data.get("headlines") or []),
            descriptions=normalize_descriptions(data.get("descriptions") or []),
            final_url=data.get("final_url") or "",
            path1=data.get("path1") or "",
            path2=data.get("path2") or "",
            status=data.get("status") or EntityStatus.DRAFT.value,
        )
        self.db.add(ad)
        await self.db.flush()
        return ad

    async def find_all(self, status: Optional[str] = None) -> list[Ad]:
        query = select(Ad).order_by(Ad.created_at.desc())
        if status:
            query = query.where(Ad.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_by_ad_group_id(self, ad_group_id: str) -> list[Ad]:
        result = await self.db.execute(
            select(Ad).where(Ad.ad_group_id == ad_group_id).order_by(Ad.created_at.asc())
        )
        return list(result.scalars().all())

    async def find_by_campaign_id(self, campaign_id: str) -> list[Ad]:
        result = await self.db.execute(
            select(Ad)
            .join(AdGroup, Ad.ad_group_id == AdGroup.id)
            .where(AdGroup.campaign_id == campaign_id)
            .order_by(Ad.created_at.asc())
        )
        return list(result.scalars().all())

    async def find_by_ids(self, ids: list[str]) -> list[Ad]:
        if not ids:
            return []
        result = await self.db.execute(select(Ad).where(Ad.id.in_(ids)))
        return list(result.scalars().all())

    async def ad_group_exists(self, ad_group_id: str) -> bool:
        result = await self.db.execute(select(AdGroup.id).where(AdGroup.id == ad_group_id))
        return result.scalar_one_or_none() is not None

    async def update(self, ad_id: str, data: dict) -> Optional[Ad]:
        ad = await self.find_by_id(ad_id)
        if ad is None:
            return None
        self._apply(ad, data, ("final_url", "path1", "path2", "status"))
        if data.get("headlines") is not None:
            ad.headlines = normalize_headlines(data["headlines"])
        if data.get("descriptions") is not None:
            ad.descriptions = normalize_descriptions(data["descriptions"])
        await self.db.flush()
        return ad

    async def set_status(self, ids: list[str], status: str, ad_group_id: Optional[str] = None) -> list[Ad]:
        updated = []
        for ad in await self.find_by_ids(ids):
            if ad_group_id and ad.ad_group_id != ad_group_id:
                continue
            ad.status = status
            updated.append(ad)
        await self.db.flush()
        return updated

    async def duplicate(self, ad: Ad, ad_group_id: Optional[str] = None) -> Ad:
        copy = Ad(
            ad_group_id=ad_group_id or ad.ad_group_id,
            headlines=[dict(h) for h in ad.headlines or []],
            descriptions=list(ad.descriptions or []),
            final_url=ad.final_url,
            path1=ad.path1,
            path2=ad.path2,
            status=ad.status,
        )
        self.db.add(copy)
        await self.db.flush()
        return copy
