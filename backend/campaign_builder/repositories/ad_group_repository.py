import uuid
from typing import Optional

from sqlalchemy import select

from campaign_builder.models import AdGroup, Campaign, EntityStatus
from campaign_builder.repositories.base import BaseRepository


def keyword_key(text: str) -> str:
    """Comparison key for embedded keywords: case-insensitive, trimmed."""
    return (text or "").strip().lower()


def normalize_keywords(raw: list) -> list[dict]:
    """
    Coerce strings or {text, max_cpc} dicts into stored keyword dicts,
    dropping blanks and case-insensitive duplicates while keeping order.
    """
    keywords = []
    seen = set()
    for item in raw or []:
        if isinstance(item, str):
            text, max_cpc, kw_id = item, None, None
        elif isinstance(item, dict):
            text = item.get("text") or ""
            max_cpc = item.get("max_cpc", item.get("maxCpc"))
            kw_id = item.get("id")
        else:
            continue
        text = text.strip()
        key = keyword_key(text)
        if not key or key in seen:
            continue
        seen.add(key)
        keyword = {"id": kw_id or str(uuid.uuid4()), "text": text}
        if max_cpc is not None:
            keyword["max_cpc"] = float(max_cpc)
        keywords.append(keyword)
    return keywords


class AdGroupRepository(BaseRepository[AdGroup]):
    model = AdGroup

    async def create(self, data: dict) -> AdGroup:
        ad_group = AdGroup(
            campaign_id=data["campaign_id"],
            name=data["name"],
            keywords=normalize_keywords(data.get("keywords") or []),
            status=data.get("status") or EntityStatus.DRAFT.value,
        )
        self.db.add(ad_group)
        await self.db.flush()
        return ad_group

    async def find_all(self, status: Optional[str] = None) -> list[AdGroup]:
        query = select(AdGroup).order_by(AdGroup.created_at.desc())
        if status:
            query = query.where(AdGroup.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_by_campaign_id(self, campaign_id: str) -> list[AdGroup]:
        result = await self.db.execute(
            select(AdGroup)
            .where(AdGroup.campaign_id == campaign_id)
            .order_by(AdGroup.created_at.asc())
        )
        return list(result.scalars().all())

    async def find_by_ids(self, ids: list[str]) -> list[AdGroup]:
        if not ids:
            return []
        result = await self.db.execute(select(AdGroup).where(AdGroup.id.in_(ids)))
        return list(result.scalars().all())

    async def find_by_name(self, campaign_id: str, name: str) -> Optional[AdGroup]:
        result = await self.db.execute(
            select(AdGroup).where(AdGroup.campaign_id == campaign_id, AdGroup.name == name).limit(1)
        )
        return result.scalar_one_or_none()

    async def search_by_name(self, query_text: str) -> list[AdGroup]:
        result = await self.db.execute(
            select(AdGroup)
            .where(AdGroup.name.ilike(f"%{query_text}%"))
            .order_by(AdGroup.created_at.desc())
        )
        return list(result.scalars().all())

    async def campaign_exists(self, campaign_id: str) -> bool:
        result = await self.db.execute(select(Campaign.id).where(Campaign.id == campaign_id))
        return result.scalar_one_or_none() is not None

    async def update(self, ad_group_id: str, data: dict) -> Optional[AdGroup]:
        ad_group = await self.find_by_id(ad_group_id)
        if ad_group is None:
            return None
        self._apply(ad_group, data, ("name", "status"))
        if data.get("keywords") is not None:
            ad_group.keywords = normalize_keywords(data["keywords"])
        await self.db.flush()
        return ad_group

    async def add_keywords(self, ad_group: AdGroup, texts: list[str]) -> list[str]:
        """Append keywords not already present (case-insensitive). Returns the texts added."""
        existing = {keyword_key(k.get("text", "")) for k in ad_group.keywords or []}
        added = []
        new_list = list(ad_group.keywords or [])
        for text in texts:
            key = keyword_key(text)
            if not key or key in existing:
                continue
            existing.add(key)
            new_list.append({"id": str(uuid.uuid4()), "text": text.strip()})
            added.append(text.strip())
        if added:
            # Reassign so the JSON column is flagged dirty.
            ad_group.keywords = new_list
            await self.db.flush()
        return added

    async def set_status(self, ids: list[str], status: str, campaign_id: Optional[str] = None) -> list[AdGroup]:
        ad_groups = await self.find_by_ids(ids)
        updated = []
        for ad_group in ad_groups:
            if campaign_id and ad_group.campaign_id != campaign_id:
                continue
            ad_group.status = status
            updated.append(ad_group)
        await self.db.flush()
        return updated

    async def duplicate(self, ad_group: AdGroup, name: Optional[str] = None) -> AdGroup:
        copy = AdGroup(
            campaign_id=ad_group.campaign_id,
            name=name or f"{ad_group.name} (Copy)",
            keywords=[{**k, "id": str(uuid.uuid4())} for k in ad_group.keywords or []],
            status=ad_group.status,
        )
        self.db.add(copy)
        await self.db.flush()
        return copy
