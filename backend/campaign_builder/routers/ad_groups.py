"""
Ad Groups Router — CRUD with embedded keywords, bulk duplicate and bulk status.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_builder.database import get_db
from campaign_builder.errors import NotFoundError, ValidationError
from campaign_builder.repositories import AdGroupRepository, AdRepository
from campaign_builder.serializers import serialize_ad, serialize_ad_group
from campaign_builder.utils import success_response
from campaign_builder.validation import require_ids, require_name, validate_status

logger = logging.getLogger(__name__)
router = APIRouter()


class AdGroupCreate(BaseModel):
    campaign_id: str = ""
    name: str = ""
    keywords: list[Any] = []
    status: Optional[str] = None


class AdGroupUpdate(BaseModel):
    name: Optional[str] = None
    keywords: Optional[list[Any]] = None
    status: Optional[str] = None


class BulkDuplicateRequest(BaseModel):
    ad_group_ids: list[str] = []
    include_ads: bool = True


class BulkStatusRequest(BaseModel):
    ad_group_ids: list[str] = []
    status: str = ""
    campaign_id: Optional[str] = None


def _check_keywords(keywords: list) -> None:
    for item in keywords:
        text = item.get("text") if isinstance(item, dict) else item
        if not isinstance(text, str):
            raise ValidationError("keywords must be strings or {text, max_cpc} objects", code="INVALID_KEYWORDS")
        if len(text.strip()) > 80:
            raise ValidationError(f"Keyword '{text[:20]}...' exceeds 80 characters", code="INVALID_KEYWORDS")


async def _get_ad_group_or_404(repo: AdGroupRepository, ad_group_id: str):
    ad_group = await repo.find_by_id(ad_group_id)
    if ad_group is None:
        raise NotFoundError(f"Ad group {ad_group_id} not found", code="AD_GROUP_NOT_FOUND")
    return ad_group


@router.get("")
async def list_ad_groups(campaign_id: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    repo = AdGroupRepository(db)
    ad_groups = await repo.find_by_campaign_id(campaign_id) if campaign_id else await repo.find_all()
    return success_response([serialize_ad_group(g) for g in ad_groups], meta={"count": len(ad_groups)})


@router.get("/{ad_group_id}")
async def get_ad_group(ad_group_id: str, db: AsyncSession = Depends(get_db)):
    ad_group = await _get_ad_group_or_404(AdGroupRepository(db), ad_group_id)
    return success_response(serialize_ad_group(ad_group))


@router.get("/{ad_group_id}/ads")
async def list_ad_group_ads(ad_group_id: str, db: AsyncSession = Depends(get_db)):
    await _get_ad_group_or_404(AdGroupRepository(db), ad_group_id)
    ads = await AdRepository(db).find_by_ad_group_id(ad_group_id)
    return success_response([serialize_ad(a) for a in ads], meta={"count": len(ads)})


@router.post("", status_code=201)
async def create_ad_group(body: AdGroupCreate, db: AsyncSession = Depends(get_db)):
    if not body.campaign_id.strip():
        raise ValidationError("campaign_id is required", code="INVALID_CAMPAIGN_ID")
    name = require_name(body.name)
    _check_keywords(body.keywords)
    repo = AdGroupRepository(db)
    if not await repo.campaign_exists(body.campaign_id):
        raise NotFoundError(f"Campaign {body.campaign_id} not found", code="CAMPAIGN_NOT_FOUND")
    ad_group = await repo.create({
        "campaign_id": body.campaign_id,
        "name": name,
        "keywords": body.keywords,
        "status": validate_status(body.status),
    })
    logger.info(f"Created ad group {ad_group.id} in campaign {ad_group.campaign_id}")
    return success_response(serialize_ad_group(ad_group))


@router.put("/{ad_group_id}")
async def update_ad_group(ad_group_id: str, body: AdGroupUpdate, db: AsyncSession = Depends(get_db)):
    data = body.model_dump(exclude_unset=True)
    if "name" in data:
        data["name"] = require_name(data["name"])
    if "status" in data:
        data["status"] = validate_status(data["status"])
    if data.get("keywords") is not None:
        _check_keywords(data["keywords"])
    ad_group = await AdGroupRepository(db).update(ad_group_id, data)
    if ad_group is None:
        raise NotFoundError(f"Ad group {ad_group_id} not found", code="AD_GROUP_NOT_FOUND")
    return success_response(serialize_ad_group(ad_group))


@router.delete("/{ad_group_id}")
async def delete_ad_group(ad_group_id: str, db: AsyncSession = Depends(get_db)):
    if not await AdGroupRepository(db).delete(ad_group_id):
        raise NotFoundError(f"Ad group {ad_group_id} not found", code="AD_GROUP_NOT_FOUND")
    return success_response({"id": ad_group_id, "deleted": True})


@router.post("/bulk/duplicate", status_code=201)
async def bulk_duplicate(body: BulkDuplicateRequest, db: AsyncSession = Depends(get_db)):
    ids = require_ids(body.ad_group_ids, "INVALID_AD_GROUP_ID", "ad_group_ids")
    repo = AdGroupRepository(db)
    ads = AdRepository(db)
    copies = []
    ads_copied = 0
    for ad_group in await repo.find_by_ids(ids):
        copy = await repo.duplicate(ad_group)
        if body.include_ads:
            for ad in await ads.find_by_ad_group_id(ad_group.id):
                await ads.duplicate(ad, ad_group_id=copy.id)
                ads_copied += 1
        copies.append(copy)
    logger.info(f"Duplicated {len(copies)} ad group(s) with {ads_copied} ad(s)")
    return success_response(
        [serialize_ad_group(g) for g in copies],
        meta={"requested": len(ids), "duplicated": len(copies), "ads_copied": ads_copied},
    )


@router.patch("/bulk/status")
async def bulk_update_status(body: BulkStatusRequest, db: AsyncSession = Depends(get_db)):
    ids = require_ids(body.ad_group_ids, "INVALID_AD_GROUP_ID", "ad_group_ids")
    status = validate_status(body.status or "")
    updated = await AdGroupRepository(db).set_status(ids, status, campaign_id=body.campaign_id)
    return success_response(
        [serialize_ad_group(g) for g in updated],
        meta={"requested": len(ids), "updated": len(updated)},
    )
