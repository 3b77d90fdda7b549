"""
Campaigns Router — CRUD, name search and bulk status changes.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_builder.database import get_db
from campaign_builder.errors import NotFoundError, ValidationError
from campaign_builder.repositories import AdGroupRepository, CampaignRepository
from campaign_builder.serializers import serialize_ad_group, serialize_campaign
from campaign_builder.utils import success_response
from campaign_builder.validation import (
    require_ids, require_name, validate_budget, validate_paths, validate_status, validate_url,
)

logger = logging.getLogger(__name__)
router = APIRouter()


class CampaignCreate(BaseModel):
    name: str = ""
    budget: Optional[float] = None
    status: Optional[str] = None
    location: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    final_url: Optional[str] = None
    path1: Optional[str] = None
    path2: Optional[str] = None
    global_descriptions: Optional[list[str]] = None


class CampaignUpdate(BaseModel):
    name: Optional[str] = None
    budget: Optional[float] = None
    status: Optional[str] = None
    location: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    final_url: Optional[str] = None
    path1: Optional[str] = None
    path2: Optional[str] = None
    global_descriptions: Optional[list[str]] = None


class BulkStatusRequest(BaseModel):
    campaign_ids: list[str] = []
    status: str = ""


def _clean(body: BaseModel, partial: bool) -> dict:
    data = body.model_dump(exclude_unset=partial)
    if not partial or "name" in data:
        data["name"] = require_name(data.get("name"))
    if "budget" in data:
        data["budget"] = validate_budget(data["budget"])
    if "status" in data:
        data["status"] = validate_status(data["status"])
    if "final_url" in data:
        data["final_url"] = validate_url(data["final_url"])
    validate_paths(data.get("path1"), data.get("path2"))
    return data


async def _get_campaign_or_404(repo: CampaignRepository, campaign_id: str):
    campaign = await repo.find_by_id(campaign_id)
    if campaign is None:
        raise NotFoundError(f"Campaign {campaign_id} not found", code="CAMPAIGN_NOT_FOUND")
    return campaign


@router.get("")
async def list_campaigns(status: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    campaigns = await CampaignRepository(db).find_all(status=validate_status(status))
    return success_response([serialize_campaign(c) for c in campaigns], meta={"count": len(campaigns)})


@router.get("/search")
async def search_campaigns(q: str = Query(""), db: AsyncSession = Depends(get_db)):
    if not q.strip():
        raise ValidationError("Query parameter q is required", code="INVALID_QUERY")
    campaigns = await CampaignRepository(db).search_by_name(q.strip())
    return success_response([serialize_campaign(c) for c in campaigns], meta={"count": len(campaigns)})


@router.get("/{campaign_id}")
async def get_campaign(campaign_id: str, db: AsyncSession = Depends(get_db)):
    campaign = await _get_campaign_or_404(CampaignRepository(db), campaign_id)
    return success_response(serialize_campaign(campaign))


@router.get("/{campaign_id}/ad-groups")
async def list_campaign_ad_groups(campaign_id: str, db: AsyncSession = Depends(get_db)):
    await _get_campaign_or_404(CampaignRepository(db), campaign_id)
    ad_groups = await AdGroupRepository(db).find_by_campaign_id(campaign_id)
    return success_response([serialize_ad_group(g) for g in ad_groups], meta={"count": len(ad_groups)})


@router.post("", status_code=201)
async def create_campaign(body: CampaignCreate, db: AsyncSession = Depends(get_db)):
    campaign = await CampaignRepository(db).create(_clean(body, partial=False))
    logger.info(f"Created campaign {campaign.id} '{campaign.name}'")
    return success_response(serialize_campaign(campaign))


@router.put("/{campaign_id}")
async def update_campaign(campaign_id: str, body: CampaignUpdate, db: AsyncSession = Depends(get_db)):
    campaign = await CampaignRepository(db).update(campaign_id, _clean(body, partial=True))
    if campaign is None:
        raise NotFoundError(f"Campaign {campaign_id} not found", code="CAMPAIGN_NOT_FOUND")
    return success_response(serialize_campaign(campaign))


@router.delete("/{campaign_id}")
async def delete_campaign(campaign_id: str, db: AsyncSession = Depends(get_db)):
    if not await CampaignRepository(db).delete(campaign_id):
        raise NotFoundError(f"Campaign {campaign_id} not found", code="CAMPAIGN_NOT_FOUND")
    logger.info(f"Deleted campaign {campaign_id}")
    return success_response({"id": campaign_id, "deleted": True})


@router.post("/bulk/status")
async def bulk_update_status(body: BulkStatusRequest, db: AsyncSession = Depends(get_db)):
    ids = require_ids(body.campaign_ids, "INVALID_CAMPAIGN_ID", "campaign_ids")
    status = validate_status(body.status or "")
    repo = CampaignRepository(db)
    updated = []
    for campaign in await repo.find_by_ids(ids):
        await repo.update(campaign.id, {"status": status})
        updated.append(campaign)
    return success_response(
        [serialize_campaign(c) for c in updated],
        meta={"requested": len(ids), "updated": len(updated)},
    )
