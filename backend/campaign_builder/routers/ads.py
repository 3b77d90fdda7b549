"""
Ads Router — responsive search ads: CRUD, bulk duplicate and bulk status.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_builder.database import get_db
from campaign_builder.errors import NotFoundError, ValidationError
from campaign_builder.repositories import AdRepository
from campaign_builder.repositories.ad_repository import normalize_descriptions, normalize_headlines
from campaign_builder.serializers import serialize_ad
from campaign_builder.utils import success_response
from campaign_builder.validation import require_ids, validate_paths, validate_status, validate_url

logger = logging.getLogger(__name__)
router = APIRouter()

MIN_HEADLINES = 3
MIN_DESCRIPTIONS = 2


class AdCreate(BaseModel):
    ad_group_id: str = ""
    headlines: list[Any] = []
    descriptions: list[Any] = []
    final_url: Optional[str] = None
    path1: Optional[str] = None
    path2: Optional[str] = None
    status: Optional[str] = None


class AdUpdate(BaseModel):
    headlines: Optional[list[Any]] = None
    descriptions: Optional[list[Any]] = None
    final_url: Optional[str] = None
    path1: Optional[str] = None
    path2: Optional[str] = None
    status: Optional[str] = None


class BulkDuplicateRequest(BaseModel):
    ad_ids: list[str] = []
    target_ad_group_id: Optional[str] = None


class BulkStatusRequest(BaseModel):
    ad_ids: list[str] = []
    status: str = ""
    ad_group_id: Optional[str] = None


def _check_copy(headlines: Optional[list], descriptions: Optional[list]) -> None:
    if headlines is not None and len(normalize_headlines(headlines)) < MIN_HEADLINES:
        raise ValidationError(f"At least {MIN_HEADLINES} headlines are required", code="INVALID_HEADLINES")
    if descriptions is not None and len(normalize_descriptions(descriptions)) < MIN_DESCRIPTIONS:
        raise ValidationError(f"At least {MIN_DESCRIPTIONS} descriptions are required", code="INVALID_DESCRIPTIONS")


@router.get("")
async def list_ads(ad_group_id: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    repo = AdRepository(db)
    ads = await repo.find_by_ad_group_id(ad_group_id) if ad_group_id else await repo.find_all()
    return success_response([serialize_ad(a) for a in ads], meta={"count": len(ads)})


@router.get("/{ad_id}")
async def get_ad(ad_id: str, db: AsyncSession = Depends(get_db)):
    ad = await AdRepository(db).find_by_id(ad_id)
    if ad is None:
        raise NotFoundError(f"Ad {ad_id} not found", code="AD_NOT_FOUND")
    return success_response(serialize_ad(ad))


@router.post("", status_code=201)
async def create_ad(body: AdCreate, db: AsyncSession = Depends(get_db)):
    if not body.ad_group_id.strip():
        raise ValidationError("ad_group_id is required", code="INVALID_AD_GROUP_ID")
    _check_copy(body.headlines, body.descriptions)
    validate_url(body.final_url)
    validate_paths(body.path1, body.path2)
    repo = AdRepository(db)
    if not await repo.ad_group_exists(body.ad_group_id):
        raise NotFoundError(f"Ad group {body.ad_group_id} not found", code="AD_GROUP_NOT_FOUND")
    data = body.model_dump()
    data["status"] = validate_status(body.status)
    ad = await repo.create(data)
    logger.info(f"Created ad {ad.id} in ad group {ad.ad_group_id}")
    return success_response(serialize_ad(ad))


@router.put("/{ad_id}")
async def update_ad(ad_id: str, body: AdUpdate, db: AsyncSession = Depends(get_db)):
    data = body.model_dump(exclude_unset=True)
    _check_copy(data.get("headlines"), data.get("descriptions"))
    if "final_url" in data:
        data["final_url"] = validate_url(data["final_url"])
    if "status" in data:
        data["status"] = validate_status(data["status"])
    validate_paths(data.get("path1"), data.get("path2"))
    ad = await AdRepository(db).update(ad_id, data)
    if ad is None:
        raise NotFoundError(f"Ad {ad_id} not found", code="AD_NOT_FOUND")
    return success_response(serialize_ad(ad))


@router.delete("/{ad_id}")
async def delete_ad(ad_id: str, db: AsyncSession = Depends(get_db)):
    if not await AdRepository(db).delete(ad_id):
        raise NotFoundError(f"Ad {ad_id} not found", code="AD_NOT_FOUND")
    return success_response({"id": ad_id, "deleted": True})


@router.post("/bulk/duplicate", status_code=201)
async def bulk_duplicate(body: BulkDuplicateRequest, db: AsyncSession = Depends(get_db)):
    ids = require_ids(body.ad_ids, "INVALID_REQUEST", "ad_ids")
    repo = AdRepository(db)
    if body.target_ad_group_id and not await repo.ad_group_exists(body.target_ad_group_id):
        raise NotFoundError(f"Ad group {body.target_ad_group_id} not found", code="AD_GROUP_NOT_FOUND")
    copies = [await repo.duplicate(ad, ad_group_id=body.target_ad_group_id) for ad in await repo.find_by_ids(ids)]
    return success_response(
        [serialize_ad(a) for a in copies],
        meta={"requested": len(ids), "duplicated": len(copies)},
    )


@router.patch("/bulk/status")
async def bulk_update_status(body: BulkStatusRequest, db: AsyncSession = Depends(get_db)):
    ids = require_ids(body.ad_ids, "INVALID_REQUEST", "ad_ids")
    status = validate_status(body.status or "")
    updated = await AdRepository(db).set_status(ids, status, ad_group_id=body.ad_group_id)
    return success_response(
        [serialize_ad(a) for a in updated],
        meta={"requested": len(ids), "updated": len(updated)},
    )
