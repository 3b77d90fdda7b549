"""
Negative Keywords Router — campaign- and ad-group-level negatives.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_builder.database import get_db
from campaign_builder.errors import NotFoundError, ValidationError
from campaign_builder.models import NegativeSource
from campaign_builder.repositories import AdGroupRepository, NegativeKeywordRepository
from campaign_builder.serializers import serialize_negative_keyword
from campaign_builder.utils import success_response
from campaign_builder.validation import MATCH_TYPES

router = APIRouter()


class NegativeKeywordCreate(BaseModel):
    campaign_id: str = ""
    keyword_text: str = ""
    match_type: str = "phrase"
    ad_group_id: Optional[str] = None


@router.get("")
async def list_negative_keywords(campaign_id: str = Query(""), db: AsyncSession = Depends(get_db)):
    if not campaign_id:
        raise ValidationError("campaign_id is required", code="INVALID_CAMPAIGN_ID")
    negatives = await NegativeKeywordRepository(db).find_by_campaign_id(campaign_id)
    return success_response([serialize_negative_keyword(n) for n in negatives], meta={"count": len(negatives)})


@router.post("", status_code=201)
async def create_negative_keyword(body: NegativeKeywordCreate, db: AsyncSession = Depends(get_db)):
    if not body.campaign_id:
        raise ValidationError("campaign_id is required", code="INVALID_CAMPAIGN_ID")
    text = body.keyword_text.strip()
    if not text or len(text) > 80:
        raise ValidationError("keyword_text must be 1-80 characters", code="INVALID_KEYWORDS")
    match_type = body.match_type.lower()
    if match_type not in MATCH_TYPES:
        raise ValidationError(f"match_type must be one of: {', '.join(MATCH_TYPES)}", code="INVALID_REQUEST")

    ad_groups = AdGroupRepository(db)
    if not await ad_groups.campaign_exists(body.campaign_id):
        raise NotFoundError(f"Campaign {body.campaign_id} not found", code="CAMPAIGN_NOT_FOUND")
    if body.ad_group_id:
        ad_group = await ad_groups.find_by_id(body.ad_group_id)
        if ad_group is None or ad_group.campaign_id != body.campaign_id:
            raise NotFoundError(f"Ad group {body.ad_group_id} not found", code="AD_GROUP_NOT_FOUND")

    negative = await NegativeKeywordRepository(db).create(
        body.campaign_id, text, match_type, body.ad_group_id, NegativeSource.MANUAL.value,
    )
    return success_response(serialize_negative_keyword(negative))


@router.delete("/{negative_id}")
async def delete_negative_keyword(negative_id: str, db: AsyncSession = Depends(get_db)):
    if not await NegativeKeywordRepository(db).delete(negative_id):
        raise NotFoundError(f"Negative keyword {negative_id} not found")
    return success_response({"id": negative_id, "deleted": True})
