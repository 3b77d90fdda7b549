"""
Recommendations Router — generate, browse, apply and dismiss engine output.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_builder.database import get_db
from campaign_builder.errors import NotFoundError, ValidationError
from campaign_builder.models import RecommendationStatus
from campaign_builder.serializers import serialize_recommendation
from campaign_builder.services.recommendation_engine import GenerationOptions, RecommendationEngine
from campaign_builder.utils import success_response

logger = logging.getLogger(__name__)
router = APIRouter()

_STATUSES = [s.value for s in RecommendationStatus]


class ApplyBulkRequest(BaseModel):
    recommendation_ids: list[str] = []


class StatusUpdate(BaseModel):
    status: str = ""


@router.post("/generate")
async def generate(body: Optional[GenerationOptions] = None, db: AsyncSession = Depends(get_db)):
    body = body or GenerationOptions()
    if body.min_impressions_threshold is not None and body.min_impressions_threshold < 0:
        raise ValidationError("min_impressions_threshold must be zero or positive", code="INVALID_COUNT")
    recs = await RecommendationEngine(db).generate_recommendations(body)
    by_type: dict[str, int] = {}
    for r in recs:
        by_type[r.recommendation_type] = by_type.get(r.recommendation_type, 0) + 1
    return success_response(
        [serialize_recommendation(r) for r in recs],
        meta={"count": len(recs), "by_type": by_type},
    )


@router.get("")
async def list_recommendations(
    status: Optional[str] = None,
    priority: Optional[str] = None,
    campaign_id: Optional[str] = None,
    recommendation_type: Optional[str] = Query(None, alias="type"),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    recs = await RecommendationEngine(db).list_recommendations(
        status=status,
        priority=priority,
        campaign_id=campaign_id,
        recommendation_type=recommendation_type,
        limit=limit,
    )
    return success_response([serialize_recommendation(r) for r in recs], meta={"count": len(recs)})


@router.get("/stats")
async def recommendation_stats(db: AsyncSession = Depends(get_db)):
    return success_response(await RecommendationEngine(db).stats())


@router.get("/campaign/{campaign_id}")
async def campaign_recommendations(campaign_id: str, status: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    recs = await RecommendationEngine(db).get_recommendations_for_campaign(campaign_id, status)
    return success_response([serialize_recommendation(r) for r in recs], meta={"count": len(recs)})


@router.post("/apply-bulk")
async def apply_bulk(body: ApplyBulkRequest, db: AsyncSession = Depends(get_db)):
    if not body.recommendation_ids:
        raise ValidationError("recommendation_ids must be a non-empty list", code="INVALID_REQUEST")
    return success_response(await RecommendationEngine(db).apply_bulk(body.recommendation_ids))


@router.post("/{rec_id}/apply")
async def apply_recommendation(rec_id: str, db: AsyncSession = Depends(get_db)):
    # Apply failures are reported in the payload, not as HTTP errors.
    return success_response(await RecommendationEngine(db).apply_recommendation(rec_id))


@router.patch("/{rec_id}/status")
async def update_status(rec_id: str, body: StatusUpdate, db: AsyncSession = Depends(get_db)):
    if body.status not in _STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(_STATUSES)}", code="INVALID_STATUS")
    rec = await RecommendationEngine(db).update_status(rec_id, body.status)
    if rec is None:
        raise NotFoundError(f"Recommendation {rec_id} not found", code="RECOMMENDATION_NOT_FOUND")
    return success_response(serialize_recommendation(rec))


@router.delete("/{rec_id}")
async def delete_recommendation(rec_id: str, db: AsyncSession = Depends(get_db)):
    if not await RecommendationEngine(db).delete(rec_id):
        raise NotFoundError(f"Recommendation {rec_id} not found", code="RECOMMENDATION_NOT_FOUND")
    return success_response({"id": rec_id, "deleted": True})
