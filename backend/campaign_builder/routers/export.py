"""
Export Router — Google Ads Editor CSV download and pre-export validation.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_builder.database import get_db
from campaign_builder.errors import NotFoundError, ValidationError
from campaign_builder.services.csv_export import (
    ALL_MATCH_TYPES,
    ExportOptions,
    build_export,
    load_campaign_trees,
    validate_campaign_for_export,
)
from campaign_builder.utils import success_response, utcnow
from campaign_builder.validation import require_ids

logger = logging.getLogger(__name__)
router = APIRouter()


class ExportRequest(BaseModel):
    campaign_ids: list[str] = []
    match_types: Optional[list[str]] = None
    default_max_cpc: float = 1.0


async def _trees(db: AsyncSession, body: ExportRequest):
    ids = require_ids(body.campaign_ids, "INVALID_CAMPAIGN_ID", "campaign_ids")
    trees = await load_campaign_trees(db, ids)
    if not trees:
        raise NotFoundError("None of the requested campaigns exist", code="CAMPAIGN_NOT_FOUND")
    return trees


@router.post("/csv")
async def export_csv(body: ExportRequest, db: AsyncSession = Depends(get_db)):
    if body.match_types and any(m not in ALL_MATCH_TYPES for m in body.match_types):
        raise ValidationError(f"match_types must be drawn from: {', '.join(ALL_MATCH_TYPES)}", code="INVALID_REQUEST")
    if body.default_max_cpc <= 0:
        raise ValidationError("default_max_cpc must be positive", code="INVALID_REQUEST")

    result = build_export(
        await _trees(db, body),
        ExportOptions(match_types=body.match_types, default_max_cpc=body.default_max_cpc),
    )
    if not result.exported_campaigns:
        raise ValidationError(
            "No campaigns passed export validation",
            code="INVALID_REQUEST",
            details=result.invalid_campaigns,
        )

    filename = f"google-ads-export-{utcnow():%Y%m%d-%H%M%S}.csv"
    return Response(
        content=result.content,
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Export-Rows": str(result.rows),
            "X-Export-Skipped-Campaigns": str(len(result.invalid_campaigns)),
        },
    )


@router.post("/validate")
async def validate_export(body: ExportRequest, db: AsyncSession = Depends(get_db)):
    report = []
    for tree in await _trees(db, body):
        errors = validate_campaign_for_export(tree)
        report.append({
            "campaign_id": tree.campaign.id,
            "campaign": tree.campaign.name,
            "valid": not errors,
            "errors": errors,
        })
    return success_response(report, meta={"valid": sum(1 for r in report if r["valid"]), "total": len(report)})
