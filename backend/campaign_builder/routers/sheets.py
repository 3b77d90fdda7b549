"""
Google Sheets Router — service-account configuration and on-demand sync.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_builder.database import get_db
from campaign_builder.errors import NotFoundError, ValidationError
from campaign_builder.services.sheets_service import SheetsService
from campaign_builder.utils import parse_date, success_response

router = APIRouter()


class SheetsConfigRequest(BaseModel):
    spreadsheet_id: str = ""
    client_email: str = ""
    private_key: str = ""
    performance_sheet: str = "Performance"
    search_terms_sheet: str = "SearchTerms"
    asset_performance_sheet: str = "AssetPerformance"


class SyncRequest(BaseModel):
    date_range_start: Optional[str] = None
    date_range_end: Optional[str] = None


def _service(request: Request, db: AsyncSession) -> SheetsService:
    return SheetsService(db, request.app.state.settings)


@router.get("/config")
async def get_config(request: Request, db: AsyncSession = Depends(get_db)):
    config = await _service(request, db).get_config()
    return success_response(SheetsService.masked(config) if config else None)


@router.post("/config")
async def save_config(request: Request, body: SheetsConfigRequest, db: AsyncSession = Depends(get_db)):
    if not body.spreadsheet_id.strip() or not body.client_email.strip():
        raise ValidationError("spreadsheet_id and client_email are required", code="INVALID_REQUEST")
    if "PRIVATE KEY" not in body.private_key:
        raise ValidationError("private_key must be a PEM-encoded service account key", code="INVALID_REQUEST")
    config = await _service(request, db).save_config(
        spreadsheet_id=body.spreadsheet_id.strip(),
        client_email=body.client_email.strip(),
        private_key=body.private_key.replace("\\n", "\n"),
        performance_sheet=body.performance_sheet,
        search_terms_sheet=body.search_terms_sheet,
        asset_performance_sheet=body.asset_performance_sheet,
    )
    return success_response(SheetsService.masked(config))


@router.delete("/config")
async def delete_config(request: Request, db: AsyncSession = Depends(get_db)):
    if not await _service(request, db).delete_config():
        raise NotFoundError("Google Sheets is not configured")
    return success_response({"deleted": True})


@router.post("/sync")
async def sync(request: Request, body: SyncRequest, db: AsyncSession = Depends(get_db)):
    try:
        start, end = parse_date(body.date_range_start), parse_date(body.date_range_end)
    except ValueError:
        raise ValidationError("Dates must be ISO formatted (YYYY-MM-DD)", code="INVALID_REQUEST")
    return success_response(await _service(request, db).sync(start, end))
