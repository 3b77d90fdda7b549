"""
Import Router — Google Ads Editor CSVs, performance reports and search term reports.
Files are posted as JSON: {filename, content, ...}.
"""

from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_builder.database import get_db
from campaign_builder.errors import NotFoundError, ValidationError
from campaign_builder.serializers import serialize_import
from campaign_builder.services.import_service import ImportService
from campaign_builder.utils import parse_date, success_response, utcnow

router = APIRouter()

DEFAULT_REPORT_DAYS = 30


class EditorImportRequest(BaseModel):
    filename: str = "import.csv"
    content: str = ""
    update_existing: bool = False
    create_snapshot: bool = True


class ReportImportRequest(BaseModel):
    filename: str = "report.csv"
    content: str = ""
    date_range_start: Optional[str] = None
    date_range_end: Optional[str] = None


def _require_content(content: str) -> str:
    if not content or not content.strip():
        raise ValidationError("content must contain the CSV file text", code="INVALID_REQUEST")
    return content


def _date_range(body: ReportImportRequest) -> tuple[date, date]:
    try:
        end = parse_date(body.date_range_end) or utcnow().date()
        start = parse_date(body.date_range_start) or end - timedelta(days=DEFAULT_REPORT_DAYS)
    except ValueError:
        raise ValidationError("Dates must be ISO formatted (YYYY-MM-DD)", code="INVALID_REQUEST")
    if start > end:
        raise ValidationError("date_range_start must not be after date_range_end", code="INVALID_REQUEST")
    return start, end


@router.post("/editor")
async def import_editor(body: EditorImportRequest, db: AsyncSession = Depends(get_db)):
    result = await ImportService(db).import_editor_csv(
        _require_content(body.content),
        body.filename,
        update_existing=body.update_existing,
        create_snapshot=body.create_snapshot,
    )
    return success_response(result.to_dict())


@router.post("/performance")
async def import_performance(body: ReportImportRequest, db: AsyncSession = Depends(get_db)):
    content = _require_content(body.content)
    start, end = _date_range(body)
    result = await ImportService(db).import_performance_data(content, start, end)
    return success_response(result.to_dict())


@router.post("/search-terms")
async def import_search_terms(body: ReportImportRequest, db: AsyncSession = Depends(get_db)):
    content = _require_content(body.content)
    start, end = _date_range(body)
    result = await ImportService(db).import_search_terms(content, start, end)
    return success_response(result.to_dict())


@router.get("/history")
async def import_history(limit: int = Query(50, ge=1, le=500), db: AsyncSession = Depends(get_db)):
    records = await ImportService(db).list_imports(limit)
    return success_response([serialize_import(r) for r in records], meta={"count": len(records)})


@router.get("/{import_id}")
async def get_import(import_id: str, include_raw: bool = False, db: AsyncSession = Depends(get_db)):
    record = await ImportService(db).get_import(import_id)
    if record is None:
        raise NotFoundError(f"Import {import_id} not found")
    return success_response(serialize_import(record, include_raw=include_raw))
