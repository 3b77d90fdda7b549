"""
Automation Router — rule CRUD, manual execution, run history and templates.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_builder.database import get_db
from campaign_builder.errors import ValidationError
from campaign_builder.models import ActionType, TriggerType
from campaign_builder.serializers import serialize_history, serialize_rule
from campaign_builder.services.automation_service import AutomationService
from campaign_builder.utils import success_response
from campaign_builder.validation import require_name

router = APIRouter()

TRIGGER_TYPES = [t.value for t in TriggerType]
ACTION_TYPES = [a.value for a in ActionType]


class RuleCreate(BaseModel):
    name: str = ""
    description: Optional[str] = None
    trigger_type: str = TriggerType.MANUAL.value
    trigger_config: dict = {}
    action_type: str = ""
    action_config: dict = {}
    filters: dict = {}
    enabled: bool = True


class RuleUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    trigger_type: Optional[str] = None
    trigger_config: Optional[dict] = None
    action_type: Optional[str] = None
    action_config: Optional[dict] = None
    filters: Optional[dict] = None
    enabled: Optional[bool] = None


def _check_types(trigger_type: Optional[str], action_type: Optional[str]) -> None:
    if trigger_type is not None and trigger_type not in TRIGGER_TYPES:
        raise ValidationError(f"trigger_type must be one of: {', '.join(TRIGGER_TYPES)}", code="INVALID_REQUEST")
    if action_type is not None and action_type not in ACTION_TYPES:
        raise ValidationError(f"action_type must be one of: {', '.join(ACTION_TYPES)}", code="INVALID_REQUEST")


def _service(request: Request, db: AsyncSession) -> AutomationService:
    return AutomationService(db, request.app.state.settings)


@router.get("/rules")
async def list_rules(request: Request, enabled: Optional[bool] = None, db: AsyncSession = Depends(get_db)):
    rules = await _service(request, db).list_rules(enabled)
    return success_response([serialize_rule(r) for r in rules], meta={"count": len(rules)})


@router.get("/rules/{rule_id}")
async def get_rule(request: Request, rule_id: str, db: AsyncSession = Depends(get_db)):
    return success_response(serialize_rule(await _service(request, db).get_rule(rule_id)))


@router.post("/rules", status_code=201)
async def create_rule(request: Request, body: RuleCreate, db: AsyncSession = Depends(get_db)):
    name = require_name(body.name)
    _check_types(body.trigger_type, body.action_type)
    rule = await _service(request, db).create_rule(
        name=name,
        trigger_type=body.trigger_type,
        action_type=body.action_type,
        description=body.description,
        trigger_config=body.trigger_config,
        action_config=body.action_config,
        filters=body.filters,
        enabled=body.enabled,
    )
    return success_response(serialize_rule(rule))


@router.patch("/rules/{rule_id}")
async def update_rule(request: Request, rule_id: str, body: RuleUpdate, db: AsyncSession = Depends(get_db)):
    data = body.model_dump(exclude_unset=True)
    if "name" in data:
        data["name"] = require_name(data["name"])
    _check_types(data.get("trigger_type"), data.get("action_type"))
    rule = await _service(request, db).update_rule(rule_id, data)
    return success_response(serialize_rule(rule))


@router.delete("/rules/{rule_id}")
async def delete_rule(request: Request, rule_id: str, db: AsyncSession = Depends(get_db)):
    await _service(request, db).delete_rule(rule_id)
    return success_response({"id": rule_id, "deleted": True})


@router.post("/rules/{rule_id}/execute")
async def execute_rule(request: Request, rule_id: str, db: AsyncSession = Depends(get_db)):
    return success_response(await _service(request, db).execute_automation(rule_id))


@router.get("/history")
async def history(
    request: Request,
    rule_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    runs = await _service(request, db).get_history(rule_id, limit)
    return success_response([serialize_history(h) for h in runs], meta={"count": len(runs)})


@router.get("/stats")
async def automation_stats(request: Request, db: AsyncSession = Depends(get_db)):
    return success_response(await _service(request, db).stats())


@router.get("/templates")
async def templates():
    return success_response(AutomationService.templates())
