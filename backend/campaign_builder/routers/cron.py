"""
Cron / Scheduled Jobs — endpoint for an external scheduler (QStash, cron, etc.).

There is no in-process scheduler: the caller hits /cron/run-due-automations on
an interval and every enabled rule whose next_run_at has passed is executed.

Set CRON_SECRET and send it as:
  X-Cron-Secret: <CRON_SECRET>
  OR Authorization: Bearer <CRON_SECRET>
"""

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_builder.database import get_db
from campaign_builder.services.automation_service import AutomationService
from campaign_builder.utils import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])


async def _require_cron_secret(
    request: Request,
    x_cron_secret: str | None = Header(None, alias="X-Cron-Secret"),
    authorization: str | None = Header(None),
) -> None:
    """Verify request came from the scheduler with a valid secret."""
    secret = request.app.state.settings.cron_secret
    if not secret:
        raise HTTPException(500, "CRON_SECRET not configured")
    # Accept X-Cron-Secret header or Bearer token
    token = x_cron_secret
    if not token and authorization and authorization.startswith("Bearer "):
        token = authorization[7:]
    if not token or not hmac.compare_digest(token, secret):
        raise HTTPException(401, "Invalid cron secret")


@router.post("/run-due-automations", dependencies=[Depends(_require_cron_secret)])
async def run_due_automations(request: Request, db: AsyncSession = Depends(get_db)):
    results = await AutomationService(db, request.app.state.settings).run_due_automations()
    logger.info(f"Cron: executed {len(results)} due automation rule(s)")
    return success_response(results, meta={"executed": len(results)})
