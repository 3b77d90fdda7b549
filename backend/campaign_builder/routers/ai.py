"""
AI Router — responsive search ad copy generation and provider discovery.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Request

from campaign_builder.errors import AppError
from campaign_builder.services.ai_service import PROVIDER_LABELS, AdCopyRequest, AIService
from campaign_builder.utils import success_response

logger = logging.getLogger(__name__)
router = APIRouter()


class GenerateAdCopyRequest(AdCopyRequest):
    provider: Optional[str] = None


def _service(request: Request) -> AIService:
    return AIService(request.app.state.settings)


@router.post("/generate-ad-copy")
async def generate_ad_copy(request: Request, body: GenerateAdCopyRequest):
    copy_request = AdCopyRequest(**body.model_dump(exclude={"provider"}))
    result = await _service(request).generate_ad_copy(copy_request, provider=body.provider)
    return success_response(result)


@router.get("/providers")
async def list_providers(request: Request):
    ai = _service(request)
    available = ai.available_providers()
    if not available:
        raise AppError(
            "No AI providers are configured. Set ANTHROPIC_API_KEY, OPENAI_API_KEY or GEMINI_API_KEY.",
            code="NO_PROVIDERS_AVAILABLE",
            status_code=503,
        )
    return success_response({
        "providers": [{"id": p, "name": PROVIDER_LABELS[p]} for p in available],
        "default": available[0],
    })


@router.get("/providers/{name}/status")
async def provider_status(request: Request, name: str):
    return success_response(_service(request).provider_status(name))
