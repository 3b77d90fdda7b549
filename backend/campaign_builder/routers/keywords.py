"""
Keywords Router — research (AI + rule-based expansion), expansion and negative suggestions.
"""

from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from campaign_builder.services.ai_service import AIService
from campaign_builder.services.keyword_service import (
    KeywordResearchRequest,
    KeywordService,
    expand_keywords,
    generate_long_tail_keywords,
    suggest_negative_keywords,
    validate_seed_keywords,
)
from campaign_builder.utils import success_response

router = APIRouter()


class ExpandRequest(BaseModel):
    seed_keywords: list[str] = []
    max_variations: int = 20
    include_long_tail: bool = False
    target_location: Optional[str] = None


class NegativesRequest(BaseModel):
    keywords: list[str] = []


@router.post("/research")
async def research(request: Request, body: KeywordResearchRequest):
    service = KeywordService(AIService(request.app.state.settings))
    return success_response(await service.research_keywords(body))


@router.post("/expand")
async def expand(body: ExpandRequest):
    seeds = validate_seed_keywords(body.seed_keywords)
    variations = expand_keywords(seeds, max(1, min(body.max_variations, 100)))
    if body.include_long_tail:
        for seed in seeds:
            variations.extend(generate_long_tail_keywords(seed, body.target_location))
        variations = list(dict.fromkeys(variations))
    return success_response(variations, meta={"count": len(variations)})


@router.post("/negatives")
async def negatives(body: NegativesRequest):
    keywords = validate_seed_keywords(body.keywords)
    suggestions = suggest_negative_keywords(keywords)
    return success_response(suggestions, meta={"count": len(suggestions)})
