"""
Keyword Service — seed expansion, long-tail variants, negative suggestions and
relevance scoring, optionally seeded with AI-generated keywords.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from campaign_builder.errors import AIServiceError, ValidationError
from campaign_builder.services.ai_service import AIService
from campaign_builder.services.copy_parser import parse_keyword_lines
from campaign_builder.utils import iso_timestamp

logger = logging.getLogger(__name__)

MAX_KEYWORD_LENGTH = 80
MIN_RELEVANCE_SCORE = 40

KEYWORD_PREFIXES = [
    "best", "top", "cheap", "affordable", "premium", "professional", "local", "certified",
    "expert", "quality", "reliable", "trusted", "leading", "rated", "recommended",
]

KEYWORD_SUFFIXES = [
    "online", "near me", "delivery", "service", "services", "company", "companies", "shop",
    "store", "provider", "providers", "specialist", "specialists", "expert", "experts", "agency",
]

INTENT_MODIFIERS = [
    "buy", "order", "purchase", "hire", "get", "find", "compare", "search for",
    "looking for", "need", "want", "book", "schedule", "request",
]

COMMON_NEGATIVES = [
    "free", "diy", "homemade", "job", "jobs", "career", "careers", "salary", "course",
    "courses", "class", "classes", "training", "tutorial", "tutorials", "wikipedia",
    "definition", "meaning", "how to become", "resume", "internship", "volunteer",
    "donate", "donation", "charity",
]

BARGAIN_NEGATIVES = ["cheap", "cheapest", "budget", "discount", "clearance", "used", "secondhand"]

COMMERCIAL_WORDS = ["buy", "order", "purchase", "hire", "get", "service", "book"]


class KeywordResearchRequest(BaseModel):
    seed_keywords: list[str]
    business_description: str = ""
    target_location: Optional[str] = None
    max_results: int = 100
    include_long_tail: bool = True
    include_negative_keywords: bool = True
    provider: Optional[str] = None


def validate_seed_keywords(seeds: list[str]) -> list[str]:
    cleaned = [s.strip() for s in seeds or [] if isinstance(s, str) and s.strip()]
    if not cleaned:
        raise ValidationError("At least one seed keyword is required", code="INVALID_KEYWORDS")
    if len(cleaned) > 10:
        raise ValidationError("At most 10 seed keywords are allowed", code="INVALID_KEYWORDS")
    too_long = [s for s in cleaned if len(s) > MAX_KEYWORD_LENGTH]
    if too_long:
        raise ValidationError(
            f"Keywords must be {MAX_KEYWORD_LENGTH} characters or fewer",
            code="INVALID_KEYWORDS",
            details={"invalid": too_long},
        )
    return cleaned


def expand_keywords(seed_keywords: list[str], max_variations: int = 20) -> list[str]:
    variations = []
    for seed in seed_keywords:
        keyword = seed.lower().strip()
        variations.extend(f"{prefix} {keyword}" for prefix in KEYWORD_PREFIXES[:5])
        variations.extend(f"{keyword} {suffix}" for suffix in KEYWORD_SUFFIXES[:5])
        variations.extend(f"{intent} {keyword}" for intent in INTENT_MODIFIERS[:5])
        variations.append(keyword)
    unique = list(dict.fromkeys(variations))
    return unique[:max_variations * len(seed_keywords)]


def generate_long_tail_keywords(base_keyword: str, location: Optional[str] = None) -> list[str]:
    keyword = base_keyword.lower().strip()
    year = datetime.now(timezone.utc).year

    variants = [f"{keyword} {year}", f"{keyword} {year + 1}", f"best {keyword} {year}"]
    if location:
        variants += [
            f"{keyword} in {location}",
            f"{keyword} near {location}",
            f"best {keyword} in {location}",
            f"top {keyword} {location}",
            f"{keyword} {location} area",
            f"affordable {keyword} {location}",
        ]
    variants += [
        f"{keyword} near me",
        f"{keyword} in my area",
        f"{keyword} nearby",
        f"local {keyword} service",
        f"buy {keyword} online",
        f"order {keyword} near me",
        f"{keyword} for sale",
        f"{keyword} price comparison",
        f"cheap {keyword} online",
        f"affordable {keyword} service",
        f"emergency {keyword}",
        f"same day {keyword}",
        f"24/7 {keyword}",
        f"urgent {keyword} service",
    ]
    return variants


def suggest_negative_keywords(keywords: list[str]) -> list[str]:
    text = " ".join(keywords).lower()
    negatives = []
    # Premium positioning: exclude bargain hunters.
    if any(word in text for word in ("premium", "professional", "luxury")):
        negatives.extend(BARGAIN_NEGATIVES)
    negatives.extend(COMMON_NEGATIVES)
    return list(dict.fromkeys(negatives))


def score_keyword_relevance(keyword: str, business_context: str, target_location: Optional[str] = None) -> int:
    score = 50
    kw = keyword.lower().strip()
    context = (business_context or "").lower()

    if kw and kw in context:
        score += 30

    kw_words = [w for w in kw.split(" ") if len(w) > 2]
    context_words = {w for w in context.split(" ") if len(w) > 2}
    score += 5 * sum(1 for w in kw_words if w in context_words)

    word_count = len(kw_words)
    if 2 <= word_count <= 4:
        score += 10
    elif word_count == 1 or word_count > 5:
        score -= 5

    if any(w in kw for w in COMMERCIAL_WORDS):
        score += 15

    if target_location:
        location = target_location.lower()
        if location in kw or "near me" in kw or "local" in kw:
            score += 10

    return min(max(score, 0), 100)


def recommend_match_types(keyword: str) -> dict:
    return {"exact": True, "phrase": True, "broad": len(keyword.strip().split(" ")) <= 2}


def categorize_keyword(keyword: str) -> str:
    lower = keyword.lower()
    if lower.startswith("how to") or lower.startswith("what is") or "guide" in lower:
        return "informational"
    if "near me" in lower or "nearby" in lower or "local" in lower:
        return "local"
    if "vs" in lower or "compare" in lower or "best" in lower:
        return "comparison"
    if "buy" in lower or "order" in lower or "purchase" in lower:
        return "commercial"
    return "product"


class KeywordService:
    def __init__(self, ai: Optional[AIService] = None):
        self.ai = ai or AIService()

    async def _ai_keywords(self, request: KeywordResearchRequest) -> tuple[list[str], Optional[str]]:
        if not self.ai.available_providers() and request.provider is None:
            return [], None
        try:
            provider = self.ai.resolve_provider(request.provider)
            text = await self.ai.generate_keywords(
                request.seed_keywords,
                business_description=request.business_description,
                target_location=request.target_location or "",
                max_results=request.max_results,
                provider=provider,
            )
        except AIServiceError as exc:
            logger.warning(f"AI keyword generation failed, using expansion only: {exc.code} {exc.message}")
            return [], None
        keywords = [k for k in parse_keyword_lines(text, MAX_KEYWORD_LENGTH) if not k.startswith("keyword")]
        return keywords, provider

    async def research_keywords(self, request: KeywordResearchRequest) -> dict:
        seeds = validate_seed_keywords(request.seed_keywords)
        if not 1 <= request.max_results <= 500:
            raise ValidationError("max_results must be between 1 and 500", code="INVALID_COUNT")

        ai_keywords, provider = await self._ai_keywords(request)
        expanded = expand_keywords(seeds, 20)
        long_tail = []
        if request.include_long_tail:
            for seed in seeds:
                long_tail.extend(generate_long_tail_keywords(seed, request.target_location))

        combined = list(dict.fromkeys(k.lower() for k in [*ai_keywords, *expanded, *long_tail, *seeds]))

        scored = []
        for keyword in combined:
            score = score_keyword_relevance(keyword, request.business_description, request.target_location)
            if score < MIN_RELEVANCE_SCORE:
                continue
            scored.append({
                "keyword": keyword,
                "match_types": recommend_match_types(keyword),
                "relevance_score": score,
                "category": categorize_keyword(keyword),
                "is_long_tail": len(keyword.split(" ")) >= 3,
            })
        scored.sort(key=lambda k: k["relevance_score"], reverse=True)
        suggestions = scored[:request.max_results]

        logger.info(
            f"Keyword research for {len(seeds)} seed(s): {len(ai_keywords)} from AI, "
            f"{len(suggestions)} suggestion(s) returned"
        )
        return {
            "suggestions": suggestions,
            "related_terms": [k["keyword"] for k in suggestions if not k["is_long_tail"]][:20],
            "long_tail_variations": [k["keyword"] for k in suggestions if k["is_long_tail"]][:50],
            "negative_keywords": suggest_negative_keywords(seeds) if request.include_negative_keywords else [],
            "researched_at": iso_timestamp(),
            "provider": provider,
        }
