"""
Tests for keyword research: seed validation, expansion, scoring and AI merging.
"""

from unittest.mock import AsyncMock, patch

import pytest

from campaign_builder.config import Settings
from campaign_builder.errors import AIServiceError, ValidationError
from campaign_builder.services.ai_service import AIService
from campaign_builder.services.keyword_service import (
    BARGAIN_NEGATIVES,
    KeywordResearchRequest,
    KeywordService,
    categorize_keyword,
    expand_keywords,
    generate_long_tail_keywords,
    recommend_match_types,
    score_keyword_relevance,
    suggest_negative_keywords,
    validate_seed_keywords,
)


def _service(**keys):
    settings = Settings(
        _env_file=None,
        anthropic_api_key=keys.get("claude", ""),
        openai_api_key=keys.get("openai", ""),
        gemini_api_key="",
    )
    return KeywordService(AIService(settings))


@pytest.mark.parametrize(
    "seeds",
    [[], ["  ", ""], [f"seed {i}" for i in range(11)], ["x" * 81]],
)
def test_invalid_seeds_rejected(seeds):
    with pytest.raises(ValidationError) as exc_info:
        validate_seed_keywords(seeds)
    assert exc_info.value.code == "INVALID_KEYWORDS"


def test_validate_seed_keywords_strips():
    assert validate_seed_keywords([" plumber ", "", "drain repair"]) == ["plumber", "drain repair"]


def test_expand_keywords_covers_modifiers():
    expanded = expand_keywords(["Plumber"])
    assert len(expanded) == 16
    assert "best plumber" in expanded
    assert "plumber near me" in expanded
    assert "hire plumber" in expanded
    assert expanded[-1] == "plumber"


def test_long_tail_includes_location_variants():
    with_location = generate_long_tail_keywords("Plumber", "Leeds")
    without = generate_long_tail_keywords("Plumber")
    assert "plumber in Leeds" in with_location
    assert len(with_location) == len(without) + 6
    assert "24/7 plumber" in without


def test_negative_suggestions_add_bargain_terms_for_premium():
    assert set(BARGAIN_NEGATIVES) <= set(suggest_negative_keywords(["premium plumber"]))
    plain = suggest_negative_keywords(["plumber"])
    assert "cheapest" not in plain
    assert "jobs" in plain


def test_relevance_scoring():
    context = "emergency plumber in leeds"
    assert score_keyword_relevance("emergency plumber", context) == 100
    assert score_keyword_relevance("plumber", "") == 45
    assert score_keyword_relevance("buy plumber online", "") == 75
    assert score_keyword_relevance("plumber near me", "", "Leeds") > score_keyword_relevance("plumber near me", "")


def test_match_types_and_categories():
    assert recommend_match_types("plumber")["broad"] is True
    assert recommend_match_types("emergency plumber leeds")["broad"] is False
    assert categorize_keyword("how to fix a tap") == "informational"
    assert categorize_keyword("plumber near me") == "local"
    assert categorize_keyword("best plumber") == "comparison"
    assert categorize_keyword("buy boiler") == "commercial"
    assert categorize_keyword("boiler") == "product"


@pytest.mark.anyio
async def test_research_without_providers_uses_expansion_only():
    service = _service()
    result = await service.research_keywords(KeywordResearchRequest(
        seed_keywords=["plumber"],
        business_description="emergency plumber in leeds",
        target_location="leeds",
        max_results=25,
    ))

    assert result["provider"] is None
    assert 0 < len(result["suggestions"]) <= 25
    scores = [s["relevance_score"] for s in result["suggestions"]]
    assert scores == sorted(scores, reverse=True)
    assert all(s >= 40 for s in scores)
    assert "jobs" in result["negative_keywords"]


@pytest.mark.anyio
async def test_research_rejects_bad_max_results():
    with pytest.raises(ValidationError) as exc_info:
        await _service().research_keywords(KeywordResearchRequest(seed_keywords=["plumber"], max_results=0))
    assert exc_info.value.code == "INVALID_COUNT"


@pytest.mark.anyio
async def test_research_merges_ai_keywords():
    service = _service(openai="sk-test")
    ai_text = "Keywords:\n1. Boiler Repair Leeds\n2. hire emergency plumber\n"
    with patch.object(AIService, "generate_keywords", new_callable=AsyncMock, return_value=ai_text) as generate:
        result = await service.research_keywords(KeywordResearchRequest(
            seed_keywords=["plumber"],
            business_description="emergency plumber and boiler repair",
            include_negative_keywords=False,
        ))

    generate.assert_awaited_once()
    assert generate.await_args.kwargs["provider"] == "openai"
    assert result["provider"] == "openai"
    keywords = [s["keyword"] for s in result["suggestions"]]
    assert "hire emergency plumber" in keywords
    assert result["negative_keywords"] == []


@pytest.mark.anyio
async def test_ai_failure_falls_back_to_expansion():
    service = _service(claude="sk-ant")
    failure = AIServiceError("RATE_LIMIT", "Rate limit exceeded")
    with patch.object(AIService, "generate_keywords", new_callable=AsyncMock, side_effect=failure):
        result = await service.research_keywords(KeywordResearchRequest(seed_keywords=["plumber"]))
    assert result["provider"] is None
    assert result["suggestions"]
