"""
Tests for AI ad copy generation: validation, provider resolution, parsing and error mapping.
"""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from campaign_builder.config import Settings
from campaign_builder.errors import AIServiceError, ValidationError
from campaign_builder.services.ai_service import AdCopyRequest, AIService, build_ad_copy_prompt

GOOD_RESPONSE = """HEADLINES:
1. [KEYWORD] Emergency Plumber (17 chars)
2. [VALUE] No Call-Out Fee (15 chars)
3. [CTA] Call Now (8 chars)
4. [KEYWORD] 24/7 Plumbing Help (18 chars)

DESCRIPTIONS:
1. Licensed plumbers at your door within the hour. (48 chars)
2. Upfront pricing and a 12-month guarantee on all work. (53 chars)
3. Extra description that should be trimmed off. (46 chars)
"""


def _settings(**keys):
    return Settings(
        _env_file=None,
        anthropic_api_key=keys.get("claude", ""),
        openai_api_key=keys.get("openai", ""),
        gemini_api_key=keys.get("gemini", ""),
    )


def _request(**overrides):
    data = {
        "business_description": "24/7 emergency plumbing in Leeds",
        "target_keywords": ["emergency plumber"],
        "headline_count": 3,
        "description_count": 2,
    }
    data.update(overrides)
    return AdCopyRequest(**data)


@pytest.mark.parametrize(
    "overrides, code",
    [
        ({"business_description": "  "}, "INVALID_REQUEST"),
        ({"tone": "sarcastic"}, "INVALID_TONE"),
        ({"headline_count": 2}, "INVALID_COUNT"),
        ({"headline_count": 16}, "INVALID_COUNT"),
        ({"description_count": 5}, "INVALID_COUNT"),
    ],
)
@pytest.mark.anyio
async def test_request_validation(overrides, code):
    service = AIService(_settings(openai="sk-test"))
    with pytest.raises(ValidationError) as exc_info:
        await service.generate_ad_copy(_request(**overrides))
    assert exc_info.value.code == code


def test_resolve_provider():
    service = AIService(_settings(openai="sk-test", gemini="g-key"))
    assert service.resolve_provider(None) == "openai"
    assert service.resolve_provider("gemini") == "gemini"

    with pytest.raises(AIServiceError) as invalid:
        service.resolve_provider("llama")
    assert invalid.value.code == "INVALID_PROVIDER"
    assert invalid.value.status_code == 400

    with pytest.raises(AIServiceError) as missing:
        service.resolve_provider("claude")
    assert missing.value.code == "PROVIDER_NOT_CONFIGURED"

    with pytest.raises(AIServiceError) as none:
        AIService(_settings()).resolve_provider(None)
    assert none.value.code == "NO_API_KEY"
    assert none.value.status_code == 503


@pytest.mark.anyio
async def test_generate_ad_copy_slices_to_requested_counts():
    service = AIService(_settings(claude="sk-ant"))
    with patch.object(AIService, "_completion", new_callable=AsyncMock, return_value=GOOD_RESPONSE) as completion:
        result = await service.generate_ad_copy(_request())

    completion.assert_awaited_once()
    assert completion.await_args.args[0] == "claude"
    assert result["provider"] == "claude"
    assert [h["text"] for h in result["headlines"]] == ["Emergency Plumber", "No Call-Out Fee", "Call Now"]
    assert [h["category"] for h in result["headlines"]] == ["KEYWORD", "VALUE", "CTA"]
    assert len(result["descriptions"]) == 2
    assert result["generated_at"].endswith("Z")


@pytest.mark.anyio
async def test_unparseable_response_is_parse_error():
    service = AIService(_settings(openai="sk-test"))
    with patch.object(AIService, "_completion", new_callable=AsyncMock, return_value="I cannot do that."):
        with pytest.raises(AIServiceError) as exc_info:
            await service.generate_ad_copy(_request())
    assert exc_info.value.code == "PARSE_ERROR"
    assert exc_info.value.status_code == 502


def test_prompt_mentions_context():
    prompt = build_ad_copy_prompt(_request(tone="urgent", unique_selling_points=["No call-out fee"]))
    assert "24/7 emergency plumbing in Leeds" in prompt
    assert "Desired Tone: urgent" in prompt
    assert "No call-out fee" in prompt
    assert "Write 3 unique headlines" in prompt


@pytest.mark.parametrize(
    "status, code",
    [(401, "AUTH_ERROR"), (429, "RATE_LIMIT"), (503, "API_ERROR"), (418, "UNKNOWN_ERROR")],
)
@pytest.mark.anyio
async def test_gemini_http_errors_are_mapped(status, code):
    transport = httpx.MockTransport(lambda request: httpx.Response(status, json={"error": "nope"}))
    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=transport, **kwargs)

    service = AIService(_settings(gemini="g-key"))
    with patch("campaign_builder.services.ai_service.httpx.AsyncClient", side_effect=client_factory):
        with pytest.raises(AIServiceError) as exc_info:
            await service._completion("gemini", "prompt")
    assert exc_info.value.code == code


@pytest.mark.anyio
async def test_gemini_success_joins_parts():
    seen = {}

    def handler(request):
        seen["key"] = request.url.params["key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "candidates": [{"content": {"parts": [{"text": "HEADLINES:\n"}, {"text": "1. Fix It Fast"}]}}],
        })

    transport = httpx.MockTransport(handler)
    real_client = httpx.AsyncClient

    service = AIService(_settings(gemini="g-key"))
    with patch(
        "campaign_builder.services.ai_service.httpx.AsyncClient",
        side_effect=lambda **kwargs: real_client(transport=transport, **kwargs),
    ):
        text = await service._completion("gemini", "write copy")

    assert text == "HEADLINES:\n1. Fix It Fast"
    assert seen["key"] == "g-key"
    assert seen["body"]["contents"][0]["parts"][0]["text"] == "write copy"


@pytest.mark.anyio
async def test_gemini_timeout_is_mapped():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    transport = httpx.MockTransport(handler)
    real_client = httpx.AsyncClient
    service = AIService(_settings(gemini="g-key"))
    with patch(
        "campaign_builder.services.ai_service.httpx.AsyncClient",
        side_effect=lambda **kwargs: real_client(transport=transport, **kwargs),
    ):
        with pytest.raises(AIServiceError) as exc_info:
            await service._completion("gemini", "prompt")
    assert exc_info.value.code == "TIMEOUT"
    assert exc_info.value.status_code == 408


def test_provider_status():
    service = AIService(_settings(openai="sk-test"))
    assert service.provider_status("openai") == {"provider": "openai", "available": True, "model": "gpt-4o"}
    assert service.provider_status("claude")["available"] is False
    with pytest.raises(AIServiceError):
        service.provider_status("llama")
