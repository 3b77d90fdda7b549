"""
AI Service — Multi-provider LLM access (Anthropic Claude, OpenAI GPT, Google Gemini)
for Responsive Search Ad copy and keyword generation.

Each call is a single attempt bounded by AI_TIMEOUT_SECONDS. Provider failures
are mapped onto AIServiceError codes so routes can return a typed envelope.
"""

import logging
from typing import Optional

import anthropic
import httpx
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from pydantic import BaseModel

from campaign_builder.config import Settings, get_settings
from campaign_builder.errors import AIServiceError, ValidationError
from campaign_builder.services.copy_parser import parse_ad_copy
from campaign_builder.utils import iso_timestamp

logger = logging.getLogger(__name__)

PROVIDERS = ("claude", "openai", "gemini")
TONES = ("professional", "casual", "urgent", "friendly")

PROVIDER_LABELS = {"claude": "Claude", "openai": "OpenAI", "gemini": "Gemini"}

GEMINI_URL = "https://generativelanguage.googleapis.com/v1/models/{model}:generateContent"


class AdCopyRequest(BaseModel):
    business_description: str = ""
    target_keywords: list[str] = []
    tone: str = "professional"
    call_to_action: str = ""
    unique_selling_points: list[str] = []
    target_audience: str = ""
    headline_count: int = 15
    description_count: int = 4


def validate_ad_copy_request(request: AdCopyRequest) -> None:
    if not request.business_description or not request.business_description.strip():
        raise ValidationError("Business description is required", code="INVALID_REQUEST")
    if request.tone not in TONES:
        raise ValidationError(
            f"Tone must be one of: {', '.join(TONES)}",
            code="INVALID_TONE",
            details={"valid_values": list(TONES)},
        )
    if not 3 <= request.headline_count <= 15:
        raise ValidationError("headline_count must be between 3 and 15", code="INVALID_COUNT")
    if not 2 <= request.description_count <= 4:
        raise ValidationError("description_count must be between 2 and 4", code="INVALID_COUNT")


def build_ad_copy_prompt(request: AdCopyRequest) -> str:
    keywords = ", ".join(request.target_keywords) if request.target_keywords else "None provided"
    usps = "\n  - ".join(request.unique_selling_points) if request.unique_selling_points else "None provided"
    per_category = max(1, request.headline_count // 3)

    return f"""You are an expert Google Ads copywriter specialising in Responsive Search Ads (RSAs).
Write conversion-focused ad copy with strategic variety.

## BUSINESS CONTEXT
Business Description: {request.business_description}
Target Keywords: {keywords}
Target Audience: {request.target_audience or "General audience"}
Desired Tone: {request.tone}
Call-to-Action: {request.call_to_action or "None specified"}
Unique Selling Points:
  - {usps}

## TASK
Write {request.headline_count} unique headlines ({per_category} per category) and {request.description_count} descriptions.

Headline categories:
- [KEYWORD]: uses the target keywords naturally, optimised for search relevance
- [VALUE]: unique selling points and differentiators
- [CTA]: strong calls-to-action, urgency or social proof

## HARD LIMITS
- Headlines: 30 characters or fewer
- Descriptions: 90 characters or fewer
- No repeated phrasing across headlines, no ALL CAPS, no excessive punctuation

## OUTPUT FORMAT
Reply with exactly these two sections and nothing else:

HEADLINES:
1. [KEYWORD] Headline text (XX chars)
2. [VALUE] Headline text (XX chars)
3. [CTA] Headline text (XX chars)
...

DESCRIPTIONS:
1. Description text (XX chars)
2. Description text (XX chars)
..."""


def build_keyword_prompt(
    seed_keywords: list[str],
    business_description: str = "",
    target_location: str = "",
    max_results: int = 100,
) -> str:
    location = f"\nTarget Location: {target_location}" if target_location else ""
    return f"""Generate relevant keywords for a Google Ads search campaign.

Business: {business_description}
Seed Keywords: {", ".join(seed_keywords)}{location}

Generate {min(max_results, 100)} realistic keywords that customers would type when looking for this business.
Mix product/service terms, problem-solving searches, commercial intent ("buy", "hire", "near me"),
long-tail phrases of 3-5 words and comparison searches ("vs", "best", "reviews").
Include location variations when a location is given.

Output ONLY the keywords, one per line, with no numbering, bullets or explanations.

Keywords:"""


class AIService:
    """Provider-agnostic completion plus the two generation use-cases built on it."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def available_providers(self) -> list[str]:
        return self.settings.configured_ai_providers

    def is_available(self, provider: str) -> bool:
        return provider in self.available_providers()

    def resolve_provider(self, provider: Optional[str]) -> str:
        """Validate an explicit provider, or pick the first configured one."""
        if provider is None:
            available = self.available_providers()
            if not available:
                raise AIServiceError("NO_API_KEY", "No AI provider API keys are configured on the server")
            return available[0]
        if provider not in PROVIDERS:
            raise AIServiceError(
                "INVALID_PROVIDER",
                f"Invalid provider '{provider}'. Must be one of: {', '.join(PROVIDERS)}",
                details={"valid_values": list(PROVIDERS)},
            )
        if not self.is_available(provider):
            raise AIServiceError(
                "PROVIDER_NOT_CONFIGURED",
                f"{PROVIDER_LABELS[provider]} API key is not configured on the server",
            )
        return provider

    # ── Provider calls ────────────────────────────────────────────────

    async def _completion(self, provider: str, prompt: str) -> str:
        """Single-attempt completion; every failure surfaces as AIServiceError."""
        label = PROVIDER_LABELS.get(provider, provider)
        try:
            if provider == "claude":
                return await self._call_claude(prompt)
            if provider == "openai":
                return await self._call_openai(prompt)
            return await self._call_gemini(prompt)
        except AIServiceError:
            raise
        except (openai.APITimeoutError, anthropic.APITimeoutError, httpx.TimeoutException) as exc:
            raise AIServiceError("TIMEOUT", f"{label} request timed out") from exc
        except (openai.AuthenticationError, anthropic.AuthenticationError) as exc:
            raise AIServiceError("AUTH_ERROR", f"Invalid {label} API key") from exc
        except (openai.RateLimitError, anthropic.RateLimitError) as exc:
            raise AIServiceError("RATE_LIMIT", f"{label} rate limit exceeded") from exc
        except (openai.APIStatusError, anthropic.APIStatusError) as exc:
            raise self._status_error(label, exc.status_code) from exc
        except httpx.HTTPStatusError as exc:
            raise self._status_error(label, exc.response.status_code) from exc
        except Exception as exc:
            logger.error(f"{label} call failed: {exc}", exc_info=True)
            raise AIServiceError("UNKNOWN_ERROR", f"{label} error occurred") from exc

    @staticmethod
    def _status_error(label: str, status: int) -> AIServiceError:
        if status in (401, 403):
            return AIServiceError("AUTH_ERROR", f"Invalid {label} API key")
        if status == 429:
            return AIServiceError("RATE_LIMIT", f"{label} rate limit exceeded")
        if status >= 500:
            return AIServiceError("API_ERROR", f"{label} service error ({status})")
        return AIServiceError("UNKNOWN_ERROR", f"{label} returned HTTP {status}")

    async def _call_claude(self, prompt: str) -> str:
        client = AsyncAnthropic(
            api_key=self.settings.anthropic_api_key,
            timeout=self.settings.ai_timeout_seconds,
            max_retries=0,
        )
        response = await client.messages.create(
            model=self.settings.claude_model,
            max_tokens=self.settings.ai_max_tokens,
            temperature=self.settings.ai_temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        for block in response.content:
            if block.type == "text":
                return block.text
        return ""

    async def _call_openai(self, prompt: str) -> str:
        client = AsyncOpenAI(
            api_key=self.settings.openai_api_key,
            timeout=self.settings.ai_timeout_seconds,
            max_retries=0,
        )
        response = await client.chat.completions.create(
            model=self.settings.openai_model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self.settings.ai_max_tokens,
            temperature=self.settings.ai_temperature,
        )
        return response.choices[0].message.content or ""

    async def _call_gemini(self, prompt: str) -> str:
        async with httpx.AsyncClient(timeout=self.settings.ai_timeout_seconds) as client:
            resp = await client.post(
                GEMINI_URL.format(model=self.settings.gemini_model),
                params={"key": self.settings.gemini_api_key},
                json={
                    "contents": [{"parts": [{"text": prompt}]}],
                    "generationConfig": {
                        "temperature": self.settings.ai_temperature,
                        "maxOutputTokens": self.settings.ai_max_tokens,
                    },
                },
            )
            resp.raise_for_status()
            data = resp.json()
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts)

    # ── Use-cases ─────────────────────────────────────────────────────

    async def generate_ad_copy(self, request: AdCopyRequest, provider: Optional[str] = None) -> dict:
        validate_ad_copy_request(request)
        provider = self.resolve_provider(provider)

        logger.info(
            f"Generating ad copy via {provider}: {request.headline_count} headlines, "
            f"{request.description_count} descriptions"
        )
        text = await self._completion(provider, build_ad_copy_prompt(request))
        parsed = parse_ad_copy(text, request.headline_count, request.description_count)

        if not parsed.headlines or not parsed.descriptions:
            raise AIServiceError(
                "PARSE_ERROR",
                "Could not extract headlines and descriptions from the AI response",
                details={
                    "headlines_found": len(parsed.headlines),
                    "descriptions_found": len(parsed.descriptions),
                },
            )
        if parsed.warnings:
            logger.warning(f"Ad copy from {provider} parsed with {len(parsed.warnings)} warning(s)")

        return {
            "headlines": parsed.headlines[:request.headline_count],
            "descriptions": parsed.descriptions[:request.description_count],
            "warnings": parsed.warnings,
            "generated_at": iso_timestamp(),
            "provider": provider,
        }

    async def generate_keywords(
        self,
        seed_keywords: list[str],
        business_description: str = "",
        target_location: str = "",
        max_results: int = 100,
        provider: Optional[str] = None,
    ) -> str:
        """Raw provider text, one keyword per line; parsing is the caller's job."""
        provider = self.resolve_provider(provider)
        prompt = build_keyword_prompt(seed_keywords, business_description, target_location, max_results)
        return await self._completion(provider, prompt)

    def provider_status(self, provider: str) -> dict:
        if provider not in PROVIDERS:
            raise AIServiceError(
                "INVALID_PROVIDER",
                f"Invalid provider '{provider}'. Must be one of: {', '.join(PROVIDERS)}",
            )
        model = {
            "claude": self.settings.claude_model,
            "openai": self.settings.openai_model,
            "gemini": self.settings.gemini_model,
        }[provider]
        return {"provider": provider, "available": self.is_available(provider), "model": model}
