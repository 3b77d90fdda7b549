"""
Parser for the plain-text ad copy format requested from LLM providers:

    HEADLINES:
    1. [KEYWORD] Emergency Plumber Near You (28 chars)
    2. [CTA] Call Now For A Free Quote
    DESCRIPTIONS:
    1. Licensed plumbers available 24/7. Upfront pricing, no hidden fees.

Line grammar (inside a section):
    number "." ws* [ "[" CATEGORY "]" ws* ] text [ ws* "(" digits ws* "char" ["s"] ")" ]

Lines outside a section, or not matching the grammar, are skipped. The parser
never raises; anything odd is reported in ``warnings``.
"""

import re
from dataclasses import dataclass, field

HEADLINE_MAX_CHARS = 30
DESCRIPTION_MAX_CHARS = 90

CATEGORIES = {"KEYWORD", "VALUE", "CTA", "GENERAL"}

_HEADER_RE = re.compile(r"^\s*(HEADLINES|DESCRIPTIONS)\s*:\s*$", re.IGNORECASE)
_LINE_RE = re.compile(
    r"^\s*\d+\s*\.\s*"
    r"(?:\[(?P<category>[A-Za-z_]+)\]\s*)?"
    r"(?P<text>.*?)"
    r"(?:\s*\(\s*\d+\s*chars?\s*\))?\s*$",
    re.IGNORECASE,
)


@dataclass
class ParsedAdCopy:
    headlines: list[dict] = field(default_factory=list)
    descriptions: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _clean(text: str) -> str:
    # Models sometimes wrap each line in quotes or markdown emphasis.
    return text.strip().strip("*").strip().strip('"').strip()


def parse_ad_copy(text: str, expected_headlines: int = 15, expected_descriptions: int = 4) -> ParsedAdCopy:
    result = ParsedAdCopy()
    section = None

    for raw in (text or "").splitlines():
        line = raw.strip().strip("*#").strip()
        if not line:
            continue

        header = _HEADER_RE.match(line)
        if header:
            section = header.group(1).upper()
            continue
        if section is None:
            continue

        match = _LINE_RE.match(line)
        if not match:
            continue
        body = _clean(match.group("text"))
        if not body:
            continue

        if section == "HEADLINES":
            category = (match.group("category") or "GENERAL").upper()
            if category not in CATEGORIES:
                category = "GENERAL"
            if len(body) > HEADLINE_MAX_CHARS:
                result.warnings.append(
                    f'Headline "{body}" is {len(body)} characters (max {HEADLINE_MAX_CHARS})'
                )
            result.headlines.append({"text": body, "category": category})
        else:
            if len(body) > DESCRIPTION_MAX_CHARS:
                result.warnings.append(
                    f'Description "{body[:40]}..." is {len(body)} characters (max {DESCRIPTION_MAX_CHARS})'
                )
            result.descriptions.append(body)

    if len(result.headlines) < expected_headlines:
        result.warnings.append(f"Expected {expected_headlines} headlines, got {len(result.headlines)}")
    if len(result.descriptions) < expected_descriptions:
        result.warnings.append(f"Expected {expected_descriptions} descriptions, got {len(result.descriptions)}")
    return result


_BULLET_RE = re.compile(r"^\s*(?:\d+\s*[.)]|[-*•])\s*")


def parse_keyword_lines(text: str, max_length: int = 80) -> list[str]:
    """One keyword per line; strips numbering, bullets and quotes, drops overlong or duplicate lines."""
    keywords = []
    seen = set()
    for raw in (text or "").splitlines():
        line = _BULLET_RE.sub("", raw)
        line = line.strip().strip('"\'`').strip().lower()
        if not line or line.endswith(":") or len(line) > max_length:
            continue
        if line in seen:
            continue
        seen.add(line)
        keywords.append(line)
    return keywords
