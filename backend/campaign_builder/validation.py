"""
Request-level checks that map bad input onto the API's field error codes.
"""

from typing import Optional
from urllib.parse import urlparse

from campaign_builder.errors import ValidationError
from campaign_builder.models import EntityStatus, MatchType

STATUSES = [s.value for s in EntityStatus]
MATCH_TYPES = [m.value for m in MatchType]
MAX_NAME_LENGTH = 255
MAX_PATH_LENGTH = 15


def require_name(value: Optional[str], field: str = "name") -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError(f"{field} is required", code="INVALID_NAME")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"{field} must be {MAX_NAME_LENGTH} characters or fewer", code="INVALID_NAME")
    return name


def validate_budget(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    if value < 0:
        raise ValidationError("budget must be zero or positive", code="INVALID_BUDGET")
    return float(value)


def validate_status(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    status = value.strip().lower()
    if status not in STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(STATUSES)}",
            code="INVALID_STATUS",
            details={"allowed": STATUSES},
        )
    return status


def validate_url(value: Optional[str], field: str = "final_url") -> Optional[str]:
    if not value:
        return value
    parsed = urlparse(value.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"{field} must be an http(s) URL", code="INVALID_URL")
    return value.strip()


def validate_paths(path1: Optional[str], path2: Optional[str]) -> None:
    for name, value in (("path1", path1), ("path2", path2)):
        if value and len(value) > MAX_PATH_LENGTH:
            raise ValidationError(f"{name} must be {MAX_PATH_LENGTH} characters or fewer", code="INVALID_URL")


def require_ids(ids: Optional[list[str]], code: str, field: str) -> list[str]:
    cleaned = [i for i in ids or [] if isinstance(i, str) and i.strip()]
    if not cleaned:
        raise ValidationError(f"{field} must be a non-empty list of ids", code=code)
    return cleaned
