"""
Shared utility functions.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)


def safe_error_detail(exc: Exception, fallback: str = "An internal error occurred. Please try again later.") -> str:
    """
    Return a sanitized error message safe for client consumption.
    Logs the real exception detail server-side.
    """
    logger.error(f"Operation failed: {exc}", exc_info=True)
    return fallback


def utcnow() -> datetime:
    """
    Return the current UTC time as a naive datetime (no tzinfo).
    Naive datetimes are used because SQLite stores timestamps as plain TEXT.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def success_response(data: Any = None, meta: Optional[dict] = None) -> dict:
    """Standard success envelope: {success, data, meta?, timestamp}."""
    body = {"success": True, "data": data}
    if meta is not None:
        body["meta"] = meta
    body["timestamp"] = iso_timestamp()
    return body


def error_response(code: str, message: str, details: Any = None) -> dict:
    """Standard error envelope: {success: false, error: {code, message, details?}, timestamp}."""
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"success": False, "error": error, "timestamp": iso_timestamp()}


def isoformat(value: Optional[datetime | date]) -> Optional[str]:
    return value.isoformat() if value else None


def safe_float(val, default: float = 0.0) -> float:
    if val is None or val == "":
        return default
    try:
        return float(str(val).replace(",", "").replace("$", "").replace("%", "").strip())
    except (ValueError, TypeError):
        return default


def safe_int(val, default: int = 0) -> int:
    if val is None or val == "":
        return default
    try:
        return int(float(str(val).replace(",", "").strip()))
    except (ValueError, TypeError):
        return default


def parse_date(value: Any) -> Optional[date]:
    """Accept a date, datetime or ISO string; return None for blanks."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])
