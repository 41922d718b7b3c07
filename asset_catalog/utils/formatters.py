# asset_catalog/utils/formatters.py
import re
from datetime import datetime
from typing import Iterable, List, Optional
import pytz
from ..config import Config

_WHITESPACE = re.compile(r"\s+")
_NON_SLUG = re.compile(r"[^a-z0-9]+")


def clean_segments(segments: Iterable[Optional[str]]) -> List[str]:
    """Drop blank path segments and trim the rest"""
    return [s.strip() for s in segments if s and s.strip()]


def normalize_name(name: str) -> str:
    """Lowercase name with whitespace runs replaced by underscores"""
    return _WHITESPACE.sub("_", (name or "").strip().lower())


def hierarchy_path(segments: Iterable[str]) -> str:
    """Canonical category path: normalized segments joined by '/'"""
    return "/".join(normalize_name(s) for s in clean_segments(segments))


def slugify(name: str) -> str:
    """Lowercase hyphenated slug"""
    return _NON_SLUG.sub("-", (name or "").lower()).strip("-")


def utcnow() -> datetime:
    return datetime.now(pytz.utc)


def format_datetime(dt: Optional[datetime]) -> str:
    """Format a timestamp in the configured timezone"""
    if dt is None:
        return "never"
    tz = pytz.timezone(Config.TIMEZONE)
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt.astimezone(tz).strftime("%Y-%m-%d %H:%M:%S")


def format_size(size: int) -> str:
    """Human readable byte count"""
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024 or unit == "GiB":
            return f"{value:,.0f} {unit}" if unit == "B" else f"{value:,.1f} {unit}"
        value /= 1024
    return f"{size} B"
