import re
from datetime import date, datetime
from typing import Optional

from app.core.exceptions import AnalyticsInputError
from app.core.schemas import Aggregation

# -----------------------------------------------------------------------------
# Query-string parsing for the analytics endpoint.
# Malformed values that change the meaning of the request raise
# AnalyticsInputError; paging values are coerced instead of rejected.
# -----------------------------------------------------------------------------

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 50
MAX_LIMIT = 1000
ALL_RESULTS_LIMIT = 10000

# strptime alone also accepts unpadded months and days
DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")


def parse_date(value: Optional[str], name: str) -> Optional[date]:
    """Parse a YYYY-MM-DD query value; empty means "not supplied"."""
    if not value:
        return None
    if not DATE_PATTERN.fullmatch(value):
        raise AnalyticsInputError(f"invalid {name} format; use YYYY-MM-DD")
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise AnalyticsInputError(f"invalid {name} format; use YYYY-MM-DD")


def check_date_range(start: Optional[date], end: Optional[date]):
    if start is not None and end is not None and start > end:
        raise AnalyticsInputError("start_date must not be after end_date")


def parse_sector_id(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        sector_id = int(value)
    except ValueError:
        raise AnalyticsInputError("invalid sector_id format")
    if sector_id < 1:
        raise AnalyticsInputError("invalid sector_id format")
    return sector_id


def parse_aggregation(value: Optional[str]) -> Aggregation:
    if value is None:
        return Aggregation.DAILY
    try:
        return Aggregation(value)
    except ValueError:
        allowed = ", ".join(a.value for a in Aggregation)
        raise AnalyticsInputError(
            f"invalid aggregation type; must be one of: {allowed}"
        )


def normalize_page(value: Optional[str]) -> int:
    # Anything unusable silently becomes the first page
    try:
        page = int(value)
    except (TypeError, ValueError):
        return DEFAULT_PAGE
    return page if page >= 1 else DEFAULT_PAGE


def normalize_limit(value: Optional[str]) -> int:
    """
    Resolve the page size.

    "all" maps to ALL_RESULTS_LIMIT, positive values are capped at
    MAX_LIMIT and anything else falls back to DEFAULT_LIMIT, so the
    result is always >= 1.
    """
    if value == "all":
        return ALL_RESULTS_LIMIT
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    if limit < 1:
        return DEFAULT_LIMIT
    return min(limit, MAX_LIMIT)
