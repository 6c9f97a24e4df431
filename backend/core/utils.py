"""
Utility functions for the access control service.

Includes:
- UTC datetime helpers
- Pagination helpers
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get the current UTC datetime.

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return ``value`` as an aware UTC datetime.

    SQLite hands back naive datetimes; every stored value is written in UTC,
    so a naive value is interpreted as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def calculate_offset(page: int, per_page: int) -> int:
    """
    Calculate offset for database query from page number.

    Args:
        page: Page number (1-indexed)
        per_page: Items per page

    Returns:
        Offset for database query
    """
    return (max(page, 1) - 1) * per_page


def total_pages(total: int, per_page: int) -> int:
    return (total + per_page - 1) // per_page if per_page > 0 else 0
