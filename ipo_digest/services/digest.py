"""
Digest Payload Builder

Assembles the JSON document POSTed to the delivery server.
"""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

TIMEZONE = 'Asia/Kolkata'
SOURCE_NOTES = [
    'GNews (business/top-headlines + search)',
    'AI extraction/summary',
]
DEFAULT_CHANGES_NOTE = 'Automated weekly run'


def today_ist(now: Optional[datetime] = None) -> str:
    """
    Today's date in India as YYYY-MM-DD.

    Args:
        now: Optional aware datetime to convert (defaults to now)
    """
    now = now or datetime.now(ZoneInfo(TIMEZONE))
    return now.astimezone(ZoneInfo(TIMEZONE)).strftime('%Y-%m-%d')


def build_payload(
    items: list[dict],
    changes: Optional[str] = DEFAULT_CHANGES_NOTE,
    as_of_date: Optional[str] = None
) -> dict:
    """
    Build the digest payload.

    Args:
        items: Sanitized IPO items
        changes: Human-readable summary of changes since the last run
        as_of_date: Override for the digest date (defaults to today in IST)

    Returns:
        Payload dict matching the delivery server's schema
    """
    payload = {
        'as_of_date': as_of_date or today_ist(),
        'timezone': TIMEZONE,
        'source_notes': list(SOURCE_NOTES),
        'items': items,
    }
    if changes:
        payload['changes_since_last_run'] = changes
    return payload
