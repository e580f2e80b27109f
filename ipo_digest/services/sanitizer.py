"""
IPO Item Sanitizer

Final pass before delivery: coerces LLM-extracted items into the shape the
delivery server's schema accepts, and drops items that cannot be repaired.
"""

import logging
import math
import re
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

LINK_KEYS = ('drhp', 'rhp', 'exchange_notice', 'news')

NON_NUMERIC = re.compile(r'[^\d.]')
BANK_SEPARATORS = re.compile(r'[,;|]')

# Checked in order; DRHP before RHP because "drhp" contains "rhp"
STATUS_KEYWORDS = [
    ('approved', ('approved', 'nod')),
    ('DRHP', ('drhp', 'draft red herring')),
    ('RHP', ('rhp', 'red herring')),
    ('rumor', ('rumor', 'considering', 'mulls', 'plan')),
]


def is_url(value) -> bool:
    """True for absolute http(s) URLs with a host."""
    if not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme.lower() in ('http', 'https') and bool(parsed.netloc)


def clean_links(links) -> Optional[dict]:
    """
    Keep only known link keys holding valid http(s) URLs.

    Returns:
        Cleaned links dict, or None when nothing survives
    """
    if not isinstance(links, dict):
        return None

    cleaned = {}
    for key in LINK_KEYS:
        value = links.get(key)
        if not isinstance(value, str):
            continue
        value = value.strip()
        if is_url(value):
            cleaned[key] = value

    return cleaned or None


def normalize_status(raw: str) -> str:
    """Map free-text status onto the preferred labels (rumor/DRHP/RHP/approved)."""
    status = raw.strip()
    lowered = status.lower()
    for label, keywords in STATUS_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return label
    return status


def parse_issue_size(value) -> Optional[float]:
    """
    Parse an issue size in crore from a number or a string like "₹1,200 Cr".

    Returns:
        The size as a float, or None if nothing numeric can be recovered
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # A sign is not a digit; "-5" reads as 5 crore, same as the string path
        number = abs(float(value))
    else:
        digits = NON_NUMERIC.sub('', str(value))
        if not digits:
            return None
        try:
            number = float(digits)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def clean_banks(banks) -> list[str]:
    if isinstance(banks, list):
        values = [str(bank).strip() for bank in banks if bank is not None]
    elif isinstance(banks, str):
        values = [bank.strip() for bank in BANK_SEPARATORS.split(banks)]
    else:
        values = []
    return [bank for bank in values if bank]


def _clean_text(value) -> Optional[str]:
    if value is None or value == '':
        return None
    text = str(value).strip()
    return text or None


def sanitize_item(item) -> Optional[dict]:
    """
    Sanitize one IPO item.

    Args:
        item: Raw (possibly merged) item dict

    Returns:
        Clean item dict with only populated fields, or None if company or
        status is missing
    """
    if not isinstance(item, dict):
        return None

    company = _clean_text(item.get('company'))
    raw_status = _clean_text(item.get('status'))
    if not company or not raw_status:
        return None

    out = {'company': company, 'status': normalize_status(raw_status)}

    sector = _clean_text(item.get('sector'))
    if sector:
        out['sector'] = sector

    expected_window = _clean_text(item.get('expected_window'))
    if expected_window:
        out['expected_window'] = expected_window

    issue_size = parse_issue_size(item.get('issue_size_cr'))
    if issue_size is not None:
        out['issue_size_cr'] = issue_size

    banks = clean_banks(item.get('lead_banks'))
    if banks:
        out['lead_banks'] = banks

    links = clean_links(item.get('links'))
    if links:
        out['links'] = links

    notes = _clean_text(item.get('notes'))
    if notes:
        out['notes'] = notes

    return out


def sanitize_items(items: list) -> tuple[list[dict], int]:
    """
    Sanitize a list of items, dropping the invalid ones.

    Returns:
        Tuple of (sanitized items, dropped count)
    """
    sanitized = [clean for clean in (sanitize_item(item) for item in items) if clean]
    dropped = len(items) - len(sanitized)
    if dropped > 0:
        logger.info(f"[validate] dropped {dropped} invalid item(s)")
    return sanitized, dropped
