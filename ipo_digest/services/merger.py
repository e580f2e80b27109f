"""
Company Merger

Collapses multiple articles about the same company into one IPO item,
keeping the most advanced filing status seen.
"""

import logging
import re

from ipo_digest.services.sanitizer import clean_banks

logger = logging.getLogger(__name__)

# Filing progress: rumor -> DRHP filed -> RHP filed -> approved
STATUS_RANK = {'approved': 4, 'RHP': 3, 'DRHP': 2, 'rumor': 1}

COMPANY_NOISE = re.compile(r'limited|ltd\.?|private|pvt\.?|ipo|drhp|rhp|public issue', re.IGNORECASE)
WHITESPACE = re.compile(r'\s+')


def normalize_company(name) -> str:
    """
    Normalize a company name for grouping.

    Drops legal suffixes and IPO jargon ("Tata Capital Ltd IPO" and
    "tata capital limited" both become "tata capital").
    """
    text = COMPANY_NOISE.sub('', str(name or '').lower())
    return WHITESPACE.sub(' ', text).strip()


def status_rank(status) -> int:
    return STATUS_RANK.get(status, 0)


def pick_status(a, b):
    """Return the more advanced of two statuses (ties go to a)."""
    return a if status_rank(a) >= status_rank(b) else b


def _union(first, second) -> list:
    merged = []
    for value in clean_banks(first) + clean_banks(second):
        if value not in merged:
            merged.append(value)
    return merged


def merge_items(items: list[dict]) -> list[dict]:
    """
    Merge items by normalized company name.

    Later items overlay earlier ones field by field, except:
    - status keeps the higher-ranked value
    - lead_banks is the ordered union
    - links are merged, later values winning

    Args:
        items: Extracted IPO item dicts

    Returns:
        One item per company, in first-seen order
    """
    by_company = {}

    for item in items:
        key = normalize_company(item.get('company'))
        previous = by_company.get(key)
        if previous is None:
            by_company[key] = dict(item)
            continue

        overlay = {k: v for k, v in item.items() if v is not None}
        merged = {**previous, **overlay}
        merged['status'] = pick_status(item.get('status'), previous.get('status'))
        merged['lead_banks'] = _union(previous.get('lead_banks'), item.get('lead_banks'))
        merged['links'] = {**(previous.get('links') or {}), **(item.get('links') or {})}
        by_company[key] = merged

    if len(by_company) < len(items):
        logger.info(f"Merged {len(items)} items into {len(by_company)} companies")

    return list(by_company.values())
