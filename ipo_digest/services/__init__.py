"""
IPO Digest Services

This package contains the services for the weekly digest pipeline:
- gnews_client: Fetch IPO-related articles from GNews
- ipo_extractor: Extract IPO records via Claude
- merger: Merge records by normalized company name
- sanitizer: Coerce records into the delivery schema
- digest: Build the digest payload
- history: Run history and delivery tracking
- webhook: POST digests to the server and external webhooks
- email: Render and email digests
- agent: Orchestrate the complete weekly job
"""

from ipo_digest.services.gnews_client import get_articles, fetch_top_headlines, fetch_search
from ipo_digest.services.ipo_extractor import extract_item_from_article, extract_items
from ipo_digest.services.merger import normalize_company, pick_status, merge_items
from ipo_digest.services.sanitizer import sanitize_item, sanitize_items
from ipo_digest.services.digest import build_payload, today_ist
from ipo_digest.services.webhook import post_digest, forward_to_webhook
from ipo_digest.services.agent import run_weekly_digest

__all__ = [
    'get_articles',
    'fetch_top_headlines',
    'fetch_search',
    'extract_item_from_article',
    'extract_items',
    'normalize_company',
    'pick_status',
    'merge_items',
    'sanitize_item',
    'sanitize_items',
    'build_payload',
    'today_ist',
    'post_digest',
    'forward_to_webhook',
    'run_weekly_digest',
]
