"""
Weekly Digest Agent - Job Orchestration

1. Fetch IPO-related articles from GNews
2. Extract one IPO record per article with Claude
3. Merge duplicate companies
4. Sanitize against the delivery schema
5. Describe changes since the last run
6. POST the digest to the delivery server
7. Record the run (when a database is configured)
"""

import json
import logging
import sys
import time
from datetime import datetime, timezone
from typing import Optional

from ipo_digest.models import DigestRunStatus
from ipo_digest.services.digest import build_payload, today_ist
from ipo_digest.services.gnews_client import get_articles
from ipo_digest.services.history import describe_changes, load_previous_items, record_run
from ipo_digest.services.ipo_extractor import extract_items
from ipo_digest.services.merger import merge_items
from ipo_digest.services.sanitizer import sanitize_items
from ipo_digest.services.webhook import post_digest

logger = logging.getLogger(__name__)


def _log_progress(msg: str, start_time: float = None):
    """Log with elapsed time, flush immediately."""
    elapsed = f"[{time.time() - start_time:.1f}s]" if start_time else ""
    full_msg = f"{elapsed} AGENT: {msg}"
    logger.info(full_msg)
    # Also print directly so cron hosts see it before the process exits
    print(full_msg, file=sys.stdout, flush=True)


def _previous_items(stats: dict) -> Optional[list[dict]]:
    try:
        return load_previous_items()
    except Exception as e:
        logger.warning(f"Run history unavailable: {e}")
        stats['errors'].append(f"History load: {e}")
        return None


def _record(stats: dict, **kwargs):
    try:
        record_run(**kwargs)
    except Exception as e:
        logger.warning(f"Could not record run: {e}")
        stats['errors'].append(f"History record: {e}")


def _run_kwargs(stats: dict, started_at: datetime, items: list[dict]) -> dict:
    """DigestRun fields from whatever the run got through."""
    return dict(
        as_of_date=stats['as_of_date'] or today_ist(),
        started_at=started_at,
        items=items,
        article_count=stats['articles'],
        dropped_count=stats['dropped'],
        changes_summary=stats['changes'],
    )


def run_weekly_digest(max_articles: Optional[int] = None) -> dict:
    """
    Run the complete weekly digest job.

    Args:
        max_articles: Optional cap on fetched articles (defaults to MAX_ARTICLES)

    Returns:
        Stats dict with job results

    Raises:
        GNewsError, WebhookError, ValueError: Failures that abort the run
    """
    job_start = time.time()
    start_time = datetime.now(timezone.utc)

    logger.info(json.dumps({
        "event": "job_start",
        "timestamp": start_time.isoformat(),
    }))

    stats = {
        'start_time': start_time.isoformat(),
        'articles': 0,
        'extracted': 0,
        'extract_failed': 0,
        'merged': 0,
        'dropped': 0,
        'sent': 0,
        'as_of_date': None,
        'changes': None,
        'errors': [],
    }

    items = []
    try:
        # Step 1: Fetch articles
        _log_progress("Step 1: Fetching news...", job_start)
        articles = get_articles(max_articles)
        stats['articles'] = len(articles)
        _log_progress(f"Step 1: Articles after filter/dedupe: {len(articles)}", job_start)

        # Step 2: Extract one record per article
        _log_progress("Step 2: Extracting IPO records...", job_start)
        extracted, extract_stats = extract_items(articles)
        stats['extracted'] = extract_stats['items_extracted']
        stats['extract_failed'] = extract_stats['articles_failed']
        _log_progress(f"Step 2: {len(extracted)} records extracted", job_start)

        # Step 3-4: Merge by company, then sanitize
        merged = merge_items(extracted)
        items, dropped = sanitize_items(merged)
        stats['merged'] = len(merged)
        stats['dropped'] = dropped
        _log_progress(f"Step 3: {len(items)} companies after merge/validate ({dropped} dropped)", job_start)

        # Step 5: Compare with the last run
        changes = describe_changes(_previous_items(stats), items)
        payload = build_payload(items, changes)
        stats['as_of_date'] = payload['as_of_date']
        stats['changes'] = changes

        # Step 6: Deliver
        _log_progress(f"Step 4: Posting {len(items)} items to webhook...", job_start)
        post_digest(payload)

    except Exception as e:
        _record(stats, status=DigestRunStatus.FAILED, error_message=str(e), **_run_kwargs(stats, start_time, items))
        raise

    stats['sent'] = len(items)
    _record(stats, status=DigestRunStatus.COMPLETED, **_run_kwargs(stats, start_time, items))

    end_time = datetime.now(timezone.utc)
    stats['end_time'] = end_time.isoformat()
    stats['duration_seconds'] = (end_time - start_time).total_seconds()

    _log_progress(f"JOB COMPLETE: sent {stats['sent']} items in {stats['duration_seconds']:.1f}s", job_start)
    logger.info(json.dumps({
        "event": "job_complete",
        **stats
    }))

    return stats
