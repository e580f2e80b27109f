"""
Run History Service

Remembers what each weekly run delivered so the next digest can say what
changed, and logs each digest the delivery server handles. Everything here
is a no-op when DATABASE_URL is not configured.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ipo_digest import database
from ipo_digest.models import DigestRun, DigestRunStatus, DeliveryBatch, DeliveryStatus
from ipo_digest.services.digest import DEFAULT_CHANGES_NOTE
from ipo_digest.services.merger import normalize_company, status_rank

logger = logging.getLogger(__name__)

NO_CHANGES_NOTE = 'No changes since last run'


def describe_changes(previous_items: Optional[list[dict]], current_items: list[dict]) -> str:
    """
    Summarize how this run's items differ from the previous run's.

    Args:
        previous_items: Items from the last completed run, or None if unknown
        current_items: Items about to be delivered

    Returns:
        One-line summary for the digest's "What changed" paragraph
    """
    if previous_items is None:
        return DEFAULT_CHANGES_NOTE

    previous = {normalize_company(i.get('company')): i for i in previous_items if i.get('company')}
    current = {normalize_company(i.get('company')): i for i in current_items if i.get('company')}

    added = [item['company'] for key, item in current.items() if key not in previous]
    removed = [item['company'] for key, item in previous.items() if key not in current]
    upgraded = []
    for key, item in current.items():
        old = previous.get(key)
        if old and status_rank(item.get('status')) > status_rank(old.get('status')):
            upgraded.append(f"{item['company']} ({old.get('status')} -> {item.get('status')})")

    parts = []
    if added:
        parts.append(f"New: {', '.join(added)}")
    if upgraded:
        parts.append(f"Status upgrades: {', '.join(upgraded)}")
    if removed:
        parts.append(f"No longer in the news: {', '.join(removed)}")

    return '; '.join(parts) if parts else NO_CHANGES_NOTE


def load_previous_items() -> Optional[list[dict]]:
    """
    Items delivered by the most recent completed run.

    Returns:
        Item list, or None when history is disabled or empty
    """
    if not database.is_configured():
        return None

    session = database.SessionLocal()
    try:
        run = (
            session.query(DigestRun)
            .filter(DigestRun.status == DigestRunStatus.COMPLETED)
            .order_by(DigestRun.started_at.desc())
            .first()
        )
        return list(run.items) if run else None
    finally:
        session.close()


def record_run(
    as_of_date: str,
    status: DigestRunStatus,
    started_at: datetime,
    items: list[dict],
    article_count: int = 0,
    dropped_count: int = 0,
    changes_summary: Optional[str] = None,
    error_message: Optional[str] = None
) -> Optional[DigestRun]:
    """
    Store a DigestRun row.

    Returns:
        The stored run, or None when history is disabled
    """
    if not database.is_configured():
        return None

    session = database.SessionLocal()
    try:
        run = DigestRun(
            as_of_date=as_of_date,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            status=status,
            article_count=article_count,
            item_count=len(items),
            dropped_count=dropped_count,
            items=items,
            changes_summary=changes_summary,
            error_message=error_message,
        )
        session.add(run)
        session.commit()
        logger.info(f"Recorded digest run {run.id} ({status.value}, {len(items)} items)")
        return run
    except Exception as e:
        logger.error(f"Error recording digest run: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def record_delivery(
    payload: dict,
    subject: str,
    status: DeliveryStatus,
    provider: Optional[str] = None,
    recipients: Optional[list[str]] = None,
    webhook_forwarded: bool = False,
    error_message: Optional[str] = None
) -> Optional[DeliveryBatch]:
    """
    Store a DeliveryBatch row for a digest received by the server.

    Returns:
        The stored batch, or None when history is disabled
    """
    if not database.is_configured():
        return None

    session = database.SessionLocal()
    try:
        batch = DeliveryBatch(
            received_at=datetime.now(timezone.utc),
            as_of_date=str(payload.get('as_of_date', ''))[:10],
            provider=provider,
            recipient_emails=recipients or [],
            item_count=len(payload.get('items') or []),
            subject_line=subject[:500],
            status=status,
            webhook_forwarded=webhook_forwarded,
            error_message=error_message,
        )
        session.add(batch)
        session.commit()
        return batch
    except Exception as e:
        logger.error(f"Error recording delivery batch: {e}")
        session.rollback()
        raise
    finally:
        session.close()
