"""
SQLAlchemy Models for IPO Digest

Two tables, both optional:
- digest_runs: one row per weekly agent run (snapshot of delivered items)
- delivery_batches: one row per digest received by the delivery server
"""
import enum
from datetime import datetime
from uuid import UUID, uuid4
from typing import Optional

from sqlalchemy import (
    Column, String, Text, DateTime, Integer, Boolean, JSON, Uuid,
    Enum as SAEnum, Index
)
from sqlalchemy.orm import Mapped
from sqlalchemy.sql import func

from ipo_digest.database import Base


def _enum_values(enum_class):
    return [member.value for member in enum_class]


# ============================================================================
# Enum Definitions
# ============================================================================

class DigestRunStatus(enum.Enum):
    """Weekly agent run outcome"""
    COMPLETED = "completed"
    FAILED = "failed"


class DeliveryStatus(enum.Enum):
    """Email delivery outcome for a received digest"""
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


# ============================================================================
# Entity Models
# ============================================================================

class DigestRun(Base):
    """
    One execution of the weekly IPO digest agent

    The items snapshot is what was POSTed to the delivery server; the next
    run compares against it to describe what changed.
    """
    __tablename__ = "digest_runs"

    id: Mapped[UUID] = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    as_of_date: Mapped[str] = Column(String(10), nullable=False)
    started_at: Mapped[datetime] = Column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[Optional[datetime]] = Column(DateTime(timezone=True), nullable=True)
    status: Mapped[DigestRunStatus] = Column(
        SAEnum(DigestRunStatus, native_enum=False, name="digest_run_status",
               values_callable=_enum_values),
        nullable=False
    )

    # Counts
    article_count: Mapped[int] = Column(Integer, nullable=False, default=0)
    item_count: Mapped[int] = Column(Integer, nullable=False, default=0)
    dropped_count: Mapped[int] = Column(Integer, nullable=False, default=0)

    items: Mapped[list] = Column(JSON, nullable=False, default=list)
    changes_summary: Mapped[Optional[str]] = Column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = Column(Text, nullable=True)

    created_at: Mapped[datetime] = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        Index("ix_digest_runs_started_at", "started_at"),
        Index("ix_digest_runs_status", "status"),
    )

    def __repr__(self):
        return f"<DigestRun {self.as_of_date} {self.status.value} items={self.item_count}>"


class DeliveryBatch(Base):
    """Digest received on /monthly and what happened to it"""
    __tablename__ = "delivery_batches"

    id: Mapped[UUID] = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    received_at: Mapped[datetime] = Column(DateTime(timezone=True), nullable=False)
    as_of_date: Mapped[str] = Column(String(10), nullable=False)
    provider: Mapped[Optional[str]] = Column(String(20), nullable=True)
    recipient_emails: Mapped[list] = Column(JSON, nullable=False, default=list)
    item_count: Mapped[int] = Column(Integer, nullable=False, default=0)
    subject_line: Mapped[str] = Column(String(500), nullable=False)
    status: Mapped[DeliveryStatus] = Column(
        SAEnum(DeliveryStatus, native_enum=False, name="delivery_status",
               values_callable=_enum_values),
        nullable=False
    )
    webhook_forwarded: Mapped[bool] = Column(Boolean, nullable=False, default=False)
    error_message: Mapped[Optional[str]] = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_delivery_batches_received_at", "received_at"),
    )

    def __repr__(self):
        return f"<DeliveryBatch {self.as_of_date} {self.status.value}>"
