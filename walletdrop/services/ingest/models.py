"""Processed-event ledger model (inbound mention dedupe)."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from walletdrop.common.db import Base


class Outcome(str, Enum):
    WALLET_CREATED = "wallet_created"
    WALLET_CREATED_DM_FAILED = "wallet_created_dm_failed"
    ALREADY_HAS_WALLET = "already_has_wallet"
    RATE_LIMITED = "rate_limited"
    DAILY_LIMIT = "daily_limit"
    IGNORED_NO_TRIGGER = "ignored_no_trigger"
    WAITLIST_ADDED = "waitlist_added"
    ALREADY_ON_WAITLIST = "already_on_waitlist"
    ERROR = "error"


class ProcessedEvent(Base):
    """One row per inbound event id; the exactly-once processing record."""

    __tablename__ = "processed_events"
    __table_args__ = (Index("ix_processed_events_processed_at", "processed_at"),)

    event_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    author_id: Mapped[str] = mapped_column(String(50), index=True)
    author_handle: Mapped[str] = mapped_column(String)
    raw_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    outcome: Mapped[str] = mapped_column(String(50))
