"""Waitlist persistence model."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from walletdrop.common.db import Base


class WaitlistEntry(Base):
    """One signup per external user id."""

    __tablename__ = "waitlist"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    external_user_id: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    handle: Mapped[str] = mapped_column(String)
    source_event_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
    notified: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
