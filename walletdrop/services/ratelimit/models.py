"""Rate limiter persistence model (sliding-window rows)."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from walletdrop.common.db import Base


class RateLimitRecord(Base):
    """One counted action by one actor at one instant."""

    __tablename__ = "rate_limits"
    __table_args__ = (
        Index("ix_rate_limits_actor_action_created", "actor_id", "action", "created_at"),
        Index("ix_rate_limits_action_created", "action", "created_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    actor_id: Mapped[str] = mapped_column(String)
    action: Mapped[str] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
