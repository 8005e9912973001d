"""Wallet database models.

This DB is the source of truth for provisioned wallets, their delivery state
and the audit trail of what happened to each one.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from walletdrop.common.db import Base, JSONType
from walletdrop.common.state_machine import CREATED


@dataclass(frozen=True)
class OnChain:
    account_id: str


@dataclass(frozen=True)
class KeysOnly:
    pass


LedgerAccount = OnChain | KeysOnly


class Wallet(Base):
    """One provisioned wallet per external user id."""

    __tablename__ = "wallets"

    wallet_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    external_user_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    handle: Mapped[str] = mapped_column(String)
    secret_encrypted: Mapped[str] = mapped_column(Text)
    password_hash: Mapped[str] = mapped_column(String)
    public_key: Mapped[str] = mapped_column(String)
    account_alias: Mapped[str] = mapped_column(String, index=True)
    account_id: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)

    delivery_state: Mapped[str] = mapped_column(String, default=CREATED, index=True)
    state_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    claim_link_generated: Mapped[bool] = mapped_column(Boolean, default=False)
    first_message_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    first_message_failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    second_message_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    second_message_failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    claim_accessed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    is_funded: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    current_balance: Mapped[Decimal] = mapped_column(Numeric(20, 8), default=Decimal("0"))
    last_balance_check: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    airdrop_sent: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    airdrop_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    pre_event_reminder_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    post_event_confirmation_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def ledger_account(self) -> LedgerAccount:
        if self.account_id:
            return OnChain(self.account_id)
        return KeysOnly()

    @property
    def account_ref(self) -> str:
        """Human-facing identifier: on-chain id when present, alias otherwise."""

        match self.ledger_account:
            case OnChain(account_id=account_id):
                return account_id
            case KeysOnly():
                return self.account_alias


class AuditEntry(Base):
    """Append-only record of wallet lifecycle events."""

    __tablename__ = "audit_log"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    external_user_id: Mapped[str] = mapped_column(String, index=True)
    action: Mapped[str] = mapped_column(String(100))
    details: Mapped[dict] = mapped_column(JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
