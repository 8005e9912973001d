"""Waitlist signups collected from mentions."""

from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from walletdrop.common.logging import logger
from walletdrop.services.waitlist.models import WaitlistEntry


class WaitlistService:
    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def add(self, external_user_id: str, handle: str, source_event_id: str | None = None) -> bool:
        """Add a user; returns False when they were already on the list."""

        with self.session_factory() as db:
            existing = db.execute(
                select(WaitlistEntry.id).where(WaitlistEntry.external_user_id == external_user_id)
            ).scalar_one_or_none()
            if existing is not None:
                logger.info("already on waitlist user_id=%s", external_user_id)
                return False
            db.add(WaitlistEntry(external_user_id=external_user_id, handle=handle, source_event_id=source_event_id))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                return False
        logger.info("added to waitlist user_id=%s handle=%s", external_user_id, handle)
        return True

    def is_on_waitlist(self, external_user_id: str) -> bool:
        try:
            with self.session_factory() as db:
                found = db.execute(
                    select(WaitlistEntry.id).where(WaitlistEntry.external_user_id == external_user_id)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("failed to check waitlist user_id=%s error=%s", external_user_id, exc)
            return False
        return found is not None

    def pending(self) -> list[WaitlistEntry]:
        with self.session_factory() as db:
            return (
                db.execute(
                    select(WaitlistEntry)
                    .where(WaitlistEntry.notified.is_(False))
                    .order_by(WaitlistEntry.joined_at.asc())
                )
                .scalars()
                .all()
            )

    def mark_notified(self, external_user_id: str) -> None:
        with self.session_factory() as db:
            db.execute(
                update(WaitlistEntry)
                .where(WaitlistEntry.external_user_id == external_user_id)
                .values(notified=True, notified_at=datetime.now(timezone.utc))
            )
            db.commit()

    def stats(self) -> dict:
        with self.session_factory() as db:
            total, notified, first, latest = db.execute(
                select(
                    func.count(),
                    func.count().filter(WaitlistEntry.notified.is_(True)),
                    func.min(WaitlistEntry.joined_at),
                    func.max(WaitlistEntry.joined_at),
                )
            ).one()
        return {
            "total_signups": total,
            "notified_count": notified,
            "pending_count": total - notified,
            "first_signup": first,
            "latest_signup": latest,
        }
