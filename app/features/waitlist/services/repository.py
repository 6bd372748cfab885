from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional

from sqlalchemy import func, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.waitlist.models.waitlist import WaitlistSignup
from app.platform.exceptions import ConstraintViolation


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WaitlistRepository:
    """All reads and writes against waitlist_emails go through here."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_hash(self, email_hash: str) -> Optional[WaitlistSignup]:
        result = await self.db.execute(
            select(WaitlistSignup).where(WaitlistSignup.email_hash == email_hash).limit(1)
        )
        return result.scalars().first()

    async def find_by_verification_token(self, token: str) -> Optional[WaitlistSignup]:
        result = await self.db.execute(
            select(WaitlistSignup).where(WaitlistSignup.verification_token == token).limit(1)
        )
        return result.scalars().first()

    async def find_by_unsubscribe_token(self, token: str) -> Optional[WaitlistSignup]:
        result = await self.db.execute(
            select(WaitlistSignup).where(WaitlistSignup.unsubscribe_token == token).limit(1)
        )
        return result.scalars().first()

    async def insert(self, **fields) -> WaitlistSignup:
        signup = WaitlistSignup(**fields)
        self.db.add(signup)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConstraintViolation(str(e.orig)) from e
        await self.db.refresh(signup)
        return signup

    async def update_verification_token(self, signup_id: str, token: str) -> None:
        await self.db.execute(
            update(WaitlistSignup)
            .where(WaitlistSignup.id == signup_id)
            .values(verification_token=token, verification_sent_at=_utcnow(), updated_at=_utcnow())
        )
        await self.db.commit()

    async def mark_verified(self, signup_id: str) -> bool:
        """Returns False when the row was already verified (verification happens once)."""
        result = await self.db.execute(
            update(WaitlistSignup)
            .where(WaitlistSignup.id == signup_id, WaitlistSignup.verified.is_(False))
            .values(
                verified=True,
                verified_at=_utcnow(),
                verification_token=None,
                updated_at=_utcnow(),
            )
        )
        await self.db.commit()
        return result.rowcount > 0

    async def mark_unsubscribed(self, signup_id: str) -> bool:
        result = await self.db.execute(
            update(WaitlistSignup)
            .where(WaitlistSignup.id == signup_id, WaitlistSignup.unsubscribed.is_(False))
            .values(unsubscribed=True, unsubscribed_at=_utcnow(), updated_at=_utcnow())
        )
        await self.db.commit()
        return result.rowcount > 0

    async def count_verified_active(self) -> int:
        count = await self.db.scalar(
            select(func.count(WaitlistSignup.id)).where(
                WaitlistSignup.verified.is_(True),
                WaitlistSignup.unsubscribed.is_(False),
            )
        )
        return count or 0

    async def stats_base(self) -> List[dict]:
        """Minimal projection for aggregate reporting; aggregation happens in the caller."""
        result = await self.db.execute(
            select(
                WaitlistSignup.verified,
                WaitlistSignup.created_at,
                WaitlistSignup.source,
                WaitlistSignup.unsubscribed,
            ).where(WaitlistSignup.unsubscribed.is_(False))
        )
        return [dict(row._mapping) for row in result.all()]

    async def iter_verified_active(self, batch_size: int = 500) -> AsyncIterator[WaitlistSignup]:
        """
        Keyset pagination on the uuid7 id, which sorts by creation time.
        Rows that unsubscribe mid-run drop out without shifting later pages.
        """
        last_id = None
        while True:
            query = select(WaitlistSignup).where(
                WaitlistSignup.verified.is_(True),
                WaitlistSignup.unsubscribed.is_(False),
            )
            if last_id is not None:
                query = query.where(WaitlistSignup.id > last_id)
            result = await self.db.execute(query.order_by(WaitlistSignup.id).limit(batch_size))
            batch = result.scalars().all()
            if not batch:
                return
            for signup in batch:
                yield signup
            last_id = batch[-1].id

    async def ping(self) -> None:
        await self.db.execute(text("SELECT 1"))
