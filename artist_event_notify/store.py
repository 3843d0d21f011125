"""
Durable stores: known events, subscriptions and the notification ledger.

Every method runs in its own short transaction. Uniqueness is enforced by
the database, so a duplicate insert raised by a concurrent or repeated run
is reported as "already there" instead of an error.
"""
import logging
from datetime import timezone
from typing import Iterable, List, Optional, Set

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import KnownEvent, PushRecipient, Subscription
from .orm import (
    KnownEventRow,
    NotificationFailureRow,
    SentNotificationRow,
    UserArtistRow,
    UserRow,
)

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


def _to_known_event(row: KnownEventRow) -> KnownEvent:
    return KnownEvent(
        id=row.id,
        upstream_event_id=row.upstream_event_id,
        artist_id=row.artist_id,
        artist_name=row.artist_name,
        event_name=row.event_name,
        venue_name=row.venue_name,
        city=row.city,
        event_datetime=row.event_datetime,
        ticket_url=row.ticket_url or "",
        image_url=row.image_url or "",
        notified=bool(row.notified),
    )


class EventStore:
    """Known events keyed by their upstream catalog id."""

    def __init__(self, sessions: SessionFactory):
        self._sessions = sessions

    async def exists(self, upstream_event_id: str) -> bool:
        async with self._sessions() as session:
            stmt = select(KnownEventRow.id).where(KnownEventRow.upstream_event_id == upstream_event_id)
            return (await session.execute(stmt)).first() is not None

    async def get(self, event_id: str) -> Optional[KnownEvent]:
        async with self._sessions() as session:
            row = await session.get(KnownEventRow, event_id)
            return _to_known_event(row) if row else None

    async def upsert_if_absent(self, event: KnownEvent) -> bool:
        """Insert the event unless its upstream id is already known.

        Returns:
            True if this call created the row, False if it already existed.
        """
        event_datetime = event.event_datetime
        if event_datetime is not None and event_datetime.tzinfo is None:
            event_datetime = event_datetime.replace(tzinfo=timezone.utc)

        row = KnownEventRow(
            upstream_event_id=event.upstream_event_id,
            artist_id=event.artist_id,
            artist_name=event.artist_name,
            event_name=event.event_name,
            venue_name=event.venue_name,
            city=event.city,
            event_datetime=event_datetime,
            ticket_url=event.ticket_url,
            image_url=event.image_url,
            notified=False,
        )
        try:
            async with self._sessions.begin() as session:
                session.add(row)
        except IntegrityError:
            logger.debug(f"Event {event.upstream_event_id} already known")
            return False
        event.id = row.id
        return True

    async def list_unnotified(self) -> List[KnownEvent]:
        async with self._sessions() as session:
            stmt = (
                select(KnownEventRow)
                .where(KnownEventRow.notified.is_(False))
                .order_by(KnownEventRow.created_at, KnownEventRow.id)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_known_event(r) for r in rows]

    async def mark_notified(self, event_id: str) -> None:
        """Flag the event as fully processed. Marking twice is a no-op."""
        async with self._sessions.begin() as session:
            await session.execute(
                update(KnownEventRow)
                .where(KnownEventRow.id == event_id, KnownEventRow.notified.is_(False))
                .values(notified=True)
            )

    async def count_unnotified(self) -> int:
        async with self._sessions() as session:
            stmt = select(func.count()).select_from(KnownEventRow).where(KnownEventRow.notified.is_(False))
            return int((await session.execute(stmt)).scalar_one())


class SubscriptionIndex:
    """Which users follow which artists, and where to reach them."""

    def __init__(self, sessions: SessionFactory):
        self._sessions = sessions

    async def list_distinct_artist_ids(self) -> Set[str]:
        async with self._sessions() as session:
            stmt = select(UserArtistRow.artist_id).distinct()
            return set((await session.execute(stmt)).scalars().all())

    async def list_followers(self, artist_id: str) -> List[Subscription]:
        async with self._sessions() as session:
            stmt = (
                select(UserArtistRow)
                .where(UserArtistRow.artist_id == artist_id)
                .order_by(UserArtistRow.created_at, UserArtistRow.user_id)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [
                Subscription(user_id=r.user_id, artist_id=r.artist_id, artist_name=r.artist_name)
                for r in rows
            ]

    async def get_push_recipients(self, user_ids: Iterable[str]) -> List[PushRecipient]:
        """Return the users among ``user_ids`` that have a push token."""
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return []
        async with self._sessions() as session:
            stmt = select(UserRow).where(UserRow.id.in_(ids), UserRow.push_token.is_not(None))
            rows = {r.id: r for r in (await session.execute(stmt)).scalars().all()}
        # keep follower order
        return [
            PushRecipient(user_id=uid, push_token=rows[uid].push_token.strip())
            for uid in ids
            if uid in rows and rows[uid].push_token and rows[uid].push_token.strip()
        ]

    async def count_followers_without_token(self) -> int:
        async with self._sessions() as session:
            stmt = (
                select(func.count(UserArtistRow.user_id.distinct()))
                .select_from(UserArtistRow)
                .outerjoin(UserRow, UserRow.id == UserArtistRow.user_id)
                .where((UserRow.push_token.is_(None)) | (func.trim(UserRow.push_token) == ""))
            )
            return int((await session.execute(stmt)).scalar_one())

    async def follow(self, user_id: str, artist_id: str, artist_name: str = "") -> bool:
        """Subscribe a user to an artist. Returns False if already following."""
        try:
            async with self._sessions.begin() as session:
                session.add(UserArtistRow(user_id=user_id, artist_id=artist_id, artist_name=artist_name))
        except IntegrityError:
            return False
        return True

    async def unfollow(self, user_id: str, artist_id: str) -> bool:
        async with self._sessions.begin() as session:
            stmt = select(UserArtistRow).where(
                UserArtistRow.user_id == user_id, UserArtistRow.artist_id == artist_id
            )
            row = (await session.execute(stmt)).scalars().first()
            if row is None:
                return False
            await session.delete(row)
            return True

    async def register_push_token(self, user_id: str, push_token: Optional[str]) -> None:
        async with self._sessions.begin() as session:
            row = await session.get(UserRow, user_id)
            if row is None:
                session.add(UserRow(id=user_id, push_token=push_token))
            else:
                row.push_token = push_token


class NotificationLedger:
    """Per-(user, event) record of delivered and failed notifications."""

    def __init__(self, sessions: SessionFactory):
        self._sessions = sessions

    async def was_notified(self, user_id: str, event_id: str) -> bool:
        async with self._sessions() as session:
            stmt = select(SentNotificationRow.id).where(
                SentNotificationRow.user_id == user_id,
                SentNotificationRow.event_id == event_id,
            )
            return (await session.execute(stmt)).first() is not None

    async def record_notified(self, user_id: str, event_id: str) -> bool:
        """Record a confirmed delivery.

        Returns:
            False if the pair was already recorded (e.g. by an overlapping run).
        """
        try:
            async with self._sessions.begin() as session:
                session.add(SentNotificationRow(user_id=user_id, event_id=event_id))
        except IntegrityError:
            logger.debug(f"Notification for user {user_id} / event {event_id} already recorded")
            return False
        return True

    async def failed_attempts(self, user_id: str, event_id: str) -> int:
        async with self._sessions() as session:
            stmt = select(NotificationFailureRow.attempts).where(
                NotificationFailureRow.user_id == user_id,
                NotificationFailureRow.event_id == event_id,
            )
            attempts = (await session.execute(stmt)).scalar_one_or_none()
            return int(attempts or 0)

    async def record_failure(self, user_id: str, event_id: str, error: Optional[str] = None) -> int:
        """Count a failed delivery attempt and return the new total."""
        for attempt in range(2):
            try:
                async with self._sessions.begin() as session:
                    stmt = select(NotificationFailureRow).where(
                        NotificationFailureRow.user_id == user_id,
                        NotificationFailureRow.event_id == event_id,
                    )
                    row = (await session.execute(stmt)).scalars().first()
                    if row is None:
                        row = NotificationFailureRow(
                            user_id=user_id, event_id=event_id, attempts=1, last_error=error
                        )
                        session.add(row)
                    else:
                        row.attempts = (row.attempts or 0) + 1
                        row.last_error = error
                    attempts = row.attempts
                return int(attempts)
            except IntegrityError:
                if attempt == 0:
                    continue
                raise
        raise RuntimeError("Recording notification failure failed after retries.")
