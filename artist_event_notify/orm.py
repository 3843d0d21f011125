"""Database tables."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from .db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class KnownEventRow(Base):
    __tablename__ = "known_events"

    id = Column(String(36), primary_key=True, default=_uuid)
    upstream_event_id = Column(String(128), unique=True, nullable=False)
    artist_id = Column(String(128), nullable=False, index=True)
    artist_name = Column(String(512), nullable=False)
    event_name = Column(String(1024), nullable=False)
    venue_name = Column(String(512), nullable=False)
    city = Column(String(256), nullable=False)
    event_datetime = Column(DateTime(timezone=True), nullable=True)
    ticket_url = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    notified = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class UserArtistRow(Base):
    __tablename__ = "user_artists"
    __table_args__ = (UniqueConstraint("user_id", "artist_id", name="uq_user_artists_user_artist"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(128), nullable=False, index=True)
    artist_id = Column(String(128), nullable=False, index=True)
    artist_name = Column(String(512), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String(128), primary_key=True)
    push_token = Column(String(512), nullable=True)


class SentNotificationRow(Base):
    __tablename__ = "sent_notifications"
    __table_args__ = (UniqueConstraint("user_id", "event_id", name="uq_sent_notifications_user_event"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(128), nullable=False)
    event_id = Column(String(36), ForeignKey("known_events.id", ondelete="CASCADE"), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class NotificationFailureRow(Base):
    __tablename__ = "notification_failures"
    __table_args__ = (UniqueConstraint("user_id", "event_id", name="uq_notification_failures_user_event"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=False)
    event_id = Column(String(36), ForeignKey("known_events.id", ondelete="CASCADE"), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
