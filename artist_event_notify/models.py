"""Data models and types for the artist event notifier."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, Union


@dataclass
class TrackedArtist:
    """An upstream performer somebody follows."""
    artist_id: str
    artist_name: str


@dataclass
class KnownEvent:
    """An upcoming performance discovered in the catalog."""
    upstream_event_id: str
    artist_id: str
    artist_name: str
    event_name: str
    venue_name: str = "TBA"
    city: str = "TBA"
    event_datetime: Optional[datetime] = None
    ticket_url: str = ""
    image_url: str = ""
    notified: bool = False
    id: Optional[str] = None  # assigned by the store


@dataclass
class Subscription:
    """A user following an artist."""
    user_id: str
    artist_id: str
    artist_name: str = ""


@dataclass
class NotificationRecord:
    """A (user, event) pair that has already been notified."""
    user_id: str
    event_id: str
    sent_at: Optional[datetime] = None


@dataclass
class PushRecipient:
    """A user with a registered push token."""
    user_id: str
    push_token: str


@dataclass
class PushMessage:
    """Represents a push notification to be sent."""
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SendResult:
    """Outcome of a single push delivery attempt."""
    success: bool
    error: Optional[str] = None
    invalid_token: bool = False
    ticket_id: Optional[str] = None


@dataclass
class ArtistFound:
    """Artist lookup that resolved to a catalog attraction."""
    artist: TrackedArtist


@dataclass
class ArtistNotFound:
    """Artist lookup that did not resolve."""
    query: str
    reason: str = "no matching attraction"


ArtistLookup = Union[ArtistFound, ArtistNotFound]


@dataclass
class SyncStats:
    """Counters collected during one sync pass."""
    events_processed: int = 0
    new_events_added: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    artists_checked: int = 0
    artists_failed: int = 0
    events_marked_notified: int = 0

    def as_response(self) -> Dict[str, Any]:
        """Payload returned by the trigger entrypoint."""
        return {
            "success": True,
            "eventsProcessed": self.events_processed,
            "newEventsAdded": self.new_events_added,
            "notificationsSent": self.notifications_sent,
            "notificationsFailed": self.notifications_failed,
            "artistsChecked": self.artists_checked,
            "artistsFailed": self.artists_failed,
            "eventsMarkedNotified": self.events_marked_notified,
        }


@dataclass
class CatalogConfig:
    """Configuration for the upstream event catalog."""
    api_key: str = ""
    base_url: str = "https://app.ticketmaster.com/discovery/v2"
    page_size: int = 50
    timeout: float = 20.0  # seconds
    min_interval: float = 0.2  # seconds between requests
    max_retries: int = 3
    retry_delay: float = 1.0  # seconds, doubled on each retry


@dataclass
class PushConfig:
    """Configuration for push delivery."""
    url: str = "https://exp.host/--/api/v2/push/send"
    access_token: Optional[str] = None
    timeout: float = 20.0  # seconds
    sound: Optional[str] = "default"


@dataclass
class DatabaseConfig:
    """Configuration for the durable store."""
    url: str = "sqlite+aiosqlite:///./event_notify.db"
    echo: bool = False


@dataclass
class SyncConfig:
    """Configuration for the sync pass itself."""
    max_send_attempts: int = 5  # 0 means retry forever
    max_concurrent_artists: int = 1
    interval_minutes: float = 60.0


@dataclass
class AppConfig:
    """Main application configuration."""
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    push: PushConfig = field(default_factory=PushConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    log_level: str = "INFO"
