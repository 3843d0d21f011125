"""
Sync pass: discover new events for followed artists and notify followers.
"""
import asyncio
import logging
from typing import Optional

from .catalog import CatalogClient, to_known_event
from .errors import CatalogError
from .models import KnownEvent, PushRecipient, SyncConfig, SyncStats
from .push import PushService, build_event_message
from .store import EventStore, NotificationLedger, SubscriptionIndex

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Runs one discover + notify pass. Holds no state between runs."""

    def __init__(
        self,
        catalog: CatalogClient,
        events: EventStore,
        subscriptions: SubscriptionIndex,
        ledger: NotificationLedger,
        push: PushService,
        config: Optional[SyncConfig] = None,
    ):
        self.catalog = catalog
        self.events = events
        self.subscriptions = subscriptions
        self.ledger = ledger
        self.push = push
        self.config = config or SyncConfig()

    async def run(self) -> SyncStats:
        """Run the discover phase followed by the notify phase."""
        stats = SyncStats()
        logger.info("🚀 Starting event sync")
        await self.discover(stats)
        await self.notify(stats)
        logger.info(
            f"✅ Sync complete: {stats.events_processed} events processed, "
            f"{stats.new_events_added} new, {stats.notifications_sent} notifications sent"
        )
        return stats

    async def discover(self, stats: SyncStats) -> None:
        artist_ids = sorted(await self.subscriptions.list_distinct_artist_ids())
        logger.info(f"👀 Checking {len(artist_ids)} followed artist(s) for new events")

        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrent_artists))

        async def guarded(artist_id: str) -> None:
            async with semaphore:
                await self.discover_artist(artist_id, stats)

        await asyncio.gather(*(guarded(a) for a in artist_ids))

    async def discover_artist(self, artist_id: str, stats: SyncStats) -> None:
        """Fetch and store events for one artist. Failures stay local."""
        stats.artists_checked += 1
        try:
            events = await self.catalog.fetch_events_for_artist(artist_id)
            logger.debug(f"Found {len(events)} event(s) for artist {artist_id}")
            for event in events:
                stats.events_processed += 1
                if await self.events.upsert_if_absent(to_known_event(event, artist_id)):
                    stats.new_events_added += 1
                    logger.info(f"🎟️ New event for {artist_id}: {event.name}")
        except CatalogError as e:
            stats.artists_failed += 1
            logger.warning(f"⚠️ Skipping artist {artist_id} this run: {e}")
        except Exception as e:
            stats.artists_failed += 1
            logger.error(f"Error syncing artist {artist_id}: {e}", exc_info=True)

    async def notify(self, stats: SyncStats) -> None:
        pending = await self.events.list_unnotified()
        logger.info(f"🔔 {len(pending)} event(s) awaiting notification")
        for event in pending:
            try:
                await self.notify_event(event, stats)
            except Exception as e:
                logger.error(f"Error notifying followers of event {event.id}: {e}", exc_info=True)

    async def notify_event(self, event: KnownEvent, stats: SyncStats) -> None:
        """Fan one event out to its eligible followers.

        The event is marked notified when at least one delivery succeeded, or
        when nobody is left to try (no reachable followers, or every one of
        them was already notified or ran out of attempts). Otherwise it stays
        pending so failed deliveries are retried on the next run.
        """
        if event.id is None:
            raise ValueError(f"Event {event.upstream_event_id} has not been stored yet")
        followers = await self.subscriptions.list_followers(event.artist_id)
        recipients = await self.subscriptions.get_push_recipients(f.user_id for f in followers)
        logger.debug(
            f"Event {event.event_name}: {len(followers)} follower(s), {len(recipients)} with push token"
        )

        message = build_event_message(event)
        delivered = 0
        attempted = 0

        for recipient in recipients:
            if not await self._should_send(recipient, event.id):
                continue
            attempted += 1
            result = await self.push.send_message(recipient.push_token, message)
            if result.success:
                await self.ledger.record_notified(recipient.user_id, event.id)
                delivered += 1
                stats.notifications_sent += 1
                logger.info(f"📲 Notified user {recipient.user_id} about {event.event_name}")
            else:
                stats.notifications_failed += 1
                attempts = await self.ledger.record_failure(recipient.user_id, event.id, result.error)
                logger.warning(
                    f"Push to user {recipient.user_id} for event {event.id} failed "
                    f"(attempt {attempts}): {result.error}"
                )

        if delivered > 0 or attempted == 0:
            await self.events.mark_notified(event.id)
            stats.events_marked_notified += 1
        else:
            logger.info(f"⏳ Event {event.event_name} left pending; all {attempted} delivery attempt(s) failed")

    async def _should_send(self, recipient: PushRecipient, event_id: str) -> bool:
        if await self.ledger.was_notified(recipient.user_id, event_id):
            return False
        limit = self.config.max_send_attempts
        if limit > 0 and await self.ledger.failed_attempts(recipient.user_id, event_id) >= limit:
            logger.debug(f"Giving up on user {recipient.user_id} for event {event_id} after {limit} attempts")
            return False
        return True
