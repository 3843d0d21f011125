"""
Client for the upstream event catalog (Ticketmaster Discovery API).
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from pydantic import ValidationError

from .errors import CatalogError, CatalogRateLimitError
from .models import ArtistFound, ArtistLookup, ArtistNotFound, CatalogConfig, KnownEvent, TrackedArtist
from .schemas import AttractionPage, CatalogEvent, CatalogPage

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class RateLimiter:
    """Keeps consecutive requests at least ``min_interval`` seconds apart."""

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_request: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        """Block until the next request may be issued."""
        async with self._lock:
            if self._last_request is not None:
                remaining = self._last_request + self.min_interval - self._clock()
                if remaining > 0:
                    await self._sleep(remaining)
            self._last_request = self._clock()


def is_performance_event(event: CatalogEvent) -> bool:
    """Return True if the event is a performance worth notifying about."""
    return event.is_performance()


def to_known_event(event: CatalogEvent, artist_id: str) -> KnownEvent:
    """Map a catalog event to a not-yet-notified KnownEvent."""
    venue = event.primary_venue
    return KnownEvent(
        upstream_event_id=event.id,
        artist_id=artist_id,
        artist_name=event.artist_name_for(artist_id),
        event_name=event.name or "Untitled event",
        venue_name=(venue.name if venue and venue.name else "TBA"),
        city=(venue.city.name if venue and venue.city and venue.city.name else "TBA"),
        event_datetime=event.start_datetime(),
        ticket_url=event.url or "",
        image_url=event.best_image_url() or "",
        notified=False,
    )


class CatalogClient:
    """Fetches events per artist with request spacing and retry on failure."""

    def __init__(
        self,
        config: CatalogConfig,
        client: Optional[httpx.AsyncClient] = None,
        limiter: Optional[RateLimiter] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """Initialize with catalog configuration.

        Args:
            config: Catalog settings (API key, base URL, retry policy)
            client: Optional pre-built HTTP client; owned by the caller if given
            limiter: Optional shared rate limiter
            sleep: Coroutine used for backoff delays
        """
        self.config = config
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep
        self.limiter = limiter or RateLimiter(config.min_interval, sleep=sleep)

    async def __aenter__(self):
        """Async context manager entry."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Catalog client not initialized. Use 'async with'.")
        return self._client

    async def fetch_events_for_artist(self, artist_id: str) -> List[CatalogEvent]:
        """Fetch upcoming performances for one artist.

        Sports fixtures and parking passes are dropped before returning.

        Raises:
            ValueError: if ``artist_id`` is blank
            CatalogError: if the catalog could not be queried
        """
        if not artist_id or not artist_id.strip():
            raise ValueError("artist_id must be a non-empty string")

        payload = await self._get_json(
            "events.json",
            {"attractionId": artist_id, "size": str(self.config.page_size)},
            artist_id=artist_id,
        )
        try:
            page = CatalogPage.model_validate(payload)
        except ValidationError as e:
            raise CatalogError(artist_id, f"Malformed catalog response: {e}", retryable=False) from e

        events = [e for e in page.events if is_performance_event(e)]
        dropped = len(page.events) - len(events)
        if dropped:
            logger.debug(f"Dropped {dropped} non-performance event(s) for artist {artist_id}")
        return events

    async def lookup_artist(self, name: str) -> ArtistLookup:
        """Resolve an artist name to a catalog attraction."""
        query = (name or "").strip()
        if not query:
            return ArtistNotFound(query=name or "", reason="empty query")

        try:
            payload = await self._get_json(
                "attractions.json",
                {"keyword": query, "size": "1", "sort": "relevance,desc"},
            )
            page = AttractionPage.model_validate(payload)
        except CatalogError as e:
            logger.warning(f"Artist lookup failed for '{query}': {e}")
            return ArtistNotFound(query=query, reason=str(e))
        except ValidationError as e:
            logger.warning(f"Malformed attraction response for '{query}': {e}")
            return ArtistNotFound(query=query, reason="malformed response")

        if not page.attractions:
            return ArtistNotFound(query=query)
        attraction = page.attractions[0]
        return ArtistFound(TrackedArtist(artist_id=attraction.id, artist_name=attraction.name))

    async def _get_json(
        self,
        path: str,
        params: Dict[str, str],
        artist_id: Optional[str] = None,
    ) -> Any:
        """GET a catalog resource, retrying 429, 5xx and transport errors."""
        url = f"{self.config.base_url.rstrip('/')}/{path}"
        query = dict(params, apikey=self.config.api_key)
        max_retries = max(0, self.config.max_retries)
        last_error = CatalogError(artist_id, f"No response from catalog for {path}")

        for attempt in range(max_retries + 1):
            await self.limiter.wait()
            try:
                response = await self.client.get(url, params=query, timeout=self.config.timeout)
            except httpx.TransportError as e:
                last_error = CatalogError(artist_id, f"Catalog request failed: {type(e).__name__}: {e}")
            else:
                if response.status_code == 429:
                    last_error = CatalogRateLimitError(artist_id, "Catalog rate limit exceeded")
                elif response.status_code >= 500:
                    last_error = CatalogError(artist_id, f"Catalog server error: HTTP {response.status_code}")
                elif response.status_code >= 400:
                    raise CatalogError(
                        artist_id,
                        f"Catalog rejected request: HTTP {response.status_code}",
                        retryable=False,
                    )
                else:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise CatalogError(artist_id, "Catalog returned invalid JSON", retryable=False) from e

            if attempt >= max_retries:
                logger.warning(f"Giving up on {path} after {max_retries + 1} attempts: {last_error}")
                raise last_error

            delay = self.config.retry_delay * (2 ** attempt)
            logger.debug(
                f"Attempt {attempt + 1}/{max_retries + 1} for {path} failed ({last_error}). "
                f"Retrying in {delay:.2f}s..."
            )
            await self._sleep(delay)

        raise last_error
