"""
Wire models for the event catalog and the push provider.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

NON_PERFORMANCE_SEGMENTS = {"sports"}
NON_PERFORMANCE_KEYWORDS = ("parking",)


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Named(_WireModel):
    name: Optional[str] = None


class Classification(_WireModel):
    segment: Optional[Named] = None
    genre: Optional[Named] = None


class Image(_WireModel):
    url: Optional[str] = None
    ratio: Optional[str] = None
    width: Optional[int] = None


class Venue(_WireModel):
    name: Optional[str] = None
    city: Optional[Named] = None
    country: Optional[Named] = None


class Attraction(_WireModel):
    id: Optional[str] = None
    name: Optional[str] = None


class PriceRange(_WireModel):
    min: Optional[float] = None
    max: Optional[float] = None
    currency: Optional[str] = None


class EventStart(_WireModel):
    date_time: Optional[str] = Field(None, alias="dateTime")
    local_date: Optional[str] = Field(None, alias="localDate")
    local_time: Optional[str] = Field(None, alias="localTime")


class EventStatus(_WireModel):
    code: Optional[str] = None


class EventDates(_WireModel):
    start: EventStart = Field(default_factory=EventStart)
    status: Optional[EventStatus] = None


class EventEmbedded(_WireModel):
    venues: List[Venue] = Field(default_factory=list)
    attractions: List[Attraction] = Field(default_factory=list)


class CatalogEvent(_WireModel):
    """A single event entry as returned by the catalog."""
    id: str
    name: Optional[str] = None
    url: Optional[str] = None
    dates: EventDates = Field(default_factory=EventDates)
    images: List[Image] = Field(default_factory=list)
    classifications: List[Classification] = Field(default_factory=list)
    price_ranges: List[PriceRange] = Field(default_factory=list, alias="priceRanges")
    embedded: EventEmbedded = Field(default_factory=EventEmbedded, alias="_embedded")

    @property
    def segment_names(self) -> List[str]:
        return [
            c.segment.name
            for c in self.classifications
            if c.segment is not None and c.segment.name
        ]

    @property
    def primary_venue(self) -> Optional[Venue]:
        return self.embedded.venues[0] if self.embedded.venues else None

    def is_performance(self) -> bool:
        """False for sports fixtures, parking passes and similar listings."""
        if any(s.lower() in NON_PERFORMANCE_SEGMENTS for s in self.segment_names):
            return False
        lowered = (self.name or "").lower()
        return not any(word in lowered for word in NON_PERFORMANCE_KEYWORDS)

    def artist_name_for(self, artist_id: str) -> str:
        attractions = self.embedded.attractions
        for attraction in attractions:
            if attraction.id == artist_id and attraction.name:
                return attraction.name
        if attractions and attractions[0].name:
            return attractions[0].name
        return "Unknown Artist"

    def best_image_url(self) -> Optional[str]:
        images = [img for img in self.images if img.url]
        if not images:
            return None
        return max(images, key=lambda img: img.width or 0).url

    def start_datetime(self) -> Optional[datetime]:
        start = self.dates.start
        candidates = []
        if start.date_time:
            candidates.append(start.date_time.replace("Z", "+00:00"))
        if start.local_date:
            candidates.append(f"{start.local_date}T{start.local_time or '00:00:00'}")
        for value in candidates:
            try:
                return datetime.fromisoformat(value)
            except ValueError:
                continue
        return None

    def lowest_price(self) -> Optional[float]:
        mins = [p.min for p in self.price_ranges if p.min is not None]
        return min(mins) if mins else None


class PageInfo(_WireModel):
    size: int = 0
    total_elements: int = Field(0, alias="totalElements")
    total_pages: int = Field(0, alias="totalPages")
    number: int = 0


class _EventsEmbedded(_WireModel):
    events: List[CatalogEvent] = Field(default_factory=list)

    @field_validator("events", mode="before")
    @classmethod
    def _drop_invalid_events(cls, value: Any) -> Any:
        """Skip unparseable entries so one bad event does not void the page."""
        if not isinstance(value, list):
            return value
        events = []
        for item in value:
            try:
                events.append(CatalogEvent.model_validate(item))
            except ValidationError as e:
                event_id = item.get("id") if isinstance(item, dict) else None
                logger.warning(f"Skipping malformed catalog event {event_id!r}: {e.error_count()} error(s)")
        return events


class CatalogPage(_WireModel):
    """Envelope of ``events.json``."""
    embedded: _EventsEmbedded = Field(default_factory=_EventsEmbedded, alias="_embedded")
    page: Optional[PageInfo] = None

    @property
    def events(self) -> List[CatalogEvent]:
        return self.embedded.events


class CatalogAttraction(_WireModel):
    id: str
    name: str
    images: List[Image] = Field(default_factory=list)


class _AttractionsEmbedded(_WireModel):
    attractions: List[CatalogAttraction] = Field(default_factory=list)


class AttractionPage(_WireModel):
    """Envelope of ``attractions.json``."""
    embedded: _AttractionsEmbedded = Field(default_factory=_AttractionsEmbedded, alias="_embedded")

    @property
    def attractions(self) -> List[CatalogAttraction]:
        return self.embedded.attractions


class ExpoPushTicket(_WireModel):
    status: str = "error"
    id: Optional[str] = None
    message: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def error_code(self) -> Optional[str]:
        return self.details.get("error")


class ExpoPushResponse(_WireModel):
    """Reply from the Expo push endpoint for a single message."""
    data: Optional[Union[ExpoPushTicket, List[ExpoPushTicket]]] = None
    errors: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def ticket(self) -> Optional[ExpoPushTicket]:
        if isinstance(self.data, list):
            return self.data[0] if self.data else None
        return self.data
