"""Test helpers."""
from artist_event_notify.models import KnownEvent
from artist_event_notify.schemas import CatalogEvent


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def catalog_event(event_id, name="Live at the Arena", artist_id="A1", artist_name="Artist X",
                  segment="Music", **extra):
    """Build a catalog event payload the way the Discovery API returns it."""
    payload = {
        "id": event_id,
        "name": name,
        "url": f"https://tickets.example.com/event/{event_id}",
        "dates": {"start": {"dateTime": "2030-06-01T19:30:00Z", "localDate": "2030-06-01"}},
        "images": [
            {"url": "https://img.example.com/small.jpg", "ratio": "3_2", "width": 305},
            {"url": "https://img.example.com/large.jpg", "ratio": "16_9", "width": 2048},
        ],
        "classifications": [{"segment": {"name": segment}, "genre": {"name": "Rock"}}],
        "_embedded": {
            "venues": [{"name": "The Arena", "city": {"name": "Dublin"}, "country": {"name": "Ireland"}}],
            "attractions": [{"id": artist_id, "name": artist_name}],
        },
    }
    payload.update(extra)
    return payload


def parsed_event(event_id, **kwargs) -> CatalogEvent:
    return CatalogEvent.model_validate(catalog_event(event_id, **kwargs))


def known_event(upstream_id="EVT1", artist_id="A1", **kwargs) -> KnownEvent:
    fields = dict(
        upstream_event_id=upstream_id,
        artist_id=artist_id,
        artist_name="Artist X",
        event_name="Live at the Arena",
        venue_name="The Arena",
        city="Dublin",
    )
    fields.update(kwargs)
    return KnownEvent(**fields)

