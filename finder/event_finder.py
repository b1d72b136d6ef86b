"""Event lookup operations over the region cache."""
import json
import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from cache.region_cache import Aggregator
from catalog.models import DetailRecord, EventRecord, Verdict
from finder.classifiers import classify_age_restricted, classify_family_friendly
from finder.match_ranker import best_match
from finder.query_interpreter import (
    ARTIST_LEADING_PHRASES,
    WHEN_LEADING_PHRASES,
    UninterpretableQueryError,
    interpret_query,
)

logger = logging.getLogger(__name__)

DetailFetcher = Callable[[str], Optional[DetailRecord]]
RawFetcher = Callable[[str], str]

MAX_UPCOMING_EVENTS = 3


def events_to_json(events: Sequence[EventRecord]) -> str:
    return json.dumps([event.to_dict() for event in events])


class EventFinder:
    """Lookup, natural-language and classification operations on cached events."""

    START_DATE_FORMATS = [
        '%Y-%m-%d %H:%M:%S',
        '%Y-%m-%d %H:%M',
        '%Y-%m-%dT%H:%M:%S',
        '%Y-%m-%d',
    ]

    def __init__(
        self,
        aggregator: Aggregator,
        detail_fetcher: Optional[DetailFetcher] = None,
        raw_fetcher: Optional[RawFetcher] = None
    ):
        """
        Initialize the finder.

        Args:
            aggregator: Read facade over the region cache
            detail_fetcher: Callable returning the DetailRecord of an event id
            raw_fetcher: Callable returning the body of a catalog URL
        """
        self.aggregator = aggregator
        self.detail_fetcher = detail_fetcher
        self.raw_fetcher = raw_fetcher

    def events(self, region: Optional[int] = None) -> List[EventRecord]:
        return self.aggregator.events(region)

    def event_by_id(self, event_id: str, region: Optional[int] = None) -> Optional[EventRecord]:
        wanted = (event_id or '').lower()
        for event in self.events(region):
            if event.id is not None and event.id.lower() == wanted:
                logger.info(f"Found event: {event}")
                return event

        logger.info(f"No event found with ID {event_id}")
        return None

    def events_by_venue(self, venue: str, region: Optional[int] = None) -> List[EventRecord]:
        """Events whose venue name equals the given name, ignoring case."""
        wanted = (venue or '').lower()
        found = [
            event for event in self.events(region)
            if event.venue_name and event.venue_name.strip() and event.venue_name.lower() == wanted
        ]

        if found:
            logger.info(f"Found {len(found)} events for venue: {venue}")
        else:
            logger.info(f"No events found for venue: {venue}")
        return found

    def events_by_artist(self, artist: str, region: Optional[int] = None) -> List[EventRecord]:
        """Events whose artist name or event name contains the given text."""
        wanted = (artist or '').lower()
        found = [
            event for event in self.events(region)
            if (event.artist_name and event.artist_name.strip() and wanted in event.artist_name.lower())
            or (event.name and event.name.strip() and wanted in event.name.lower())
        ]

        if found:
            logger.info(f"Found {len(found)} events for artist: {artist}")
        else:
            logger.info(f"No events found for artist: {artist} (tried artist name and event name)")
        return found

    def search_by_name(self, fragment: str, region: Optional[int] = None) -> List[EventRecord]:
        """Events whose name contains the given fragment, ignoring case."""
        wanted = (fragment or '').lower()
        found = [
            event for event in self.events(region)
            if event.name and event.name.strip() and wanted in event.name.lower()
        ]

        if found:
            logger.info(f"Found {len(found)} events matching: {fragment}")
        else:
            logger.info(f"No events found matching: {fragment}")
        return found

    def event_count(self) -> int:
        return len(self.events())

    def events_json(self, region: Optional[int] = None) -> str:
        return events_to_json(self.events(region))

    def raw_json(self, request_url: Optional[str]) -> str:
        """
        Return the body of a caller-supplied catalog URL.

        Falls back to the cached events when no URL is given.
        """
        if not request_url or not request_url.strip():
            return self.events_json()
        if self.raw_fetcher is None:
            logger.warning("No raw fetcher configured; returning empty result")
            return "[]"
        return self.raw_fetcher(request_url)

    def events_for_artist_query(self, query: str) -> str:
        """
        Answer "show events for artist X [in Y]" with a JSON list.

        Args:
            query: Natural-language query or bare artist name

        Returns:
            JSON array of matching events, or a short explanation
        """
        if not query or not query.strip():
            return "No artist provided"

        try:
            interpretation = interpret_query(query, ARTIST_LEADING_PHRASES)
        except UninterpretableQueryError:
            return "No artist extracted from query"

        found = self.events_by_artist(interpretation.subject, interpretation.region)
        if not found:
            return f"No events found for artist: {interpretation.subject}"
        return events_to_json(found)

    def when_is_event(self, query: str) -> str:
        """
        Answer "when is the event for X [in Y]" with the next few dates.

        Args:
            query: Natural-language query or bare artist name

        Returns:
            Human-readable summary of up to three upcoming events
        """
        if not query or not query.strip():
            return "No artist provided"

        try:
            interpretation = interpret_query(
                query, WHEN_LEADING_PHRASES, strip_artist_token=False
            )
        except UninterpretableQueryError:
            return "No artist extracted from query"

        artist = interpretation.subject
        found = self.events_by_artist(artist, interpretation.region)
        if not found:
            return (
                f"It seems that there are currently no upcoming events for {artist} "
                f"in the selected regions."
            )

        dated = [(event, self._parse_start_date(event.start_date)) for event in found]
        dated.sort(key=lambda pair: (pair[1] is None, pair[1] or datetime.min, pair[0].name or ''))

        lines = [f"Upcoming events for {artist}:"]
        for event, start in dated[:MAX_UPCOMING_EVENTS]:
            when = self._format_start(start) if start else (event.start_date or "(date unknown)")
            line = f"- {event.name or artist} at {event.venue_name or '(venue unknown)'} on {when}"
            if event.url:
                line += f" (Info: {event.url})"
            lines.append(line)

        if len(dated) > MAX_UPCOMING_EVENTS:
            lines.append(f"And {len(dated) - MAX_UPCOMING_EVENTS} more event(s) available.")

        return "\n".join(lines)

    def is_family_friendly(self, query: str) -> str:
        return self._classify(query, classify_family_friendly)

    def is_age_restricted(self, query: str) -> str:
        return self._classify(query, classify_age_restricted)

    def _classify(
        self,
        query: str,
        classifier: Callable[[EventRecord, Optional[DetailRecord]], Verdict]
    ) -> str:
        if not query or not query.strip():
            return "No event name provided"

        candidates = self.search_by_name(query)
        if not candidates:
            return f"No events found matching '{query}'"

        event = best_match(candidates, query)
        detail = self._fetch_detail(event)
        verdict = classifier(event, detail)

        logger.info(
            f"Classified '{event.name}' as {verdict.answer.value}",
            extra={'event_id': event.id, 'answer': verdict.answer.value}
        )
        return verdict.message

    def _fetch_detail(self, event: EventRecord) -> Optional[DetailRecord]:
        """Fetch the detail record once; any failure degrades to None."""
        if self.detail_fetcher is None or not event.id or not event.id.strip():
            return None

        try:
            return self.detail_fetcher(event.id)
        except Exception as e:
            logger.warning(f"Error fetching event detail for {event.id}: {e}")
            return None

    def _parse_start_date(self, start_date: Optional[str]) -> Optional[datetime]:
        if not start_date or not start_date.strip():
            return None

        for fmt in self.START_DATE_FORMATS:
            try:
                return datetime.strptime(start_date.strip(), fmt)
            except ValueError:
                continue
        return None

    def _format_start(self, start: datetime) -> str:
        """Format like "Saturday, Mar 7 2026 8:00 PM"."""
        hour = start.hour % 12 or 12
        return f"{start:%A, %b} {start.day} {start.year} {hour}:{start:%M %p}"
