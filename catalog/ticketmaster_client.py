"""Ticketmaster Discovery API client for regional event listings."""
import logging
import time
from typing import List, Optional

import requests
from bs4 import BeautifulSoup

from catalog.models import (
    AgeRestrictions,
    Classification,
    DetailRecord,
    EventRecord,
    VenueInfo,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://app.ticketmaster.com/discovery/v2"


class CatalogUnavailableError(Exception):
    """Raised when the catalog cannot be reached or answers with an error."""


class TicketmasterClient:
    """Client for the Ticketmaster Discovery API."""

    MAX_RETRIES = 3
    RETRY_BASE_DELAY = 1  # seconds

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        classification_name: str = 'music',
        timeout: int = 30
    ):
        """
        Initialize the catalog client.

        Args:
            api_key: Discovery API key, appended to every request when set
            base_url: Discovery API root (default: public v2 endpoint)
            classification_name: Classification used for region listings
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.api_key = api_key or None
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip('/')
        self.classification_name = classification_name
        self.timeout = timeout

    def fetch_events(self, region: int) -> List[EventRecord]:
        """
        Fetch the event listing for one region.

        Args:
            region: DMA id of the region

        Returns:
            List of EventRecord objects

        Raises:
            CatalogUnavailableError: If all retry attempts fail
        """
        logger.info(f"Fetching events for region {region}")

        params = {
            'classificationName': self.classification_name,
            'dmaId': int(region)
        }
        if self.api_key:
            params['apikey'] = self.api_key

        payload = self._get_json(f"{self.base_url}/events.json", params)

        embedded = payload.get('_embedded') if isinstance(payload, dict) else None
        items = embedded.get('events') if isinstance(embedded, dict) else None
        if not isinstance(items, list):
            logger.warning(f"Catalog response for region {region} did not contain embedded events")
            return []

        events = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                events.append(self._parse_event(item))
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Failed to parse event element: {e}")
                continue

        logger.info(f"Successfully fetched {len(events)} events for region {region}")
        return events

    def fetch_event_detail(self, event_id: str) -> Optional[DetailRecord]:
        """
        Fetch the full record of one event.

        Args:
            event_id: Catalog event id

        Returns:
            DetailRecord, or None when the id is blank or the lookup fails
        """
        if not event_id or not event_id.strip():
            return None

        params = {'apikey': self.api_key} if self.api_key else None

        try:
            payload = self._get_json(f"{self.base_url}/events/{event_id}.json", params)
        except CatalogUnavailableError as e:
            logger.warning(f"Error fetching event detail for {event_id}: {e}")
            return None

        if not isinstance(payload, dict):
            return None
        return self._parse_detail(payload)

    def fetch_raw(self, request_url: str) -> str:
        """
        Fetch a caller-supplied catalog URL and return the body unchanged.

        Args:
            request_url: Full request URL, including key and query params

        Returns:
            Response body, or "[]" when the request fails
        """
        try:
            response = requests.get(request_url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Error fetching custom catalog URL: {e}")
            return "[]"

        if not response.ok:
            logger.error(
                f"Catalog returned {response.status_code} {response.reason} "
                f"for custom URL: {request_url}"
            )
            return "[]"

        return response.text

    def _get_json(self, url: str, params: Optional[dict]):
        """
        GET a catalog endpoint with retry logic and decode the JSON body.

        Raises:
            CatalogUnavailableError: If all retry attempts fail
        """
        for attempt in range(self.MAX_RETRIES):
            try:
                logger.debug(f"Requesting {url} (attempt {attempt + 1}/{self.MAX_RETRIES})")
                response = requests.get(url, params=params, timeout=self.timeout)
                response.raise_for_status()
                return response.json()

            except (requests.RequestException, ValueError) as e:
                if attempt < self.MAX_RETRIES - 1:
                    # Calculate exponential backoff delay
                    delay = self.RETRY_BASE_DELAY * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.MAX_RETRIES}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.MAX_RETRIES} retry attempts failed. Last error: {e}"
                    )
                    raise CatalogUnavailableError(str(e)) from e

    def _parse_event(self, item: dict) -> EventRecord:
        """
        Map one listing entry onto an EventRecord.

        Args:
            item: Event object from `_embedded.events`

        Returns:
            EventRecord object
        """
        start = _obj(_obj(item.get('dates')).get('start'))
        start_date = _str(start.get('localDate'))
        if start_date:
            local_time = _str(start.get('localTime'))
            if local_time:
                start_date = f"{start_date} {local_time}"

        embedded = _obj(item.get('_embedded'))
        venue = _first(embedded.get('venues'))
        attraction = _first(embedded.get('attractions'))
        age_restrictions = _obj(item.get('ageRestrictions'))
        legal_age_enforced = age_restrictions.get('legalAgeEnforced')

        return EventRecord(
            id=_str(item.get('id')),
            name=_str(item.get('name')),
            venue_name=_str(venue.get('name')),
            artist_name=_str(attraction.get('name')),
            url=_str(item.get('url')),
            start_date=start_date,
            please_note=_str(item.get('pleaseNote')),
            legal_age_enforced=legal_age_enforced if isinstance(legal_age_enforced, bool) else None,
            age_rule_description=_str(age_restrictions.get('ageRuleDescription'))
        )

    def _parse_detail(self, payload: dict) -> DetailRecord:
        """
        Map a single-event response onto a DetailRecord.

        Args:
            payload: Decoded body of `/events/{id}.json`

        Returns:
            DetailRecord object
        """
        classifications = []
        for entry in payload.get('classifications') or []:
            if not isinstance(entry, dict):
                continue
            family = entry.get('family')
            classifications.append(Classification(
                primary=entry.get('primary') if isinstance(entry.get('primary'), bool) else None,
                segment=_str(_obj(entry.get('segment')).get('name')),
                genre=_str(_obj(entry.get('genre')).get('name')),
                family=family if isinstance(family, bool) else None
            ))

        age_restrictions = None
        raw_age = payload.get('ageRestrictions')
        if isinstance(raw_age, dict):
            enforced = raw_age.get('legalAgeEnforced')
            age_restrictions = AgeRestrictions(
                legal_age_enforced=enforced if isinstance(enforced, bool) else None,
                age_rule_description=_clean_text(raw_age.get('ageRuleDescription'))
            )

        venues = []
        for venue in _obj(payload.get('_embedded')).get('venues') or []:
            if not isinstance(venue, dict):
                continue
            general_info = _obj(venue.get('generalInfo'))
            venues.append(VenueInfo(
                name=_str(venue.get('name')),
                general_rule=_clean_text(general_info.get('generalRule')),
                child_rule=_clean_text(general_info.get('childRule'))
            ))

        return DetailRecord(
            id=_str(payload.get('id')),
            name=_str(payload.get('name')),
            url=_str(payload.get('url')),
            info=_clean_text(payload.get('info')),
            please_note=_clean_text(payload.get('pleaseNote')),
            classifications=classifications,
            age_restrictions=age_restrictions,
            venues=venues
        )


def _obj(value) -> dict:
    return value if isinstance(value, dict) else {}


def _first(value) -> dict:
    if isinstance(value, list) and value:
        return _obj(value[0])
    return {}


def _str(value) -> Optional[str]:
    return value if isinstance(value, str) else None


def _clean_text(value) -> Optional[str]:
    """Strip markup the catalog sometimes embeds in free-text fields."""
    if not isinstance(value, str):
        return None
    if '<' not in value:
        return value
    return BeautifulSoup(value, 'html.parser').get_text(' ', strip=True)
