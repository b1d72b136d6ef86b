"""AWS Lambda handler exposing Ticketmaster regional event lookups."""
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

from cache.region_cache import Aggregator, RegionCacheStore
from catalog.ticketmaster_client import TicketmasterClient
from finder.event_finder import EventFinder, events_to_json
from settings import Settings

# Extra record attributes copied into the JSON log line
STRUCTURED_FIELDS = (
    'operation', 'region', 'event_id', 'answer', 'error_type', 'duration_seconds'
)


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key in STRUCTURED_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


class MissingParameterError(ValueError):
    """Raised when an operation is invoked without a required parameter."""


# The cache lives as long as the execution environment
_finder: Optional[EventFinder] = None
_finder_settings: Optional[Settings] = None


def build_finder(settings: Settings) -> EventFinder:
    """Wire the catalog client, region cache and finder together."""
    client = TicketmasterClient(
        api_key=settings.api_key,
        base_url=settings.base_url,
        classification_name=settings.classification_name,
        timeout=settings.timeout_seconds
    )
    store = RegionCacheStore(
        fetcher=client.fetch_events,
        ttl_seconds=settings.cache_ttl_minutes * 60
    )
    return EventFinder(
        Aggregator(store),
        detail_fetcher=client.fetch_event_detail,
        raw_fetcher=client.fetch_raw
    )


def get_finder(settings: Settings) -> EventFinder:
    global _finder, _finder_settings
    if _finder is None or _finder_settings != settings:
        if _finder is not None:
            _finder.aggregator.store.stop_background_refresh(timeout=1)
        _finder = build_finder(settings)
        _finder_settings = settings
    return _finder


def _param(event: Dict[str, Any], name: str) -> str:
    value = event.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingParameterError(f"Missing required parameter: {name}")
    return str(value)


def _region(event: Dict[str, Any]) -> Optional[int]:
    region = event.get('region')
    if region is None or region == '':
        return None
    try:
        return int(region)
    except (TypeError, ValueError):
        raise MissingParameterError(f"Invalid region: {region!r}")


def _list_or_message(events, message: str) -> str:
    return events_to_json(events) if events else message


def _get_event_by_id(finder: EventFinder, event: Dict[str, Any]) -> str:
    found = finder.event_by_id(_param(event, 'id'), _region(event))
    return json.dumps(found.to_dict()) if found else "Event not found"


def _get_events_by_venue(finder: EventFinder, event: Dict[str, Any]) -> str:
    venue = _param(event, 'venue')
    return _list_or_message(
        finder.events_by_venue(venue, _region(event)),
        f"No events found for venue: {venue}"
    )


def _get_events_by_artist(finder: EventFinder, event: Dict[str, Any]) -> str:
    artist = _param(event, 'artist')
    return _list_or_message(
        finder.events_by_artist(artist, _region(event)),
        f"No events found for artist: {artist}"
    )


def _search_events_by_name(finder: EventFinder, event: Dict[str, Any]) -> str:
    fragment = _param(event, 'name_fragment')
    return _list_or_message(
        finder.search_by_name(fragment, _region(event)),
        f"No events found matching: {fragment}"
    )


OPERATIONS: Dict[str, Callable[[EventFinder, Dict[str, Any]], Any]] = {
    'get_events': lambda finder, event: finder.events_json(_region(event)),
    'get_events_with_url': lambda finder, event: finder.raw_json(event.get('request_url')),
    'get_event_by_id': _get_event_by_id,
    'get_events_by_venue': _get_events_by_venue,
    'get_events_by_artist': _get_events_by_artist,
    'show_events_for_artist': lambda finder, event: finder.events_for_artist_query(event.get('query') or ''),
    'search_events_by_name': _search_events_by_name,
    'when_is_event_for_artist': lambda finder, event: finder.when_is_event(event.get('query') or ''),
    'get_event_count': lambda finder, event: finder.event_count(),
    'is_event_family_friendly': lambda finder, event: finder.is_family_friendly(event.get('query') or ''),
    'is_event_age_restricted': lambda finder, event: finder.is_age_restricted(event.get('query') or ''),
}


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler dispatching one event lookup operation.

    Args:
        event: Invocation payload with an "operation" name and its parameters
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body holding the result
    """
    settings = Settings.from_env()

    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    event = event or {}
    operation = event.get('operation')

    handler = OPERATIONS.get(operation)
    if handler is None:
        logger.warning(f"Unknown operation: {operation}", extra={'operation': operation})
        return _response(400, {
            'message': 'Unknown operation',
            'operation': operation,
            'operations': sorted(OPERATIONS)
        })

    logger.info(f"Lambda execution started", extra={'operation': operation})

    try:
        result = handler(get_finder(settings), event)

    except MissingParameterError as e:
        logger.warning(str(e), extra={'operation': operation})
        return _response(400, {
            'message': 'Invalid request',
            'operation': operation,
            'error': str(e)
        })

    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'operation': operation,
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'message': 'Operation failed',
            'operation': operation,
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })

    duration = time.time() - start_time
    logger.info(
        f"Lambda execution completed successfully",
        extra={'operation': operation, 'duration_seconds': round(duration, 2)}
    )

    return _response(200, {
        'operation': operation,
        'result': result,
        'duration_seconds': round(duration, 2)
    })
