"""Best-match selection among candidate events."""
from typing import Sequence

from catalog.models import EventRecord

EXACT_NAME_SCORE = 10
NAME_CONTAINS_SCORE = 5
ARTIST_CONTAINS_SCORE = 3


def score_event(event: EventRecord, query: str) -> int:
    """Score how well an event matches a query."""
    query = query.lower()
    name = (event.name or '').lower()
    artist = (event.artist_name or '').lower()

    score = 0
    if name and name == query:
        score += EXACT_NAME_SCORE
    if name and query in name:
        score += NAME_CONTAINS_SCORE
    if artist and query in artist:
        score += ARTIST_CONTAINS_SCORE
    return score


def best_match(events: Sequence[EventRecord], query: str) -> EventRecord:
    """
    Pick the highest scoring event; ties go to the earliest candidate.

    Raises:
        ValueError: If there are no candidates
    """
    if not events:
        raise ValueError("No candidate events to rank")
    return max(events, key=lambda event: score_event(event, query))
