"""Interpretation of free-text event queries."""
import re
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from catalog.models import Region


class UninterpretableQueryError(ValueError):
    """Raised when no subject remains after cleaning a query."""


@dataclass(frozen=True)
class Interpretation:
    """Subject and optional region extracted from a query."""
    subject: str
    region: Optional[int] = None


# Checked in order; the first name contained in the location phrase wins
KNOWN_LOCATIONS: Tuple[Tuple[str, int], ...] = (
    ('burnaby', Region.NEW_WESTMINSTER_SURREY),
    ('new westminster', Region.NEW_WESTMINSTER_SURREY),
    ('surrey', Region.NEW_WESTMINSTER_SURREY),
    ('toronto', Region.TORONTO),
    ('vancouver', Region.VANCOUVER),
)

# Most specific first; only the first matching prefix is stripped
ARTIST_LEADING_PHRASES: Tuple[str, ...] = (
    'show me events for artist ',
    'show me events for ',
    'show events for artist ',
    'show events for ',
    'events for artist ',
    'events for ',
    'find events for artist ',
    'find events for ',
    'show artist ',
)

WHEN_LEADING_PHRASES: Tuple[str, ...] = (
    'when is the event for ',
    'when is the event for artist ',
    'when is the event ',
    'when is the show for ',
    'when is ',
)

LOCATION_PATTERN = re.compile(r'\b(in|at|near)\s+(.+)$', re.IGNORECASE)

QUOTE_CHARS = '"\''


def split_location(text: str) -> Tuple[str, Optional[str]]:
    """
    Split a trailing "in/at/near <place>" off a query.

    Args:
        text: Query text

    Returns:
        Tuple of (subject source, location phrase or None)
    """
    text = text.strip()

    # Last preposition whose tail runs to the end of the string
    match = None
    position = 0
    while True:
        found = LOCATION_PATTERN.search(text, position)
        if not found:
            break
        match = found
        position = found.start() + 1

    if match is None:
        return text, None

    location = match.group(2).strip().strip(',.')
    return text[:match.start()].strip(), location


def resolve_region(
    location: Optional[str],
    locations: Sequence[Tuple[str, int]] = KNOWN_LOCATIONS
) -> Optional[int]:
    """Map a location phrase onto a region id by substring containment."""
    if not location:
        return None

    location = location.lower()
    for name, region in locations:
        if name in location:
            return region
    return None


def strip_leading_phrase(text: str, phrases: Sequence[str]) -> str:
    """Strip the first phrase that prefixes the text, case-insensitively."""
    lowered = text.lower()
    for phrase in phrases:
        if lowered.startswith(phrase):
            return text[len(phrase):].strip()
    return text


def interpret_query(
    text: str,
    leading_phrases: Sequence[str] = ARTIST_LEADING_PHRASES,
    strip_artist_token: bool = True,
    locations: Sequence[Tuple[str, int]] = KNOWN_LOCATIONS
) -> Interpretation:
    """
    Extract the subject and region of a natural-language query.

    The location is split off the original text before any leading phrase is
    stripped, so "show events for X in Toronto" keeps "in Toronto" out of X.

    Args:
        text: Query text, e.g. "show me events for artist Taylor Swift in Toronto"
        leading_phrases: Ordered phrases to strip from the start of the subject
        strip_artist_token: Also drop a residual leading "artist "
        locations: Ordered (location name, region) table

    Returns:
        Interpretation with the cleaned subject and the region, if any

    Raises:
        UninterpretableQueryError: If the cleaned subject is empty
    """
    subject, location = split_location(text or '')
    region = resolve_region(location, locations)

    subject = strip_leading_phrase(subject, leading_phrases)

    if strip_artist_token and subject.lower().startswith('artist '):
        subject = subject[len('artist '):].strip()

    subject = subject.strip(QUOTE_CHARS)

    if not subject.strip():
        raise UninterpretableQueryError(f"No subject extracted from query: {text!r}")

    return Interpretation(subject=subject, region=region)
