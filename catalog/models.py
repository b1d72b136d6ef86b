"""Data models for Ticketmaster catalog events."""
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import List, Optional


class Region(IntEnum):
    """Ticketmaster DMA ids served by this deployment."""
    DEFAULT = 500
    NEW_WESTMINSTER_SURREY = 504
    TORONTO = 527
    VANCOUVER = 528


# Regions preloaded and refreshed together
KNOWN_REGIONS = (
    Region.NEW_WESTMINSTER_SURREY,
    Region.TORONTO,
    Region.VANCOUVER,
)


@dataclass(frozen=True)
class EventRecord:
    """Flattened catalog event as cached per region."""
    id: Optional[str] = None
    name: Optional[str] = None
    venue_name: Optional[str] = None
    artist_name: Optional[str] = None
    url: Optional[str] = None
    start_date: Optional[str] = None
    please_note: Optional[str] = None
    legal_age_enforced: Optional[bool] = None
    age_rule_description: Optional[str] = None

    def to_dict(self) -> dict:
        """Serialise with the catalog's camelCase keys."""
        return {
            'id': self.id,
            'name': self.name,
            'venueName': self.venue_name,
            'artistName': self.artist_name,
            'url': self.url,
            'startDate': self.start_date,
            'pleaseNote': self.please_note,
            'legalAgeEnforced': self.legal_age_enforced,
            'ageRuleDescription': self.age_rule_description
        }

    def __str__(self) -> str:
        return f"{self.name} ({self.id}) @ {self.venue_name} on {self.start_date}"


@dataclass(frozen=True)
class AgeRestrictions:
    """Age rule block of an event."""
    legal_age_enforced: Optional[bool] = None
    age_rule_description: Optional[str] = None


@dataclass(frozen=True)
class Classification:
    """One classification entry of an event detail."""
    primary: Optional[bool] = None
    segment: Optional[str] = None
    genre: Optional[str] = None
    family: Optional[bool] = None


@dataclass(frozen=True)
class VenueInfo:
    """Venue fields used when classifying an event."""
    name: Optional[str] = None
    general_rule: Optional[str] = None
    child_rule: Optional[str] = None


@dataclass(frozen=True)
class DetailRecord:
    """Full event record fetched on demand by id."""
    id: Optional[str] = None
    name: Optional[str] = None
    url: Optional[str] = None
    info: Optional[str] = None
    please_note: Optional[str] = None
    classifications: List[Classification] = field(default_factory=list)
    age_restrictions: Optional[AgeRestrictions] = None
    venues: List[VenueInfo] = field(default_factory=list)


class Answer(Enum):
    """Kind of answer a classifier produced."""
    YES = 'yes'
    NO = 'no'
    POSSIBLY = 'possibly'
    LIKELY = 'likely'
    NOTE = 'note'
    INCONCLUSIVE = 'inconclusive'


@dataclass(frozen=True)
class Verdict:
    """Result of a classification rule chain."""
    answer: Answer
    message: str
