"""Ordered rule chains deciding family-friendliness and age restrictions.

Each classifier is a tuple of rules evaluated top to bottom. A rule returns a
Verdict to answer or None to pass; the first answer wins and later rules never
run. The chains end with a rule that always answers.
"""
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

from catalog.models import (
    AgeRestrictions,
    Answer,
    DetailRecord,
    EventRecord,
    Verdict,
)

NEGATIVE_FAMILY_MARKERS = ('18+', '21+', 'age restriction', 'age limit', 'adults only', 'mature')
POSITIVE_FAMILY_MARKERS = ('all ages', 'family', 'suitable for all', 'kids', 'children')
AGE_MARKERS = ('16 & over', '16+', '18+', '21+')


@dataclass(frozen=True)
class ClassificationContext:
    """Matched event plus its detail record, when one could be fetched."""
    event: EventRecord
    detail: Optional[DetailRecord] = None

    @property
    def name(self) -> str:
        return self.event.name or '(unknown)'

    @property
    def url(self) -> str:
        return self.event.url or ''

    @property
    def age_restrictions(self) -> Optional[AgeRestrictions]:
        """Age rules of the detail record, if it carries any."""
        if self.detail is None:
            return None
        return self.detail.age_restrictions

    @property
    def legal_age_enforced(self) -> bool:
        """True when the detail record or the cached listing enforces a legal age."""
        rules = self.age_restrictions
        if rules is not None and rules.legal_age_enforced is True:
            return True
        return self.event.legal_age_enforced is True

    @property
    def enforced_age_description(self) -> Optional[str]:
        rules = self.age_restrictions
        if rules is not None and rules.legal_age_enforced is True:
            return rules.age_rule_description
        return self.event.age_rule_description

    @property
    def note_text(self) -> str:
        """Lower-cased please-note and info text."""
        if self.detail is not None:
            text = f"{self.detail.please_note or ''} {self.detail.info or ''}"
        else:
            text = self.event.please_note or ''
        return text.lower()

    @property
    def listing_text(self) -> str:
        """Lower-cased name, venue and artist of the event."""
        event = self.event
        return f"{event.name or ''} {event.venue_name or ''} {event.artist_name or ''}".lower()

    @property
    def child_rule(self) -> Optional[str]:
        if self.detail is None or not self.detail.venues:
            return None
        rule = self.detail.venues[0].child_rule
        return rule if rule and rule.strip() else None


@dataclass(frozen=True)
class Rule:
    """Named check in a classifier chain."""
    name: str
    check: Callable[[ClassificationContext], Optional[Verdict]]


def classify(rules: Sequence[Rule], context: ClassificationContext) -> Verdict:
    """Run rules in order and return the first verdict."""
    for rule in rules:
        verdict = rule.check(context)
        if verdict is not None:
            return verdict
    raise ValueError(f"No rule answered for '{context.name}'")


def first_marker(text: str, markers: Sequence[str]) -> Optional[str]:
    for marker in markers:
        if marker in text:
            return marker
    return None


def _more_info(url: str) -> str:
    return f" More info: {url}" if url else ""


def _inconclusive(context: ClassificationContext, what: str) -> Verdict:
    return Verdict(
        Answer.INCONCLUSIVE,
        f"I couldn't determine definitively whether '{context.name}' is {what}. "
        f"Check the ticket page: {context.url}"
    )


# Family-friendly rules

def _family_legal_age(context: ClassificationContext) -> Optional[Verdict]:
    if context.legal_age_enforced:
        return Verdict(
            Answer.NO,
            f"No - '{context.name}' has legal age enforcement according to the "
            f"event details. Check: {context.url}"
        )
    return None


def _family_classification(context: ClassificationContext) -> Optional[Verdict]:
    if context.detail is None:
        return None
    if any(entry.family is True for entry in context.detail.classifications):
        return Verdict(
            Answer.YES,
            f"Yes - '{context.name}' is marked as family friendly in its "
            f"classification.{_more_info(context.url)}"
        )
    return None


def _family_negative_note(context: ClassificationContext) -> Optional[Verdict]:
    marker = first_marker(context.note_text, NEGATIVE_FAMILY_MARKERS)
    if marker:
        return Verdict(
            Answer.NO,
            f"No - '{context.name}' appears to have an age restriction ({marker}). "
            f"Check: {context.url}"
        )
    return None


def _family_positive_note(context: ClassificationContext) -> Optional[Verdict]:
    marker = first_marker(context.note_text, POSITIVE_FAMILY_MARKERS)
    if marker:
        return Verdict(
            Answer.YES,
            f"Yes - '{context.name}' appears to be family friendly ({marker})."
            f"{_more_info(context.url)}"
        )
    return None


def _family_venue_child_rule(context: ClassificationContext) -> Optional[Verdict]:
    child_rule = context.child_rule
    if child_rule:
        return Verdict(
            Answer.POSSIBLY,
            f"Possibly family friendly - venue child policy: {child_rule}. "
            f"Check: {context.url}"
        )
    return None


def _family_positive_listing(context: ClassificationContext) -> Optional[Verdict]:
    marker = first_marker(context.listing_text, POSITIVE_FAMILY_MARKERS)
    if marker:
        return Verdict(
            Answer.YES,
            f"Yes - '{context.name}' appears family friendly ({marker})."
            f"{_more_info(context.url)}"
        )
    return None


def _family_inconclusive(context: ClassificationContext) -> Verdict:
    return _inconclusive(context, "family friendly")


FAMILY_FRIENDLY_RULES: Tuple[Rule, ...] = (
    Rule('legal_age_enforced', _family_legal_age),
    Rule('family_classification', _family_classification),
    Rule('negative_note_marker', _family_negative_note),
    Rule('positive_note_marker', _family_positive_note),
    Rule('venue_child_rule', _family_venue_child_rule),
    Rule('positive_listing_marker', _family_positive_listing),
    Rule('inconclusive', _family_inconclusive),
)


# Age-restricted rules

def _age_enforced(context: ClassificationContext) -> Optional[Verdict]:
    if context.legal_age_enforced:
        description = context.enforced_age_description or "legal age enforced"
        return Verdict(
            Answer.YES,
            f"Yes - '{context.name}' has age restrictions: {description}. See {context.url}"
        )
    return None


def _age_description(context: ClassificationContext) -> Optional[Verdict]:
    rules = context.age_restrictions
    if rules is not None and rules.age_rule_description and rules.age_rule_description.strip():
        return Verdict(
            Answer.NOTE,
            f"Note - '{context.name}' provides age info: {rules.age_rule_description}. "
            f"Please check {context.url} for details."
        )
    return None


def _age_not_enforced(context: ClassificationContext) -> Optional[Verdict]:
    if context.age_restrictions is not None:
        return Verdict(
            Answer.NO,
            f"No - '{context.name}' does not appear to have legal age enforcement "
            f"according to the event details. See {context.url}"
        )
    return None


def _age_note_marker(context: ClassificationContext) -> Optional[Verdict]:
    text = context.note_text
    if first_marker(text, AGE_MARKERS):
        return Verdict(
            Answer.YES,
            f"Yes - '{context.name}' appears to have an age rule mentioned: "
            f"{text.strip()}. See {context.url}"
        )
    return None


def _age_listing_marker(context: ClassificationContext) -> Optional[Verdict]:
    if first_marker(context.listing_text, AGE_MARKERS):
        return Verdict(
            Answer.LIKELY,
            f"Likely yes - '{context.name}' mentions age-sensitive text. Check: {context.url}"
        )
    return None


def _age_inconclusive(context: ClassificationContext) -> Verdict:
    return Verdict(
        Answer.INCONCLUSIVE,
        f"I couldn't find explicit age restriction information for '{context.name}'. "
        f"Check the ticket page: {context.url}"
    )


AGE_RESTRICTED_RULES: Tuple[Rule, ...] = (
    Rule('legal_age_enforced', _age_enforced),
    Rule('age_rule_description', _age_description),
    Rule('age_rules_without_enforcement', _age_not_enforced),
    Rule('note_age_marker', _age_note_marker),
    Rule('listing_age_marker', _age_listing_marker),
    Rule('inconclusive', _age_inconclusive),
)


def classify_family_friendly(
    event: EventRecord, detail: Optional[DetailRecord] = None
) -> Verdict:
    return classify(FAMILY_FRIENDLY_RULES, ClassificationContext(event, detail))


def classify_age_restricted(
    event: EventRecord, detail: Optional[DetailRecord] = None
) -> Verdict:
    return classify(AGE_RESTRICTED_RULES, ClassificationContext(event, detail))
