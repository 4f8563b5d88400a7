"""
Signal scorers for transaction/calendar-event matching.

Each scorer is an independent unit implementing
`score(transaction, event) -> ScoreContribution`. Matchers hold an ordered
registry of scorers and fold their contributions into a candidate score.
"""

import re
from abc import ABC, abstractmethod
from datetime import date
from functools import reduce
from typing import Iterable, List, Optional

from core.match_config import (BusinessContextWeights, CalendarSourceWeights,
                               LocationWeights, MatchingConfig, MealWeights,
                               MemoWeights, MultiDayWeights)
from models.calendar_event import CalendarEvent
from models.match_result import ConfidenceTier, ScoreContribution
from models.transaction import ReimbursementTransaction

LOCATION_SPLIT = re.compile(r"\s+|[,.\-]")

NO_SIGNAL = ScoreContribution()


def normalize(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def is_location_match(expense_location: str, event_location: str) -> bool:
    """True when a venue word (>3 chars) of the expense overlaps an event location word."""
    expense_words = [w for w in LOCATION_SPLIT.split(expense_location) if len(w) > 3]
    event_words = [w for w in LOCATION_SPLIT.split(event_location) if w]

    for expense_word in expense_words:
        for event_word in event_words:
            if event_word in expense_word or expense_word in event_word:
                return True
    return False


def is_broad_location_match(expense_location: str, event_location: str, broad_terms: Iterable[str]) -> bool:
    """True when both locations mention the same country/state/city term."""
    return any(term in expense_location and term in event_location for term in broad_terms)


class ScoredCandidate:
    """Accumulated score, tier and reasoning for one candidate event."""

    def __init__(self, event: CalendarEvent, base_tier: ConfidenceTier = ConfidenceTier.LOW):
        self.event = event
        self.score = 0.0
        self.tier = base_tier
        self.reasoning: List[str] = []

    def add(self, contribution: ScoreContribution) -> "ScoredCandidate":
        self.score += contribution.score
        self.tier = ConfidenceTier.merge(self.tier, contribution.tier)
        if contribution.note:
            self.reasoning.append(contribution.note)
        return self

    def __repr__(self) -> str:
        return f"ScoredCandidate(event={self.event.summary!r}, score={self.score:.1f}, tier={self.tier.name})"


class SignalScorer(ABC):
    """Base class for a single matching signal."""

    name = "signal"

    @abstractmethod
    def score(self, transaction: ReimbursementTransaction, event: CalendarEvent) -> ScoreContribution:
        pass


def fold_scorers(scorers: Iterable[SignalScorer],
                 transaction: ReimbursementTransaction,
                 event: CalendarEvent) -> ScoredCandidate:
    """Run every scorer against one event and accumulate the contributions."""
    return reduce(
        lambda candidate, scorer: candidate.add(scorer.score(transaction, event)),
        scorers,
        ScoredCandidate(event),
    )


class LocationScorer(SignalScorer):
    """Venue, token overlap and broad geography matching between locations."""

    name = "location"

    def __init__(self, weights: LocationWeights):
        self.weights = weights

    def score(self, transaction, event):
        expense_location = normalize(transaction.location_name)
        event_location = normalize(event.location)
        if not expense_location or not event_location:
            return NO_SIGNAL

        keyword = self.weights.conference_keyword
        if keyword in expense_location and keyword in event_location:
            return ScoreContribution(score=self.weights.conference, tier=ConfidenceTier.HIGH,
                                     note="Conference location match")
        if is_location_match(expense_location, event_location):
            return ScoreContribution(score=self.weights.exact, tier=ConfidenceTier.HIGH,
                                     note="Location match")
        if is_broad_location_match(expense_location, event_location, self.weights.broad_terms):
            return ScoreContribution(score=self.weights.broad, tier=ConfidenceTier.MEDIUM,
                                     note="Broad location match")
        return NO_SIGNAL


class MemoScorer(SignalScorer):
    """Word overlap between the memo and the event summary/description."""

    name = "memo"

    def __init__(self, weights: MemoWeights):
        self.weights = weights

    def _words(self, text: str) -> List[str]:
        return [
            word for word in text.split()
            if len(word) >= self.weights.min_word_length and word not in self.weights.stopwords
        ]

    def matched_words(self, memo: str, event_text: str) -> List[str]:
        memo_words = self._words(memo)
        event_words = self._words(event_text)
        return [
            memo_word for memo_word in memo_words
            if any(memo_word in event_word or event_word in memo_word for event_word in event_words)
        ]

    def score(self, transaction, event):
        memo = normalize(transaction.memo)
        event_text = f"{normalize(event.summary)} {normalize(event.description)}"
        matched = self.matched_words(memo, event_text)

        if len(matched) >= 2:
            return ScoreContribution(score=self.weights.strong, tier=ConfidenceTier.HIGH,
                                     note=f"Strong text match: {', '.join(matched)}")
        if len(matched) == 1:
            return ScoreContribution(score=self.weights.single, tier=ConfidenceTier.MEDIUM,
                                     note=f"Text match: {matched[0]}")
        return NO_SIGNAL


class MealContextScorer(SignalScorer):
    """Meal expenses paired with meeting-type events, weighted by start hour."""

    name = "meal"

    def __init__(self, weights: MealWeights):
        self.weights = weights

    def is_meal_time(self, hour: int) -> bool:
        return any(start <= hour <= end for start, end in self.weights.meal_windows)

    def score(self, transaction, event):
        memo = normalize(transaction.memo)
        summary = normalize(event.summary)
        if not (contains_any(memo, self.weights.meal_keywords)
                and contains_any(summary, self.weights.meeting_keywords)):
            return NO_SIGNAL

        if self.is_meal_time(event.start.hour):
            return ScoreContribution(score=self.weights.during_meal_time, tier=ConfidenceTier.HIGH,
                                     note="Meal expense during meeting time")
        return ScoreContribution(score=self.weights.outside_meal_time, tier=ConfidenceTier.MEDIUM,
                                 note="Meal expense with meeting event")


class BusinessContextScorer(SignalScorer):
    """Conference/travel/client/team keyword context shared by memo and event.

    Only the first group that matches on either side is scored, even when a
    later group would match on both sides.
    """

    name = "business_context"

    def __init__(self, weights: BusinessContextWeights):
        self.weights = weights

    def score(self, transaction, event):
        memo = normalize(transaction.memo)
        event_text = f"{normalize(event.summary)} {normalize(event.description)}"

        for context, keywords in self.weights.groups.items():
            memo_has_context = contains_any(memo, keywords)
            event_has_context = contains_any(event_text, keywords)

            if memo_has_context and event_has_context:
                return ScoreContribution(score=self.weights.both, tier=ConfidenceTier.HIGH,
                                         note=f"{context} context match")
            if memo_has_context or event_has_context:
                return ScoreContribution(score=self.weights.partial, tier=ConfidenceTier.MEDIUM,
                                         note=f"Partial {context} context")
        return NO_SIGNAL


class CalendarSourceScorer(SignalScorer):
    """Flat bonus depending on which calendar the event came from."""

    name = "calendar_source"

    def __init__(self, weights: CalendarSourceWeights, note_suffix: str = " event"):
        self.weights = weights
        self.note_suffix = note_suffix

    def score(self, transaction, event):
        source = normalize(event.calendar_source)

        if event.is_user_calendar and self.weights.user_calendar:
            return ScoreContribution(score=self.weights.user_calendar, note="User personal calendar")
        if self.weights.marketing_marker in source:
            return ScoreContribution(score=self.weights.marketing,
                                     note=f"Marketing calendar{self.note_suffix}")
        if self.weights.team_marker in source:
            return ScoreContribution(score=self.weights.team, note=f"Team calendar{self.note_suffix}")
        return NO_SIGNAL


# Trip-aware scorers used for multi-day events

class EventPeriodScorer(SignalScorer):
    """Transaction date inside, or just outside, the event's date span."""

    name = "event_period"

    def __init__(self, weights: MultiDayWeights):
        self.weights = weights

    def score(self, transaction, event):
        expense_day = transaction.purchased_at
        start_day = event.start_date
        end_day = event.end_date
        if start_day is None or end_day is None:
            return NO_SIGNAL

        if start_day <= expense_day <= end_day:
            return ScoreContribution(score=self.weights.within_event, tier=ConfidenceTier.HIGH,
                                     note="Expense date within event period")

        days_before = days_between(expense_day, start_day)
        days_after = days_between(end_day, expense_day)
        if 0 <= days_before <= self.weights.nearby_days:
            return ScoreContribution(score=self.weights.before_start, tier=ConfidenceTier.MEDIUM,
                                     note=f"{days_before} days before event start")
        if 0 <= days_after <= self.weights.nearby_days:
            return ScoreContribution(score=self.weights.after_end, tier=ConfidenceTier.MEDIUM,
                                     note=f"{days_after} days after event end")
        return NO_SIGNAL


class TripContextScorer(SignalScorer):
    """Business-trip keywords in the memo and/or the event text."""

    name = "trip_context"

    def __init__(self, weights: MultiDayWeights):
        self.weights = weights

    def score(self, transaction, event):
        memo = normalize(transaction.memo)
        event_text = f"{normalize(event.summary)} {normalize(event.description)}"
        expense_has_trip = contains_any(memo, self.weights.trip_keywords)
        event_has_trip = contains_any(event_text, self.weights.trip_keywords)

        if expense_has_trip and event_has_trip:
            return ScoreContribution(score=self.weights.trip_both, tier=ConfidenceTier.HIGH,
                                     note="Business trip context match")
        if event_has_trip:
            return ScoreContribution(score=self.weights.trip_event_only, tier=ConfidenceTier.MEDIUM,
                                     note="Event has trip context")
        return NO_SIGNAL


class TripLocationScorer(SignalScorer):
    """Location overlap for trips (no conference-venue tier)."""

    name = "trip_location"

    def __init__(self, weights: MultiDayWeights, broad_terms: List[str]):
        self.weights = weights
        self.broad_terms = broad_terms

    def score(self, transaction, event):
        expense_location = normalize(transaction.location_name)
        event_location = normalize(event.location)
        if not expense_location or not event_location:
            return NO_SIGNAL

        if is_location_match(expense_location, event_location):
            return ScoreContribution(score=self.weights.location_exact, tier=ConfidenceTier.HIGH,
                                     note="Location match")
        if is_broad_location_match(expense_location, event_location, self.broad_terms):
            return ScoreContribution(score=self.weights.location_broad, tier=ConfidenceTier.MEDIUM,
                                     note="Geographic area match")
        return NO_SIGNAL


class TravelExpenseTypeScorer(SignalScorer):
    """Typical trip expense (hotel, transport, meals, client) named in the memo."""

    name = "travel_expense_type"

    def __init__(self, weights: MultiDayWeights):
        self.weights = weights

    def score(self, transaction, event):
        memo = normalize(transaction.memo)
        for expense_type, keywords in self.weights.expense_types.items():
            if contains_any(memo, keywords):
                return ScoreContribution(score=self.weights.expense_type,
                                         note=f"{expense_type} expense type")
        return NO_SIGNAL


class MultiDayBonusScorer(SignalScorer):
    name = "multi_day_bonus"

    def __init__(self, weights: MultiDayWeights):
        self.weights = weights

    def score(self, transaction, event):
        return ScoreContribution(score=self.weights.multi_day_bonus, note="Multi-day event bonus")


def days_between(earlier: date, later: date) -> int:
    return (later - earlier).days


def single_day_scorers(config: MatchingConfig) -> List[SignalScorer]:
    """Scorer registry for events on the transaction's own date."""
    return [
        LocationScorer(config.location),
        MemoScorer(config.memo),
        MealContextScorer(config.meal),
        BusinessContextScorer(config.business),
        CalendarSourceScorer(config.calendar_source),
    ]


def multi_day_scorers(config: MatchingConfig) -> List[SignalScorer]:
    """Scorer registry for events spanning several days."""
    weights = config.multi_day
    return [
        EventPeriodScorer(weights),
        TripContextScorer(weights),
        TripLocationScorer(weights, config.location.broad_terms),
        TravelExpenseTypeScorer(weights),
        MultiDayBonusScorer(weights),
        CalendarSourceScorer(weights.calendar_source, note_suffix=""),
    ]
