import logging
from datetime import timedelta
from typing import List, Optional, Sequence

from core.calendar_event_source import CalendarEventFetcher
from core.match_config import MatchingConfig
from core.signal_scorers import (ScoredCandidate, SignalScorer, fold_scorers,
                                 multi_day_scorers, single_day_scorers)
from models.calendar_event import CalendarEvent
from models.match_result import MatchResult
from models.transaction import ReimbursementTransaction

logger = logging.getLogger(__name__)


def pick_best(candidates: Sequence[ScoredCandidate]) -> Optional[ScoredCandidate]:
    """Highest score wins; on equal scores the earliest candidate is kept."""
    best = None
    for candidate in candidates:
        if best is None or candidate.score > best.score:
            best = candidate
    return best


def to_match_result(candidate: ScoredCandidate) -> MatchResult:
    return MatchResult(
        event=candidate.event,
        confidence=candidate.tier.label,
        reasoning=candidate.reasoning,
        score=candidate.score,
    )


class SingleDayMatcher:
    """Matches a transaction against events occurring on its own date."""

    def __init__(self, config: MatchingConfig, scorers: Optional[List[SignalScorer]] = None):
        self.config = config
        self.scorers = scorers if scorers is not None else single_day_scorers(config)

    def score_event(self, transaction: ReimbursementTransaction, event: CalendarEvent) -> ScoredCandidate:
        candidate = fold_scorers(self.scorers, transaction, event)
        logger.debug(f"  Event {event.summary!r} from {event.calendar_source}: "
                     f"score {candidate.score}, confidence {candidate.tier.name}, "
                     f"reasoning {'; '.join(candidate.reasoning)}")
        return candidate

    def match(self, transaction: ReimbursementTransaction, events: Sequence[CalendarEvent]) -> MatchResult:
        if not events:
            return MatchResult.no_match("No calendar events found for this date")

        logger.debug(f"Matching {transaction.memo!r} ({transaction.purchased_at}) "
                     f"against {len(events)} calendar events")

        best = pick_best([self.score_event(transaction, event) for event in events])

        if best.score >= self.config.min_match_score:
            logger.debug(f"Best match: {best.event.summary!r} with score {best.score}")
            return to_match_result(best)

        logger.debug(f"No good matches found (best score: {best.score:g})")
        return MatchResult.no_match(f"No strong matches found (best score: {best.score:g})", score=best.score)


class MultiDayMatcher:
    """Trip-aware matching over a window of days, favouring multi-day events."""

    def __init__(self,
                 fetcher: CalendarEventFetcher,
                 config: MatchingConfig,
                 single_day_matcher: Optional[SingleDayMatcher] = None):
        self.fetcher = fetcher
        self.config = config
        self.scorers = multi_day_scorers(config)
        self.single_day_matcher = single_day_matcher or SingleDayMatcher(config)

    def score_event(self, transaction: ReimbursementTransaction, event: CalendarEvent) -> ScoredCandidate:
        candidate = fold_scorers(self.scorers, transaction, event)
        logger.debug(f"  Multi-day event {event.summary!r} ({event.start_date} - {event.end_date}): "
                     f"score {candidate.score}, confidence {candidate.tier.name}")
        return candidate

    def match_events(self, transaction: ReimbursementTransaction, events: Sequence[CalendarEvent]) -> MatchResult:
        """Score an already fetched window of events."""
        if not events:
            return MatchResult.no_match(f"No events found in {self.config.lookback_days}-day window")

        multi_day_events = [event for event in events if event.is_multi_day]
        single_day_events = [event for event in events if not event.is_multi_day]
        logger.debug(f"Found {len(multi_day_events)} multi-day events and "
                     f"{len(single_day_events)} single-day events")

        best = pick_best([self.score_event(transaction, event) for event in multi_day_events])
        best_result = to_match_result(best) if best is not None else None
        best_score = best.score if best is not None else 0.0

        if best_score < self.config.multi_day_fallback_threshold:
            for event in single_day_events:
                if event.start_date != transaction.purchased_at:
                    continue

                candidate = self.single_day_matcher.score_event(transaction, event)
                if candidate.score < self.config.min_match_score:
                    continue

                adjusted_score = (self.config.confidence_score(candidate.tier.label)
                                  * self.config.single_day_fallback_discount)
                if adjusted_score > best_score:
                    best_score = adjusted_score
                    best_result = to_match_result(candidate).model_copy(
                        update={"score": adjusted_score}
                    ).with_prefix("Single-day fallback: ")

        if best_result is None:
            return MatchResult.no_match(f"No multi-day or same-day match found (best score: {best_score:g})")

        logger.debug(f"Best multi-day match: {best_result.event.summary!r} with score {best_score}")
        return best_result

    async def match_multi_day(self, transaction: ReimbursementTransaction, identity: str) -> MatchResult:
        logger.debug(f"=== Multi-day matching for {transaction.memo!r} on {transaction.purchased_at} ===")

        start_day = transaction.purchased_at - timedelta(days=self.config.lookback_days)
        end_day = transaction.purchased_at + timedelta(days=self.config.lookahead_days)
        events = await self.fetcher.fetch_events(identity, start_day, end_day)

        return self.match_events(transaction, events)
