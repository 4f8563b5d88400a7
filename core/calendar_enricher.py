import logging
from typing import List, Optional, Sequence

from tqdm import tqdm

from core.ai_event_matcher import GeminiEventMatcher
from core.calendar_event_source import CalendarEventFetcher
from core.event_matcher import MultiDayMatcher, SingleDayMatcher
from core.match_config import MatchingConfig
from models.enriched_transaction import EnrichedTransaction
from models.match_result import ConfidenceTier, MatchResult
from models.transaction import ReimbursementTransaction

logger = logging.getLogger(__name__)

MATCH_ERROR_REASONING = "Error occurred during matching"


class CalendarEnricher:
    """Attaches the best matching calendar event to each transaction."""

    def __init__(self,
                 fetcher: CalendarEventFetcher,
                 config: Optional[MatchingConfig] = None,
                 single_day_matcher: Optional[SingleDayMatcher] = None,
                 multi_day_matcher: Optional[MultiDayMatcher] = None,
                 ai_matcher: Optional[GeminiEventMatcher] = None):
        self.fetcher = fetcher
        self.config = config or MatchingConfig()
        self.single_day_matcher = single_day_matcher or SingleDayMatcher(self.config)
        self.multi_day_matcher = multi_day_matcher or MultiDayMatcher(
            fetcher, self.config, self.single_day_matcher
        )
        self.ai_matcher = ai_matcher

    def _needs_single_day_check(self, result: MatchResult) -> bool:
        return result.event is None or result.tier <= ConfidenceTier.LOW

    async def match_with_ai(self, transaction: ReimbursementTransaction) -> Optional[MatchResult]:
        """Let the language model pick among same-day events; None defers to the rules."""
        events = await self.fetcher.fetch_events(
            transaction.user_email, transaction.purchased_at, transaction.purchased_at
        )
        result = await self.ai_matcher.match(transaction, events)
        if result.event is None:
            logger.info(f"  AI matcher found no event: {result.reasoning_text}")
            return None
        return result.with_prefix("AI match: ")

    async def match(self, transaction: ReimbursementTransaction) -> MatchResult:
        """Multi-day match first, single-day match when that is weak or missing."""
        if self.ai_matcher is not None:
            ai_match = await self.match_with_ai(transaction)
            if ai_match is not None:
                logger.info("  Using AI match")
                return ai_match

        multi_day_match = await self.multi_day_matcher.match_multi_day(transaction, transaction.user_email)

        if not self._needs_single_day_check(multi_day_match):
            logger.info("  Using multi-day match")
            return multi_day_match

        logger.info("  Fallback to single-day matching...")
        events = await self.fetcher.fetch_events(
            transaction.user_email, transaction.purchased_at, transaction.purchased_at
        )
        single_day_match = self.single_day_matcher.match(transaction, events)

        if single_day_match.event is not None:
            multi_day_score = self.config.confidence_score(multi_day_match.confidence)
            single_day_score = self.config.confidence_score(single_day_match.confidence)
            if single_day_score > multi_day_score:
                logger.info("  Using single-day match (better score)")
                return single_day_match.with_prefix("Single-day match: ")

        return multi_day_match

    async def enrich_one(self, transaction: ReimbursementTransaction) -> EnrichedTransaction:
        """Enrich a single transaction; matching errors are captured, never raised."""
        logger.info(f"Processing expense: {transaction.memo!r} ({transaction.purchased_at})")
        try:
            result = await self.match(transaction)
        except Exception as e:
            logger.error(f"Error enriching expense with calendar data: {e}", exc_info=True)
            return EnrichedTransaction.from_error(transaction, MATCH_ERROR_REASONING)

        summary = result.event.summary if result.event is not None else "No match"
        logger.info(f"  Final result: {result.confidence or 'NONE'} - {summary!r}")
        return EnrichedTransaction.from_match(transaction, result)

    async def enrich_all(self,
                         transactions: Sequence[ReimbursementTransaction],
                         progress: bool = False) -> List[EnrichedTransaction]:
        """Enrich transactions one at a time, preserving input order."""
        enriched = []
        for transaction in tqdm(transactions, desc="Matching calendar events", unit="txn", disable=not progress):
            enriched.append(await self.enrich_one(transaction))

        matched = sum(1 for t in enriched if t.is_matched)
        logger.info(f"Matched {matched} out of {len(enriched)} expenses with calendar events")
        return enriched
