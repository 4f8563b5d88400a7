from typing import Optional

from models.calendar_event import CalendarEvent
from models.match_result import MatchResult
from models.transaction import ReimbursementTransaction


class EnrichedTransaction(ReimbursementTransaction):
    """Transaction augmented with its calendar match."""

    calendar_event: Optional[CalendarEvent] = None
    calendar_match_confidence: Optional[str] = None
    calendar_match_reasoning: Optional[str] = None

    @classmethod
    def from_match(cls, transaction: ReimbursementTransaction, result: MatchResult) -> "EnrichedTransaction":
        return cls(
            **transaction.model_dump(),
            calendar_event=result.event,
            calendar_match_confidence=result.confidence,
            calendar_match_reasoning=result.reasoning_text,
        )

    @classmethod
    def from_error(cls, transaction: ReimbursementTransaction, reasoning: str) -> "EnrichedTransaction":
        return cls(
            **transaction.model_dump(),
            calendar_event=None,
            calendar_match_confidence=None,
            calendar_match_reasoning=reasoning,
        )

    @property
    def is_matched(self) -> bool:
        return self.calendar_event is not None
