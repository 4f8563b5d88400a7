from enum import IntEnum
from typing import List, Optional

from pydantic import BaseModel, model_validator

from models.calendar_event import CalendarEvent


class ConfidenceTier(IntEnum):
    """Ordered confidence tiers; merging keeps the highest."""

    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3

    @property
    def label(self) -> Optional[str]:
        """Public label ("high", "medium", "low") or None for NONE."""
        if self is ConfidenceTier.NONE:
            return None
        return self.name.lower()

    @classmethod
    def from_label(cls, label: Optional[str]) -> "ConfidenceTier":
        if not label:
            return cls.NONE
        return cls[label.upper()]

    @classmethod
    def merge(cls, *tiers: "ConfidenceTier") -> "ConfidenceTier":
        return max(tiers, default=cls.NONE)


class ScoreContribution(BaseModel):
    """Output of a single signal scorer for one transaction/event pair."""

    score: float = 0.0
    tier: ConfidenceTier = ConfidenceTier.NONE
    note: str = ""


class MatchResult(BaseModel):
    """Result of matching a transaction to a calendar event."""

    event: Optional[CalendarEvent] = None
    confidence: Optional[str] = None  # "high", "medium", "low" or None
    reasoning: List[str] = []
    score: float = 0.0

    @model_validator(mode="after")
    def _check_event_confidence_coupling(self) -> "MatchResult":
        if (self.event is None) != (self.confidence is None):
            raise ValueError("event and confidence must be both present or both absent")
        if self.confidence is not None and self.confidence not in ("high", "medium", "low"):
            raise ValueError(f"Unknown confidence: {self.confidence}")
        return self

    @classmethod
    def no_match(cls, reason: str, score: float = 0.0) -> "MatchResult":
        return cls(event=None, confidence=None, reasoning=[reason], score=score)

    @property
    def is_matched(self) -> bool:
        return self.event is not None

    @property
    def tier(self) -> ConfidenceTier:
        return ConfidenceTier.from_label(self.confidence)

    @property
    def reasoning_text(self) -> str:
        """Reasoning fragments joined for display."""
        return "; ".join(part for part in self.reasoning if part)

    def with_prefix(self, prefix: str) -> "MatchResult":
        """Copy of this result whose reasoning is marked with a prefix."""
        return self.model_copy(update={"reasoning": [f"{prefix}{self.reasoning_text}"]})
