from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

# Shared calendars searched in addition to the payer's own calendar
DEFAULT_SHARED_CALENDARS = [
    "c_kj6v4nvbgp4tr1tkbb1q7b3kks@group.calendar.google.com",  # Marketing events
    "anduintransact.com_91igbs7aq8jr2mvsfo3bc0anls@group.calendar.google.com",  # Team
]


class LocationWeights(BaseModel):
    conference: float = 40
    exact: float = 35
    broad: float = 20
    conference_keyword: str = "conference"
    broad_terms: List[str] = [
        "us", "usa", "united states", "california", "ca",
        "san francisco", "sf", "new york", "ny",
    ]


class MemoWeights(BaseModel):
    strong: float = 25  # two or more matched words
    single: float = 15
    min_word_length: int = 4
    stopwords: List[str] = ["the", "and", "with", "for", "from", "this", "that", "your", "our"]


class MealWeights(BaseModel):
    during_meal_time: float = 30
    outside_meal_time: float = 20
    meal_keywords: List[str] = ["dinner", "lunch", "breakfast", "meal", "restaurant", "food", "eat"]
    meeting_keywords: List[str] = ["meeting", "conference", "team", "client", "sync", "networking"]
    # Inclusive start-hour windows: breakfast, lunch, dinner
    meal_windows: List[Tuple[int, int]] = [(7, 10), (11, 14), (17, 21)]


class BusinessContextWeights(BaseModel):
    both: float = 25
    partial: float = 10
    # Iteration order matters: only the first matching group is scored
    groups: Dict[str, List[str]] = {
        "conference": ["conference", "summit", "expo", "convention"],
        "travel": ["travel", "trip", "flight", "uber", "taxi", "hotel"],
        "client": ["client", "customer", "prospect", "demo"],
        "team": ["team", "all-hands", "offsite", "retreat"],
    }


class CalendarSourceWeights(BaseModel):
    user_calendar: float = 0
    marketing: float = 8
    team: float = 6
    marketing_marker: str = "marketing"
    team_marker: str = "team"


class MultiDayWeights(BaseModel):
    within_event: float = 40
    before_start: float = 20
    after_end: float = 15
    nearby_days: int = 2
    trip_both: float = 35
    trip_event_only: float = 25
    trip_keywords: List[str] = ["trip", "travel", "business trip", "visit", "conference", "summit", "expo"]
    location_exact: float = 30
    location_broad: float = 20
    expense_type: float = 15
    expense_types: Dict[str, List[str]] = {
        "accommodation": ["hotel", "accommodation", "stay", "lodging"],
        "transport": ["flight", "uber", "taxi", "transport", "airline", "train"],
        "meals": ["dinner", "lunch", "breakfast", "meal", "restaurant"],
        "client": ["client", "meeting", "demo", "presentation"],
    }
    multi_day_bonus: float = 10
    calendar_source: CalendarSourceWeights = CalendarSourceWeights()


class MatchingConfig(BaseModel):
    """Weights, keyword sets and thresholds used by the calendar matchers.

    The thresholds (acceptance 20, multi-day fallback 30, discount 0.8) are
    empirically tuned calibration values, not structural invariants.
    """

    shared_calendars: List[str] = Field(default_factory=lambda: list(DEFAULT_SHARED_CALENDARS))
    time_zone: Optional[str] = None  # None = process local time
    request_timeout_seconds: float = 20.0
    use_ai_matcher: bool = False  # ask Gemini first, rules when it finds nothing

    min_match_score: float = 20
    multi_day_fallback_threshold: float = 30
    single_day_fallback_discount: float = 0.8
    lookback_days: int = 7
    lookahead_days: int = 1
    confidence_scores: Dict[str, float] = {"high": 40, "medium": 25, "low": 15, "none": 0}

    location: LocationWeights = LocationWeights()
    memo: MemoWeights = MemoWeights()
    meal: MealWeights = MealWeights()
    business: BusinessContextWeights = BusinessContextWeights()
    calendar_source: CalendarSourceWeights = CalendarSourceWeights(user_calendar=5, marketing=8, team=6)
    multi_day: MultiDayWeights = MultiDayWeights()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "MatchingConfig":
        """Build from the `calendar_matching` section of the YAML config."""
        return cls.model_validate(config.get("calendar_matching") or {})

    def confidence_score(self, confidence: Optional[str]) -> float:
        return self.confidence_scores.get(confidence or "none", 0)
