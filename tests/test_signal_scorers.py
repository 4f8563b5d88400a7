from datetime import date

from core.match_config import MatchingConfig
from core.signal_scorers import (BusinessContextScorer, CalendarSourceScorer,
                                 EventPeriodScorer, LocationScorer,
                                 MealContextScorer, MemoScorer,
                                 MultiDayBonusScorer, TravelExpenseTypeScorer,
                                 TripContextScorer, TripLocationScorer,
                                 fold_scorers, is_broad_location_match,
                                 is_location_match, multi_day_scorers,
                                 single_day_scorers)
from models.match_result import ConfidenceTier

CONFIG = MatchingConfig()
MARKETING_CALENDAR = "marketing-events@group.calendar.google.com"
TEAM_CALENDAR = "team-calendar@group.calendar.google.com"


def test_location_match_ignores_empty_tokens():
    # "sf, ca" splits into an empty token that must not match everything
    assert not is_location_match("moscone center", "sf, ca")


def test_location_match_on_shared_word():
    assert is_location_match("marriott marquis, san francisco", "moscone center, san francisco")


def test_location_match_ignores_short_expense_words():
    assert not is_location_match("the spa", "spa resort")


def test_broad_location_match():
    assert is_broad_location_match("joe's diner, usa", "office, usa", CONFIG.location.broad_terms)
    assert not is_broad_location_match("joe's diner", "office", CONFIG.location.broad_terms)


def test_location_scorer_conference(make_transaction, make_event):
    scorer = LocationScorer(CONFIG.location)
    transaction = make_transaction(location_name="Conference Hall, Moscone")
    event = make_event("SaaStr", "2024-03-05T09:00:00-08:00", location="SaaStr Conference, San Mateo")

    contribution = scorer.score(transaction, event)

    assert contribution.score == 40
    assert contribution.tier == ConfidenceTier.HIGH
    assert contribution.note == "Conference location match"


def test_location_scorer_tiers(make_transaction, make_event):
    scorer = LocationScorer(CONFIG.location)
    event = make_event("Offsite", "2024-03-05T09:00:00-08:00", location="Moscone Center West")

    exact = scorer.score(make_transaction(location_name="Moscone Center, San Francisco"), event)
    assert (exact.score, exact.tier, exact.note) == (35, ConfidenceTier.HIGH, "Location match")

    broad_event = make_event("Offsite", "2024-03-05T09:00:00-08:00", location="Office, USA")
    broad = scorer.score(make_transaction(location_name="Joe's Diner, USA"), broad_event)
    assert (broad.score, broad.tier, broad.note) == (20, ConfidenceTier.MEDIUM, "Broad location match")


def test_location_scorer_requires_both_locations(make_transaction, make_event):
    scorer = LocationScorer(CONFIG.location)
    event = make_event("Offsite", "2024-03-05T09:00:00-08:00")

    contribution = scorer.score(make_transaction(location_name="Moscone Center"), event)

    assert contribution.score == 0
    assert contribution.tier == ConfidenceTier.NONE
    assert contribution.note == ""


def test_memo_scorer_strong_and_single(make_transaction, make_event):
    scorer = MemoScorer(CONFIG.memo)

    strong = scorer.score(make_transaction(memo="Dinner with Acme client team"),
                          make_event("Acme client review", "2024-03-05T18:00:00-08:00"))
    assert strong.score == 25
    assert strong.tier == ConfidenceTier.HIGH
    assert strong.note == "Strong text match: acme, client"

    single = scorer.score(make_transaction(memo="Uber ride home"),
                          make_event("Uber partnership", "2024-03-05T18:00:00-08:00"))
    assert single.score == 15
    assert single.tier == ConfidenceTier.MEDIUM
    assert single.note == "Text match: uber"


def test_memo_scorer_skips_stopwords_and_short_words(make_transaction, make_event):
    scorer = MemoScorer(CONFIG.memo)
    contribution = scorer.score(make_transaction(memo="the car with that"),
                                make_event("Car wash with that team", "2024-03-05T18:00:00-08:00"))
    assert contribution.score == 0


def test_meal_context_during_and_outside_meal_time(make_transaction, make_event):
    scorer = MealContextScorer(CONFIG.meal)
    transaction = make_transaction(memo="Team lunch")

    during = scorer.score(transaction, make_event("Weekly team sync", "2024-03-05T12:00:00-08:00"))
    assert (during.score, during.tier) == (30, ConfidenceTier.HIGH)
    assert during.note == "Meal expense during meeting time"

    outside = scorer.score(transaction, make_event("Weekly team sync", "2024-03-05T15:00:00-08:00"))
    assert (outside.score, outside.tier) == (20, ConfidenceTier.MEDIUM)
    assert outside.note == "Meal expense with meeting event"


def test_meal_context_all_day_event_counts_as_hour_zero(make_transaction, make_event):
    scorer = MealContextScorer(CONFIG.meal)
    contribution = scorer.score(make_transaction(memo="Team dinner"), make_event("Team offsite", "2024-03-05"))
    assert contribution.score == 20


def test_meal_context_needs_meeting_event(make_transaction, make_event):
    scorer = MealContextScorer(CONFIG.meal)
    contribution = scorer.score(make_transaction(memo="Team lunch"),
                                make_event("Dentist", "2024-03-05T12:00:00-08:00"))
    assert contribution.score == 0


def test_meal_windows_are_inclusive():
    scorer = MealContextScorer(CONFIG.meal)
    assert scorer.is_meal_time(7)
    assert scorer.is_meal_time(14)
    assert scorer.is_meal_time(21)
    assert not scorer.is_meal_time(15)
    assert not scorer.is_meal_time(22)


def test_business_context_both_sides(make_transaction, make_event):
    scorer = BusinessContextScorer(CONFIG.business)
    contribution = scorer.score(make_transaction(memo="Hotel for summit"),
                                make_event("Sales Summit 2024", "2024-03-05"))
    assert contribution.score == 25
    assert contribution.tier == ConfidenceTier.HIGH
    assert contribution.note == "conference context match"


def test_business_context_scores_first_matching_group_only(make_transaction, make_event):
    scorer = BusinessContextScorer(CONFIG.business)
    # travel matches the memo only, so client (which matches both) is never reached
    contribution = scorer.score(make_transaction(memo="Uber to client office"),
                                make_event("Client demo at Acme", "2024-03-05T10:00:00-08:00"))
    assert contribution.score == 10
    assert contribution.tier == ConfidenceTier.MEDIUM
    assert contribution.note == "Partial travel context"


def test_calendar_source_scorer(make_transaction, make_event):
    scorer = CalendarSourceScorer(CONFIG.calendar_source)
    transaction = make_transaction()

    user = scorer.score(transaction, make_event("Sync", "2024-03-05T10:00:00-08:00"))
    assert (user.score, user.note) == (5, "User personal calendar")

    marketing = scorer.score(transaction, make_event("Launch", "2024-03-05T10:00:00-08:00",
                                                     calendar_source=MARKETING_CALENDAR))
    assert (marketing.score, marketing.note) == (8, "Marketing calendar event")

    team = scorer.score(transaction, make_event("All hands", "2024-03-05T10:00:00-08:00",
                                                calendar_source=TEAM_CALENDAR))
    assert (team.score, team.note) == (6, "Team calendar event")
    assert team.tier == ConfidenceTier.NONE


def test_event_period_within_and_nearby(make_transaction, make_event):
    scorer = EventPeriodScorer(CONFIG.multi_day)
    transaction = make_transaction(purchased_at=date(2024, 3, 5))

    within = scorer.score(transaction, make_event("Summit", "2024-03-04", "2024-03-07"))
    assert (within.score, within.tier) == (40, ConfidenceTier.HIGH)
    assert within.note == "Expense date within event period"

    starts_today = scorer.score(transaction, make_event("Summit", "2024-03-05", "2024-03-08"))
    assert starts_today.score == 40

    before = scorer.score(transaction, make_event("Summit", "2024-03-06", "2024-03-09"))
    assert (before.score, before.tier) == (20, ConfidenceTier.MEDIUM)
    assert before.note == "1 days before event start"

    after = scorer.score(transaction, make_event("Summit", "2024-03-01T09:00:00-08:00",
                                                 "2024-03-03T17:00:00-08:00"))
    assert (after.score, after.tier) == (15, ConfidenceTier.MEDIUM)
    assert after.note == "2 days after event end"


def test_event_period_too_far(make_transaction, make_event):
    scorer = EventPeriodScorer(CONFIG.multi_day)
    transaction = make_transaction(purchased_at=date(2024, 3, 5))

    assert scorer.score(transaction, make_event("Summit", "2024-03-08", "2024-03-10")).score == 0
    assert scorer.score(transaction, make_event("Summit", "2024-02-20", "2024-02-22")).score == 0


def test_trip_context(make_transaction, make_event):
    scorer = TripContextScorer(CONFIG.multi_day)
    event = make_event("Sales Summit", "2024-03-04", "2024-03-07")

    both = scorer.score(make_transaction(memo="Flight to the summit"), event)
    assert (both.score, both.tier, both.note) == (35, ConfidenceTier.HIGH, "Business trip context match")

    event_only = scorer.score(make_transaction(memo="Hotel stay"), event)
    assert (event_only.score, event_only.tier, event_only.note) == (25, ConfidenceTier.MEDIUM,
                                                                    "Event has trip context")

    memo_only = scorer.score(make_transaction(memo="Business trip"), make_event("Planning", "2024-03-04", "2024-03-07"))
    assert memo_only.score == 0


def test_trip_location(make_transaction, make_event):
    scorer = TripLocationScorer(CONFIG.multi_day, CONFIG.location.broad_terms)

    exact = scorer.score(make_transaction(location_name="Marriott Marquis, San Francisco"),
                         make_event("Summit", "2024-03-04", "2024-03-07", location="Moscone Center, San Francisco"))
    assert (exact.score, exact.note) == (30, "Location match")

    broad = scorer.score(make_transaction(location_name="Joe's Diner, USA"),
                         make_event("Summit", "2024-03-04", "2024-03-07", location="Office, USA"))
    assert (broad.score, broad.note) == (20, "Geographic area match")


def test_travel_expense_type_first_group_wins(make_transaction, make_event):
    scorer = TravelExpenseTypeScorer(CONFIG.multi_day)
    event = make_event("Summit", "2024-03-04", "2024-03-07")

    contribution = scorer.score(make_transaction(memo="Hotel dinner"), event)

    assert contribution.score == 15
    assert contribution.note == "accommodation expense type"
    assert contribution.tier == ConfidenceTier.NONE


def test_multi_day_bonus_always_applies(make_transaction, make_event):
    scorer = MultiDayBonusScorer(CONFIG.multi_day)
    contribution = scorer.score(make_transaction(), make_event("Summit", "2024-03-04", "2024-03-07"))
    assert (contribution.score, contribution.note) == (10, "Multi-day event bonus")


def test_multi_day_calendar_source_has_no_user_bonus(make_transaction, make_event):
    scorer = multi_day_scorers(CONFIG)[-1]
    transaction = make_transaction()

    assert scorer.score(transaction, make_event("Summit", "2024-03-04", "2024-03-07")).score == 0
    marketing = scorer.score(transaction, make_event("Summit", "2024-03-04", "2024-03-07",
                                                     calendar_source=MARKETING_CALENDAR))
    assert (marketing.score, marketing.note) == (8, "Marketing calendar")


def test_fold_single_day_scorers(make_transaction, make_event):
    candidate = fold_scorers(single_day_scorers(CONFIG), make_transaction(memo="Team lunch"),
                             make_event("Weekly team sync", "2024-03-05T12:00:00-08:00"))

    assert candidate.score == 75
    assert candidate.tier == ConfidenceTier.HIGH
    assert candidate.reasoning == [
        "Text match: team",
        "Meal expense during meeting time",
        "team context match",
        "User personal calendar",
    ]


def test_fold_without_signals_stays_low(make_transaction, make_event):
    candidate = fold_scorers(single_day_scorers(CONFIG), make_transaction(memo="Office supplies"),
                             make_event("Dentist", "2024-03-05T15:00:00-08:00",
                                        calendar_source=MARKETING_CALENDAR.replace("marketing", "misc")))
    assert candidate.score == 0
    assert candidate.tier == ConfidenceTier.LOW
    assert candidate.reasoning == []
