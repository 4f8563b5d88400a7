from datetime import date
from unittest.mock import AsyncMock

import pytest

from core.ai_event_matcher import GeminiEventMatcher
from core.calendar_enricher import MATCH_ERROR_REASONING, CalendarEnricher
from core.calendar_event_source import CalendarEventFetcher

USER = "janedoe@anduintransact.com"
MARKETING_CALENDAR = "marketing-events@group.calendar.google.com"


class BrokenForOneUserFetcher(CalendarEventFetcher):
    async def fetch_events(self, identity, start_day, end_day):
        if identity == "broken@anduintransact.com":
            raise RuntimeError("calendar backend exploded")
        return await super().fetch_events(identity, start_day, end_day)


@pytest.mark.asyncio
async def test_strong_multi_day_match_is_used(config, make_fetcher, make_item, make_transaction):
    fetcher = make_fetcher({USER: [make_item("Sales Summit", "2024-03-04", "2024-03-07")]})
    enricher = CalendarEnricher(fetcher, config)

    result = await enricher.match(make_transaction(memo="Hotel stay"))

    assert result.event.summary == "Sales Summit"
    assert result.confidence == "high"
    assert not result.reasoning_text.startswith("Single-day")


@pytest.mark.asyncio
async def test_same_day_fallback_inside_multi_day_window(config, make_fetcher, make_item, make_transaction):
    fetcher = make_fetcher({USER: [make_item("Weekly team sync", "2024-03-05T12:00:00-08:00")]})
    enricher = CalendarEnricher(fetcher, config)

    result = await enricher.match(make_transaction(memo="Team lunch"))

    assert result.event.summary == "Weekly team sync"
    assert result.confidence == "high"
    assert result.reasoning_text.startswith("Single-day fallback: ")


@pytest.mark.asyncio
async def test_weak_multi_day_replaced_by_better_single_day(config, make_fetcher, make_item, make_transaction):
    fetcher = make_fetcher({
        USER: [make_item("Weekly team sync", "2024-03-05T12:00:00-08:00")],
        MARKETING_CALENDAR: [make_item("Quarterly planning", "2024-02-26", "2024-02-29")],
    })
    enricher = CalendarEnricher(fetcher, config)

    result = await enricher.match(make_transaction(memo="Team lunch"))

    assert result.event.summary == "Weekly team sync"
    assert result.confidence == "high"
    assert result.reasoning_text == (
        "Single-day match: Text match: team; Meal expense during meeting time; "
        "team context match; User personal calendar"
    )


@pytest.mark.asyncio
async def test_weak_multi_day_kept_without_single_day_candidate(config, make_fetcher, make_item, make_transaction):
    fetcher = make_fetcher({MARKETING_CALENDAR: [make_item("Quarterly planning", "2024-02-26", "2024-02-29")]})
    enricher = CalendarEnricher(fetcher, config)

    result = await enricher.match(make_transaction(memo="Team lunch"))

    assert result.event.summary == "Quarterly planning"
    assert result.confidence == "low"
    assert result.reasoning == ["meals expense type", "Multi-day event bonus", "Marketing calendar"]


@pytest.mark.asyncio
async def test_no_events_anywhere(config, make_fetcher, make_transaction):
    enricher = CalendarEnricher(make_fetcher(), config)

    enriched = await enricher.enrich_one(make_transaction())

    assert enriched.calendar_event is None
    assert enriched.calendar_match_confidence is None
    assert enriched.calendar_match_reasoning == "No events found in 7-day window"
    assert enriched.memo == "Team lunch"


@pytest.mark.asyncio
async def test_batch_isolates_failures_and_keeps_order(config, make_source, make_item, make_transaction):
    source_items = {USER: [make_item("Sales Summit", "2024-03-04", "2024-03-07")]}
    fetcher = BrokenForOneUserFetcher(make_source(source_items), config)
    enricher = CalendarEnricher(fetcher, config)
    transactions = [
        make_transaction(transaction_id="a", memo="Hotel stay"),
        make_transaction(transaction_id="b", user_email="broken@anduintransact.com"),
        make_transaction(transaction_id="c", memo="Hotel stay"),
    ]

    enriched = await enricher.enrich_all(transactions)

    assert [t.transaction_id for t in enriched] == ["a", "b", "c"]
    assert enriched[0].calendar_event.summary == "Sales Summit"
    assert enriched[1].calendar_event is None
    assert enriched[1].calendar_match_confidence is None
    assert enriched[1].calendar_match_reasoning == MATCH_ERROR_REASONING
    assert enriched[2].calendar_event.summary == "Sales Summit"


@pytest.mark.asyncio
async def test_enrichment_is_repeatable(config, make_fetcher, make_item, make_transaction):
    fetcher = make_fetcher({USER: [make_item("Weekly team sync", "2024-03-05T12:00:00-08:00")]})
    enricher = CalendarEnricher(fetcher, config)
    transaction = make_transaction()

    first = await enricher.enrich_one(transaction)
    second = await enricher.enrich_one(transaction)

    assert first.model_dump() == second.model_dump()


@pytest.mark.asyncio
async def test_ai_match_used_when_model_finds_event(config, make_fetcher, make_item, make_transaction):
    fetcher = make_fetcher({USER: [make_item("Weekly team sync", "2024-03-05T12:00:00-08:00")]})
    client = AsyncMock()
    client.generate.return_value = '{"confidence": "medium", "reasoning": "Lunch during sync", "matchedEventId": "1"}'
    enricher = CalendarEnricher(fetcher, config, ai_matcher=GeminiEventMatcher(client))

    result = await enricher.match(make_transaction())

    assert result.event.summary == "Weekly team sync"
    assert result.confidence == "medium"
    assert result.reasoning_text == "AI match: Lunch during sync"


@pytest.mark.asyncio
async def test_rules_used_when_model_finds_nothing(config, make_fetcher, make_item, make_transaction):
    fetcher = make_fetcher({USER: [make_item("Weekly team sync", "2024-03-05T12:00:00-08:00")]})
    client = AsyncMock()
    client.generate.return_value = '{"confidence": "none", "reasoning": "Unrelated", "matchedEventId": null}'
    enricher = CalendarEnricher(fetcher, config, ai_matcher=GeminiEventMatcher(client))

    result = await enricher.match(make_transaction())

    assert result.confidence == "high"
    assert result.reasoning_text.startswith("Single-day fallback: ")


@pytest.mark.asyncio
async def test_team_lunch_at_the_sync_venue(config, make_fetcher, make_item, make_transaction):
    fetcher = make_fetcher({USER: [make_item("Weekly Team Sync", "2024-03-05T12:00:00-08:00",
                                             location="Olive Garden downtown")]})
    enricher = CalendarEnricher(fetcher, config)

    enriched = await enricher.enrich_one(make_transaction(memo="Team lunch at Olive Garden",
                                                          location_name="Olive Garden"))

    assert enriched.calendar_match_confidence == "high"
    assert enriched.calendar_event.summary == "Weekly Team Sync"


@pytest.mark.asyncio
async def test_unrelated_same_day_event_is_not_matched(config, make_fetcher, make_item, make_transaction):
    fetcher = make_fetcher({USER: [make_item("Birthday party", "2024-03-05T18:00:00-08:00")]})
    enricher = CalendarEnricher(fetcher, config)

    enriched = await enricher.enrich_one(make_transaction(memo="Office supplies"))

    assert enriched.calendar_event is None
    assert enriched.calendar_match_confidence is None


@pytest.mark.asyncio
async def test_travel_the_day_before_a_summit(config, make_fetcher, make_item, make_transaction):
    fetcher = make_fetcher({USER: [make_item("Sales Summit", "2024-03-04", "2024-03-07")]})
    enricher = CalendarEnricher(fetcher, config)

    enriched = await enricher.enrich_one(make_transaction(memo="Travel booking", purchased_at=date(2024, 3, 3)))

    assert enriched.calendar_event.summary == "Sales Summit"
    assert enriched.calendar_match_confidence in ("medium", "high")
    assert "1 days before event start" in enriched.calendar_match_reasoning


@pytest.mark.asyncio
async def test_same_day_review_preferred_over_earlier_planning_block(config, make_fetcher, make_item,
                                                                     make_transaction):
    fetcher = make_fetcher({USER: [
        make_item("Planning", "2024-03-01", "2024-03-04"),
        make_item("Quarterly budget review", "2024-03-05T15:00:00-08:00"),
    ]})
    enricher = CalendarEnricher(fetcher, config)

    enriched = await enricher.enrich_one(make_transaction(memo="Quarterly budget review"))

    assert enriched.calendar_event.summary == "Quarterly budget review"
    assert enriched.calendar_match_confidence == "high"
    assert enriched.calendar_match_reasoning.startswith("Single-day fallback: ")
