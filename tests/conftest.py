import asyncio
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from core.calendar_event_source import CalendarEventFetcher, CalendarFetchError, EventSource
from core.match_config import MatchingConfig
from models.calendar_event import CalendarEvent
from models.transaction import ReimbursementTransaction

USER = "janedoe@anduintransact.com"
MARKETING_CALENDAR = "marketing-events@group.calendar.google.com"
TEAM_CALENDAR = "team-calendar@group.calendar.google.com"


def event_item(summary, start, end=None, location=None, description=None, event_id=None):
    """Calendar API item; dates as YYYY-MM-DD are all-day, anything longer is a date-time."""
    def moment(value):
        return {"date": value} if len(value) == 10 else {"dateTime": value}

    if end is None:
        if len(start) == 10:
            end = (date.fromisoformat(start) + timedelta(days=1)).isoformat()
        else:
            end = (datetime.fromisoformat(start) + timedelta(hours=1)).isoformat()

    item = {
        "id": event_id or summary.lower().replace(" ", "-"),
        "summary": summary,
        "start": moment(start),
        "end": moment(end),
    }
    if location is not None:
        item["location"] = location
    if description is not None:
        item["description"] = description
    return item


def _item_days(item):
    start = CalendarEvent.from_api(item, "", "")
    first_day, last_day = start.start_date, start.end_date
    # All-day end dates are exclusive in the API
    if start.end.is_all_day and last_day > first_day:
        last_day = last_day - timedelta(days=1)
    return first_day, last_day


class InMemoryEventSource(EventSource):
    """Event source backed by a dict of calendar id -> raw items."""

    def __init__(self, items_by_calendar=None, failing=(), slow=(), delay=0.2):
        self.items_by_calendar = items_by_calendar or {}
        self.failing = set(failing)
        self.slow = set(slow)
        self.delay = delay
        self.calls = []

    async def list_events(self, calendar_id, time_min, time_max):
        self.calls.append((calendar_id, time_min, time_max))
        if calendar_id in self.failing:
            raise CalendarFetchError(calendar_id, "API returned status 404: Not Found", 404)
        if calendar_id in self.slow:
            await asyncio.sleep(self.delay)

        window_start, window_end = time_min.date(), time_max.date()
        items = []
        for item in self.items_by_calendar.get(calendar_id, []):
            first_day, last_day = _item_days(item)
            if first_day <= window_end and last_day >= window_start:
                items.append(item)
        return items


@pytest.fixture
def config():
    return MatchingConfig(
        shared_calendars=[MARKETING_CALENDAR, TEAM_CALENDAR],
        time_zone="America/Los_Angeles",
    )


@pytest.fixture
def make_transaction():
    def _make(**overrides):
        fields = {
            "transaction_id": "exp_1",
            "purchased_at": date(2024, 3, 5),
            "usd_amount": Decimal("42.50"),
            "memo": "Team lunch",
            "user_email": USER,
        }
        fields.update(overrides)
        return ReimbursementTransaction(**fields)
    return _make


@pytest.fixture
def make_event():
    def _make(summary, start, end=None, calendar_source=USER, identity=USER, **item_fields):
        return CalendarEvent.from_api(event_item(summary, start, end, **item_fields), calendar_source, identity)
    return _make


@pytest.fixture
def make_fetcher(config):
    def _make(items_by_calendar=None, **source_options):
        source = InMemoryEventSource(items_by_calendar, **source_options)
        return CalendarEventFetcher(source, config)
    return _make


@pytest.fixture
def make_item():
    return event_item


@pytest.fixture
def make_source():
    return InMemoryEventSource
