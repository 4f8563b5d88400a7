import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, time, tzinfo
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote
from zoneinfo import ZoneInfo

import aiohttp
from pydantic import ValidationError

from core.match_config import MatchingConfig
from models.calendar_event import CalendarEvent

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"

END_OF_DAY = time(23, 59, 59, 999000)


class CalendarFetchError(Exception):
    """Raised by an event source when one calendar cannot be read."""

    def __init__(self, calendar_id: str, message: str, status: Optional[int] = None):
        super().__init__(f"{calendar_id}: {message}")
        self.calendar_id = calendar_id
        self.status = status


class EventSource(ABC):
    """Raw access to one calendar's events."""

    @abstractmethod
    async def list_events(self, calendar_id: str, time_min: datetime, time_max: datetime) -> List[Dict[str, Any]]:
        """Return raw event items of one calendar between two instants."""
        pass


class GoogleCalendarEventSource(EventSource):
    """Google Calendar v3 REST client authorised with an OAuth access token."""

    def __init__(self, access_token: str, config: Optional[Dict[str, Any]] = None):
        if not access_token:
            raise ValueError("Google Calendar access token is required")

        calendar_config = (config or {}).get("google_calendar", {})
        self.access_token = access_token
        self.base_url = calendar_config.get("base_url", GOOGLE_CALENDAR_API_BASE)
        self.max_results = calendar_config.get("max_results", 100)

    def _build_params(self, time_min: datetime, time_max: datetime) -> Dict[str, str]:
        return {
            'timeMin': time_min.isoformat(timespec='milliseconds'),
            'timeMax': time_max.isoformat(timespec='milliseconds'),
            'singleEvents': 'true',
            'orderBy': 'startTime',
            'maxResults': str(self.max_results),
        }

    async def list_events(self, calendar_id, time_min, time_max):
        url = f"{self.base_url}/calendars/{quote(calendar_id, safe='')}/events"
        headers = {
            'Authorization': f'Bearer {self.access_token}',
            'Accept': 'application/json',
        }

        async with aiohttp.ClientSession() as session:
            async with session.get(url, headers=headers, params=self._build_params(time_min, time_max)) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise CalendarFetchError(calendar_id, f"API returned status {response.status}: {error_text}",
                                             response.status)
                data = await response.json()

        return data.get('items', []) if isinstance(data, dict) else []


class CalendarEventFetcher:
    """Collects events for an identity from its own calendar plus the shared calendars."""

    def __init__(self, source: EventSource, config: MatchingConfig):
        self.source = source
        self.config = config

    def _local_zone(self) -> Optional[tzinfo]:
        if self.config.time_zone:
            return ZoneInfo(self.config.time_zone)
        return None

    def day_bounds(self, start_day: date, end_day: date) -> Tuple[datetime, datetime]:
        """Start of the first day and last millisecond of the last day, local time."""
        zone = self._local_zone()
        time_min = datetime.combine(start_day, time.min)
        time_max = datetime.combine(end_day, END_OF_DAY)
        if zone is None:
            return time_min.astimezone(), time_max.astimezone()
        return time_min.replace(tzinfo=zone), time_max.replace(tzinfo=zone)

    def calendars_for(self, identity: str) -> List[str]:
        return [identity] + [c for c in self.config.shared_calendars if c != identity]

    def convert_items(self, items: List[Dict[str, Any]], calendar_id: str, identity: str) -> List[CalendarEvent]:
        """Turn raw API items into events; a malformed item is logged and dropped."""
        zone = self._local_zone()
        events: List[CalendarEvent] = []
        for item in items:
            try:
                events.append(CalendarEvent.from_api(item, calendar_id, identity, zone=zone))
            except (ValidationError, TypeError) as e:
                logger.warning(f"Skipping malformed event {item.get('id')!r} from {calendar_id}: {e}")
        return events

    async def fetch_events(self, identity: str, start_day: date, end_day: date) -> List[CalendarEvent]:
        """Fetch and stamp events of every calendar; a failing calendar is skipped."""
        time_min, time_max = self.day_bounds(start_day, end_day)
        calendars = self.calendars_for(identity)
        logger.info(f"Checking calendars for {identity} from {start_day} to {end_day}: {calendars}")

        all_events: List[CalendarEvent] = []
        for calendar_id in calendars:
            try:
                items = await asyncio.wait_for(
                    self.source.list_events(calendar_id, time_min, time_max),
                    timeout=self.config.request_timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(f"Timed out fetching events from {calendar_id}")
                continue
            except Exception as e:
                logger.error(f"Error fetching events from {calendar_id}: {e}")
                continue

            events = self.convert_items(items, calendar_id, identity)
            logger.info(f"Found {len(events)} events in {calendar_id}")
            all_events.extend(events)

        logger.info(f"Total events found across all calendars: {len(all_events)}")
        return all_events
