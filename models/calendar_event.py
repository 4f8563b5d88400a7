from datetime import date, datetime, tzinfo
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EventTime(BaseModel):
    """Start or end of a calendar event: either a date-time or an all-day date."""

    model_config = ConfigDict(populate_by_name=True)

    date_time: Optional[datetime] = Field(default=None, alias="dateTime")
    day: Optional[date] = Field(default=None, alias="date")
    time_zone: Optional[str] = Field(default=None, alias="timeZone")

    @property
    def is_all_day(self) -> bool:
        return self.date_time is None and self.day is not None

    @property
    def calendar_date(self) -> Optional[date]:
        """Calendar day of this moment, in the offset it is expressed in."""
        if self.date_time is not None:
            return self.date_time.date()
        return self.day

    def in_zone(self, zone: Optional[tzinfo]) -> "EventTime":
        """Same moment expressed in another zone; all-day dates are left alone."""
        if zone is None or self.date_time is None:
            return self
        return self.model_copy(update={"date_time": self.date_time.astimezone(zone)})

    @property
    def hour(self) -> int:
        # All-day events have no time component
        if self.date_time is not None:
            return self.date_time.hour
        return 0


class Attendee(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = ""
    display_name: Optional[str] = Field(default=None, alias="displayName")


class CalendarEvent(BaseModel):
    """Read-only projection of an event fetched from a calendar."""

    id: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    start: EventTime = Field(default_factory=EventTime)
    end: EventTime = Field(default_factory=EventTime)
    attendees: List[Attendee] = []
    calendar_source: str = ""
    is_user_calendar: bool = False
    is_multi_day: bool = False
    raw_data: Dict[str, Any] = {}

    @classmethod
    def from_api(cls, item: Dict[str, Any], calendar_source: str, identity: str,
                 zone: Optional[tzinfo] = None) -> "CalendarEvent":
        """Build an event from a Calendar API item and stamp its origin.

        When ``zone`` is given, timed start and end are converted to it before
        the calendar days and the multi-day flag are derived.
        """
        start = EventTime.model_validate(item.get("start") or {}).in_zone(zone)
        end = EventTime.model_validate(item.get("end") or {}).in_zone(zone)
        return cls(
            id=item.get("id"),
            summary=item.get("summary"),
            description=item.get("description"),
            location=item.get("location"),
            start=start,
            end=end,
            attendees=[Attendee.model_validate(a) for a in item.get("attendees", []) if isinstance(a, dict)],
            calendar_source=calendar_source,
            is_user_calendar=calendar_source.lower() == (identity or "").lower(),
            is_multi_day=is_multi_day_span(start, end),
            raw_data=item,
        )

    @property
    def start_date(self) -> Optional[date]:
        return self.start.calendar_date

    @property
    def end_date(self) -> Optional[date]:
        return self.end.calendar_date

    def display(self) -> str:
        """Short label such as "Weekly Team Sync (12:00 PM)"."""
        if self.start.date_time is not None:
            start_time = self.start.date_time.strftime("%I:%M %p")
        else:
            start_time = "All day"
        return f"{self.summary or 'Untitled event'} ({start_time})"


def is_multi_day_span(start: EventTime, end: EventTime) -> bool:
    """True when an event starts and ends on different calendar days."""
    start_day = start.calendar_date
    end_day = end.calendar_date
    if start_day is None or end_day is None:
        return False

    # All-day events carry an exclusive end date, so one day apart is still a single day
    if start.is_all_day and end.is_all_day:
        return (end_day - start_day).days > 1

    return start_day != end_day
