import json
import logging
from typing import Sequence

from core.gemini_client import GeminiClient, strip_code_fences
from models.calendar_event import CalendarEvent
from models.match_result import MatchResult
from models.transaction import ReimbursementTransaction

logger = logging.getLogger(__name__)

AI_FAILURE_REASONING = "AI matching failed, falling back to rule-based matching"
VALID_CONFIDENCE = ("high", "medium", "low", "none")


def describe_event(index: int, event: CalendarEvent) -> str:
    start = event.start.date_time.strftime("%I:%M %p") if event.start.date_time else "All day"
    return (
        f"{index}. \"{event.summary or ''}\"\n"
        f"   Time: {start}\n"
        f"   Location: {event.location or 'N/A'}\n"
        f"   Description: {event.description or 'N/A'}\n"
        f"   Attendees: {len(event.attendees)} people\n"
    )


def build_prompt(transaction: ReimbursementTransaction, events: Sequence[CalendarEvent]) -> str:
    listed_events = "".join(describe_event(i, event) for i, event in enumerate(events, start=1))
    return f"""
You are an AI assistant that matches business expenses with calendar events to help with expense categorization and reporting.

EXPENSE DETAILS:
- Date: {transaction.purchased_at.isoformat()}
- Amount: ${transaction.usd_amount}
- Memo: "{transaction.memo}"
- Location: {transaction.location_name or 'N/A'}
- Department: {transaction.department_name or 'N/A'}
- User Email: {transaction.user_email}

CALENDAR EVENTS FOR {transaction.purchased_at.isoformat()}:
{listed_events}
TASK:
Decide which calendar event (if any) the expense most likely relates to, considering semantic
match between memo and event purpose, timing, location clues, business context and attendee count.

CONFIDENCE LEVELS:
- HIGH: Strong semantic match + timing/location alignment
- MEDIUM: Good semantic match OR strong timing/location match
- LOW: Weak but plausible connection
- NONE: No reasonable connection found

RESPONSE FORMAT (JSON only):
{{"confidence": "high|medium|low|none", "reasoning": "Brief explanation", "matchedEventId": "<event number or null>"}}

EXAMPLES:
- Expense memo "Team lunch at Olive Garden" + Calendar event "Weekly Team Sync" at 12pm = HIGH confidence
- Expense memo "Coffee" + Calendar event "1:1 with Sarah" at 10am = MEDIUM confidence
- Expense memo "Office supplies" + Calendar event "Birthday party" = NONE

Respond with JSON only, no additional text.
"""


class GeminiEventMatcher:
    """Asks a language model to pick the calendar event an expense belongs to."""

    def __init__(self, client: GeminiClient):
        self.client = client

    def _parse_reply(self, reply: str, events: Sequence[CalendarEvent]) -> MatchResult:
        match = json.loads(strip_code_fences(reply))
        confidence = str(match.get("confidence", "")).lower()
        if confidence not in VALID_CONFIDENCE:
            raise ValueError(f"Invalid confidence level: {confidence}")

        reasoning = match.get("reasoning") or ""
        event_id = match.get("matchedEventId")
        if confidence == "none" or event_id in (None, "", "null"):
            return MatchResult.no_match(reasoning or "No reasonable connection found")

        index = int(event_id) - 1
        if not 0 <= index < len(events):
            return MatchResult.no_match(f"Model referenced unknown event {event_id}")

        return MatchResult(event=events[index], confidence=confidence, reasoning=[reasoning])

    async def match(self, transaction: ReimbursementTransaction, events: Sequence[CalendarEvent]) -> MatchResult:
        if not events:
            return MatchResult.no_match("No calendar events found for this date")

        try:
            reply = await self.client.generate(build_prompt(transaction, events))
            return self._parse_reply(reply, events)
        except Exception as e:
            logger.error(f"Gemini matching error: {e}")
            return MatchResult.no_match(AI_FAILURE_REASONING)
