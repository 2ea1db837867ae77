from __future__ import annotations

from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from ..config import ISO_DATE_RE
from ..errors import AuthError, CalendarAssistantError
from ..gcal import CalendarClient
from ..models import CalendarEvent, FunctionCallResponse, TimeInfo
from ..utils import _log_debug, build_time_info, parse_range_bound, start_of_day
from .executor import OperationExecutor
from .schemas import EventDetails

_EVENT_PROPERTIES: Dict[str, Any] = {
    "summary": {"type": "STRING", "description": "Event title"},
    "description": {"type": "STRING", "description": "Event description"},
    "location": {"type": "STRING", "description": "Event location"},
    "startDateTime": {
        "type": "STRING",
        "description": "Start in YYYY-MM-DDTHH:MM:SS local time",
    },
    "endDateTime": {
        "type": "STRING",
        "description": "End in YYYY-MM-DDTHH:MM:SS local time",
    },
    "timeZone": {"type": "STRING", "description": "IANA timezone, e.g. America/Los_Angeles"},
}

FUNCTION_DECLARATIONS: List[Dict[str, Any]] = [
    {
        "name": "getCalendarEvents",
        "description": 'Return all events on the calendar between "startDate" (inclusive) and "endDate" (exclusive)',
        "parameters": {
            "type": "OBJECT",
            "properties": {
                "startDate": {"type": "STRING", "description": "Start date in YYYY-MM-DD format"},
                "endDate": {"type": "STRING", "description": "End date in YYYY-MM-DD format"},
            },
            "required": ["startDate", "endDate"],
        },
    },
    {
        "name": "createCalendarEvent",
        "description": "Add a new event to the calendar given all the details",
        "parameters": {
            "type": "OBJECT",
            "properties": dict(_EVENT_PROPERTIES),
            "required": ["summary", "startDateTime", "endDateTime"],
        },
    },
    {
        "name": "updateCalendarEvent",
        "description": "Change an existing calendar event; only the given fields are modified",
        "parameters": {
            "type": "OBJECT",
            "properties": {
                "eventId": {"type": "STRING", "description": "Event ID"},
                **_EVENT_PROPERTIES,
            },
            "required": ["eventId"],
        },
    },
    {
        "name": "deleteCalendarEvent",
        "description": "Delete an event from the calendar given the event ID",
        "parameters": {
            "type": "OBJECT",
            "properties": {
                "eventId": {"type": "STRING", "description": "Event ID"},
            },
            "required": ["eventId"],
        },
    },
]

FUNCTION_NAMES = [decl["name"] for decl in FUNCTION_DECLARATIONS]


def _event_payload(event: CalendarEvent) -> Dict[str, Any]:
  return event.model_dump(by_alias=True, exclude_none=True)


class CalendarFunctions:
  """Dispatches the four calendar function calls by name, bypassing the LLM."""

  def __init__(self, client: CalendarClient) -> None:
    self.client = client
    self.executor = OperationExecutor(client)
    self._handlers: Dict[str, Callable[[Dict[str, Any], str, TimeInfo], Any]] = {
        "getCalendarEvents": self._get_events,
        "createCalendarEvent": self._create_event,
        "updateCalendarEvent": self._update_event,
        "deleteCalendarEvent": self._delete_event,
    }

  def call(self, name: str, args: Optional[Dict[str, Any]], user_id: str,
           time_info: Optional[TimeInfo] = None) -> FunctionCallResponse:
    handler = self._handlers.get(name)
    if handler is None:
      return FunctionCallResponse(success=False, error=f"Unknown function: {name}")
    info = time_info or build_time_info()
    _log_debug(f"[FUNCTION] {name} args={args}")
    try:
      data = handler(dict(args or {}), user_id, info)
    except AuthError:
      raise
    except (CalendarAssistantError, ValidationError, ValueError) as exc:
      return FunctionCallResponse(success=False, error=str(exc))
    return FunctionCallResponse(success=True, data=data)

  def _get_events(self, args: Dict[str, Any], user_id: str,
                  time_info: TimeInfo) -> List[Dict[str, Any]]:
    tz = ZoneInfo(time_info.timezone)
    start = parse_range_bound(args.get("startDate"), tz, is_end=False)
    raw_end = str(args.get("endDate") or "").strip()
    if ISO_DATE_RE.match(raw_end):
      end = start_of_day(parse_range_bound(raw_end, tz, is_end=False).date(), tz)
    else:
      end = parse_range_bound(raw_end, tz, is_end=True)
    if start is None or end is None:
      raise ValueError("startDate and endDate are required (YYYY-MM-DD).")
    if end <= start:
      end = start + timedelta(days=1)
    events = self.client.list_events(user_id, start, end)
    return [_event_payload(event) for event in events]

  def _create_event(self, args: Dict[str, Any], user_id: str,
                    time_info: TimeInfo) -> Dict[str, Any]:
    details = EventDetails.model_validate(args)
    body = self.executor.build_event_body(details, time_info)
    return _event_payload(self.client.create_event(user_id, body))

  def _update_event(self, args: Dict[str, Any], user_id: str,
                    time_info: TimeInfo) -> Dict[str, Any]:
    event_id = str(args.pop("eventId", "") or "").strip()
    if not event_id:
      raise ValueError("eventId is required.")
    details = EventDetails.model_validate(args)
    current = CalendarEvent.model_validate(self.client.get_event(user_id, event_id))
    partial = self.executor.build_update_partial(current, details, time_info)
    return _event_payload(self.client.update_event(user_id, event_id, partial))

  def _delete_event(self, args: Dict[str, Any], user_id: str,
                    time_info: TimeInfo) -> Dict[str, Any]:
    event_id = str(args.get("eventId") or "").strip()
    if not event_id:
      raise ValueError("eventId is required.")
    self.client.delete_event(user_id, event_id)
    return {"eventId": event_id, "deleted": True}
