from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from ..config import (
    DEFAULT_EVENT_MINUTES,
    DELETE_RANGE_DAYS,
    UPDATE_RANGE_DAYS,
    VIEW_RANGE_DAYS,
)
from ..errors import AuthError, CalendarAssistantError
from ..gcal import CalendarClient
from ..models import CalendarEvent, TimeInfo
from ..utils import (
    _compute_all_day_bounds,
    _log_debug,
    forward_range,
    format_event_datetime,
    parse_event_datetime,
    parse_range_bound,
    resolve_timezone,
    start_of_day,
)
from .event_matcher import match_events
from .schemas import (
    CreateOperation,
    DeleteOperation,
    EventDetails,
    Intent,
    ItemResult,
    OperationResult,
    TimeRange,
    UpdateOperation,
    ViewOperation,
)

_EXECUTION_ORDER = {"create": 0, "update": 1, "view": 2, "delete": 3}
_DEFAULT_RANGE_DAYS = {
    "view": VIEW_RANGE_DAYS,
    "update": UPDATE_RANGE_DAYS,
    "delete": DELETE_RANGE_DAYS,
}


def _execution_order(operations: List[Any]) -> List[Any]:
  return sorted(operations, key=lambda op: _EXECUTION_ORDER.get(op.type, 99))


def _row(event: CalendarEvent, success: bool = True,
         error: Optional[str] = None) -> ItemResult:
  return ItemResult(id=event.id, summary=event.summary or "", success=success,
                    error=error, start=event.start_value(), end=event.end_value())


def _no_match_error(identifiers: List[str]) -> str:
  named = ", ".join(item.strip() for item in identifiers if item and item.strip())
  return f"No events matched {named or 'the request'} in the requested time range."


def _event_duration(event: CalendarEvent, tz: ZoneInfo) -> Optional[timedelta]:
  if not event.start.date_time or not event.end.date_time:
    return None
  start = parse_event_datetime(event.start.date_time, tz)
  end = parse_event_datetime(event.end.date_time, tz)
  if end <= start:
    return None
  return end - start


class OperationExecutor:
  """Runs Intent operations against the calendar, one call at a time."""

  def __init__(self, client: CalendarClient) -> None:
    self.client = client

  def execute(self, intent: Intent, user_id: str,
              time_info: TimeInfo) -> List[OperationResult]:
    results: List[OperationResult] = []
    for operation in _execution_order(list(intent.operations)):
      _log_debug(f"[EXECUTOR] running {operation.type}")
      if isinstance(operation, CreateOperation):
        results.append(self._create(operation, user_id, time_info))
      elif isinstance(operation, UpdateOperation):
        results.append(self._update(operation, user_id, time_info))
      elif isinstance(operation, ViewOperation):
        results.append(self._view(operation, user_id, time_info))
      elif isinstance(operation, DeleteOperation):
        results.append(self._delete(operation, user_id, time_info))
    return results

  # -------------------------
  # ranges
  # -------------------------
  def resolve_range(self, time_range: Optional[TimeRange], op_type: str,
                    time_info: TimeInfo) -> Tuple[datetime, datetime]:
    days = _DEFAULT_RANGE_DAYS[op_type]
    default_start, default_end = forward_range(time_info, days)
    if time_range is None:
      return default_start, default_end
    tz = ZoneInfo(time_info.timezone)
    start = parse_range_bound(time_range.start, tz, is_end=False) or default_start
    end = parse_range_bound(time_range.end, tz, is_end=True)
    if end is None:
      end = start_of_day(start.astimezone(tz).date() + timedelta(days=days), tz)
    return start, end

  def _list(self, user_id: str, op_type: str, time_range: Optional[TimeRange],
            time_info: TimeInfo) -> List[CalendarEvent]:
    start, end = self.resolve_range(time_range, op_type, time_info)
    return self.client.list_events(user_id, start, end)

  # -------------------------
  # create
  # -------------------------
  def build_event_body(self, details: EventDetails,
                       time_info: TimeInfo) -> Dict[str, Any]:
    if not details.startDateTime:
      raise ValueError("Event start time is missing.")
    timezone_name = resolve_timezone(details.timeZone or time_info.timezone)
    body: Dict[str, Any] = {"summary": details.summary or "New event"}
    if details.description:
      body["description"] = details.description
    if details.location:
      body["location"] = details.location

    if details.isAllDay:
      start_date, end_date = _compute_all_day_bounds(details.startDateTime,
                                                     details.endDateTime)
      body["start"] = {"date": start_date.isoformat()}
      body["end"] = {"date": end_date.isoformat()}
      return body

    tz = ZoneInfo(timezone_name)
    start = parse_event_datetime(details.startDateTime, tz)
    if details.endDateTime:
      end = parse_event_datetime(details.endDateTime, tz)
    else:
      end = start + timedelta(minutes=DEFAULT_EVENT_MINUTES)
    body["start"] = {"dateTime": format_event_datetime(start.astimezone(tz)),
                     "timeZone": timezone_name}
    body["end"] = {"dateTime": format_event_datetime(end.astimezone(tz)),
                   "timeZone": timezone_name}
    return body

  def _create(self, operation: CreateOperation, user_id: str,
              time_info: TimeInfo) -> OperationResult:
    rows: List[ItemResult] = []
    for details in operation.items():
      summary = details.summary or "New event"
      try:
        body = self.build_event_body(details, time_info)
        created = self.client.create_event(user_id, body)
      except AuthError:
        raise
      except Exception as exc:
        _log_debug(f"[EXECUTOR] create failed for {summary!r}: {exc}")
        rows.append(ItemResult(summary=summary, success=False, error=str(exc),
                               start=details.startDateTime,
                               end=details.endDateTime))
        continue
      rows.append(_row(created))
    if not rows:
      return OperationResult(type="create", success=False, events=[],
                             error="No event details were provided.")
    return OperationResult(type="create",
                           success=any(row.success for row in rows),
                           events=rows)

  # -------------------------
  # update
  # -------------------------
  def build_update_partial(self, event: CalendarEvent, details: EventDetails,
                           time_info: TimeInfo) -> Dict[str, Any]:
    partial: Dict[str, Any] = {}
    for field in ("summary", "description", "location"):
      value = getattr(details, field)
      if value is not None:
        partial[field] = value

    if not details.startDateTime and not details.endDateTime:
      return partial

    timezone_name = resolve_timezone(details.timeZone or event.start.time_zone
                                     or time_info.timezone)
    tz = ZoneInfo(timezone_name)

    if details.isAllDay and details.startDateTime:
      start_date, end_date = _compute_all_day_bounds(details.startDateTime,
                                                     details.endDateTime)
      partial["start"] = {"date": start_date.isoformat()}
      partial["end"] = {"date": end_date.isoformat()}
      return partial

    if details.startDateTime:
      start = parse_event_datetime(details.startDateTime, tz)
      if details.endDateTime:
        end = parse_event_datetime(details.endDateTime, tz)
      else:
        duration = _event_duration(event, tz) or timedelta(minutes=DEFAULT_EVENT_MINUTES)
        end = start + duration
      partial["start"] = {"dateTime": format_event_datetime(start.astimezone(tz)),
                          "timeZone": timezone_name}
      partial["end"] = {"dateTime": format_event_datetime(end.astimezone(tz)),
                        "timeZone": timezone_name}
    else:
      end = parse_event_datetime(details.endDateTime, tz)
      partial["end"] = {"dateTime": format_event_datetime(end.astimezone(tz)),
                        "timeZone": timezone_name}
    return partial

  def _update(self, operation: UpdateOperation, user_id: str,
              time_info: TimeInfo) -> OperationResult:
    try:
      events = self._list(user_id, "update", operation.timeRange, time_info)
    except AuthError:
      raise
    except CalendarAssistantError as exc:
      return OperationResult(type="update", success=False, updates=[],
                             error=str(exc))

    matched = match_events(events, operation.eventIdentifiers)
    if not matched:
      return OperationResult(
          type="update", success=False, updates=[],
          error=_no_match_error(operation.eventIdentifiers))

    rows: List[ItemResult] = []
    for event in matched:
      try:
        partial = self.build_update_partial(event, operation.eventDetails, time_info)
        updated = self.client.update_event(user_id, event.id, partial)
      except AuthError:
        raise
      except Exception as exc:
        _log_debug(f"[EXECUTOR] update failed for {event.id}: {exc}")
        rows.append(_row(event, success=False, error=str(exc)))
        continue
      rows.append(_row(updated))
    return OperationResult(type="update",
                           success=any(row.success for row in rows),
                           updates=rows)

  # -------------------------
  # view
  # -------------------------
  def _view(self, operation: ViewOperation, user_id: str,
            time_info: TimeInfo) -> OperationResult:
    try:
      events = self._list(user_id, "view", operation.timeRange, time_info)
    except AuthError:
      raise
    except CalendarAssistantError as exc:
      return OperationResult(type="view", success=False, events=[], error=str(exc))
    return OperationResult(type="view", success=True,
                           events=[_row(event) for event in events])

  # -------------------------
  # delete
  # -------------------------
  def _delete(self, operation: DeleteOperation, user_id: str,
              time_info: TimeInfo) -> OperationResult:
    try:
      events = self._list(user_id, "delete", operation.timeRange, time_info)
    except AuthError:
      raise
    except CalendarAssistantError as exc:
      return OperationResult(type="delete", success=False, deletions=[],
                             error=str(exc))

    matched = match_events(events, operation.eventIdentifiers)
    if not matched:
      return OperationResult(
          type="delete", success=False, deletions=[],
          error=_no_match_error(operation.eventIdentifiers))

    rows: List[ItemResult] = []
    for event in matched:
      try:
        self.client.delete_event(user_id, event.id)
      except AuthError:
        raise
      except Exception as exc:
        _log_debug(f"[EXECUTOR] delete failed for {event.id}: {exc}")
        rows.append(_row(event, success=False, error=str(exc)))
        continue
      rows.append(_row(event))
    return OperationResult(type="delete",
                           success=any(row.success for row in rows),
                           deletions=rows)
