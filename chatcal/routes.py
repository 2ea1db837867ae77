from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from .config import SESSION_COOKIE_NAME, USER_ID_HEADER
from .errors import AuthError, ProviderError, SessionBusyError
from .models import (
    CalendarEvent,
    ChatRequest,
    ChatResponse,
    EventCreate,
    EventUpdate,
    FunctionCallRequest,
    FunctionCallResponse,
)
from .services import Services
from .utils import (
    _log_debug,
    build_time_info,
    end_of_day,
    parse_range_bound,
    resolve_timezone,
    start_of_day,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def get_services(request: Request) -> Services:
  return request.app.state.services


def require_user_id(request: Request) -> str:
  user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
  if not user_id:
    user_id = (request.cookies.get(SESSION_COOKIE_NAME) or "").strip()
  if not user_id:
    raise HTTPException(status_code=401, detail="Google login is required.")
  return user_id


def _http_error(exc: Exception, action: str) -> HTTPException:
  if isinstance(exc, AuthError):
    return HTTPException(status_code=401, detail=str(exc))
  if isinstance(exc, ProviderError):
    logger.exception("%s failed with provider status %s", action, exc.status_code)
    return HTTPException(status_code=502, detail=str(exc))
  logger.exception("%s failed", action)
  return HTTPException(status_code=500, detail=f"{action} failed: {exc}")


def _event_payload(event: CalendarEvent) -> Dict[str, Any]:
  return event.model_dump(by_alias=True, exclude_none=True)


def _current_week_bounds(timezone_name: Optional[str]) -> tuple:
  tz = ZoneInfo(resolve_timezone(timezone_name))
  today = datetime.now(tz).date()
  # weeks run Sunday through Saturday
  sunday = today - timedelta(days=(today.weekday() + 1) % 7)
  return start_of_day(sunday, tz), end_of_day(sunday + timedelta(days=6), tz)


@router.get("/api/health")
def health():
  return {"ok": True}


# -------------------------
# Chat
# -------------------------
@router.post("/api/chat", response_model=ChatResponse, response_model_exclude_none=True)
async def chat(body: ChatRequest,
               user_id: str = Depends(require_user_id),
               services: Services = Depends(get_services)):
  if not body.message.strip():
    raise HTTPException(status_code=400, detail="message is empty.")
  try:
    return await services.orchestrator.handle_turn(user_id, body)
  except SessionBusyError as exc:
    raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.post("/api/calendar/function", response_model=FunctionCallResponse,
             response_model_exclude_none=True)
def calendar_function(body: FunctionCallRequest,
                      user_id: str = Depends(require_user_id),
                      services: Services = Depends(get_services)):
  _log_debug(f"[FUNCTION] direct call {body.function_name}")
  try:
    return services.functions.call(body.function_name, body.args, user_id,
                                   build_time_info())
  except Exception as exc:
    raise _http_error(exc, body.function_name) from exc


# -------------------------
# Calendar
# -------------------------
@router.get("/api/calendar/events/week")
def current_week_events(timezone: Optional[str] = Query(None),
                        user_id: str = Depends(require_user_id),
                        services: Services = Depends(get_services)):
  start, end = _current_week_bounds(timezone)
  try:
    events = services.calendar.list_events(user_id, start, end)
  except Exception as exc:
    raise _http_error(exc, "List events") from exc
  return [_event_payload(event) for event in events]


@router.get("/api/calendar/events")
def events_for_range(start: str = Query(...),
                     end: str = Query(...),
                     timezone: Optional[str] = Query(None),
                     user_id: str = Depends(require_user_id),
                     services: Services = Depends(get_services)):
  tz = ZoneInfo(resolve_timezone(timezone))
  range_start = parse_range_bound(start, tz, is_end=False)
  range_end = parse_range_bound(end, tz, is_end=True)
  if range_start is None or range_end is None:
    raise HTTPException(status_code=400, detail="start and end must be ISO dates or datetimes.")
  if range_end < range_start:
    raise HTTPException(status_code=400, detail="end must not be before start.")
  try:
    events = services.calendar.list_events(user_id, range_start, range_end)
  except Exception as exc:
    raise _http_error(exc, "List events") from exc
  return [_event_payload(event) for event in events]


@router.post("/api/calendar/events")
def create_event(body: EventCreate,
                 user_id: str = Depends(require_user_id),
                 services: Services = Depends(get_services)):
  payload = body.model_dump(by_alias=True, exclude_none=True)
  payload.pop("isAllDay", None)
  try:
    created = services.calendar.create_event(user_id, payload)
  except Exception as exc:
    raise _http_error(exc, "Create event") from exc
  return _event_payload(created)


@router.patch("/api/calendar/events/{event_id}")
def update_event(event_id: str,
                 body: EventUpdate,
                 user_id: str = Depends(require_user_id),
                 services: Services = Depends(get_services)):
  partial = body.model_dump(by_alias=True, exclude_none=True)
  partial.pop("isAllDay", None)
  if not partial:
    raise HTTPException(status_code=400, detail="No fields to update.")
  try:
    updated = services.calendar.update_event(user_id, event_id, partial)
  except Exception as exc:
    raise _http_error(exc, "Update event") from exc
  return _event_payload(updated)


@router.delete("/api/calendar/events/{event_id}")
def delete_event(event_id: str,
                 user_id: str = Depends(require_user_id),
                 services: Services = Depends(get_services)):
  try:
    services.calendar.delete_event(user_id, event_id)
  except Exception as exc:
    raise _http_error(exc, "Delete event") from exc
  return {"success": True}
