from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

import httplib2
from google.auth.exceptions import TransportError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .config import GOOGLE_CALENDAR_ID, LIST_PAGE_SIZE
from .credentials import CredentialStore
from .errors import AuthError, ProviderError
from .models import CalendarEvent, Credential
from .token_refresher import TokenRefresher
from .utils import _log_debug

ServiceFactory = Callable[[str], Any]

# raised by the HTTP layer before any response arrives
_TRANSPORT_ERRORS = (OSError, httplib2.HttpLib2Error, TransportError)


# -------------------------
# Google Calendar helpers
# -------------------------
def build_calendar_service(access_token: str):
  creds = Credentials(token=access_token)
  return build("calendar", "v3", credentials=creds, cache_discovery=False)


def _http_status(exc: HttpError) -> int:
  try:
    return int(getattr(exc.resp, "status", 0) or 0)
  except (TypeError, ValueError):
    return 0


def _error_payload(exc: HttpError) -> Any:
  content = getattr(exc, "content", b"") or b""
  try:
    text = content.decode("utf-8") if isinstance(content, bytes) else str(content)
  except UnicodeDecodeError:
    text = ""
  if text:
    try:
      data = json.loads(text)
    except ValueError:
      return text
    if isinstance(data, dict) and "error" in data:
      return data["error"]
    return data
  return {"status": _http_status(exc), "statusText": getattr(exc.resp, "reason", "")}


def _rfc3339(value: datetime) -> str:
  if value.tzinfo is None:
    value = value.replace(tzinfo=timezone.utc)
  return value.isoformat()


def merge_event_update(current: Dict[str, Any],
                       partial: Dict[str, Any]) -> Dict[str, Any]:
  """Shallow merge, with ``start``/``end`` merged one level deep.

  Switching an endpoint between ``date`` and ``dateTime`` drops the other key
  so the merged endpoint never carries both.
  """
  merged = dict(current)
  for key, value in partial.items():
    if key in ("start", "end") or value is None:
      continue
    merged[key] = value
  for key in ("start", "end"):
    patch = partial.get(key)
    if not patch:
      continue
    endpoint = dict(current.get(key) or {})
    if patch.get("dateTime"):
      endpoint.pop("date", None)
    elif patch.get("date"):
      endpoint.pop("dateTime", None)
    endpoint.update({k: v for k, v in patch.items() if v is not None})
    merged[key] = endpoint
  merged.pop("isAllDay", None)
  return merged


class CalendarClient:
  """Google Calendar CRUD with a single refresh-and-retry on HTTP 401."""

  def __init__(self,
               store: CredentialStore,
               refresher: TokenRefresher,
               service_factory: ServiceFactory = build_calendar_service,
               calendar_id: str = GOOGLE_CALENDAR_ID) -> None:
    self.store = store
    self.refresher = refresher
    self.service_factory = service_factory
    self.calendar_id = calendar_id

  def _credential(self, user_id: str) -> Credential:
    credential = self.store.get(user_id)
    if credential is None or not credential.access_token:
      raise AuthError("No Google account found or access token missing.")
    if credential.is_expired() and credential.refresh_token:
      _log_debug("[GCAL] access token expired, refreshing before request")
      token = self.refresher.refresh(credential)
      credential = credential.model_copy(update={"access_token": token})
    return credential

  def _send(self, make_request: Callable[[Any], Any], token: str,
            operation: str) -> Any:
    try:
      return make_request(self.service_factory(token)).execute()
    except _TRANSPORT_ERRORS as exc:
      _log_debug(f"[GCAL] {operation}: transport failure: {exc!r}")
      raise ProviderError(0, str(exc) or type(exc).__name__, operation) from exc

  def _execute(self, user_id: str, operation: str,
               make_request: Callable[[Any], Any]) -> Any:
    credential = self._credential(user_id)
    try:
      return self._send(make_request, credential.access_token, operation)
    except HttpError as exc:
      status = _http_status(exc)
      if status != 401:
        raise ProviderError(status, _error_payload(exc), operation) from exc
      if not credential.refresh_token:
        raise AuthError("Google rejected the access token and no refresh token is stored.") from exc

    _log_debug(f"[GCAL] {operation}: 401 received, refreshing token and retrying once")
    token = self.refresher.refresh(credential)
    try:
      return self._send(make_request, token, operation)
    except HttpError as exc:
      status = _http_status(exc)
      if status == 401:
        raise AuthError("Google still rejected the access token after refresh.") from exc
      raise ProviderError(status, _error_payload(exc), operation) from exc

  def list_events(self, user_id: str, start: datetime,
                  end: datetime) -> List[CalendarEvent]:
    items: List[Dict[str, Any]] = []
    page_token: Optional[str] = None
    while True:
      data = self._execute(
          user_id, "list",
          lambda service: service.events().list(calendarId=self.calendar_id,
                                                timeMin=_rfc3339(start),
                                                timeMax=_rfc3339(end),
                                                singleEvents=True,
                                                orderBy="startTime",
                                                maxResults=LIST_PAGE_SIZE,
                                                pageToken=page_token))
      data = data or {}
      items.extend(item for item in data.get("items") or [] if isinstance(item, dict))
      page_token = data.get("nextPageToken")
      if not page_token:
        break
    _log_debug(f"[GCAL] fetched {len(items)} events between {_rfc3339(start)} and {_rfc3339(end)}")
    return [CalendarEvent.model_validate(item) for item in items]

  def get_event(self, user_id: str, event_id: str) -> Dict[str, Any]:
    if not event_id:
      raise ValueError("event_id is empty")
    return self._execute(
        user_id, "get",
        lambda service: service.events().get(calendarId=self.calendar_id,
                                             eventId=event_id))

  def create_event(self, user_id: str,
                   event: Union[CalendarEvent, Dict[str, Any]]) -> CalendarEvent:
    body = event.to_provider_body() if isinstance(event, CalendarEvent) else dict(event)
    body.pop("isAllDay", None)
    body.pop("id", None)
    created = self._execute(
        user_id, "create",
        lambda service: service.events().insert(calendarId=self.calendar_id,
                                                body=body))
    _log_debug(f"[GCAL] created event id={created.get('id')}")
    return CalendarEvent.model_validate(created)

  def update_event(self, user_id: str, event_id: str,
                   partial: Dict[str, Any]) -> CalendarEvent:
    current = self.get_event(user_id, event_id)
    merged = merge_event_update(current or {}, partial)
    updated = self._execute(
        user_id, "update",
        lambda service: service.events().update(calendarId=self.calendar_id,
                                                eventId=event_id,
                                                body=merged))
    _log_debug(f"[GCAL] updated event id={event_id}")
    return CalendarEvent.model_validate(updated)

  def delete_event(self, user_id: str, event_id: str) -> bool:
    if not event_id:
      raise ValueError("event_id is empty")
    try:
      self._execute(
          user_id, "delete",
          lambda service: service.events().delete(calendarId=self.calendar_id,
                                                  eventId=event_id))
    except ProviderError as exc:
      if exc.status_code == 404:
        _log_debug(f"[GCAL] event {event_id} not found, treating delete as done")
        return True
      raise
    return True
