"""Shared fixtures: an in-memory Google Calendar service and credential wiring.

The fake service mirrors the ``service.events().<method>(...).execute()`` call
shape of googleapiclient so CalendarClient runs unmodified against it.
"""

from __future__ import annotations

import copy
import itertools
import json
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

import httplib2
import pytest
from googleapiclient.errors import HttpError

from chatcal.agent import state
from chatcal.credentials import CredentialStore
from chatcal.gcal import CalendarClient
from chatcal.models import Credential, TimeInfo

USER_ID = "user-1"


def make_http_error(status: int, message: str = "error") -> HttpError:
    content = json.dumps({"error": {"code": status, "message": message}}).encode("utf-8")
    return HttpError(httplib2.Response({"status": status}), content)


def _endpoint_time(endpoint: Dict[str, Any]) -> datetime:
    if endpoint.get("dateTime"):
        value = datetime.fromisoformat(endpoint["dateTime"].replace("Z", "+00:00"))
        if value.tzinfo is None:
            value = value.replace(tzinfo=ZoneInfo(endpoint.get("timeZone") or "UTC"))
        return value
    return datetime.fromisoformat(endpoint["date"]).replace(tzinfo=ZoneInfo("UTC"))


class FakeRequest:
    def __init__(self, backend: "FakeCalendarBackend", token: str, method: str,
                 run: Callable[[], Any]) -> None:
        self.backend = backend
        self.token = token
        self.method = method
        self.run = run

    def execute(self) -> Any:
        self.backend.calls.append((self.method, self.token))
        if self.backend.errors:
            error = self.backend.errors.pop(0)
            if error is not None:
                raise error
        return self.run()


class FakeEvents:
    def __init__(self, backend: "FakeCalendarBackend", token: str) -> None:
        self.backend = backend
        self.token = token

    def _request(self, method: str, run: Callable[[], Any]) -> FakeRequest:
        return FakeRequest(self.backend, self.token, method, run)

    def list(self, **kwargs: Any) -> FakeRequest:
        self.backend.list_kwargs.append(kwargs)
        return self._request("list", lambda: self.backend.list_page(kwargs))

    def get(self, calendarId: str, eventId: str) -> FakeRequest:
        return self._request("get", lambda: self.backend.get(eventId))

    def insert(self, calendarId: str, body: Dict[str, Any]) -> FakeRequest:
        return self._request("insert", lambda: self.backend.insert(body))

    def update(self, calendarId: str, eventId: str, body: Dict[str, Any]) -> FakeRequest:
        return self._request("update", lambda: self.backend.update(eventId, body))

    def delete(self, calendarId: str, eventId: str) -> FakeRequest:
        return self._request("delete", lambda: self.backend.delete(eventId))


class FakeService:
    def __init__(self, backend: "FakeCalendarBackend", token: str) -> None:
        self.backend = backend
        self.token = token

    def events(self) -> FakeEvents:
        return FakeEvents(self.backend, self.token)


class FakeCalendarBackend:
    """In-memory calendar; ``errors`` is a queue of exceptions (or None) raised per execute."""

    def __init__(self, page_size: int = 250) -> None:
        self.events: Dict[str, Dict[str, Any]] = {}
        self.errors: List[Optional[Exception]] = []
        self.calls: List[tuple] = []
        self.list_kwargs: List[Dict[str, Any]] = []
        self.page_size = page_size
        self._ids = itertools.count(1)

    def service_factory(self, token: str) -> FakeService:
        return FakeService(self, token)

    def add(self, summary: str, start: str, end: str, tz: str = "America/Los_Angeles",
            **extra: Any) -> Dict[str, Any]:
        return self.insert({
            "summary": summary,
            "start": {"dateTime": start, "timeZone": tz},
            "end": {"dateTime": end, "timeZone": tz},
            **extra,
        })

    def add_all_day(self, summary: str, start_date: str, end_date: str) -> Dict[str, Any]:
        return self.insert({"summary": summary, "start": {"date": start_date},
                            "end": {"date": end_date}})

    def insert(self, body: Dict[str, Any]) -> Dict[str, Any]:
        event = copy.deepcopy(body)
        event["id"] = f"evt{next(self._ids)}"
        event.setdefault("status", "confirmed")
        self.events[event["id"]] = event
        return copy.deepcopy(event)

    def get(self, event_id: str) -> Dict[str, Any]:
        if event_id not in self.events:
            raise make_http_error(404, "Not Found")
        return copy.deepcopy(self.events[event_id])

    def update(self, event_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if event_id not in self.events:
            raise make_http_error(404, "Not Found")
        event = copy.deepcopy(body)
        event["id"] = event_id
        self.events[event_id] = event
        return copy.deepcopy(event)

    def delete(self, event_id: str) -> str:
        if event_id not in self.events:
            raise make_http_error(404, "Not Found")
        del self.events[event_id]
        return ""

    def list_page(self, kwargs: Dict[str, Any]) -> Dict[str, Any]:
        time_min = datetime.fromisoformat(kwargs["timeMin"])
        time_max = datetime.fromisoformat(kwargs["timeMax"])
        items = [
            copy.deepcopy(event) for event in self.events.values()
            if time_min <= _endpoint_time(event["start"]) < time_max
        ]
        items.sort(key=lambda event: _endpoint_time(event["start"]))
        offset = int(kwargs.get("pageToken") or 0)
        page = items[offset:offset + self.page_size]
        data: Dict[str, Any] = {"items": page}
        if offset + self.page_size < len(items):
            data["nextPageToken"] = str(offset + self.page_size)
        return data


class FakeRefresher:
    def __init__(self, store: CredentialStore, token: str = "fresh-token",
                 error: Optional[Exception] = None) -> None:
        self.store = store
        self.token = token
        self.error = error
        self.calls = 0

    def refresh(self, credential: Credential) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        self.store.update_tokens(credential.user_id, access_token=self.token,
                                 expires_at=None)
        return self.token


@pytest.fixture(autouse=True)
def reset_session_state():
    state._session_history.clear()
    state._inflight_sessions.clear()
    yield
    state._session_history.clear()
    state._inflight_sessions.clear()


@pytest.fixture
def store(tmp_path) -> CredentialStore:
    credential_store = CredentialStore(directory=tmp_path / "creds")
    credential_store.save(Credential(user_id=USER_ID, access_token="old-token",
                                     refresh_token="refresh-1"))
    return credential_store


@pytest.fixture
def backend() -> FakeCalendarBackend:
    return FakeCalendarBackend()


@pytest.fixture
def refresher(store) -> FakeRefresher:
    return FakeRefresher(store)


@pytest.fixture
def calendar(store, refresher, backend) -> CalendarClient:
    return CalendarClient(store, refresher, service_factory=backend.service_factory)


@pytest.fixture
def time_info() -> TimeInfo:
    # Tuesday
    return TimeInfo(date="2025-06-10", time="09:30", timezone="America/Los_Angeles")
