from __future__ import annotations

import time
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EventDateTime(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    date_time: Optional[str] = Field(default=None, alias="dateTime")
    date: Optional[str] = None
    time_zone: Optional[str] = Field(default=None, alias="timeZone")


class CalendarEvent(BaseModel):
    """Google Calendar event; unknown provider fields are carried through."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = None
    summary: str = ""
    description: Optional[str] = None
    location: Optional[str] = None
    start: EventDateTime = Field(default_factory=EventDateTime)
    end: EventDateTime = Field(default_factory=EventDateTime)
    is_all_day: Optional[bool] = Field(default=None, alias="isAllDay")

    @model_validator(mode="after")
    def _derive_all_day(self) -> "CalendarEvent":
        if self.is_all_day is None:
            self.is_all_day = bool(self.start.date and not self.start.date_time)
        return self

    def start_value(self) -> Optional[str]:
        return self.start.date_time or self.start.date

    def end_value(self) -> Optional[str]:
        return self.end.date_time or self.end.date

    def to_provider_body(self) -> Dict[str, Any]:
        body = self.model_dump(by_alias=True, exclude_none=True)
        body.pop("isAllDay", None)
        return body


class Credential(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    provider: str = "google"
    access_token: Optional[str] = Field(default=None, alias="accessToken")
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    expires_at: Optional[int] = Field(default=None, alias="expiresAt")

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < int(now if now is not None else time.time())


class TimeInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: Optional[str] = None  # "YYYY-MM-DD"
    time: Optional[str] = None  # "HH:MM"
    timezone: Optional[str] = None
    local_time: Optional[str] = Field(default=None, alias="localTime")


class HistoryPart(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: Optional[str] = None
    function_call: Optional[Dict[str, Any]] = Field(default=None, alias="functionCall")
    function_response: Optional[Dict[str, Any]] = Field(default=None,
                                                        alias="functionResponse")


class HistoryTurn(BaseModel):
    role: Literal["user", "model"]
    parts: List[HistoryPart] = Field(default_factory=list)

    @classmethod
    def from_text(cls, role: str, text: str) -> "HistoryTurn":
        return cls(role=role, parts=[HistoryPart(text=text)])

    def text(self) -> str:
        return "\n".join(part.text for part in self.parts if part.text)


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    history: List[HistoryTurn] = Field(default_factory=list)
    user_time_info: Optional[TimeInfo] = Field(default=None, alias="userTimeInfo")
    mode: Literal["pipeline", "tools"] = "pipeline"


class ChatResponse(BaseModel):
    response: str
    operations: List[Dict[str, Any]] = Field(default_factory=list)
    error: Optional[bool] = None
    history: List[HistoryTurn] = Field(default_factory=list)


class FunctionCallRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    function_name: str = Field(alias="functionName")
    args: Dict[str, Any] = Field(default_factory=dict)


class FunctionCallResponse(BaseModel):
    success: bool
    data: Any = None
    error: Optional[str] = None


class EventCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    summary: str
    description: Optional[str] = None
    location: Optional[str] = None
    start: EventDateTime
    end: EventDateTime
    is_all_day: Optional[bool] = Field(default=None, alias="isAllDay")


class EventUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    summary: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    start: Optional[EventDateTime] = None
    end: Optional[EventDateTime] = None
    is_all_day: Optional[bool] = Field(default=None, alias="isAllDay")
