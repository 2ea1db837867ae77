from __future__ import annotations

import json
from typing import Any, Optional


class CalendarAssistantError(RuntimeError):
  """Base class for failures the chat layer knows how to phrase."""


class AuthError(CalendarAssistantError):
  """Credential missing, expired or not refreshable."""


class ParseError(CalendarAssistantError):
  """LLM output could not be decoded into an Intent."""

  def __init__(self, message: str, raw_output: str = "") -> None:
    super().__init__(message)
    self.raw_output = raw_output


class ProviderError(CalendarAssistantError):
  """Non-2xx response from the calendar provider other than the handled ones,
  or a transport failure before any response (status_code 0)."""

  def __init__(self, status_code: int, payload: Any = None,
               operation: Optional[str] = None) -> None:
    self.status_code = status_code
    self.payload = payload
    self.operation = operation
    detail = payload if isinstance(payload, str) else json.dumps(
        payload, ensure_ascii=False, default=str)
    prefix = f"Failed to {operation} calendar event" if operation else "Calendar request failed"
    status = f"HTTP {status_code}" if status_code else "no response"
    super().__init__(f"{prefix} ({status}): {detail}")


class LLMError(CalendarAssistantError):
  """The LLM endpoint was unavailable or returned an error."""


class SessionBusyError(CalendarAssistantError):
  """A chat turn for the same session is already running."""
