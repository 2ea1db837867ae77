from __future__ import annotations

import json
import re
from datetime import date, timedelta
from typing import Dict, Optional, Sequence
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from ..config import DELETE_THEM_RANGE_DAYS, EXTRACTOR_MAX_TOKENS, EXTRACTOR_MODEL
from ..errors import LLMError, ParseError
from ..models import HistoryTurn, TimeInfo
from ..utils import _log_debug, end_of_day, normalize_text, start_of_day, time_info_today
from .llm_provider import run_text_completion
from .schemas import DeleteOperation, Intent, TimeRange

EXTRACTOR_SYSTEM_PROMPT_TEMPLATE = """You turn calendar requests into JSON operations.
Return JSON only. No markdown, no commentary.

Current date: {today} ({weekday}). Current time: {now_time}. Timezone: {timezone}.

Resolve relative expressions with these exact values:
- "today": {today}
- "tonight": {today}T18:00:00 to {today}T23:59:59
- "tomorrow": {tomorrow}
- "this weekend": {weekend_start} to {weekend_end}
- "next week": {next_week_start} to {next_week_end}

Output: {{"operations": [operation, ...]}}
Each operation has a "type":
- create: {{"type":"create","eventDetails":{{...}}}} or {{"type":"create","events":[{{...}}, ...]}} for several events
- view: {{"type":"view","timeRange":{{"start":"...","end":"..."}}}}
- update: {{"type":"update","timeRange":{{...}},"eventDetails":{{fields to change}},"eventIdentifiers":["words naming the event"]}}
- delete: {{"type":"delete","timeRange":{{...}},"eventIdentifiers":["words naming the event"]}}
eventDetails fields: summary, description, location, startDateTime, endDateTime, timeZone, isAllDay.
Datetimes are local "YYYY-MM-DDTHH:MM:SS" without offset; timeRange bounds may be "YYYY-MM-DD".
If no duration is given, end one hour after start. All-day events set isAllDay true.
Leave eventIdentifiers empty only when the user means every event in the range.
Use the conversation history to resolve "it", "that meeting" and similar references.

Example:
User: "schedule a meeting tomorrow at 2pm for 1 hour"
{{"operations":[{{"type":"create","eventDetails":{{"summary":"Meeting","startDateTime":"{tomorrow}T14:00:00","endDateTime":"{tomorrow}T15:00:00","timeZone":"{timezone}"}}}}]}}
"""

_DELETE_THEM_RE = re.compile(r"^delete\s+them[.!]?$", re.IGNORECASE)


def relative_date_anchors(time_info: TimeInfo) -> Dict[str, str]:
  today = time_info_today(time_info)
  weekday = today.weekday()  # Monday == 0
  if weekday == 6:
    # on Sunday "this weekend" is the one in progress
    weekend_start = today - timedelta(days=1)
  else:
    weekend_start = today + timedelta(days=5 - weekday)
  next_week_start = today + timedelta(days=7 - weekday)
  return {
      "today": today.isoformat(),
      "weekday": today.strftime("%A"),
      "tomorrow": (today + timedelta(days=1)).isoformat(),
      "weekend_start": weekend_start.isoformat(),
      "weekend_end": (weekend_start + timedelta(days=1)).isoformat(),
      "next_week_start": next_week_start.isoformat(),
      "next_week_end": (next_week_start + timedelta(days=6)).isoformat(),
  }


def build_system_prompt(time_info: TimeInfo) -> str:
  return EXTRACTOR_SYSTEM_PROMPT_TEMPLATE.format(
      now_time=time_info.time or "00:00",
      timezone=time_info.timezone,
      **relative_date_anchors(time_info),
  )


def is_delete_them(message: str) -> bool:
  return bool(_DELETE_THEM_RE.match(normalize_text(message)))


def delete_them_intent(time_info: TimeInfo) -> Intent:
  tz = ZoneInfo(time_info.timezone)
  today: date = time_info_today(time_info)
  start = start_of_day(today, tz)
  end = end_of_day(today + timedelta(days=DELETE_THEM_RANGE_DAYS), tz)
  return Intent(operations=[
      DeleteOperation(
          type="delete",
          timeRange=TimeRange(start=start.isoformat(), end=end.isoformat()),
          eventIdentifiers=[],
      )
  ])


def find_json_object(text: str) -> Optional[str]:
  """First balanced ``{...}`` in ``text``; braces inside JSON strings are ignored."""
  start = text.find("{")
  if start == -1:
    return None
  depth = 0
  in_string = False
  escaped = False
  for index in range(start, len(text)):
    ch = text[index]
    if in_string:
      if escaped:
        escaped = False
      elif ch == "\\":
        escaped = True
      elif ch == '"':
        in_string = False
      continue
    if ch == '"':
      in_string = True
    elif ch == "{":
      depth += 1
    elif ch == "}":
      depth -= 1
      if depth == 0:
        return text[start:index + 1]
  return None


def parse_intent(raw_output: str) -> Intent:
  text = raw_output or ""
  candidate = find_json_object(text)
  if candidate is None:
    raise ParseError("No JSON object found in model output.", raw_output)
  array_start = text.find("[")
  if -1 < array_start < text.find("{"):
    raise ParseError("Model output is a JSON array, not an operations object.", raw_output)
  try:
    data = json.loads(candidate)
  except ValueError as exc:
    raise ParseError(f"Invalid JSON in model output: {exc}", raw_output) from exc
  try:
    return Intent.model_validate(data)
  except ValidationError as exc:
    raise ParseError(f"Model output does not match the operation schema: {exc}",
                     raw_output) from exc


async def extract_intent(message: str,
                         time_info: TimeInfo,
                         history: Optional[Sequence[HistoryTurn]] = None) -> Intent:
  if is_delete_them(message):
    _log_debug("[EXTRACTOR] 'delete them' shortcut, skipping LLM")
    return delete_them_intent(time_info)

  raw_output, meta = await run_text_completion(
      model=EXTRACTOR_MODEL,
      system_prompt=build_system_prompt(time_info),
      user_text=message,
      history=history,
      max_completion_tokens=EXTRACTOR_MAX_TOKENS,
      json_mode=True,
  )
  if meta.get("llm_available") is False:
    raise LLMError(str(meta.get("llm_error") or "LLM is not configured"))
  if not raw_output:
    raise ParseError(str(meta.get("llm_error") or "Model returned no output."))

  intent = parse_intent(raw_output)
  _log_debug(f"[EXTRACTOR] {len(intent.operations)} operation(s): "
             f"{[op.type for op in intent.operations]}")
  return intent
