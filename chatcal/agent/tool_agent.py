from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..config import MAX_TOOL_ROUNDS, TOOL_AGENT_MODEL
from ..errors import LLMError
from ..models import HistoryPart, HistoryTurn, TimeInfo
from ..utils import _log_debug
from .function_calls import FUNCTION_DECLARATIONS, CalendarFunctions
from .llm_provider import (
    gemini_text_from_response,
    generate_gemini_content,
    history_to_gemini_contents,
    provider_for_model,
)

TOOL_AGENT_SYSTEM_PROMPT = """You are a helpful calendar assistant with access to the user's Google Calendar.
Current date: {date}. Current time: {time}. Timezone: {timezone}.

- Use getCalendarEvents to look up events before changing or deleting them; you need their IDs.
- Use createCalendarEvent, updateCalendarEvent and deleteCalendarEvent to change the calendar.
- Datetimes are local "YYYY-MM-DDTHH:MM:SS" in the user's timezone.
- If no duration is given, events last one hour.
- After the calendar work is done, tell the user what you did in plain language.
- Never show event IDs to the user.
"""

_OUT_OF_ROUNDS_TEXT = ("I started working on your calendar but could not finish in time. "
                       "Please check your calendar and try again.")


@dataclass
class ToolAgentResult:
  text: str
  turns: List[HistoryTurn] = field(default_factory=list)
  operations: List[Dict[str, Any]] = field(default_factory=list)


def _function_calls(response: Any) -> List[Any]:
  calls = getattr(response, "function_calls", None)
  return list(calls) if calls else []


class ToolCallingAgent:
  """Lets Gemini drive the calendar through function calls, one round at a time."""

  def __init__(self, functions: CalendarFunctions, model: str = TOOL_AGENT_MODEL,
               max_rounds: int = MAX_TOOL_ROUNDS) -> None:
    self.functions = functions
    self.model = model
    self.max_rounds = max_rounds

  async def run(self, message: str, user_id: str, time_info: TimeInfo,
                history: Optional[Sequence[HistoryTurn]] = None) -> ToolAgentResult:
    if provider_for_model(self.model) != "gemini":
      raise LLMError(f"Function calling requires a Gemini model, got {self.model!r}")

    turns: List[HistoryTurn] = [HistoryTurn.from_text("user", message)]
    contents = history_to_gemini_contents(list(history or []) + turns)
    config: Dict[str, Any] = {
        "system_instruction": TOOL_AGENT_SYSTEM_PROMPT.format(
            date=time_info.date, time=time_info.time, timezone=time_info.timezone),
        "tools": [{"function_declarations": FUNCTION_DECLARATIONS}],
    }
    operations: List[Dict[str, Any]] = []

    for round_index in range(self.max_rounds):
      try:
        response = await generate_gemini_content(model=self.model,
                                                 contents=contents,
                                                 config=config)
      except LLMError:
        raise
      except Exception as exc:
        raise LLMError(f"Gemini request failed: {exc}") from exc

      calls = _function_calls(response)
      if not calls:
        text = gemini_text_from_response(response) or _OUT_OF_ROUNDS_TEXT
        turns.append(HistoryTurn.from_text("model", text))
        return ToolAgentResult(text=text, turns=turns[1:], operations=operations)

      for call in calls:
        name = str(getattr(call, "name", "") or "")
        args = dict(getattr(call, "args", None) or {})
        _log_debug(f"[TOOL_AGENT] round={round_index + 1} call={name}")
        result = await asyncio.to_thread(self.functions.call, name, args,
                                         user_id, time_info)
        payload = {"result": result.data} if result.success else {"error": result.error}
        operations.append({"function": name, "args": args,
                           "success": result.success, "error": result.error})
        new_turns = [
            HistoryTurn(role="model", parts=[
                HistoryPart(function_call={"name": name, "args": args})]),
            HistoryTurn(role="user", parts=[
                HistoryPart(function_response={"name": name, "response": payload})]),
        ]
        turns.extend(new_turns)
        contents.extend(history_to_gemini_contents(new_turns))

    _log_debug(f"[TOOL_AGENT] gave up after {self.max_rounds} rounds")
    turns.append(HistoryTurn.from_text("model", _OUT_OF_ROUNDS_TEXT))
    return ToolAgentResult(text=_OUT_OF_ROUNDS_TEXT, turns=turns[1:],
                           operations=operations)
