from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import AuthError, ParseError, SessionBusyError
from ..models import ChatRequest, ChatResponse, HistoryTurn, TimeInfo
from ..utils import _log_debug, build_time_info
from . import state
from .executor import OperationExecutor
from .intent_extractor import extract_intent
from .response_synthesizer import synthesize_response
from .tool_agent import ToolCallingAgent

logger = logging.getLogger(__name__)

PARSE_ERROR_TEXT = ("Sorry, I couldn't understand that request. "
                    "Could you please rephrase it?")
AUTH_ERROR_TEXT = ("I couldn't access your Google Calendar because your sign-in has expired. "
                   "Please re-authenticate with Google and try again.")
GENERIC_ERROR_TEXT = "Sorry, something went wrong while handling your request: {error}"


class TurnState(str, Enum):
  IDLE = "idle"
  EXTRACTING = "extracting"
  EXECUTING = "executing"
  SYNTHESIZING = "synthesizing"
  FAILED = "failed"


class ChatOrchestrator:
  """One chat turn: extract intent, run it against the calendar, phrase the reply."""

  def __init__(self, executor: OperationExecutor,
               tool_agent: Optional[ToolCallingAgent] = None) -> None:
    self.executor = executor
    self.tool_agent = tool_agent
    self._states: Dict[str, TurnState] = {}

  def turn_state(self, session_id: str) -> TurnState:
    return self._states.get(session_id, TurnState.IDLE)

  def _set_state(self, session_id: str, new_state: TurnState) -> None:
    _log_debug(f"[ORCHESTRATOR] {session_id[:8]}: {self.turn_state(session_id).value} -> {new_state.value}")
    self._states[session_id] = new_state

  async def _run_pipeline(self, session_id: str, user_id: str, message: str,
                          history: List[HistoryTurn],
                          time_info: TimeInfo) -> tuple:
    self._set_state(session_id, TurnState.EXTRACTING)
    intent = await extract_intent(message, time_info, history)

    self._set_state(session_id, TurnState.EXECUTING)
    results = await asyncio.to_thread(self.executor.execute, intent, user_id,
                                      time_info)

    self._set_state(session_id, TurnState.SYNTHESIZING)
    text = await synthesize_response(message, results, history, time_info)
    return text, [result.to_payload() for result in results], []

  async def _run_tools(self, session_id: str, user_id: str, message: str,
                       history: List[HistoryTurn], time_info: TimeInfo) -> tuple:
    if self.tool_agent is None:
      raise RuntimeError("Tool-calling mode is not configured.")
    self._set_state(session_id, TurnState.EXECUTING)
    result = await self.tool_agent.run(message, user_id, time_info, history)
    # final model text turn is re-added together with the reply
    return result.text, result.operations, result.turns[:-1]

  async def handle_turn(self, user_id: str, request: ChatRequest,
                        session_id: Optional[str] = None) -> ChatResponse:
    session_id = session_id or user_id
    if not await state.begin_turn(session_id):
      raise SessionBusyError("A request for this conversation is already in progress.")

    try:
      return await self._handle_claimed_turn(session_id, user_id, request)
    finally:
      _log_debug(f"[ORCHESTRATOR] {session_id[:8]}: {self.turn_state(session_id).value} -> idle")
      self._states.pop(session_id, None)
      await state.end_turn(session_id)

  async def _handle_claimed_turn(self, session_id: str, user_id: str,
                                 request: ChatRequest) -> ChatResponse:
    history = list(request.history) if request.history else state.get_history(session_id)
    time_info = build_time_info(request.user_time_info)
    message = request.message.strip()
    operations: List[Dict[str, Any]] = []
    extra_turns: List[HistoryTurn] = []
    error = False

    try:
      if request.mode == "tools":
        reply, operations, extra_turns = await self._run_tools(
            session_id, user_id, message, history, time_info)
      else:
        reply, operations, extra_turns = await self._run_pipeline(
            session_id, user_id, message, history, time_info)
    except ParseError as exc:
      _log_debug(f"[ORCHESTRATOR] parse error: {exc}")
      self._set_state(session_id, TurnState.FAILED)
      reply, error = PARSE_ERROR_TEXT, True
    except AuthError as exc:
      _log_debug(f"[ORCHESTRATOR] auth error: {exc}")
      self._set_state(session_id, TurnState.FAILED)
      reply, error = AUTH_ERROR_TEXT, True
    except Exception as exc:
      logger.exception("chat turn failed")
      self._set_state(session_id, TurnState.FAILED)
      reply, error = GENERIC_ERROR_TEXT.format(error=exc), True

    new_history = history + [HistoryTurn.from_text("user", message)]
    new_history.extend(extra_turns)
    new_history.append(HistoryTurn.from_text("model", reply))
    state.set_history(session_id, new_history)
    return ChatResponse(response=reply, operations=operations,
                        error=True if error else None, history=new_history)
