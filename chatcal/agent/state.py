from __future__ import annotations

import asyncio
from typing import Dict, List, Set

from ..config import MAX_STORED_SESSIONS
from ..models import HistoryTurn

DEFAULT_HISTORY_TEXT = [
    ("user", "I need help managing my calendar events."),
    ("model", "Hi! I can view, create, update and delete events on your Google Calendar. "
              "What would you like to do?"),
]

_session_history: Dict[str, List[HistoryTurn]] = {}
_inflight_sessions: Set[str] = set()
_inflight_lock = asyncio.Lock()


def default_history() -> List[HistoryTurn]:
  return [HistoryTurn.from_text(role, text) for role, text in DEFAULT_HISTORY_TEXT]


def get_history(session_id: str) -> List[HistoryTurn]:
  stored = _session_history.get(session_id)
  if not stored:
    return default_history()
  return [turn.model_copy(deep=True) for turn in stored]


def set_history(session_id: str, history: List[HistoryTurn]) -> None:
  if not session_id:
    return
  # re-inserting keeps the dict ordered from least to most recently used
  _session_history.pop(session_id, None)
  _session_history[session_id] = [turn.model_copy(deep=True) for turn in history]
  while len(_session_history) > MAX_STORED_SESSIONS:
    del _session_history[next(iter(_session_history))]


async def begin_turn(session_id: str) -> bool:
  """Claim the session for one turn; False when a turn is already running."""
  async with _inflight_lock:
    if session_id in _inflight_sessions:
      return False
    _inflight_sessions.add(session_id)
    return True


async def end_turn(session_id: str) -> None:
  async with _inflight_lock:
    _inflight_sessions.discard(session_id)


def is_busy(session_id: str) -> bool:
  return session_id in _inflight_sessions
