"""Chat turns end to end with stubbed LLM calls."""

from __future__ import annotations

import asyncio

import pytest

from chatcal.agent import orchestrator as orchestrator_module
from chatcal.agent import state
from chatcal.agent.executor import OperationExecutor
from chatcal.agent.orchestrator import (
    AUTH_ERROR_TEXT,
    PARSE_ERROR_TEXT,
    ChatOrchestrator,
    TurnState,
)
from chatcal.agent.schemas import Intent
from chatcal.errors import ParseError, SessionBusyError
from chatcal.models import ChatRequest, HistoryTurn, TimeInfo

from .conftest import USER_ID, make_http_error

TIME_INFO = {"date": "2025-06-10", "time": "09:30", "timezone": "America/Los_Angeles"}


def _request(message: str, **extra) -> ChatRequest:
    return ChatRequest.model_validate({"message": message, "userTimeInfo": TIME_INFO, **extra})


@pytest.fixture
def orchestrator(calendar) -> ChatOrchestrator:
    return ChatOrchestrator(OperationExecutor(calendar))


@pytest.fixture
def fake_llm(monkeypatch):
    seen = {"states": []}

    def install(intent_payload=None, reply="All done.", extract_error=None, orchestrator=None):
        async def fake_extract(message, time_info, history):
            if orchestrator is not None:
                seen["states"].append(orchestrator.turn_state(USER_ID))
            seen["time_info"] = time_info
            seen["history"] = history
            if extract_error is not None:
                raise extract_error
            return Intent.model_validate(intent_payload)

        async def fake_synthesize(message, results, history, time_info):
            if orchestrator is not None:
                seen["states"].append(orchestrator.turn_state(USER_ID))
            seen["results"] = results
            return reply

        monkeypatch.setattr(orchestrator_module, "extract_intent", fake_extract)
        monkeypatch.setattr(orchestrator_module, "synthesize_response", fake_synthesize)
        return seen

    return install


async def test_successful_turn(orchestrator, fake_llm, backend):
    seen = fake_llm({"operations": [{"type": "create", "eventDetails": {
        "summary": "Meeting", "startDateTime": "2025-06-11T14:00:00",
        "endDateTime": "2025-06-11T15:00:00"}}]}, orchestrator=orchestrator)

    response = await orchestrator.handle_turn(USER_ID, _request("schedule a meeting tomorrow at 2pm"))

    assert response.response == "All done."
    assert response.error is None
    assert response.operations[0]["type"] == "create"
    assert response.operations[0]["events"][0]["start"] == "2025-06-11T14:00:00"
    assert len(backend.events) == 1
    assert seen["states"] == [TurnState.EXTRACTING, TurnState.SYNTHESIZING]
    assert orchestrator.turn_state(USER_ID) == TurnState.IDLE
    assert seen["time_info"] == TimeInfo.model_validate(TIME_INFO)


async def test_history_grows_by_user_and_model_turns(orchestrator, fake_llm):
    fake_llm({"operations": [{"type": "view"}]})
    history = [HistoryTurn.from_text("user", "hi"), HistoryTurn.from_text("model", "hello")]

    response = await orchestrator.handle_turn(
        USER_ID, _request("what's on my calendar?", history=[t.model_dump() for t in history]))

    assert [turn.role for turn in response.history] == ["user", "model", "user", "model"]
    assert response.history[2].text() == "what's on my calendar?"
    assert response.history[3].text() == "All done."
    assert state.get_history(USER_ID)[-1].text() == "All done."


async def test_default_history_used_when_none_sent(orchestrator, fake_llm):
    seen = fake_llm({"operations": [{"type": "view"}]})

    await orchestrator.handle_turn(USER_ID, _request("show my week"))

    assert seen["history"][0].text() == "I need help managing my calendar events."


async def test_parse_error_is_phrased_and_recorded(orchestrator, fake_llm):
    fake_llm(extract_error=ParseError("bad json"))

    response = await orchestrator.handle_turn(USER_ID, _request("asdf qwerty"))

    assert response.error is True
    assert response.response == PARSE_ERROR_TEXT
    assert response.operations == []
    assert response.history[-2].text() == "asdf qwerty"
    assert response.history[-1].text() == PARSE_ERROR_TEXT
    assert orchestrator.turn_state(USER_ID) == TurnState.IDLE


async def test_auth_error_asks_to_reauthenticate(orchestrator, fake_llm, backend):
    fake_llm({"operations": [{"type": "view"}]})
    backend.errors = [make_http_error(401), make_http_error(401)]

    response = await orchestrator.handle_turn(USER_ID, _request("show my week"))

    assert response.error is True
    assert response.response == AUTH_ERROR_TEXT


async def test_unexpected_error_includes_message(orchestrator, fake_llm):
    fake_llm(extract_error=RuntimeError("boom"))

    response = await orchestrator.handle_turn(USER_ID, _request("hello"))

    assert response.error is True
    assert "boom" in response.response


async def test_concurrent_turn_for_same_session_is_rejected(orchestrator, monkeypatch):
    release = asyncio.Event()
    entered = asyncio.Event()

    async def slow_extract(message, time_info, history):
        entered.set()
        await release.wait()
        return Intent.model_validate({"operations": [{"type": "view"}]})

    async def fake_synthesize(message, results, history, time_info):
        return "ok"

    monkeypatch.setattr(orchestrator_module, "extract_intent", slow_extract)
    monkeypatch.setattr(orchestrator_module, "synthesize_response", fake_synthesize)

    first = asyncio.create_task(orchestrator.handle_turn(USER_ID, _request("one")))
    await entered.wait()
    with pytest.raises(SessionBusyError):
        await orchestrator.handle_turn(USER_ID, _request("two"))
    release.set()
    response = await first

    assert response.response == "ok"
    assert not state.is_busy(USER_ID)


async def test_turn_state_is_dropped_once_idle(orchestrator, fake_llm):
    fake_llm({"operations": [{"type": "view"}]})

    await orchestrator.handle_turn(USER_ID, _request("show my week"))

    assert orchestrator._states == {}


def test_stored_histories_evict_least_recently_used(monkeypatch):
    monkeypatch.setattr(state, "MAX_STORED_SESSIONS", 2)
    turns = [HistoryTurn.from_text("user", "hi")]

    state.set_history("a", turns)
    state.set_history("b", turns)
    state.set_history("a", turns)
    state.set_history("c", turns)

    assert sorted(state._session_history) == ["a", "c"]
    assert state.get_history("b")[0].text() == "I need help managing my calendar events."
