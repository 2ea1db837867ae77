"""Function-calling loop with a scripted Gemini."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from chatcal.agent import tool_agent
from chatcal.agent.function_calls import CalendarFunctions
from chatcal.agent.tool_agent import ToolCallingAgent

from .conftest import USER_ID


def _call(name, **args):
    return SimpleNamespace(function_calls=[SimpleNamespace(name=name, args=args)],
                           text=None, candidates=None)


def _text(text):
    return SimpleNamespace(function_calls=None, text=text, candidates=None)


class ScriptedGemini:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    async def __call__(self, *, model, contents, config):
        self.requests.append({"model": model, "contents": list(contents), "config": config})
        return self.responses.pop(0)


@pytest.fixture
def agent(calendar) -> ToolCallingAgent:
    return ToolCallingAgent(CalendarFunctions(calendar), model="gemini-2.0-flash", max_rounds=3)


async def test_function_call_round_then_text(monkeypatch, agent, backend, time_info):
    gemini = ScriptedGemini([
        _call("createCalendarEvent", summary="Piano", startDateTime="2025-06-11T17:00:00",
              endDateTime="2025-06-11T18:00:00"),
        _text("Added Piano tomorrow at 5pm."),
    ])
    monkeypatch.setattr(tool_agent, "generate_gemini_content", gemini)

    result = await agent.run("add piano tomorrow at 5", USER_ID, time_info, [])

    assert result.text == "Added Piano tomorrow at 5pm."
    assert [event["summary"] for event in backend.events.values()] == ["Piano"]
    assert [turn.role for turn in result.turns] == ["model", "user", "model"]
    assert result.turns[0].parts[0].function_call["name"] == "createCalendarEvent"
    assert "result" in result.turns[1].parts[0].function_response["response"]
    assert result.operations[0]["success"] is True
    second_request = gemini.requests[1]["contents"]
    assert "function_response" in second_request[-1]["parts"][0]
    assert gemini.requests[0]["config"]["tools"][0]["function_declarations"]


async def test_failed_call_is_fed_back_as_error(monkeypatch, agent, time_info):
    gemini = ScriptedGemini([
        _call("createCalendarEvent", summary="No time"),
        _text("I need a start time."),
    ])
    monkeypatch.setattr(tool_agent, "generate_gemini_content", gemini)

    result = await agent.run("add something", USER_ID, time_info, [])

    assert "error" in result.turns[1].parts[0].function_response["response"]
    assert result.operations[0]["success"] is False


async def test_round_limit(monkeypatch, agent, time_info):
    gemini = ScriptedGemini([
        _call("getCalendarEvents", startDate="2025-06-10", endDate="2025-06-11")
        for _ in range(3)
    ])
    monkeypatch.setattr(tool_agent, "generate_gemini_content", gemini)

    result = await agent.run("loop forever", USER_ID, time_info, [])

    assert len(gemini.requests) == 3
    assert "could not finish" in result.text
    assert result.turns[-1].text() == result.text
