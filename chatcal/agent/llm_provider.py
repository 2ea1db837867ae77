from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple

from google import genai
from google.genai import types as genai_types
from openai import AsyncOpenAI

from ..config import GEMINI_API_KEY, LLM_DEBUG, LLM_PROVIDER, OPENAI_API_KEY
from ..errors import LLMError
from ..models import HistoryTurn

_gemini_client: Any = None
_openai_client: Optional[AsyncOpenAI] = None


def _print_raw_output(*, kind: str, provider: str, model: str,
                      raw_output: str) -> None:
  if not LLM_DEBUG:
    return
  print(f"[LLM RAW] kind={kind} provider={provider} model={model}", flush=True)
  print(raw_output if raw_output else "(empty)", flush=True)
  print("[LLM RAW END]", flush=True)


def provider_for_model(model: str) -> str:
  if LLM_PROVIDER in ("openai", "gemini"):
    return LLM_PROVIDER
  model_name = str(model or "").strip().lower()
  if model_name.startswith("gemini") or model_name.startswith("models/gemini"):
    return "gemini"
  return "openai"


def get_gemini_client() -> Any:
  global _gemini_client
  if not GEMINI_API_KEY:
    raise LLMError("GEMINI_API_KEY is not set")
  if _gemini_client is None:
    _gemini_client = genai.Client(api_key=GEMINI_API_KEY)
  return _gemini_client


def get_async_openai_client() -> AsyncOpenAI:
  global _openai_client
  if not OPENAI_API_KEY:
    raise LLMError("OPENAI_API_KEY is not set")
  if _openai_client is None:
    _openai_client = AsyncOpenAI(api_key=OPENAI_API_KEY)
  return _openai_client


def gemini_text_from_response(response: Any) -> str:
  text = getattr(response, "text", None)
  if isinstance(text, str) and text.strip():
    return text.strip()
  candidates = getattr(response, "candidates", None)
  if not isinstance(candidates, list):
    return ""
  chunks: List[str] = []
  for candidate in candidates:
    content = getattr(candidate, "content", None)
    parts = getattr(content, "parts", None) if content is not None else None
    if not isinstance(parts, list):
      continue
    for part in parts:
      text_val = getattr(part, "text", None)
      if isinstance(text_val, str) and text_val.strip():
        chunks.append(text_val.strip())
  return " ".join(chunks).strip()


def history_to_gemini_contents(history: Sequence[HistoryTurn]) -> List[Dict[str, Any]]:
  """Role-tagged contents; function parts are kept for the tool-calling agent."""
  contents: List[Dict[str, Any]] = []
  for turn in history:
    parts: List[Dict[str, Any]] = []
    for part in turn.parts:
      if part.text:
        parts.append({"text": part.text})
      elif part.function_call:
        parts.append({"function_call": part.function_call})
      elif part.function_response:
        parts.append({"function_response": part.function_response})
    if parts:
      contents.append({"role": turn.role, "parts": parts})
  return contents


def _text_only_history(history: Sequence[HistoryTurn]) -> List[HistoryTurn]:
  return [turn for turn in history if turn.text()]


def _gemini_generate_sync(client: Any, model: str, contents: List[Dict[str, Any]],
                          config: Dict[str, Any]) -> Any:
  return client.models.generate_content(
      model=model,
      contents=contents,
      config=genai_types.GenerateContentConfig(**config),
  )


async def generate_gemini_content(*, model: str, contents: List[Dict[str, Any]],
                                  config: Dict[str, Any]) -> Any:
  client = get_gemini_client()
  return await asyncio.to_thread(_gemini_generate_sync, client, model,
                                 contents, config)


def _openai_messages(system_prompt: str, history: Sequence[HistoryTurn],
                     user_text: str) -> List[Dict[str, str]]:
  messages = [{"role": "system", "content": system_prompt}]
  for turn in _text_only_history(history):
    role = "assistant" if turn.role == "model" else "user"
    messages.append({"role": role, "content": turn.text()})
  messages.append({"role": "user", "content": user_text})
  return messages


async def run_text_completion(
    *,
    model: str,
    system_prompt: str,
    user_text: str,
    history: Optional[Sequence[HistoryTurn]] = None,
    max_completion_tokens: int = 1024,
    json_mode: bool = False,
) -> Tuple[str, Dict[str, Any]]:
  """Single-shot generation. Never raises; failures are reported in the meta dict."""
  provider = provider_for_model(model)
  safe_history = _text_only_history(history or [])
  kind = "json" if json_mode else "text"

  if provider == "gemini":
    contents = history_to_gemini_contents(safe_history)
    contents.append({"role": "user", "parts": [{"text": user_text}]})
    config: Dict[str, Any] = {
        "system_instruction": system_prompt,
        "max_output_tokens": max_completion_tokens,
    }
    if json_mode:
      config["response_mime_type"] = "application/json"
    try:
      response = await generate_gemini_content(model=model,
                                               contents=contents,
                                               config=config)
      text = gemini_text_from_response(response)
    except Exception as exc:
      print(f"[LLM ERROR] provider=gemini model={model} error={exc}", flush=True)
      return "", {"model": model, "provider": provider,
                  "llm_available": not isinstance(exc, LLMError),
                  "llm_error": str(exc)}
    _print_raw_output(kind=kind, provider=provider, model=model, raw_output=text)
    return text, {"model": model, "provider": provider, "llm_available": True}

  try:
    client = get_async_openai_client()
  except LLMError as exc:
    return "", {"model": model, "provider": provider,
                "llm_available": False, "llm_error": str(exc)}

  kwargs: Dict[str, Any] = {
      "model": model,
      "messages": _openai_messages(system_prompt, safe_history, user_text),
      "max_completion_tokens": max_completion_tokens,
  }
  if json_mode:
    kwargs["response_format"] = {"type": "json_object"}
  try:
    completion = await client.chat.completions.create(**kwargs)
    text = (completion.choices[0].message.content or "").strip()
  except Exception as exc:
    print(f"[LLM ERROR] provider=openai model={model} error={exc}", flush=True)
    return "", {"model": model, "provider": provider,
                "llm_available": True, "llm_error": str(exc)}
  _print_raw_output(kind=kind, provider=provider, model=model, raw_output=text)
  return text, {"model": model, "provider": provider, "llm_available": True}
