from __future__ import annotations

import json
from typing import Dict, List, Optional, Sequence

from ..config import RESPONSE_MAX_TOKENS, RESPONSE_MODEL
from ..models import HistoryTurn, TimeInfo
from ..utils import _log_debug
from .llm_provider import run_text_completion
from .schemas import ItemResult, OperationResult

RESPONSE_SYSTEM_PROMPT = """You are a friendly calendar assistant.
Current date: {date}. Current time: {time}. Timezone: {timezone}.

Rules:
- Explain what was done for the user in natural, conversational language.
- Don't mention JSON, operation types, event IDs or other internal identifiers.
- Mention event titles, dates and times the user cares about.
- If something failed, say so plainly and suggest what the user can try.
- If nothing matched, say that nothing matched.
- Never invent events or details that are not in the summary.
- Keep it concise.
"""

_VERBS: Dict[str, tuple] = {
    "create": ("Created", "Could not create"),
    "update": ("Updated", "Could not update"),
    "delete": ("Deleted", "Could not delete"),
}


def _describe(row: ItemResult) -> str:
  title = row.summary or "Untitled event"
  if row.start and row.end:
    return f"{title} ({row.start} to {row.end})"
  if row.start:
    return f"{title} ({row.start})"
  return title


def summarize_results(results: Sequence[OperationResult]) -> str:
  """Plain-text summary of what the executor did, grouped by operation."""
  lines: List[str] = []
  for result in results:
    rows = result.rows()
    if result.type == "view":
      if not result.success:
        lines.append(f"Could not load events: {(result.error or 'unknown error').rstrip('.')}.")
      elif not rows:
        lines.append("No events found in that time range.")
      else:
        lines.append(f"Found {len(rows)} event(s):")
        lines.extend(f"- {_describe(row)}" for row in rows)
      continue

    done_verb, failed_verb = _VERBS[result.type]
    if not rows:
      lines.append(f"{failed_verb} any events: {(result.error or 'nothing matched').rstrip('.')}.")
      continue
    succeeded = [row for row in rows if row.success]
    failed = [row for row in rows if not row.success]
    if succeeded:
      lines.append(f"{done_verb} {len(succeeded)} event(s):")
      lines.extend(f"- {_describe(row)}" for row in succeeded)
    if failed:
      lines.append(f"{failed_verb} {len(failed)} event(s):")
      lines.extend(f"- {_describe(row)}: {row.error or 'failed'}" for row in failed)

  if not lines:
    return "I didn't find anything to do in your calendar for that request."
  return "\n".join(lines)


async def synthesize_response(user_message: str,
                              results: Sequence[OperationResult],
                              history: Optional[Sequence[HistoryTurn]],
                              time_info: TimeInfo) -> str:
  summary = summarize_results(results)
  payload = {
      "user_message": user_message,
      "summary": summary,
      "results": [result.to_payload() for result in results],
  }
  text, meta = await run_text_completion(
      model=RESPONSE_MODEL,
      system_prompt=RESPONSE_SYSTEM_PROMPT.format(date=time_info.date,
                                                  time=time_info.time,
                                                  timezone=time_info.timezone),
      user_text=json.dumps(payload, ensure_ascii=False),
      history=history,
      max_completion_tokens=RESPONSE_MAX_TOKENS,
  )
  if not text.strip():
    _log_debug(f"[RESPONSE] falling back to plain summary: {meta.get('llm_error') or 'empty output'}")
    return summary
  return text.strip()
