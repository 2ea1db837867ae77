from __future__ import annotations

from typing import Dict, Iterable, List, Sequence

from ..config import MIN_MATCH_TOKEN_LENGTH
from ..models import CalendarEvent

# Known misspellings and shorthand, mapped to the corrected form plus related terms.
SYNONYMS: Dict[str, List[str]] = {
    "grocerries": ["grocery", "groceries", "shopping"],
    "grocerys": ["grocery", "groceries", "shopping"],
    "groceries": ["grocery", "shopping"],
    "grocery": ["groceries", "shopping"],
    "meetting": ["meeting"],
    "meting": ["meeting"],
    "apointment": ["appointment"],
    "appt": ["appointment"],
    "dentist": ["dental"],
    "doctor": ["dr", "appointment"],
    "gym": ["workout", "exercise"],
    "workout": ["gym", "exercise"],
    "bday": ["birthday"],
    "b-day": ["birthday"],
    "mtg": ["meeting"],
}


def expand_keywords(identifiers: Iterable[str]) -> List[str]:
  keywords: List[str] = []
  for identifier in identifiers:
    keyword = str(identifier or "").strip().lower()
    if not keyword:
      continue
    for candidate in [keyword, *SYNONYMS.get(keyword, [])]:
      if candidate not in keywords:
        keywords.append(candidate)
  return keywords


def _matches(event: CalendarEvent, keyword: str) -> bool:
  summary = (event.summary or "").lower()
  description = (event.description or "").lower()
  if keyword in summary or keyword in description:
    return True
  if summary and summary in keyword:
    return True
  return any(
      len(token) >= MIN_MATCH_TOKEN_LENGTH and token in summary
      for token in keyword.split())


def match_events(events: Sequence[CalendarEvent],
                 identifiers: Sequence[str]) -> List[CalendarEvent]:
  """Events naming any identifier, in input order. No identifiers keeps everything."""
  if not identifiers:
    return list(events)
  keywords = expand_keywords(identifiers)
  if not keywords:
    # only blank identifiers: nothing was named
    return []
  return [event for event in events if any(_matches(event, kw) for kw in keywords)]
