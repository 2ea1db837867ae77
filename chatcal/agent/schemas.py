from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

OperationType = Literal["create", "update", "view", "delete"]


# ---------------------------------------------------------------------------
#  Intent Extractor output
# ---------------------------------------------------------------------------

class TimeRange(BaseModel):
  model_config = ConfigDict(extra="ignore")

  start: Optional[str] = None
  end: Optional[str] = None


class EventDetails(BaseModel):
  """Fields the user wants on a new event, or the fields to change on update."""
  model_config = ConfigDict(extra="ignore")

  summary: Optional[str] = None
  description: Optional[str] = None
  location: Optional[str] = None
  startDateTime: Optional[str] = None
  endDateTime: Optional[str] = None
  timeZone: Optional[str] = None
  isAllDay: Optional[bool] = None


class CreateOperation(BaseModel):
  model_config = ConfigDict(extra="ignore")

  type: Literal["create"]
  eventDetails: Optional[EventDetails] = None
  events: Optional[List[EventDetails]] = None

  def items(self) -> List[EventDetails]:
    out: List[EventDetails] = []
    if self.eventDetails is not None:
      out.append(self.eventDetails)
    out.extend(self.events or [])
    return out


class ViewOperation(BaseModel):
  model_config = ConfigDict(extra="ignore")

  type: Literal["view"]
  timeRange: Optional[TimeRange] = None


class UpdateOperation(BaseModel):
  model_config = ConfigDict(extra="ignore")

  type: Literal["update"]
  timeRange: Optional[TimeRange] = None
  eventDetails: EventDetails
  eventIdentifiers: List[str] = Field(default_factory=list)


class DeleteOperation(BaseModel):
  model_config = ConfigDict(extra="ignore")

  type: Literal["delete"]
  timeRange: Optional[TimeRange] = None
  eventIdentifiers: List[str] = Field(default_factory=list)


Operation = Annotated[
    Union[CreateOperation, ViewOperation, UpdateOperation, DeleteOperation],
    Field(discriminator="type"),
]


class Intent(BaseModel):
  model_config = ConfigDict(extra="forbid")

  operations: List[Operation] = Field(..., min_length=1)


# ---------------------------------------------------------------------------
#  Operation Executor output
# ---------------------------------------------------------------------------

class ItemResult(BaseModel):
  """One row per event touched (or attempted) by an operation."""
  id: Optional[str] = None
  summary: str = ""
  success: bool
  error: Optional[str] = None
  start: Optional[str] = None
  end: Optional[str] = None


class OperationResult(BaseModel):
  type: OperationType
  success: bool
  events: Optional[List[ItemResult]] = None
  updates: Optional[List[ItemResult]] = None
  deletions: Optional[List[ItemResult]] = None
  error: Optional[str] = None

  def rows(self) -> List[ItemResult]:
    return list(self.events or self.updates or self.deletions or [])

  def to_payload(self) -> Dict[str, Any]:
    return self.model_dump(exclude_none=True)
