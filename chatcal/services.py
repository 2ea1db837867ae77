from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .agent.executor import OperationExecutor
from .agent.function_calls import CalendarFunctions
from .agent.orchestrator import ChatOrchestrator
from .agent.tool_agent import ToolCallingAgent
from .credentials import CredentialStore
from .gcal import CalendarClient, ServiceFactory, build_calendar_service
from .token_refresher import TokenRefresher


@dataclass
class Services:
  store: CredentialStore
  refresher: TokenRefresher
  calendar: CalendarClient
  executor: OperationExecutor
  functions: CalendarFunctions
  orchestrator: ChatOrchestrator


def build_services(store: Optional[CredentialStore] = None,
                   refresher: Optional[TokenRefresher] = None,
                   service_factory: ServiceFactory = build_calendar_service) -> Services:
  store = store or CredentialStore()
  refresher = refresher or TokenRefresher(store)
  calendar = CalendarClient(store, refresher, service_factory=service_factory)
  executor = OperationExecutor(calendar)
  functions = CalendarFunctions(calendar)
  orchestrator = ChatOrchestrator(executor, ToolCallingAgent(functions))
  return Services(store=store,
                  refresher=refresher,
                  calendar=calendar,
                  executor=executor,
                  functions=functions,
                  orchestrator=orchestrator)
