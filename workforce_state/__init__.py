from .errors import AgentNotFoundError, StateStoreError
from .models import (
    AgentState,
    CompanyState,
    Doctrine,
    EmotionalEvent,
    Objective,
    Reflection,
    ServiceEconomic,
)
from .store import SQLiteStateStore

__all__ = [
    "AgentNotFoundError",
    "AgentState",
    "CompanyState",
    "Doctrine",
    "EmotionalEvent",
    "Objective",
    "Reflection",
    "SQLiteStateStore",
    "ServiceEconomic",
    "StateStoreError",
]
