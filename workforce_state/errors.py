from __future__ import annotations


class StateStoreError(Exception):
    """Raised when the state store cannot complete a read or write."""


class AgentNotFoundError(StateStoreError, KeyError):
    def __init__(self, agent_id: str) -> None:
        super().__init__(f"unknown agent '{agent_id}'")
        self.agent_id = agent_id
