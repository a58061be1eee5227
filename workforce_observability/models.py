from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

CHANNEL_DECISIONS = "decisions"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_json_safe(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value

    if isinstance(value, Mapping):
        return {str(key): to_json_safe(raw) for key, raw in value.items()}

    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_json_safe(item) for item in value]

    as_dict = getattr(value, "as_dict", None)
    if callable(as_dict):
        return to_json_safe(as_dict())

    enum_value = getattr(value, "value", None)
    if isinstance(enum_value, (str, int, float)):
        return enum_value

    return str(value)


class StreamEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    channel: str
    timestamp: str = Field(default_factory=utc_now_iso)
    source: str = "unknown"
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def build(cls, *, channel: str, data: Any, source: str, timestamp: Optional[str] = None) -> "StreamEnvelope":
        payload = data if isinstance(data, Mapping) else {"value": data}
        return cls(
            channel=str(channel),
            timestamp=timestamp if isinstance(timestamp, str) and timestamp.strip() else utc_now_iso(),
            source=str(source),
            data=to_json_safe(payload),
        )


class DeliberationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    topic: str
    impact_level: str
    agent_ids: List[str] = Field(default_factory=list)
    context_hint: Optional[str] = None
    action_type: Optional[str] = None


class DeliberationResponse(BaseModel):
    discussion_id: str
    skipped: bool
    states: List[str] = Field(default_factory=list)
    result: Optional[Dict[str, Any]] = None
    ranked: List[Dict[str, Any]] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = "ok"
    agents: int = 0
    pending_background_jobs: int = 0
    timestamp: str = Field(default_factory=utc_now_iso)
