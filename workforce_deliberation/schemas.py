"""Strict schema for the JSON body an agent returns when asked for a position."""

from __future__ import annotations

import json
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import PositionParseError


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class ObjectiveImpactPayload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", allow_inf_nan=False)

    objective_id: str = Field(min_length=1)
    expected_delta: float = 0.0
    confidence: float = 0.5

    @field_validator("objective_id", mode="before")
    @classmethod
    def _strip_objective_id(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return _clamp_unit(value)


class PositionPayload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", allow_inf_nan=False)

    position: str = Field(min_length=1)
    reasoning: str = ""
    objections: str = ""
    confidence: Optional[float] = None
    objective_impact: List[ObjectiveImpactPayload] = Field(default_factory=list)
    doctrine_aligned: bool = False

    @field_validator("position", mode="before")
    @classmethod
    def _strip_position(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("reasoning", "objections", mode="before")
    @classmethod
    def _blank_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value.strip() if isinstance(value, str) else value

    @field_validator("objective_impact", mode="before")
    @classmethod
    def _empty_impacts(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("doctrine_aligned", mode="before")
    @classmethod
    def _missing_alignment(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, value: Optional[float]) -> Optional[float]:
        return None if value is None else _clamp_unit(value)


def parse_position_payload(text: str) -> PositionPayload:
    if not isinstance(text, str) or not text.strip():
        raise PositionParseError("empty completion body")
    try:
        raw = json.loads(text)
    except ValueError as exc:
        raise PositionParseError(f"completion body is not JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise PositionParseError(f"completion body must be a JSON object, got {type(raw).__name__}")
    try:
        return PositionPayload.model_validate(raw)
    except ValidationError as exc:
        raise PositionParseError(f"completion body failed position schema: {exc.error_count()} error(s)") from exc
