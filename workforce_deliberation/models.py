from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from workforce_state.constants import DEFAULT_TRUST
from workforce_state.utils import display_name, normalize_agent_id

from .constants import ImpactLevel


class DeliberationState(str, Enum):
    REQUESTED = "requested"
    CONTEXT_LOADED = "context_loaded"
    POSITIONS_COLLECTED = "positions_collected"
    SYNTHESIZED = "synthesized"
    AWAITING_APPROVAL = "awaiting_approval"
    AUTO_RESOLVED = "auto_resolved"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ObjectiveImpact:
    objective_id: str
    expected_delta: float
    confidence: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "objective_id": self.objective_id,
            "expected_delta": self.expected_delta,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class Position:
    """One agent's stance plus the state snapshot it was scored against."""

    employee_id: str
    position: str
    reasoning: str
    confidence: float
    objections: str
    objective_impact: Tuple[ObjectiveImpact, ...] = ()
    doctrine_aligned: bool = False
    reputation_score: float = 0.5
    cognitive_load: float = 0.0
    peer_trust: Mapping[str, float] = field(default_factory=dict)

    @property
    def employee_name(self) -> str:
        return display_name(self.employee_id)

    def trust_toward(self, peer_id: str) -> float:
        return float(self.peer_trust.get(normalize_agent_id(peer_id), DEFAULT_TRUST))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "employee_id": self.employee_id,
            "employee_name": self.employee_name,
            "position": self.position,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "objections": self.objections,
            "objective_impact": [impact.as_dict() for impact in self.objective_impact],
            "doctrine_aligned": self.doctrine_aligned,
            "reputation_score": self.reputation_score,
            "cognitive_load": self.cognitive_load,
        }


@dataclass(frozen=True)
class ScoredPosition:
    position: Position
    objective_score: float
    reputation_adjusted_confidence: float
    doctrine_bonus: float
    final_weight: float
    rank: int

    @property
    def employee_id(self) -> str:
        return self.position.employee_id

    def as_dict(self) -> Dict[str, Any]:
        payload = self.position.as_dict()
        payload.update(
            {
                "objective_score": self.objective_score,
                "reputation_adjusted_confidence": self.reputation_adjusted_confidence,
                "doctrine_bonus": self.doctrine_bonus,
                "final_weight": self.final_weight,
                "rank": self.rank,
            }
        )
        return payload


@dataclass(frozen=True)
class DeliberationResult:
    discussion_id: str
    topic: str
    decision: str
    reasoning: str
    dissent: Tuple[str, ...]
    confidence: float
    impact_level: ImpactLevel
    objective_impact: Tuple[ObjectiveImpact, ...]
    requires_approval: bool
    summary: str
    winner_id: Optional[str] = None
    dissenter_ids: Tuple[str, ...] = ()
    doctrine_stale: bool = False
    state: DeliberationState = DeliberationState.SYNTHESIZED

    def as_dict(self) -> Dict[str, Any]:
        return {
            "discussion_id": self.discussion_id,
            "topic": self.topic,
            "decision": self.decision,
            "reasoning": self.reasoning,
            "dissent": list(self.dissent),
            "confidence": self.confidence,
            "impact_level": self.impact_level.value,
            "objective_impact": [impact.as_dict() for impact in self.objective_impact],
            "requires_approval": self.requires_approval,
            "summary": self.summary,
            "winner_id": self.winner_id,
            "dissenter_ids": list(self.dissenter_ids),
            "doctrine_stale": self.doctrine_stale,
            "state": self.state.value,
        }


@dataclass(frozen=True)
class DeliberationRun:
    discussion_id: str
    topic: str
    impact_level: ImpactLevel
    states: Tuple[DeliberationState, ...]
    ranked: Tuple[ScoredPosition, ...] = ()
    result: Optional[DeliberationResult] = None

    @property
    def skipped(self) -> bool:
        return bool(self.states) and self.states[-1] is DeliberationState.SKIPPED

    @property
    def final_state(self) -> DeliberationState:
        return self.states[-1]

    def as_dict(self) -> Dict[str, Any]:
        ranked: List[Dict[str, Any]] = [item.as_dict() for item in self.ranked]
        return {
            "discussion_id": self.discussion_id,
            "topic": self.topic,
            "impact_level": self.impact_level.value,
            "states": [state.value for state in self.states],
            "ranked": ranked,
            "result": self.result.as_dict() if self.result is not None else None,
        }
