from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .constants import (
    BELIEF_MAX,
    BELIEF_MIN,
    COGNITIVE_LOAD_MAX,
    COGNITIVE_LOAD_MIN,
    CONFIDENCE_MAX,
    CONFIDENCE_MIN,
    DEFAULT_BELIEFS,
    DEFAULT_COGNITIVE_LOAD,
    DEFAULT_CONFIDENCE,
    DEFAULT_INITIATIVE,
    DEFAULT_REPUTATION,
    DEFAULT_TRUST,
    DOCTRINE_STALE_DAYS,
    EMOTIONAL_MEMORY_CAP,
    INITIATIVE_MAX,
    INITIATIVE_MIN,
    INTENSITY_MAX,
    INTENSITY_MIN,
    OBJECTIVE_STATUS_ACTIVE,
    REPUTATION_MAX,
    REPUTATION_MIN,
    TRUST_MAX,
    TRUST_MIN,
)
from .utils import as_float, as_int, as_text, iso_now, normalize_agent_id, parse_iso, utc_now


@dataclass(frozen=True)
class EmotionalEvent:
    event: str
    intensity: float
    timestamp: str
    source: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "event": self.event,
            "intensity": self.intensity,
            "timestamp": self.timestamp,
        }
        if self.source is not None:
            payload["source"] = self.source
        return payload

    @classmethod
    def coerce(cls, value: Any) -> Optional["EmotionalEvent"]:
        if isinstance(value, EmotionalEvent):
            return replace(value, intensity=_clamp_intensity(value.intensity))
        if not isinstance(value, Mapping):
            return None
        event = as_text(value.get("event"))
        if not event:
            return None
        source = value.get("source")
        return cls(
            event=event,
            intensity=_clamp_intensity(value.get("intensity")),
            timestamp=as_text(value.get("timestamp"), default=iso_now()),
            source=str(source) if source is not None else None,
        )


def _clamp_intensity(value: Any) -> float:
    return max(INTENSITY_MIN, min(INTENSITY_MAX, as_float(value, default=0.0)))


def _clamp(value: Any, low: float, high: float, *, default: float) -> float:
    return max(low, min(high, as_float(value, default=default)))


def normalize_beliefs(value: Any) -> Dict[str, float]:
    source = value if isinstance(value, Mapping) else {}
    beliefs: Dict[str, float] = {}
    for name, raw in source.items():
        key = as_text(name)
        if not key:
            continue
        beliefs[key] = _clamp(raw, BELIEF_MIN, BELIEF_MAX, default=0.5)
    return beliefs


def normalize_peer_trust(value: Any) -> Dict[str, float]:
    source = value if isinstance(value, Mapping) else {}
    trust: Dict[str, float] = {}
    for peer_raw, weight in source.items():
        peer_id = normalize_agent_id(peer_raw)
        if not peer_id:
            continue
        trust[peer_id] = _clamp(weight, TRUST_MIN, TRUST_MAX, default=DEFAULT_TRUST)
    return trust


def _as_metrics(value: Any) -> Dict[str, float]:
    if not isinstance(value, Mapping):
        return {}
    return {str(key): as_float(raw, default=0.0) for key, raw in value.items()}


def normalize_emotional_memory(value: Any) -> List[EmotionalEvent]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        return []
    events = [event for event in (EmotionalEvent.coerce(item) for item in value) if event is not None]
    return events[-EMOTIONAL_MEMORY_CAP:]


@dataclass
class AgentState:
    """Long-lived political and cognitive state of one agent."""

    employee_id: str
    beliefs: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_BELIEFS))
    confidence: float = DEFAULT_CONFIDENCE
    reputation_score: float = DEFAULT_REPUTATION
    initiative_score: float = DEFAULT_INITIATIVE
    cognitive_load: float = DEFAULT_COGNITIVE_LOAD
    peer_trust: Dict[str, float] = field(default_factory=dict)
    emotional_memory: List[EmotionalEvent] = field(default_factory=list)
    emotional_stance: str = "neutral"
    core_motivation: str = ""
    performance_metrics: Dict[str, float] = field(default_factory=dict)
    updated_at: str = ""

    @property
    def name(self) -> str:
        return self.employee_id.replace("_", " ")

    def trust_toward(self, peer_id: str) -> float:
        return float(self.peer_trust.get(normalize_agent_id(peer_id), DEFAULT_TRUST))

    def belief(self, name: str, default: float = 0.5) -> float:
        return float(self.beliefs.get(name, default))

    def normalized(self) -> "AgentState":
        """Return a copy with every scalar re-clamped into its legal range."""
        return AgentState(
            employee_id=normalize_agent_id(self.employee_id),
            beliefs=normalize_beliefs(self.beliefs),
            confidence=_clamp(self.confidence, CONFIDENCE_MIN, CONFIDENCE_MAX, default=DEFAULT_CONFIDENCE),
            reputation_score=_clamp(self.reputation_score, REPUTATION_MIN, REPUTATION_MAX, default=DEFAULT_REPUTATION),
            initiative_score=_clamp(self.initiative_score, INITIATIVE_MIN, INITIATIVE_MAX, default=DEFAULT_INITIATIVE),
            cognitive_load=_clamp(
                self.cognitive_load, COGNITIVE_LOAD_MIN, COGNITIVE_LOAD_MAX, default=DEFAULT_COGNITIVE_LOAD
            ),
            peer_trust=normalize_peer_trust(self.peer_trust),
            emotional_memory=normalize_emotional_memory(self.emotional_memory),
            emotional_stance=as_text(self.emotional_stance, default="neutral"),
            core_motivation=as_text(self.core_motivation),
            performance_metrics=_as_metrics(self.performance_metrics),
            updated_at=str(self.updated_at or ""),
        )

    def with_emotional_event(
        self,
        event: str,
        intensity: float,
        *,
        source: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> "AgentState":
        memory = list(self.emotional_memory)
        memory.append(
            EmotionalEvent(
                event=event,
                intensity=_clamp_intensity(intensity),
                timestamp=timestamp or iso_now(),
                source=source,
            )
        )
        while len(memory) > EMOTIONAL_MEMORY_CAP:
            memory.pop(0)
        return replace(self, emotional_memory=memory)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "employee_id": self.employee_id,
            "beliefs": dict(self.beliefs),
            "confidence": self.confidence,
            "reputation_score": self.reputation_score,
            "initiative_score": self.initiative_score,
            "cognitive_load": self.cognitive_load,
            "peer_trust": dict(self.peer_trust),
            "emotional_memory": [event.as_dict() for event in self.emotional_memory],
            "emotional_stance": self.emotional_stance,
            "core_motivation": self.core_motivation,
            "performance_metrics": dict(self.performance_metrics),
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_mapping(cls, value: Mapping[str, Any]) -> "AgentState":
        beliefs_raw = value.get("beliefs")
        return cls(
            employee_id=normalize_agent_id(value.get("employee_id")),
            beliefs=dict(beliefs_raw) if isinstance(beliefs_raw, Mapping) else dict(DEFAULT_BELIEFS),
            confidence=as_float(value.get("confidence"), default=DEFAULT_CONFIDENCE),
            reputation_score=as_float(value.get("reputation_score"), default=DEFAULT_REPUTATION),
            initiative_score=as_float(value.get("initiative_score"), default=DEFAULT_INITIATIVE),
            cognitive_load=as_float(value.get("cognitive_load"), default=DEFAULT_COGNITIVE_LOAD),
            peer_trust=normalize_peer_trust(value.get("peer_trust")),
            emotional_memory=normalize_emotional_memory(value.get("emotional_memory")),
            emotional_stance=as_text(value.get("emotional_stance"), default="neutral"),
            core_motivation=as_text(value.get("core_motivation")),
            performance_metrics=_as_metrics(value.get("performance_metrics")),
            updated_at=as_text(value.get("updated_at")),
        ).normalized()


@dataclass(frozen=True)
class CompanyState:
    momentum: str = "steady"
    stress_level: float = 0.0
    growth_velocity: str = "flat"
    risk_exposure: str = "low"
    morale: str = "neutral"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "momentum": self.momentum,
            "stress_level": self.stress_level,
            "growth_velocity": self.growth_velocity,
            "risk_exposure": self.risk_exposure,
            "morale": self.morale,
        }


@dataclass(frozen=True)
class Objective:
    id: str
    title: str
    metric: str = ""
    target_value: float = 0.0
    current_value: float = 0.0
    deadline: Optional[str] = None
    priority: int = 3
    status: str = OBJECTIVE_STATUS_ACTIVE

    @property
    def weight(self) -> float:
        return 1.0 / float(max(1, as_int(self.priority, default=1)))

    def matches(self, ref: str) -> bool:
        if not ref:
            return False
        return ref == self.id or (bool(self.metric) and ref == self.metric)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "metric": self.metric,
            "target_value": self.target_value,
            "current_value": self.current_value,
            "deadline": self.deadline,
            "priority": self.priority,
            "status": self.status,
        }


@dataclass(frozen=True)
class ServiceEconomic:
    id: str
    name: str
    category: str
    margin: float = 0.0
    scalability_score: float = 0.0
    operational_complexity: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "margin": self.margin,
            "scalability_score": self.scalability_score,
            "operational_complexity": self.operational_complexity,
        }


@dataclass(frozen=True)
class Doctrine:
    strategic_shift: str
    period: str
    created_at: str

    def age(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        created = parse_iso(self.created_at)
        if created is None:
            return None
        return (now or utc_now()) - created

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        age = self.age(now)
        if age is None:
            return True
        return age > timedelta(days=DOCTRINE_STALE_DAYS)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "strategic_shift": self.strategic_shift,
            "period": self.period,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class Reflection:
    employee_id: str
    action_ref: str
    reasoning: str
    expected_outcome: str
    confidence: float
    what_would_change_mind: str = ""
    actual_outcome: Optional[str] = None
    outcome_evaluated: bool = False
    outcome_correct: Optional[bool] = None
    discussion_id: Optional[str] = None
    objective_id: Optional[str] = None
    baseline_value: Optional[float] = None
    created_at: str = ""
    evaluated_at: Optional[str] = None
    id: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "action_ref": self.action_ref,
            "reasoning": self.reasoning,
            "expected_outcome": self.expected_outcome,
            "confidence": self.confidence,
            "what_would_change_mind": self.what_would_change_mind,
            "actual_outcome": self.actual_outcome,
            "outcome_evaluated": self.outcome_evaluated,
            "outcome_correct": self.outcome_correct,
            "discussion_id": self.discussion_id,
            "objective_id": self.objective_id,
            "baseline_value": self.baseline_value,
            "created_at": self.created_at,
            "evaluated_at": self.evaluated_at,
        }
