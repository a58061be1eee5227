from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from workforce_state.models import AgentState, Reflection
from workforce_state.store import SQLiteStateStore
from workforce_state.utils import normalize_agent_id

from .constants import (
    FLAG_LOW_REPUTATION,
    FLAG_LOW_SUCCESS_RATE,
    FLAG_NEGATIVE_EMOTIONAL_PATTERN,
    FLAG_OVERLOADED,
    HEALTH_MAX_COGNITIVE_LOAD,
    HEALTH_MIN_REPUTATION,
    HEALTH_MIN_SUCCESS_RATE,
    HEALTH_NEGATIVE_INTENSITY,
    HEALTH_NEGATIVE_MEMORY_COUNT,
    HEALTH_WINDOW_DAYS,
    NEGATIVE_EVENT_KEYWORDS,
)
from .locks import AgentLockRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentHealth:
    employee_id: str
    success_rate: Optional[float]
    evaluated_reflections: int
    reputation_score: float
    cognitive_load: float
    negative_memories: int
    flags: Tuple[str, ...]

    def as_dict(self) -> Dict[str, object]:
        return {
            "employee_id": self.employee_id,
            "success_rate": self.success_rate,
            "evaluated_reflections": self.evaluated_reflections,
            "reputation_score": self.reputation_score,
            "cognitive_load": self.cognitive_load,
            "negative_memories": self.negative_memories,
            "flags": list(self.flags),
        }


@dataclass(frozen=True)
class HealthReport:
    generated_at: str
    agents: Tuple[AgentHealth, ...]

    @property
    def flagged(self) -> List[AgentHealth]:
        return [agent for agent in self.agents if agent.flags]

    def as_dict(self) -> Dict[str, object]:
        return {
            "generated_at": self.generated_at,
            "agents": [agent.as_dict() for agent in self.agents],
            "flagged": [agent.employee_id for agent in self.flagged],
        }


def count_negative_memories(state: AgentState) -> int:
    count = 0
    for event in state.emotional_memory:
        if event.intensity <= HEALTH_NEGATIVE_INTENSITY:
            continue
        text = event.event.lower()
        if any(keyword in text for keyword in NEGATIVE_EVENT_KEYWORDS):
            count += 1
    return count


def assess_agent(state: AgentState, reflections: List[Reflection]) -> AgentHealth:
    judged = [reflection for reflection in reflections if reflection.outcome_correct is not None]
    success_rate: Optional[float] = None
    if judged:
        success_rate = sum(1 for reflection in judged if reflection.outcome_correct) / len(judged)
    negative = count_negative_memories(state)

    flags: List[str] = []
    if success_rate is not None and success_rate < HEALTH_MIN_SUCCESS_RATE:
        flags.append(FLAG_LOW_SUCCESS_RATE)
    if state.reputation_score < HEALTH_MIN_REPUTATION:
        flags.append(FLAG_LOW_REPUTATION)
    if state.cognitive_load > HEALTH_MAX_COGNITIVE_LOAD:
        flags.append(FLAG_OVERLOADED)
    if negative >= HEALTH_NEGATIVE_MEMORY_COUNT:
        flags.append(FLAG_NEGATIVE_EMOTIONAL_PATTERN)

    return AgentHealth(
        employee_id=state.employee_id,
        success_rate=success_rate,
        evaluated_reflections=len(judged),
        reputation_score=state.reputation_score,
        cognitive_load=state.cognitive_load,
        negative_memories=negative,
        flags=tuple(flags),
    )


class WorkforceHealthReview:
    """Weekly performance review over judged reflections and current agent state."""

    def __init__(self, store: SQLiteStateStore, *, locks: Optional[AgentLockRegistry] = None) -> None:
        self._store = store
        self._locks = locks or AgentLockRegistry()

    async def review(self, now: Optional[datetime] = None) -> HealthReport:
        moment = now or self._store.now()
        since = moment - timedelta(days=HEALTH_WINDOW_DAYS)
        reflections = await asyncio.to_thread(self._store.list_evaluated_reflections, since=since)
        by_agent: Dict[str, List[Reflection]] = defaultdict(list)
        for reflection in reflections:
            by_agent[normalize_agent_id(reflection.employee_id)].append(reflection)

        states = await asyncio.to_thread(self._store.list_agent_states)
        agents: List[AgentHealth] = []
        for state in states:
            health = assess_agent(state, by_agent.get(state.employee_id, []))
            agents.append(health)
            if health.success_rate is None:
                continue
            metrics = {
                "success_rate": health.success_rate,
                "evaluated_reflections": float(health.evaluated_reflections),
            }
            try:
                async with self._locks.hold(state.employee_id):
                    await asyncio.to_thread(self._store.update_performance_metrics, state.employee_id, metrics)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("HEALTH_METRICS_WRITE_FAILED agent=%s", state.employee_id, exc_info=True)

        report = HealthReport(generated_at=moment.isoformat(), agents=tuple(agents))
        for agent in report.flagged:
            logger.info("WORKFORCE_HEALTH_FLAG agent=%s flags=%s", agent.employee_id, ",".join(agent.flags))
        return report
