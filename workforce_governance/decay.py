from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from workforce_state.models import AgentState
from workforce_state.store import SQLiteStateStore

from .constants import (
    DECAY_COGNITIVE_LOAD_FACTOR,
    DECAY_INTENSITY_FACTOR,
    DECAY_NEUTRAL,
    DECAY_REPUTATION_RATE,
    DECAY_TRUST_RATE,
    DEFAULT_DECAY_INTERVAL_SECONDS,
    EMOTIONAL_EVICTION_THRESHOLD,
)
from .locks import AgentLockRegistry

logger = logging.getLogger(__name__)


def _toward_neutral(value: float, rate: float) -> float:
    return value + (DECAY_NEUTRAL - value) * rate


def decay_agent_state(state: AgentState) -> AgentState:
    """One decay step: load eases off, trust and reputation drift toward neutral, memories fade."""
    memory = []
    for event in state.emotional_memory:
        intensity = event.intensity * DECAY_INTENSITY_FACTOR
        if intensity < EMOTIONAL_EVICTION_THRESHOLD:
            continue
        memory.append(replace(event, intensity=intensity))
    return replace(
        state,
        cognitive_load=state.cognitive_load * DECAY_COGNITIVE_LOAD_FACTOR,
        peer_trust={peer: _toward_neutral(trust, DECAY_TRUST_RATE) for peer, trust in state.peer_trust.items()},
        reputation_score=_toward_neutral(state.reputation_score, DECAY_REPUTATION_RATE),
        emotional_memory=memory,
    ).normalized()


@dataclass
class DecayReport:
    decayed: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    started_at: str = ""
    finished_at: str = ""

    def as_dict(self) -> Dict[str, object]:
        return {
            "decayed": list(self.decayed),
            "failed": dict(self.failed),
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


class DecayScheduler:
    def __init__(
        self,
        store: SQLiteStateStore,
        *,
        locks: Optional[AgentLockRegistry] = None,
        interval_seconds: float = DEFAULT_DECAY_INTERVAL_SECONDS,
    ) -> None:
        self._store = store
        self._locks = locks or AgentLockRegistry()
        self._interval_seconds = max(1.0, float(interval_seconds))

    async def run_decay_cycle(self) -> DecayReport:
        report = DecayReport(started_at=self._store.now().isoformat())
        agent_ids = await asyncio.to_thread(self._store.list_agent_ids)
        for agent_id in agent_ids:
            try:
                async with self._locks.hold(agent_id):
                    await asyncio.to_thread(self._store.mutate_agent, agent_id, decay_agent_state)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                report.failed[agent_id] = str(exc)
                logger.warning("DECAY_FAILED agent=%s error=%s", agent_id, exc, exc_info=True)
                continue
            report.decayed.append(agent_id)
        report.finished_at = self._store.now().isoformat()
        logger.info("DECAY_CYCLE_COMPLETE decayed=%d failed=%d", len(report.decayed), len(report.failed))
        return report

    async def run_forever(
        self,
        interval_seconds: Optional[float] = None,
        *,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        interval = self._interval_seconds if interval_seconds is None else max(1.0, float(interval_seconds))
        stop = stop_event or asyncio.Event()
        while not stop.is_set():
            await self.run_decay_cycle()
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
