from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from workforce_deliberation.models import ScoredPosition
from workforce_state.errors import AgentNotFoundError
from workforce_state.models import AgentState
from workforce_state.store import SQLiteStateStore

from .constants import ALIGNMENT_PIVOT, POST_SYNTHESIS_ALIGNED_DELTA, POST_SYNTHESIS_MISALIGNED_DELTA
from .locks import AgentLockRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrustChange:
    observer_id: str
    peer_id: str
    delta: float
    aligned: bool

    def as_dict(self) -> Dict[str, object]:
        return {
            "observer_id": self.observer_id,
            "peer_id": self.peer_id,
            "delta": self.delta,
            "aligned": self.aligned,
        }


def _side(weight: float) -> int:
    offset = weight - ALIGNMENT_PIVOT
    if offset > 0:
        return 1
    if offset < 0:
        return -1
    return 0


class PeerTrustUpdater:
    def __init__(
        self,
        store: SQLiteStateStore,
        *,
        locks: Optional[AgentLockRegistry] = None,
        aligned_delta: float = POST_SYNTHESIS_ALIGNED_DELTA,
        misaligned_delta: float = POST_SYNTHESIS_MISALIGNED_DELTA,
    ) -> None:
        self._store = store
        self._locks = locks or AgentLockRegistry()
        self._aligned_delta = float(aligned_delta)
        self._misaligned_delta = float(misaligned_delta)

    def plan_changes(self, ranked: Sequence[ScoredPosition]) -> List[TrustChange]:
        """Symmetric trust deltas between the winner and every other surviving position."""
        if len(ranked) < 2:
            return []
        winner = ranked[0]
        winner_side = _side(winner.final_weight)
        changes: List[TrustChange] = []
        for item in ranked[1:]:
            if item.employee_id == winner.employee_id:
                continue
            aligned = (
                item.position.doctrine_aligned == winner.position.doctrine_aligned
                and _side(item.final_weight) == winner_side
            )
            delta = self._aligned_delta if aligned else self._misaligned_delta
            changes.append(TrustChange(item.employee_id, winner.employee_id, delta, aligned))
            changes.append(TrustChange(winner.employee_id, item.employee_id, delta, aligned))
        return changes

    async def apply_change(self, change: TrustChange) -> Optional[AgentState]:
        async with self._locks.hold(change.observer_id):
            try:
                return await asyncio.to_thread(
                    self._store.update_peer_trust,
                    change.observer_id,
                    change.peer_id,
                    change.delta,
                )
            except AgentNotFoundError:
                logger.warning(
                    "TRUST_UPDATE_SKIPPED observer=%s peer=%s reason=unknown_agent",
                    change.observer_id,
                    change.peer_id,
                )
                return None
