from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional, Sequence

from workforce_state.models import AgentState, Doctrine
from workforce_state.store import SQLiteStateStore
from workforce_state.utils import normalize_agent_id

from .completion import CompletionClient
from .config import DeliberationConfig
from .constants import GATE_EXEMPT_IMPACT_LEVELS, ImpactLevel
from .context import ContextBundle
from .errors import CompletionError, PositionParseError
from .models import ObjectiveImpact, Position
from .prompts import build_position_messages
from .schemas import parse_position_payload

logger = logging.getLogger(__name__)


def unique_agent_ids(agent_ids: Iterable[str]) -> List[str]:
    seen = set()
    ordered: List[str] = []
    for raw in agent_ids:
        agent_id = normalize_agent_id(raw)
        if not agent_id or agent_id in seen:
            continue
        seen.add(agent_id)
        ordered.append(agent_id)
    return ordered


class PositionCollector:
    """Fans one completion request out per eligible agent and keeps whatever comes back."""

    def __init__(
        self,
        *,
        store: SQLiteStateStore,
        client: CompletionClient,
        config: Optional[DeliberationConfig] = None,
    ) -> None:
        self._store = store
        self._client = client
        self._config = config or DeliberationConfig()

    async def collect(
        self,
        *,
        topic: str,
        impact_level: ImpactLevel,
        agent_ids: Sequence[str],
        context: ContextBundle,
        context_hint: Optional[str] = None,
    ) -> List[Position]:
        states = await self._load_states(unique_agent_ids(agent_ids))
        eligible = [state for state in states if self._passes_gate(state, impact_level)]
        if not eligible:
            return []

        brief = context.render_brief(topic, impact_level, context_hint)
        semaphore = asyncio.Semaphore(self._config.max_concurrency)
        tasks = [
            asyncio.create_task(
                self._request_position(state, brief, context.doctrine, semaphore),
                name=f"position:{state.employee_id}",
            )
            for state in eligible
        ]
        done, pending = await asyncio.wait(tasks, timeout=self._config.deliberation_timeout_seconds)
        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "POSITION_DEADLINE_EXCEEDED topic=%r cancelled=%d timeout=%s",
                topic,
                len(pending),
                self._config.deliberation_timeout_seconds,
            )

        positions: List[Position] = []
        for state, task in zip(eligible, tasks):
            if task not in done or task.cancelled():
                continue
            error = task.exception()
            if error is not None:
                logger.error(
                    "POSITION_TASK_FAILED agent=%s",
                    state.employee_id,
                    exc_info=(type(error), error, error.__traceback__),
                )
                continue
            position = task.result()
            if position is not None:
                positions.append(position)

        logger.info(
            "POSITIONS_COLLECTED topic=%r requested=%d eligible=%d collected=%d",
            topic,
            len(agent_ids),
            len(eligible),
            len(positions),
        )
        return positions

    def _passes_gate(self, state: AgentState, impact_level: ImpactLevel) -> bool:
        if impact_level in GATE_EXEMPT_IMPACT_LEVELS:
            return True
        if state.cognitive_load > self._config.cognitive_load_gate:
            logger.info(
                "POSITION_GATED agent=%s cognitive_load=%.2f impact=%s",
                state.employee_id,
                state.cognitive_load,
                impact_level.value,
            )
            return False
        return True

    async def _load_states(self, agent_ids: Sequence[str]) -> List[AgentState]:
        loaded = await asyncio.gather(
            *(asyncio.to_thread(self._store.load_agent_state, agent_id) for agent_id in agent_ids),
            return_exceptions=True,
        )
        states: List[AgentState] = []
        for agent_id, outcome in zip(agent_ids, loaded):
            if isinstance(outcome, BaseException):
                logger.warning("AGENT_STATE_LOAD_FAILED agent=%s error=%s", agent_id, outcome)
                continue
            if outcome is None:
                logger.warning("AGENT_STATE_MISSING agent=%s", agent_id)
                continue
            states.append(outcome)
        return states

    async def _request_position(
        self,
        state: AgentState,
        brief: str,
        doctrine: Optional[Doctrine],
        semaphore: asyncio.Semaphore,
    ) -> Optional[Position]:
        messages = build_position_messages(state, brief, doctrine)
        async with semaphore:
            try:
                text = await asyncio.wait_for(
                    self._client.complete(messages),
                    timeout=self._config.request_timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "POSITION_DROPPED agent=%s reason=timeout timeout=%s",
                    state.employee_id,
                    self._config.request_timeout_seconds,
                )
                return None
            except CompletionError as exc:
                logger.warning("POSITION_DROPPED agent=%s reason=completion_error error=%s", state.employee_id, exc)
                return None
            except Exception:
                logger.exception("POSITION_DROPPED agent=%s reason=unexpected_error", state.employee_id)
                return None

        try:
            payload = parse_position_payload(text)
        except PositionParseError as exc:
            logger.warning("POSITION_DROPPED agent=%s reason=malformed_payload error=%s", state.employee_id, exc)
            return None

        confidence = payload.confidence if payload.confidence is not None else state.confidence
        return Position(
            employee_id=state.employee_id,
            position=payload.position,
            reasoning=payload.reasoning,
            confidence=confidence,
            objections=payload.objections,
            objective_impact=tuple(
                ObjectiveImpact(
                    objective_id=impact.objective_id,
                    expected_delta=impact.expected_delta,
                    confidence=impact.confidence,
                )
                for impact in payload.objective_impact
            ),
            doctrine_aligned=payload.doctrine_aligned,
            reputation_score=state.reputation_score,
            cognitive_load=state.cognitive_load,
            peer_trust=dict(state.peer_trust),
        )
