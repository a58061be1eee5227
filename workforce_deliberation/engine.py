from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Sequence, Union

from workforce_state.models import Doctrine, Reflection
from workforce_state.store import SQLiteStateStore

from .background import BackgroundTaskQueue
from .collector import PositionCollector, unique_agent_ids
from .completion import CompletionClient
from .config import DeliberationConfig
from .constants import ImpactLevel
from .context import ContextBuilder, ContextBundle
from .errors import DeliberationRequestError
from .models import DeliberationResult, DeliberationRun, DeliberationState, ScoredPosition
from .synthesis import SynthesisEngine, should_deliberate

logger = logging.getLogger(__name__)


class TrustUpdater(Protocol):
    def plan_changes(self, ranked: Sequence[ScoredPosition]) -> Sequence[Any]:
        ...

    async def apply_change(self, change: Any) -> Any:
        ...


class DecisionPublisher(Protocol):
    async def publish(
        self,
        *,
        topic: str,
        ranked: Sequence[ScoredPosition],
        result: DeliberationResult,
        doctrine: Optional[Doctrine],
    ) -> bool:
        ...


def coerce_impact_level(value: Union[ImpactLevel, str]) -> ImpactLevel:
    if isinstance(value, ImpactLevel):
        return value
    if isinstance(value, str):
        try:
            return ImpactLevel(value.strip().lower())
        except ValueError:
            pass
    allowed = ", ".join(level.value for level in ImpactLevel)
    raise DeliberationRequestError(f"impact_level must be one of {allowed}; got {value!r}")


class DeliberationEngine:
    """Runs one deliberation end to end and hands political side effects to the background queue."""

    def __init__(
        self,
        *,
        store: SQLiteStateStore,
        client: CompletionClient,
        config: Optional[DeliberationConfig] = None,
        trust_updater: Optional[TrustUpdater] = None,
        publisher: Optional[DecisionPublisher] = None,
        background: Optional[BackgroundTaskQueue] = None,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self._store = store
        self._config = config or DeliberationConfig()
        self._context_builder = ContextBuilder(store)
        self._collector = PositionCollector(store=store, client=client, config=self._config)
        self._synthesis = SynthesisEngine()
        if trust_updater is None:
            from workforce_governance.relationship import PeerTrustUpdater

            trust_updater = PeerTrustUpdater(store)
        self._trust_updater = trust_updater
        self._publisher = publisher
        self._background = background or BackgroundTaskQueue(
            attempts=self._config.trust_update_attempts,
            backoff_seconds=self._config.trust_update_backoff_seconds,
        )
        self._id_factory = id_factory

    @property
    def config(self) -> DeliberationConfig:
        return self._config

    @property
    def background(self) -> BackgroundTaskQueue:
        return self._background

    async def deliberate(
        self,
        topic: str,
        impact_level: Union[ImpactLevel, str],
        agent_ids: Sequence[str],
        context_hint: Optional[str] = None,
        action_type: Optional[str] = None,
    ) -> Optional[DeliberationResult]:
        """Return the synthesized decision, or None when the request falls under the skip rule."""
        run = await self.run(topic, impact_level, agent_ids, context_hint=context_hint, action_type=action_type)
        return run.result

    async def run(
        self,
        topic: str,
        impact_level: Union[ImpactLevel, str],
        agent_ids: Sequence[str],
        *,
        context_hint: Optional[str] = None,
        action_type: Optional[str] = None,
    ) -> DeliberationRun:
        if not isinstance(topic, str) or not topic.strip():
            raise DeliberationRequestError("topic must be a non-empty string")
        topic = topic.strip()
        level = coerce_impact_level(impact_level)
        if isinstance(agent_ids, (str, bytes)) or not isinstance(agent_ids, Sequence):
            raise DeliberationRequestError("agent_ids must be a sequence of agent ids")

        discussion_id = self._id_factory()
        states: List[DeliberationState] = [DeliberationState.REQUESTED]

        if not should_deliberate(action_type, level, self._config.skip_actions):
            states.append(DeliberationState.SKIPPED)
            logger.info(
                "DELIBERATION_SKIPPED discussion=%s topic=%r impact=%s action=%s",
                discussion_id,
                topic,
                level.value,
                action_type,
            )
            return DeliberationRun(discussion_id=discussion_id, topic=topic, impact_level=level, states=tuple(states))

        participants = unique_agent_ids(agent_ids)
        if not participants:
            raise DeliberationRequestError("agent_ids must name at least one agent")

        logger.info(
            "DELIBERATION_REQUESTED discussion=%s topic=%r impact=%s agents=%d",
            discussion_id,
            topic,
            level.value,
            len(participants),
        )
        context = await self._context_builder.build()
        states.append(DeliberationState.CONTEXT_LOADED)

        positions = await self._collector.collect(
            topic=topic,
            impact_level=level,
            agent_ids=participants,
            context=context,
            context_hint=context_hint,
        )
        states.append(DeliberationState.POSITIONS_COLLECTED)

        ranked, result = self._synthesis.synthesize(
            discussion_id=discussion_id,
            topic=topic,
            impact_level=level,
            positions=positions,
            context=context,
        )
        states.append(DeliberationState.SYNTHESIZED)
        states.append(result.state)

        await self._persist(discussion_id, topic, level, ranked, result, context)
        self._dispatch_side_effects(topic, ranked, result, context)

        logger.info(
            "DELIBERATION_FINISHED discussion=%s state=%s winner=%s confidence=%.3f positions=%d",
            discussion_id,
            result.state.value,
            result.winner_id,
            result.confidence,
            len(ranked),
        )
        return DeliberationRun(
            discussion_id=discussion_id,
            topic=topic,
            impact_level=level,
            states=tuple(states),
            ranked=tuple(ranked),
            result=result,
        )

    async def drain_background(self) -> None:
        await self._background.drain()

    async def close(self) -> None:
        await self._background.drain()

    async def _persist(
        self,
        discussion_id: str,
        topic: str,
        level: ImpactLevel,
        ranked: Sequence[ScoredPosition],
        result: DeliberationResult,
        context: ContextBundle,
    ) -> None:
        await self._best_effort(
            "positions",
            discussion_id,
            lambda: self._store.append_discussion_positions(
                discussion_id=discussion_id,
                topic=topic,
                impact_level=level.value,
                positions=[item.as_dict() for item in ranked],
            ),
        )
        await self._best_effort(
            "result",
            discussion_id,
            lambda: self._store.append_discussion_result(
                discussion_id=discussion_id,
                topic=topic,
                result=result.as_dict(),
            ),
        )
        if ranked:
            reflection = self._winner_reflection(ranked[0], result, context)
            await self._best_effort("reflection", discussion_id, lambda: self._store.log_reflection(reflection))

    @staticmethod
    def _winner_reflection(winner: ScoredPosition, result: DeliberationResult, context: ContextBundle) -> Reflection:
        objective_id: Optional[str] = None
        baseline: Optional[float] = None
        for impact in winner.position.objective_impact:
            objective = context.objective_for(impact.objective_id)
            if objective is not None:
                objective_id = objective.id
                baseline = objective.current_value
                break
        return Reflection(
            employee_id=winner.employee_id,
            action_ref=f"deliberation:{result.discussion_id}",
            reasoning=winner.position.reasoning,
            expected_outcome=result.decision,
            confidence=winner.position.confidence,
            what_would_change_mind=winner.position.objections,
            discussion_id=result.discussion_id,
            objective_id=objective_id,
            baseline_value=baseline,
        )

    async def _best_effort(self, what: str, discussion_id: str, write: Callable[[], Any]) -> None:
        try:
            await asyncio.to_thread(write)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("DISCUSSION_PERSIST_FAILED discussion=%s part=%s", discussion_id, what, exc_info=True)

    def _dispatch_side_effects(
        self,
        topic: str,
        ranked: Sequence[ScoredPosition],
        result: DeliberationResult,
        context: ContextBundle,
    ) -> None:
        for change in self._trust_updater.plan_changes(ranked):
            self._background.submit(
                f"trust:{result.discussion_id}:{change.observer_id}->{change.peer_id}",
                _bind(self._trust_updater.apply_change, change),
            )

        if self._publisher is not None and result.impact_level is not ImpactLevel.LOW:
            publisher = self._publisher
            self._background.submit(
                f"broadcast:{result.discussion_id}",
                lambda: publisher.publish(topic=topic, ranked=ranked, result=result, doctrine=context.doctrine),
            )


def _bind(job: Callable[[Any], Awaitable[Any]], argument: Any) -> Callable[[], Awaitable[Any]]:
    return lambda: job(argument)
