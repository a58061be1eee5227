from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Protocol, Tuple

from workforce_state.models import AgentState, Reflection
from workforce_state.store import SQLiteStateStore
from workforce_state.utils import normalize_agent_id, parse_iso

from .constants import (
    CONFIDENT_RIGHT_CONFIDENCE_DELTA,
    CONFIDENT_WRONG_CONFIDENCE_DELTA,
    CONFIDENT_WRONG_RISK_TOLERANCE_DELTA,
    DEFAULT_OUTCOME_BATCH_LIMIT,
    DISSENTER_TRUST_PENALTY,
    OUTCOME_CONFIDENT_THRESHOLD,
    OUTCOME_EVALUATION_WINDOW_SECONDS,
    REPUTATION_RIGHT_DELTA,
    REPUTATION_WRONG_DELTA,
    RISK_TOLERANCE_BELIEF,
    UNCONFIDENT_RIGHT_CONFIDENCE_DELTA,
)
from .locks import AgentLockRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutcomeVerdict:
    """``correct`` is None when the reflection can never be judged; it is closed without adjustments."""

    correct: Optional[bool]
    actual_outcome: str

    @classmethod
    def not_applicable(cls, reason: str) -> "OutcomeVerdict":
        return cls(correct=None, actual_outcome=f"not applicable: {reason}")


class OutcomeResolver(Protocol):
    def resolve(self, reflection: Reflection, now: datetime) -> Optional[OutcomeVerdict]:
        """Return a verdict, or None while the outcome cannot be judged yet."""
        ...


class ObjectiveProgressResolver:
    """Judges a reflection by whether its objective moved from the recorded baseline toward target."""

    def __init__(self, store: SQLiteStateStore, *, window_seconds: float = OUTCOME_EVALUATION_WINDOW_SECONDS) -> None:
        self._store = store
        self._window = timedelta(seconds=max(0.0, float(window_seconds)))

    def resolve(self, reflection: Reflection, now: datetime) -> Optional[OutcomeVerdict]:
        if not reflection.objective_id or reflection.baseline_value is None:
            return OutcomeVerdict.not_applicable("no objective baseline recorded")
        created = parse_iso(reflection.created_at)
        if created is None:
            return OutcomeVerdict.not_applicable("reflection has no readable timestamp")
        if now - created < self._window:
            return None
        objective = self._store.load_objective(reflection.objective_id)
        if objective is None:
            return OutcomeVerdict.not_applicable(f"objective {reflection.objective_id} no longer exists")

        baseline = float(reflection.baseline_value)
        current = float(objective.current_value)
        target = float(objective.target_value)
        direction = target - baseline
        if direction == 0:
            correct = current == target
        else:
            correct = (current - baseline) * direction > 0
        label = objective.metric or objective.id
        return OutcomeVerdict(
            correct=correct,
            actual_outcome=f"{label} moved from {baseline:g} to {current:g} (target {target:g})",
        )


@dataclass(frozen=True)
class OutcomeAdjustment:
    reflection_id: int
    employee_id: str
    correct: bool
    confident: bool
    confidence_delta: float
    risk_tolerance_delta: float
    reputation_delta: float
    penalized_dissenters: Tuple[str, ...] = ()

    def as_dict(self) -> Dict[str, object]:
        return {
            "reflection_id": self.reflection_id,
            "employee_id": self.employee_id,
            "correct": self.correct,
            "confident": self.confident,
            "confidence_delta": self.confidence_delta,
            "risk_tolerance_delta": self.risk_tolerance_delta,
            "reputation_delta": self.reputation_delta,
            "penalized_dissenters": list(self.penalized_dissenters),
        }


@dataclass
class OutcomeReport:
    adjustments: List[OutcomeAdjustment] = field(default_factory=list)
    not_applicable: int = 0
    undetermined: int = 0
    already_claimed: int = 0
    failed: Dict[int, str] = field(default_factory=dict)

    @property
    def evaluated(self) -> int:
        return len(self.adjustments)

    @property
    def settled(self) -> int:
        return self.evaluated + self.not_applicable

    def as_dict(self) -> Dict[str, object]:
        return {
            "evaluated": self.evaluated,
            "not_applicable": self.not_applicable,
            "undetermined": self.undetermined,
            "already_claimed": self.already_claimed,
            "failed": {str(key): value for key, value in self.failed.items()},
            "adjustments": [item.as_dict() for item in self.adjustments],
        }


def outcome_deltas(reflection_confidence: float, correct: bool) -> Tuple[float, float, float]:
    """Return (confidence, risk_tolerance, reputation) deltas for one judged reflection."""
    confident = reflection_confidence > OUTCOME_CONFIDENT_THRESHOLD
    if correct:
        confidence_delta = CONFIDENT_RIGHT_CONFIDENCE_DELTA if confident else UNCONFIDENT_RIGHT_CONFIDENCE_DELTA
        return (confidence_delta, 0.0, REPUTATION_RIGHT_DELTA)
    if confident:
        return (CONFIDENT_WRONG_CONFIDENCE_DELTA, CONFIDENT_WRONG_RISK_TOLERANCE_DELTA, REPUTATION_WRONG_DELTA)
    return (0.0, 0.0, REPUTATION_WRONG_DELTA)


class OutcomeEvaluator:
    def __init__(
        self,
        store: SQLiteStateStore,
        resolver: Optional[OutcomeResolver] = None,
        *,
        locks: Optional[AgentLockRegistry] = None,
    ) -> None:
        self._store = store
        self._resolver = resolver or ObjectiveProgressResolver(store)
        self._locks = locks or AgentLockRegistry()

    async def evaluate_outcomes(self, limit: int = DEFAULT_OUTCOME_BATCH_LIMIT) -> OutcomeReport:
        """Settle up to ``limit`` reflections, paging past ones that are still pending or failing."""
        now = self._store.now()
        budget = max(1, int(limit))
        report = OutcomeReport()
        cursor: Optional[Tuple[str, int]] = None
        while report.settled < budget:
            page = await asyncio.to_thread(self._store.list_unevaluated_reflections, limit=budget, after=cursor)
            for reflection in page:
                if report.settled >= budget:
                    break
                try:
                    await self._evaluate(reflection, now, report)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    report.failed[int(reflection.id or 0)] = str(exc)
                    logger.exception(
                        "OUTCOME_EVALUATION_FAILED reflection=%s agent=%s",
                        reflection.id,
                        reflection.employee_id,
                    )
            if len(page) < budget or page[-1].id is None:
                break
            cursor = (page[-1].created_at, page[-1].id)
        logger.info(
            "OUTCOMES_EVALUATED evaluated=%d not_applicable=%d undetermined=%d claimed_elsewhere=%d failed=%d",
            report.evaluated,
            report.not_applicable,
            report.undetermined,
            report.already_claimed,
            len(report.failed),
        )
        return report

    async def _evaluate(self, reflection: Reflection, now: datetime, report: OutcomeReport) -> None:
        if reflection.id is None:
            return
        verdict = await asyncio.to_thread(self._resolver.resolve, reflection, now)
        if verdict is None:
            report.undetermined += 1
            return

        if verdict.correct is None:
            closed = await asyncio.to_thread(
                self._store.settle_reflection,
                reflection.id,
                verdict.actual_outcome,
            )
            if closed:
                report.not_applicable += 1
            else:
                report.already_claimed += 1
            return

        correct = verdict.correct
        confidence_delta, risk_delta, reputation_delta = outcome_deltas(reflection.confidence, correct)
        employee_id = normalize_agent_id(reflection.employee_id)

        def _apply(state: AgentState) -> AgentState:
            beliefs = dict(state.beliefs)
            if risk_delta:
                beliefs[RISK_TOLERANCE_BELIEF] = beliefs.get(RISK_TOLERANCE_BELIEF, 0.5) + risk_delta
            return replace(
                state,
                confidence=state.confidence + confidence_delta,
                reputation_score=state.reputation_score + reputation_delta,
                beliefs=beliefs,
            )

        async with self._locks.hold(employee_id):
            claimed = await asyncio.to_thread(
                self._store.settle_reflection,
                reflection.id,
                verdict.actual_outcome,
                correct=correct,
                agent_id=employee_id,
                mutate=_apply,
            )
        if not claimed:
            report.already_claimed += 1
            return

        penalized: Tuple[str, ...] = ()
        if not correct and reflection.discussion_id:
            penalized = await self._penalize_dissenters_trust(employee_id, reflection.discussion_id)

        report.adjustments.append(
            OutcomeAdjustment(
                reflection_id=reflection.id,
                employee_id=employee_id,
                correct=correct,
                confident=reflection.confidence > OUTCOME_CONFIDENT_THRESHOLD,
                confidence_delta=confidence_delta,
                risk_tolerance_delta=risk_delta,
                reputation_delta=reputation_delta,
                penalized_dissenters=penalized,
            )
        )

    async def _penalize_dissenters_trust(self, winner_id: str, discussion_id: str) -> Tuple[str, ...]:
        discussion = await asyncio.to_thread(self._store.load_discussion, discussion_id)
        result = (discussion or {}).get("result") or {}
        if normalize_agent_id(result.get("winner_id")) != winner_id:
            return ()
        penalized: List[str] = []
        for dissenter_id in result.get("dissenter_ids") or []:
            dissenter = normalize_agent_id(dissenter_id)
            if not dissenter or dissenter == winner_id:
                continue
            try:
                async with self._locks.hold(dissenter):
                    await asyncio.to_thread(
                        self._store.update_peer_trust,
                        dissenter,
                        winner_id,
                        DISSENTER_TRUST_PENALTY,
                    )
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning(
                    "DISSENTER_TRUST_UPDATE_FAILED dissenter=%s winner=%s discussion=%s",
                    dissenter,
                    winner_id,
                    discussion_id,
                    exc_info=True,
                )
                continue
            penalized.append(dissenter)
        return tuple(penalized)
