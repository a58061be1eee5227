from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Iterable, List, Optional, Sequence, Tuple

from workforce_state.models import Doctrine
from workforce_state.utils import clamp

from .constants import (
    APPROVAL_PRIORITY,
    CONFIDENCE_BAND_HIGH,
    CONFIDENCE_BAND_MODERATE,
    CONFIDENCE_SCORE_WEIGHT,
    DISSENT_CONFIDENCE_THRESHOLD,
    DISSENT_MAX_ENTRIES,
    DISSENT_MIN_OBJECTION_LENGTH,
    DISSENT_TRUST_THRESHOLD,
    DOCTRINE_BONUS,
    NO_CONSENSUS_CONFIDENCE,
    NO_CONSENSUS_DECISION,
    OBJECTIVE_SCORE_WEIGHT,
    REPUTATION_FLOOR,
    SUMMARY_POSITION_LIMIT,
    ImpactLevel,
)
from .context import ContextBundle
from .models import DeliberationResult, DeliberationState, ObjectiveImpact, Position, ScoredPosition

logger = logging.getLogger(__name__)


def should_deliberate(
    action_type: Optional[str],
    impact_level: ImpactLevel,
    skip_actions: Iterable[str] = (),
) -> bool:
    if impact_level is ImpactLevel.LOW:
        return False
    if action_type and action_type.strip().lower() in {action.strip().lower() for action in skip_actions}:
        return False
    return True


def reputation_weight(position: Position) -> float:
    return max(position.reputation_score, REPUTATION_FLOOR)


def objective_score(position: Position, context: ContextBundle) -> float:
    """Mean of delta x confidence x 1/priority over impacts on known objectives, centred on 0.5."""
    contributions: List[float] = []
    for impact in position.objective_impact:
        objective = context.objective_for(impact.objective_id)
        if objective is None:
            continue
        contributions.append(impact.expected_delta * impact.confidence * objective.weight)
    raw = sum(contributions) / len(contributions) if contributions else 0.0
    return clamp(0.5 + raw, 0.0, 1.0)


def score_positions(positions: Sequence[Position], context: ContextBundle) -> List[ScoredPosition]:
    doctrine_active = context.doctrine is not None
    scored: List[Tuple[float, float, float, float, Position]] = []
    for position in positions:
        obj_score = objective_score(position, context)
        adjusted_confidence = position.confidence * reputation_weight(position)
        bonus = DOCTRINE_BONUS if doctrine_active and position.doctrine_aligned else 0.0
        final_weight = OBJECTIVE_SCORE_WEIGHT * obj_score + CONFIDENCE_SCORE_WEIGHT * adjusted_confidence + bonus
        scored.append((final_weight, obj_score, adjusted_confidence, bonus, position))

    # sorted() is stable: equal weights keep collection order.
    ordered = sorted(scored, key=lambda item: item[0], reverse=True)
    return [
        ScoredPosition(
            position=position,
            objective_score=obj_score,
            reputation_adjusted_confidence=adjusted_confidence,
            doctrine_bonus=bonus,
            final_weight=final_weight,
            rank=index + 1,
        )
        for index, (final_weight, obj_score, adjusted_confidence, bonus, position) in enumerate(ordered)
    ]


def select_dissent(ranked: Sequence[ScoredPosition]) -> Tuple[List[str], List[str]]:
    if not ranked:
        return ([], [])
    winner_id = ranked[0].employee_id
    dissent: List[str] = []
    dissenter_ids: List[str] = []
    for item in ranked[1:]:
        position = item.position
        if position.employee_id == winner_id:
            continue
        objection = position.objections.strip()
        if len(objection) < DISSENT_MIN_OBJECTION_LENGTH:
            continue
        if position.trust_toward(winner_id) >= DISSENT_TRUST_THRESHOLD:
            continue
        if position.confidence <= DISSENT_CONFIDENCE_THRESHOLD:
            continue
        dissent.append(f"{position.employee_name}: {objection}")
        dissenter_ids.append(position.employee_id)
        if len(dissent) >= DISSENT_MAX_ENTRIES:
            break
    return (dissent, dissenter_ids)


def weighted_confidence(positions: Sequence[Position]) -> float:
    if not positions:
        return NO_CONSENSUS_CONFIDENCE
    total_weight = sum(reputation_weight(position) for position in positions)
    return sum(position.confidence * reputation_weight(position) for position in positions) / total_weight


def aggregate_objective_impact(positions: Sequence[Position]) -> List[ObjectiveImpact]:
    buckets: "OrderedDict[str, List[ObjectiveImpact]]" = OrderedDict()
    for position in positions:
        for impact in position.objective_impact:
            buckets.setdefault(impact.objective_id, []).append(impact)
    return [
        ObjectiveImpact(
            objective_id=objective_id,
            expected_delta=sum(impact.expected_delta for impact in impacts) / len(impacts),
            confidence=sum(impact.confidence for impact in impacts) / len(impacts),
        )
        for objective_id, impacts in buckets.items()
    ]


def requires_approval(
    impact_level: ImpactLevel,
    objective_impact: Sequence[ObjectiveImpact],
    context: ContextBundle,
) -> bool:
    if impact_level is ImpactLevel.IRREVERSIBLE:
        return True
    if impact_level is not ImpactLevel.HIGH:
        return False
    for impact in objective_impact:
        objective = context.objective_for(impact.objective_id)
        if objective is not None and objective.priority == APPROVAL_PRIORITY:
            return True
    return False


def confidence_band(confidence: float) -> str:
    if confidence >= CONFIDENCE_BAND_HIGH:
        return "high confidence"
    if confidence >= CONFIDENCE_BAND_MODERATE:
        return "moderate confidence"
    return "low confidence, I'd want more data"


def build_summary(
    ranked: Sequence[ScoredPosition],
    dissent: Sequence[str],
    confidence: float,
    approval_required: bool,
    doctrine: Optional[Doctrine] = None,
) -> str:
    if not ranked:
        summary = "couldn't get enough input to make a call on this."
        if approval_required:
            summary += " this is high-impact, so nothing happens without your go-ahead."
        return summary

    parts: List[str] = ["we discussed this internally."]
    for item in ranked[:SUMMARY_POSITION_LIMIT]:
        name = item.position.employee_name
        parts.append(f'{name[:1].upper()}{name[1:]}: "{item.position.position}"')
    if dissent:
        parts.append(f"\npushback: {' '.join(dissent)}")
    parts.append(f"\noverall: {confidence_band(confidence)} ({round(confidence * 10)}/10).")
    if doctrine is not None:
        parts.append(f"\ndoctrine: {doctrine.strategic_shift}")
    if approval_required:
        parts.append("\nthis is high-impact. waiting for your go-ahead before executing.")
    return " ".join(parts)


class SynthesisEngine:
    """Scores, ranks and merges collected positions into one decision."""

    def synthesize(
        self,
        *,
        discussion_id: str,
        topic: str,
        impact_level: ImpactLevel,
        positions: Sequence[Position],
        context: ContextBundle,
    ) -> Tuple[List[ScoredPosition], DeliberationResult]:
        ranked = score_positions(positions, context)
        dissent, dissenter_ids = select_dissent(ranked)
        confidence = weighted_confidence(positions)
        objective_impact = aggregate_objective_impact(positions)
        approval = requires_approval(impact_level, objective_impact, context)
        summary = build_summary(ranked, dissent, confidence, approval, context.doctrine)

        if ranked:
            decision = ranked[0].position.position
            winner_id: Optional[str] = ranked[0].employee_id
        else:
            decision = NO_CONSENSUS_DECISION
            winner_id = None
            logger.warning("SYNTHESIS_NO_CONSENSUS discussion=%s topic=%r", discussion_id, topic)

        reasoning = " | ".join(
            f"{item.position.employee_name}: {item.position.reasoning}" for item in ranked
        )
        result = DeliberationResult(
            discussion_id=discussion_id,
            topic=topic,
            decision=decision,
            reasoning=reasoning,
            dissent=tuple(dissent),
            confidence=confidence,
            impact_level=impact_level,
            objective_impact=tuple(objective_impact),
            requires_approval=approval,
            summary=summary,
            winner_id=winner_id,
            dissenter_ids=tuple(dissenter_ids),
            doctrine_stale=context.doctrine_stale,
            state=DeliberationState.AWAITING_APPROVAL if approval else DeliberationState.AUTO_RESOLVED,
        )
        return (ranked, result)
