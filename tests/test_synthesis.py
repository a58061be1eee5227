from __future__ import annotations

import unittest
from datetime import datetime, timezone

from workforce_deliberation.constants import DEFAULT_SKIP_ACTIONS, ImpactLevel
from workforce_deliberation.context import ContextBundle
from workforce_deliberation.models import DeliberationState, ObjectiveImpact, Position
from workforce_deliberation.synthesis import (
    SynthesisEngine,
    aggregate_objective_impact,
    confidence_band,
    objective_score,
    requires_approval,
    score_positions,
    should_deliberate,
    weighted_confidence,
)
from workforce_state.models import Doctrine, Objective

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _context(*, doctrine: bool = True) -> ContextBundle:
    return ContextBundle(
        objectives=(
            Objective(id="obj-mrr", title="Grow MRR", metric="mrr", priority=1),
            Objective(id="obj-nps", title="Raise NPS", metric="nps", priority=2),
        ),
        doctrine=Doctrine("Profitable growth over raw growth", "Q1", "2026-02-01T00:00:00+00:00") if doctrine else None,
        loaded_at=NOW,
    )


def _position(
    employee_id: str,
    *,
    confidence: float,
    reputation: float,
    delta: float = 0.0,
    objective_id: str = "obj-mrr",
    aligned: bool = False,
    objections: str = "",
    trust: dict | None = None,
    text: str | None = None,
) -> Position:
    impacts = (ObjectiveImpact(objective_id, delta, 1.0),) if delta else ()
    return Position(
        employee_id=employee_id,
        position=text or f"{employee_id} position",
        reasoning=f"{employee_id} reasoning",
        confidence=confidence,
        objections=objections,
        objective_impact=impacts,
        doctrine_aligned=aligned,
        reputation_score=reputation,
        cognitive_load=0.2,
        peer_trust=trust or {},
    )


class TestWeightedSynthesis(unittest.TestCase):
    def test_reference_weights_and_ranking(self) -> None:
        context = _context()
        agent_a = _position("agent_a", confidence=0.8, reputation=0.6, delta=0.2, aligned=True)
        agent_b = _position("agent_b", confidence=0.5, reputation=0.9, delta=-0.1)

        self.assertAlmostEqual(objective_score(agent_a, context), 0.7)
        self.assertAlmostEqual(objective_score(agent_b, context), 0.4)

        ranked = score_positions([agent_b, agent_a], context)
        self.assertEqual([item.employee_id for item in ranked], ["agent_a", "agent_b"])
        self.assertAlmostEqual(ranked[0].final_weight, 0.712)
        self.assertAlmostEqual(ranked[1].final_weight, 0.42)
        self.assertEqual([item.rank for item in ranked], [1, 2])

    def test_doctrine_bonus_requires_an_active_doctrine(self) -> None:
        aligned = _position("agent_a", confidence=0.8, reputation=0.6, delta=0.2, aligned=True)
        ranked = score_positions([aligned], _context(doctrine=False))
        self.assertEqual(ranked[0].doctrine_bonus, 0.0)
        self.assertAlmostEqual(ranked[0].final_weight, 0.612)

    def test_reputation_floor_keeps_low_reputation_agents_audible(self) -> None:
        ranked = score_positions([_position("intern", confidence=0.8, reputation=0.1)], _context())
        self.assertAlmostEqual(ranked[0].reputation_adjusted_confidence, 0.2)

    def test_unknown_objectives_are_ignored_and_priority_scales_impact(self) -> None:
        context = _context()
        unknown = _position("agent_a", confidence=0.5, reputation=0.5, delta=0.4, objective_id="obj-missing")
        by_metric = _position("agent_b", confidence=0.5, reputation=0.5, delta=0.4, objective_id="nps")
        self.assertEqual(objective_score(unknown, context), 0.5)
        self.assertAlmostEqual(objective_score(by_metric, context), 0.7)

    def test_objective_score_is_squashed_into_unit_interval(self) -> None:
        context = _context()
        self.assertEqual(objective_score(_position("a", confidence=0.5, reputation=0.5, delta=3.0), context), 1.0)
        self.assertEqual(objective_score(_position("b", confidence=0.5, reputation=0.5, delta=-3.0), context), 0.0)

    def test_equal_weights_keep_collection_order(self) -> None:
        context = _context()
        first = _position("first", confidence=0.6, reputation=0.5)
        second = _position("second", confidence=0.6, reputation=0.5)
        ranked = score_positions([first, second], context)
        self.assertEqual([item.employee_id for item in ranked], ["first", "second"])
        ranked = score_positions([second, first], context)
        self.assertEqual([item.employee_id for item in ranked], ["second", "first"])

    def test_weighted_confidence(self) -> None:
        agent_a = _position("agent_a", confidence=0.8, reputation=0.6)
        agent_b = _position("agent_b", confidence=0.5, reputation=0.9)
        self.assertAlmostEqual(weighted_confidence([agent_a, agent_b]), 0.62)
        self.assertEqual(weighted_confidence([]), 0.5)


class TestDissent(unittest.TestCase):
    def _synthesize(self, positions):
        return SynthesisEngine().synthesize(
            discussion_id="d1",
            topic="Raise prices",
            impact_level=ImpactLevel.MEDIUM,
            positions=positions,
            context=_context(),
        )

    def test_distrustful_confident_objection_is_surfaced(self) -> None:
        winner = _position("cfo", confidence=0.9, reputation=0.9, delta=0.3, aligned=True)
        dissenter = _position(
            "head_of_sales",
            confidence=0.7,
            reputation=0.5,
            objections="customers will churn",
            trust={"cfo": 0.3},
        )
        _, result = self._synthesize([winner, dissenter])
        self.assertEqual(result.winner_id, "cfo")
        self.assertEqual(result.dissent, ("head of sales: customers will churn",))
        self.assertEqual(result.dissenter_ids, ("head_of_sales",))

    def test_objection_filters(self) -> None:
        winner = _position("cfo", confidence=0.9, reputation=0.9, delta=0.3)
        trusting = _position("ops", confidence=0.9, reputation=0.5, objections="too slow to roll out")
        hesitant = _position("cmo", confidence=0.6, reputation=0.5, objections="brand risk", trust={"cfo": 0.2})
        terse = _position("cto", confidence=0.9, reputation=0.5, objections="no", trust={"cfo": 0.2})
        _, result = self._synthesize([winner, trusting, hesitant, terse])
        self.assertEqual(result.dissent, ())

    def test_at_most_two_dissent_entries(self) -> None:
        winner = _position("cfo", confidence=0.9, reputation=0.9, delta=0.3)
        others = [
            _position(name, confidence=0.7, reputation=0.3, objections=f"{name} objects strongly", trust={"cfo": 0.2})
            for name in ("cmo", "cto", "coo")
        ]
        ranked, result = self._synthesize([winner] + others)
        self.assertEqual(len(result.dissent), 2)
        self.assertEqual(list(result.dissenter_ids), [item.employee_id for item in ranked[1:3]])


class TestApprovalGating(unittest.TestCase):
    def test_rules(self) -> None:
        context = _context()
        touches_p1 = [ObjectiveImpact("obj-mrr", 0.1, 0.8)]
        touches_p1_by_metric = [ObjectiveImpact("mrr", 0.1, 0.8)]
        touches_p2 = [ObjectiveImpact("obj-nps", 0.1, 0.8)]

        self.assertTrue(requires_approval(ImpactLevel.IRREVERSIBLE, [], context))
        self.assertTrue(requires_approval(ImpactLevel.HIGH, touches_p1, context))
        self.assertTrue(requires_approval(ImpactLevel.HIGH, touches_p1_by_metric, context))
        self.assertFalse(requires_approval(ImpactLevel.HIGH, touches_p2, context))
        self.assertFalse(requires_approval(ImpactLevel.HIGH, [], context))
        self.assertFalse(requires_approval(ImpactLevel.MEDIUM, touches_p1, context))

    def test_result_state_follows_approval(self) -> None:
        engine = SynthesisEngine()
        positions = [_position("cfo", confidence=0.8, reputation=0.6, delta=0.2)]
        _, high = engine.synthesize(
            discussion_id="d1",
            topic="t",
            impact_level=ImpactLevel.HIGH,
            positions=positions,
            context=_context(),
        )
        _, medium = engine.synthesize(
            discussion_id="d2",
            topic="t",
            impact_level=ImpactLevel.MEDIUM,
            positions=positions,
            context=_context(),
        )
        self.assertTrue(high.requires_approval)
        self.assertIs(high.state, DeliberationState.AWAITING_APPROVAL)
        self.assertIn("waiting for your go-ahead", high.summary)
        self.assertFalse(medium.requires_approval)
        self.assertIs(medium.state, DeliberationState.AUTO_RESOLVED)


class TestResultShape(unittest.TestCase):
    def test_no_positions_degrades_to_no_consensus(self) -> None:
        ranked, result = SynthesisEngine().synthesize(
            discussion_id="d1",
            topic="t",
            impact_level=ImpactLevel.MEDIUM,
            positions=[],
            context=_context(),
        )
        self.assertEqual(ranked, [])
        self.assertEqual(result.decision, "no consensus")
        self.assertEqual(result.confidence, 0.5)
        self.assertIsNone(result.winner_id)
        self.assertEqual(result.reasoning, "")
        self.assertTrue(result.summary.startswith("couldn't get enough input"))

    def test_aggregated_impact_and_reasoning(self) -> None:
        agent_a = _position("agent_a", confidence=0.8, reputation=0.6, delta=0.2, aligned=True)
        agent_b = _position("agent_b", confidence=0.5, reputation=0.9, delta=-0.1)
        _, result = SynthesisEngine().synthesize(
            discussion_id="d1",
            topic="t",
            impact_level=ImpactLevel.MEDIUM,
            positions=[agent_a, agent_b],
            context=_context(),
        )
        self.assertEqual(len(result.objective_impact), 1)
        self.assertEqual(result.objective_impact[0].objective_id, "obj-mrr")
        self.assertAlmostEqual(result.objective_impact[0].expected_delta, 0.05)
        self.assertEqual(result.reasoning, "agent a: agent_a reasoning | agent b: agent_b reasoning")
        self.assertEqual(result.decision, "agent_a position")
        self.assertIn('Agent a: "agent_a position"', result.summary)
        self.assertIn("moderate confidence (6/10)", result.summary)
        self.assertIn("doctrine: Profitable growth over raw growth", result.summary)

    def test_aggregate_is_per_objective_mean(self) -> None:
        positions = [
            _position("a", confidence=0.5, reputation=0.5, delta=0.2),
            _position("b", confidence=0.5, reputation=0.5, delta=0.4),
            _position("c", confidence=0.5, reputation=0.5, delta=0.3, objective_id="obj-nps"),
        ]
        aggregated = {item.objective_id: item.expected_delta for item in aggregate_objective_impact(positions)}
        self.assertAlmostEqual(aggregated["obj-mrr"], 0.3)
        self.assertAlmostEqual(aggregated["obj-nps"], 0.3)

    def test_confidence_bands(self) -> None:
        self.assertEqual(confidence_band(0.8), "high confidence")
        self.assertEqual(confidence_band(0.6), "moderate confidence")
        self.assertTrue(confidence_band(0.59).startswith("low confidence"))


class TestSkipRule(unittest.TestCase):
    def test_low_impact_and_skip_list_are_skipped(self) -> None:
        self.assertFalse(should_deliberate("pricing_change", ImpactLevel.LOW, DEFAULT_SKIP_ACTIONS))
        self.assertFalse(should_deliberate("log_cleanup", ImpactLevel.HIGH, DEFAULT_SKIP_ACTIONS))
        self.assertTrue(should_deliberate("log_cleanup", ImpactLevel.HIGH, ()))
        self.assertTrue(should_deliberate(None, ImpactLevel.MEDIUM, DEFAULT_SKIP_ACTIONS))


if __name__ == "__main__":
    unittest.main()
