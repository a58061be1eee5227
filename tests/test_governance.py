from __future__ import annotations

import asyncio
import sqlite3
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from workforce_deliberation.models import Position, ScoredPosition
from workforce_governance.decay import DecayScheduler, decay_agent_state
from workforce_governance.health import WorkforceHealthReview, assess_agent
from workforce_governance.locks import AgentLockRegistry
from workforce_governance.outcomes import (
    ObjectiveProgressResolver,
    OutcomeEvaluator,
    OutcomeVerdict,
    outcome_deltas,
)
from workforce_governance.relationship import PeerTrustUpdater
from workforce_governance.run_cycle import run_once
from workforce_state import AgentState, Reflection, SQLiteStateStore
from workforce_state.models import EmotionalEvent, Objective


class _Clock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current = self.current + timedelta(**kwargs)


class _FixedResolver:
    """Verdict per action_ref; missing refs stay undetermined."""

    def __init__(self, verdicts: Dict[str, bool]) -> None:
        self.verdicts = verdicts

    def resolve(self, reflection: Reflection, now: datetime) -> Optional[OutcomeVerdict]:
        correct = self.verdicts.get(reflection.action_ref)
        if correct is None:
            return None
        return OutcomeVerdict(correct=correct, actual_outcome="observed")


class _RaisingResolver(_FixedResolver):
    def __init__(self, verdicts: Dict[str, bool], *, broken: str) -> None:
        super().__init__(verdicts)
        self.broken = broken

    def resolve(self, reflection: Reflection, now: datetime) -> Optional[OutcomeVerdict]:
        if reflection.action_ref == self.broken:
            raise RuntimeError("metrics backend unavailable")
        return super().resolve(reflection, now)


class _LockedAgentStore(SQLiteStateStore):
    """Store whose writes to one agent always fail as if the database were locked."""

    def __init__(self, *args: Any, locked_agent: str, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.locked_agent = locked_agent

    def mutate_agent(self, agent_id: str, mutate: Callable[[AgentState], AgentState]) -> AgentState:
        if agent_id == self.locked_agent:
            raise sqlite3.OperationalError("database is locked")
        return super().mutate_agent(agent_id, mutate)


def _scored(employee_id: str, weight: float, *, aligned: bool = False, rank: int = 1) -> ScoredPosition:
    position = Position(
        employee_id=employee_id,
        position=f"{employee_id} view",
        reasoning="",
        confidence=0.7,
        objections="",
        doctrine_aligned=aligned,
    )
    return ScoredPosition(
        position=position,
        objective_score=0.5,
        reputation_adjusted_confidence=0.35,
        doctrine_bonus=0.0,
        final_weight=weight,
        rank=rank,
    )


class _StoreTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory(prefix="workforce_governance_")
        self.addCleanup(self._tmp.cleanup)
        self.clock = _Clock(datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))
        self.store = SQLiteStateStore(Path(self._tmp.name) / "state.db", clock=self.clock)


class TestPeerTrustUpdater(_StoreTestCase):
    def test_plan_changes_pairs_the_winner_with_everyone_else(self) -> None:
        updater = PeerTrustUpdater(self.store)
        ranked = [
            _scored("cfo", 0.7, rank=1),
            _scored("cmo", 0.6, rank=2),
            _scored("cto", 0.3, rank=3),
            _scored("coo", 0.65, aligned=True, rank=4),
        ]
        changes = {(item.observer_id, item.peer_id): item.delta for item in updater.plan_changes(ranked)}
        self.assertEqual(len(changes), 6)
        self.assertEqual(changes[("cmo", "cfo")], 0.05)
        self.assertEqual(changes[("cfo", "cmo")], 0.05)
        self.assertEqual(changes[("cto", "cfo")], -0.03)
        self.assertEqual(changes[("cfo", "coo")], -0.03)
        self.assertEqual(updater.plan_changes(ranked[:1]), [])

    async def test_apply_change_skips_unknown_agents(self) -> None:
        self.store.save_agent_state(AgentState(employee_id="cmo"))
        updater = PeerTrustUpdater(self.store)
        changes = updater.plan_changes([_scored("ghost", 0.8), _scored("cmo", 0.7, rank=2)])
        results = [await updater.apply_change(change) for change in changes]
        self.assertIsNotNone(results[0])
        self.assertIsNone(results[1])
        self.assertAlmostEqual(self.store.load_agent_state("cmo").trust_toward("ghost"), 0.55)


class TestOutcomeEvaluation(_StoreTestCase):
    def test_outcome_deltas_are_asymmetric(self) -> None:
        self.assertEqual(outcome_deltas(0.8, False), (-0.05, -0.03, -0.08))
        self.assertEqual(outcome_deltas(0.8, True), (0.01, 0.0, 0.05))
        self.assertEqual(outcome_deltas(0.5, True), (0.03, 0.0, 0.05))
        self.assertEqual(outcome_deltas(0.5, False), (0.0, 0.0, -0.08))
        self.assertEqual(outcome_deltas(0.7, False), (0.0, 0.0, -0.08))

    async def test_confident_wrong_and_unconfident_right(self) -> None:
        self.store.save_agent_state(AgentState(employee_id="cfo", confidence=0.8, reputation_score=0.6))
        self.store.save_agent_state(AgentState(employee_id="cmo", confidence=0.5, reputation_score=0.6))
        self.store.log_reflection(
            Reflection(employee_id="cfo", action_ref="bold-bet", reasoning="", expected_outcome="up", confidence=0.8)
        )
        self.store.log_reflection(
            Reflection(employee_id="cmo", action_ref="cautious-bet", reasoning="", expected_outcome="up", confidence=0.5)
        )
        self.store.log_reflection(
            Reflection(employee_id="cmo", action_ref="pending", reasoning="", expected_outcome="up", confidence=0.5)
        )

        evaluator = OutcomeEvaluator(self.store, _FixedResolver({"bold-bet": False, "cautious-bet": True}))
        report = await evaluator.evaluate_outcomes()
        self.assertEqual(report.evaluated, 2)
        self.assertEqual(report.undetermined, 1)

        cfo = self.store.load_agent_state("cfo")
        self.assertAlmostEqual(cfo.confidence, 0.75)
        self.assertAlmostEqual(cfo.reputation_score, 0.52)
        self.assertAlmostEqual(cfo.belief("risk_tolerance"), 0.47)

        cmo = self.store.load_agent_state("cmo")
        self.assertAlmostEqual(cmo.confidence, 0.53)
        self.assertAlmostEqual(cmo.reputation_score, 0.65)
        self.assertAlmostEqual(cmo.belief("risk_tolerance"), 0.5)

        pending = self.store.list_unevaluated_reflections(limit=10)
        self.assertEqual([item.action_ref for item in pending], ["pending"])

        again = await evaluator.evaluate_outcomes()
        self.assertEqual(again.evaluated, 0)
        self.assertAlmostEqual(self.store.load_agent_state("cfo").confidence, 0.75)

    async def test_wrong_winner_costs_dissenters_a_little_trust(self) -> None:
        for agent_id in ("cfo", "cmo", "cto"):
            self.store.save_agent_state(AgentState(employee_id=agent_id))
        self.store.append_discussion_result(
            discussion_id="d1",
            topic="Raise prices",
            result={
                "decision": "raise",
                "confidence": 0.7,
                "impact_level": "medium",
                "state": "auto_resolved",
                "winner_id": "cfo",
                "dissenter_ids": ["cmo"],
            },
        )
        self.store.log_reflection(
            Reflection(
                employee_id="cfo",
                action_ref="deliberation:d1",
                reasoning="",
                expected_outcome="raise",
                confidence=0.6,
                discussion_id="d1",
            )
        )
        report = await OutcomeEvaluator(self.store, _FixedResolver({"deliberation:d1": False})).evaluate_outcomes()
        self.assertEqual(report.adjustments[0].penalized_dissenters, ("cmo",))
        self.assertAlmostEqual(self.store.load_agent_state("cmo").trust_toward("cfo"), 0.48)
        self.assertEqual(self.store.load_agent_state("cto").trust_toward("cfo"), 0.5)

    async def test_objective_progress_resolver(self) -> None:
        self.store.save_agent_state(AgentState(employee_id="cfo", confidence=0.5, reputation_score=0.5))
        self.store.save_objective(
            Objective(id="obj-mrr", title="Grow MRR", metric="mrr", target_value=150.0, current_value=100.0)
        )
        reflection_id = self.store.log_reflection(
            Reflection(
                employee_id="cfo",
                action_ref="pricing",
                reasoning="",
                expected_outcome="mrr up",
                confidence=0.5,
                objective_id="obj-mrr",
                baseline_value=100.0,
            )
        )
        reflection = self.store.load_reflection(reflection_id)
        resolver = ObjectiveProgressResolver(self.store)

        self.clock.advance(hours=1)
        self.assertIsNone(resolver.resolve(reflection, self.clock()))
        unanchored = Reflection(employee_id="cfo", action_ref="x", reasoning="", expected_outcome="", confidence=0.5)
        not_applicable = resolver.resolve(unanchored, self.clock())
        self.assertIsNone(not_applicable.correct)
        self.assertTrue(not_applicable.actual_outcome.startswith("not applicable"))

        self.clock.advance(hours=24)
        self.assertFalse(resolver.resolve(reflection, self.clock()).correct)
        self.store.save_objective(
            Objective(id="obj-mrr", title="Grow MRR", metric="mrr", target_value=150.0, current_value=120.0)
        )
        verdict = resolver.resolve(reflection, self.clock())
        self.assertTrue(verdict.correct)
        self.assertIn("mrr moved from 100 to 120", verdict.actual_outcome)

        report = await OutcomeEvaluator(self.store, resolver).evaluate_outcomes()
        self.assertEqual(report.evaluated, 1)
        self.assertTrue(self.store.load_reflection(reflection_id).outcome_correct)

    async def test_unjudgeable_reflections_are_closed_and_do_not_block(self) -> None:
        self.store.save_agent_state(AgentState(employee_id="cfo", confidence=0.5, reputation_score=0.5))
        self.store.save_objective(Objective(id="o1", title="Grow MRR", metric="mrr", target_value=150.0, current_value=100.0))
        for index in range(3):
            self.store.log_reflection(
                Reflection(employee_id="cfo", action_ref=f"loose-{index}", reasoning="", expected_outcome="", confidence=0.5)
            )
        anchored_id = self.store.log_reflection(
            Reflection(
                employee_id="cfo",
                action_ref="anchored",
                reasoning="",
                expected_outcome="mrr up",
                confidence=0.5,
                objective_id="o1",
                baseline_value=100.0,
            )
        )
        self.store.save_objective(Objective(id="o1", title="Grow MRR", metric="mrr", target_value=150.0, current_value=130.0))
        self.clock.advance(days=3)

        evaluator = OutcomeEvaluator(self.store)
        first = await evaluator.evaluate_outcomes(3)
        self.assertEqual(first.not_applicable, 3)
        self.assertEqual(first.evaluated, 0)
        second = await evaluator.evaluate_outcomes(3)
        self.assertEqual(second.evaluated, 1)
        self.assertTrue(self.store.load_reflection(anchored_id).outcome_correct)
        self.assertAlmostEqual(self.store.load_agent_state("cfo").reputation_score, 0.55)
        self.assertEqual(self.store.list_unevaluated_reflections(limit=10), [])

    async def test_pending_reflections_do_not_fill_the_batch(self) -> None:
        self.store.save_agent_state(AgentState(employee_id="cfo", confidence=0.5, reputation_score=0.5))
        for index in range(3):
            self.store.log_reflection(
                Reflection(employee_id="cfo", action_ref=f"pending-{index}", reasoning="", expected_outcome="", confidence=0.5)
            )
            self.clock.advance(minutes=1)
        self.store.log_reflection(
            Reflection(employee_id="cfo", action_ref="ready", reasoning="", expected_outcome="", confidence=0.5)
        )

        report = await OutcomeEvaluator(self.store, _FixedResolver({"ready": True})).evaluate_outcomes(3)
        self.assertEqual(report.evaluated, 1)
        self.assertEqual(report.undetermined, 3)
        self.assertEqual(len(self.store.list_unevaluated_reflections(limit=10)), 3)

    async def test_one_failing_reflection_does_not_stop_the_batch(self) -> None:
        self.store.save_agent_state(AgentState(employee_id="cfo", confidence=0.5, reputation_score=0.5))
        ghost_id = self.store.log_reflection(
            Reflection(employee_id="ghost", action_ref="orphaned", reasoning="", expected_outcome="", confidence=0.5)
        )
        broken_id = self.store.log_reflection(
            Reflection(employee_id="cfo", action_ref="broken", reasoning="", expected_outcome="", confidence=0.5)
        )
        self.store.log_reflection(
            Reflection(employee_id="cfo", action_ref="fine", reasoning="", expected_outcome="", confidence=0.5)
        )

        resolver = _RaisingResolver({"orphaned": True, "fine": True}, broken="broken")
        report = await OutcomeEvaluator(self.store, resolver).evaluate_outcomes()
        self.assertEqual([item.employee_id for item in report.adjustments], ["cfo"])
        self.assertEqual(sorted(report.failed), sorted([ghost_id, broken_id]))
        self.assertAlmostEqual(self.store.load_agent_state("cfo").reputation_score, 0.55)

        self.assertFalse(self.store.load_reflection(ghost_id).outcome_evaluated)
        self.assertFalse(self.store.load_reflection(broken_id).outcome_evaluated)


class TestDecay(_StoreTestCase):
    def test_single_step(self) -> None:
        state = AgentState(
            employee_id="cfo",
            cognitive_load=0.5,
            reputation_score=0.2,
            peer_trust={"cmo": 0.9, "cto": 0.1},
            emotional_memory=[
                EmotionalEvent("faded", 0.05, "2026-03-01T00:00:00+00:00"),
                EmotionalEvent("vivid", 0.8, "2026-03-01T00:00:00+00:00"),
            ],
        )
        decayed = decay_agent_state(state)
        self.assertAlmostEqual(decayed.cognitive_load, 0.45)
        self.assertAlmostEqual(decayed.reputation_score, 0.20036)
        self.assertAlmostEqual(decayed.peer_trust["cmo"], 0.89976)
        self.assertAlmostEqual(decayed.peer_trust["cto"], 0.10024)
        self.assertEqual([event.event for event in decayed.emotional_memory], ["vivid"])
        self.assertAlmostEqual(decayed.emotional_memory[0].intensity, 0.796)

    def test_repeated_decay_approaches_neutral_without_crossing(self) -> None:
        state = AgentState(employee_id="cfo", reputation_score=0.9, peer_trust={"cmo": 0.1}, cognitive_load=1.0)
        previous = state
        for _ in range(500):
            state = decay_agent_state(state)
            self.assertLessEqual(state.reputation_score, previous.reputation_score)
            self.assertGreaterEqual(state.peer_trust["cmo"], previous.peer_trust["cmo"])
            self.assertLessEqual(state.cognitive_load, previous.cognitive_load)
            previous = state
        self.assertGreater(state.reputation_score, 0.5)
        self.assertLess(state.peer_trust["cmo"], 0.5)

    async def test_cycle_covers_every_agent(self) -> None:
        for agent_id in ("cfo", "cmo"):
            self.store.save_agent_state(AgentState(employee_id=agent_id, cognitive_load=0.6))
        report = await DecayScheduler(self.store).run_decay_cycle()
        self.assertEqual(sorted(report.decayed), ["cfo", "cmo"])
        self.assertEqual(report.failed, {})
        self.assertAlmostEqual(self.store.load_agent_state("cmo").cognitive_load, 0.54)

    async def test_one_failed_write_does_not_abort_the_cycle(self) -> None:
        store = _LockedAgentStore(Path(self._tmp.name) / "locked.db", clock=self.clock, locked_agent="cmo")
        for agent_id in ("cfo", "cmo", "cto"):
            store.save_agent_state(AgentState(employee_id=agent_id, cognitive_load=0.6))
        report = await DecayScheduler(store).run_decay_cycle()
        self.assertEqual(report.decayed, ["cfo", "cto"])
        self.assertEqual(report.failed, {"cmo": "database is locked"})
        self.assertAlmostEqual(store.load_agent_state("cto").cognitive_load, 0.54)
        self.assertAlmostEqual(store.load_agent_state("cmo").cognitive_load, 0.6)

    async def test_run_forever_stops_on_event(self) -> None:
        self.store.save_agent_state(AgentState(employee_id="cfo", cognitive_load=0.6))
        stop = asyncio.Event()
        task = asyncio.create_task(DecayScheduler(self.store).run_forever(60, stop_event=stop))
        await asyncio.sleep(0.1)
        stop.set()
        await asyncio.wait_for(task, timeout=5)
        self.assertAlmostEqual(self.store.load_agent_state("cfo").cognitive_load, 0.54)


class TestHealthReview(_StoreTestCase):
    def _judged(self, employee_id: str, action_ref: str, correct: bool) -> None:
        reflection_id = self.store.log_reflection(
            Reflection(employee_id=employee_id, action_ref=action_ref, reasoning="", expected_outcome="", confidence=0.5)
        )
        self.store.mark_reflection_evaluated(reflection_id, "observed", correct=correct)

    async def test_flags_and_metrics(self) -> None:
        self.store.save_agent_state(AgentState(employee_id="cmo", reputation_score=0.3, cognitive_load=0.8))
        self.store.save_agent_state(AgentState(employee_id="cfo"))
        for text in ("proposal rejected", "override from the ceo", "conflict with sales", "praised in review"):
            self.store.record_emotional_event("cmo", text, 0.6)
        self._judged("cmo", "a", True)
        self._judged("cmo", "b", False)
        self._judged("cmo", "c", False)
        self._judged("cfo", "d", True)

        report = await WorkforceHealthReview(self.store).review()
        by_agent = {agent.employee_id: agent for agent in report.agents}
        self.assertEqual(
            set(by_agent["cmo"].flags),
            {"low_success_rate", "low_reputation", "overloaded", "negative_emotional_pattern"},
        )
        self.assertEqual(by_agent["cfo"].flags, ())
        self.assertEqual(report.as_dict()["flagged"], ["cmo"])
        self.assertAlmostEqual(
            self.store.load_agent_state("cmo").performance_metrics["success_rate"],
            1 / 3,
        )

    async def test_old_reflections_fall_out_of_the_window(self) -> None:
        self.store.save_agent_state(AgentState(employee_id="cfo"))
        self._judged("cfo", "old", False)
        self.clock.advance(days=8)
        report = await WorkforceHealthReview(self.store).review()
        self.assertIsNone(report.agents[0].success_rate)
        self.assertEqual(report.agents[0].flags, ())

    def test_weak_memories_do_not_count_as_a_pattern(self) -> None:
        state = AgentState(
            employee_id="cto",
            emotional_memory=[EmotionalEvent("rejected again", 0.2, "2026-03-01T00:00:00+00:00")] * 5,
        )
        self.assertNotIn("negative_emotional_pattern", assess_agent(state, []).flags)


class TestLocksAndCycle(_StoreTestCase):
    def test_lock_registry_normalizes_ids(self) -> None:
        locks = AgentLockRegistry()
        self.assertIs(locks.lock_for("CFO"), locks.lock_for(" cfo "))
        self.assertEqual(len(locks), 1)

    async def test_run_once_reports_each_step(self) -> None:
        self.store.save_agent_state(AgentState(employee_id="cfo"))
        report = await run_once(self.store, decay=True, evaluate_outcomes=True, health=True)
        self.assertEqual(report["decay"]["decayed"], ["cfo"])
        self.assertEqual(report["outcomes"]["evaluated"], 0)
        self.assertEqual(report["health"]["flagged"], [])

        report = await run_once(self.store, decay=False, evaluate_outcomes=False, health=True)
        self.assertNotIn("decay", report)


if __name__ == "__main__":
    unittest.main()
