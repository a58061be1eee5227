from __future__ import annotations

import itertools
import json
import tempfile
import unittest
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from workforce_deliberation.background import BackgroundTaskQueue
from workforce_deliberation.config import DeliberationConfig
from workforce_deliberation.engine import DeliberationEngine
from workforce_deliberation.errors import CompletionError, DeliberationRequestError
from workforce_deliberation.models import DeliberationState
from workforce_observability.broadcast import BroadcastGate
from workforce_observability.channels import FanoutChannel
from workforce_state import AgentState, SQLiteStateStore
from workforce_state.constants import AUDIT_EVENT_BROADCAST
from workforce_state.models import Objective


def _reply(position: str, confidence: float, delta: float) -> str:
    return json.dumps(
        {
            "position": position,
            "reasoning": f"{position} fits the numbers",
            "objections": "",
            "confidence": confidence,
            "objective_impact": [{"objective_id": "obj-mrr", "expected_delta": delta, "confidence": 1.0}],
        }
    )


REPLIES = {
    "cfo": _reply("support with a pilot", 0.9, 0.3),
    "cmo": _reply("support", 0.8, 0.1),
    "cto": _reply("oppose", 0.2, -0.3),
}


class _ScriptedClient:
    def __init__(self, replies: Mapping[str, Any]) -> None:
        self.replies = dict(replies)
        self.calls: List[str] = []

    async def complete(self, messages: Sequence[Mapping[str, str]]) -> str:
        name = messages[0]["content"].splitlines()[0][len("You are ") :].split(",", 1)[0]
        self.calls.append(name)
        reply = self.replies[name]
        if isinstance(reply, BaseException):
            raise reply
        return reply


class TestDeliberationEngine(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory(prefix="workforce_engine_")
        self.addCleanup(self._tmp.cleanup)
        self.store = SQLiteStateStore(Path(self._tmp.name) / "state.db")
        for agent_id in ("cfo", "cmo", "cto"):
            self.store.save_agent_state(AgentState(employee_id=agent_id, reputation_score=0.5))
        self.store.save_objective(
            Objective(id="obj-mrr", title="Grow MRR", metric="mrr", target_value=150.0, current_value=100.0, priority=1)
        )
        self.fanout = FanoutChannel()
        self._ids = (f"discussion-{index}" for index in itertools.count(1))

    def _engine(self, replies: Optional[Dict[str, Any]] = None) -> DeliberationEngine:
        self.client = _ScriptedClient(REPLIES if replies is None else replies)
        return DeliberationEngine(
            store=self.store,
            client=self.client,
            config=DeliberationConfig(trust_update_backoff_seconds=0.0),
            publisher=BroadcastGate(self.store, [self.fanout]),
            id_factory=lambda: next(self._ids),
        )

    async def test_skip_rule_returns_none_without_calling_agents(self) -> None:
        engine = self._engine()
        self.assertIsNone(await engine.deliberate("Rotate logs", "low", ["cfo"]))
        self.assertIsNone(await engine.deliberate("Rotate logs", "high", ["cfo"], action_type="log_cleanup"))
        run = await engine.run("Rotate logs", "low", ["cfo"])
        self.assertTrue(run.skipped)
        self.assertEqual(run.states, (DeliberationState.REQUESTED, DeliberationState.SKIPPED))
        self.assertEqual(self.client.calls, [])
        self.assertIsNone(self.store.load_discussion(run.discussion_id))

    async def test_malformed_requests_are_rejected_before_any_io(self) -> None:
        engine = self._engine()
        with self.assertRaises(DeliberationRequestError):
            await engine.deliberate("   ", "medium", ["cfo"])
        with self.assertRaises(DeliberationRequestError):
            await engine.deliberate("Pricing", "catastrophic", ["cfo"])
        with self.assertRaises(DeliberationRequestError):
            await engine.deliberate("Pricing", "medium", "cfo")
        with self.assertRaises(DeliberationRequestError):
            await engine.deliberate("Pricing", "medium", [" ", ""])
        self.assertEqual(self.client.calls, [])

    async def test_full_round_persists_and_updates_trust_in_background(self) -> None:
        engine = self._engine()
        run = await engine.run("Launch the enterprise tier", "high", ["cfo", "cmo", "cto"])
        result = run.result

        self.assertEqual(
            run.states,
            (
                DeliberationState.REQUESTED,
                DeliberationState.CONTEXT_LOADED,
                DeliberationState.POSITIONS_COLLECTED,
                DeliberationState.SYNTHESIZED,
                DeliberationState.AWAITING_APPROVAL,
            ),
        )
        self.assertEqual(result.winner_id, "cfo")
        self.assertEqual(result.decision, "support with a pilot")
        self.assertTrue(result.requires_approval)
        self.assertEqual([item.employee_id for item in run.ranked], ["cfo", "cmo", "cto"])

        await engine.drain_background()
        cfo = self.store.load_agent_state("cfo")
        self.assertAlmostEqual(self.store.load_agent_state("cmo").trust_toward("cfo"), 0.55)
        self.assertAlmostEqual(cfo.trust_toward("cmo"), 0.55)
        self.assertAlmostEqual(self.store.load_agent_state("cto").trust_toward("cfo"), 0.47)
        self.assertAlmostEqual(cfo.trust_toward("cto"), 0.47)
        self.assertEqual(list(engine.background.failed_jobs), [])

        discussion = self.store.load_discussion(run.discussion_id)
        self.assertEqual([row["employee_id"] for row in discussion["positions"]], ["cfo", "cmo", "cto"])
        self.assertEqual(discussion["result"]["winner_id"], "cfo")
        self.assertEqual(discussion["result"]["state"], "awaiting_approval")

        reflections = self.store.list_unevaluated_reflections(limit=10)
        self.assertEqual(len(reflections), 1)
        self.assertEqual(reflections[0].employee_id, "cfo")
        self.assertEqual(reflections[0].action_ref, f"deliberation:{run.discussion_id}")
        self.assertEqual(reflections[0].objective_id, "obj-mrr")
        self.assertEqual(reflections[0].baseline_value, 100.0)

    async def test_broadcast_is_rate_limited_across_deliberations(self) -> None:
        engine = self._engine()
        await engine.deliberate("Raise prices", "medium", ["cfo", "cmo"])
        await engine.deliberate("Hire a second SDR", "medium", ["cfo", "cmo"])
        await engine.drain_background()
        history = self.fanout.history()
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].data["topic"], "Raise prices")
        self.assertEqual(self.store.count_audit_events(AUDIT_EVENT_BROADCAST), 1)

    async def test_total_failure_degrades_to_no_consensus(self) -> None:
        engine = self._engine(
            {
                "cfo": CompletionError("upstream unavailable", status_code=503),
                "cmo": "not json",
                "cto": CompletionError("timeout"),
            }
        )
        result = await engine.deliberate("Raise prices", "medium", ["cfo", "cmo", "cto"])
        await engine.drain_background()
        self.assertEqual(result.decision, "no consensus")
        self.assertEqual(result.confidence, 0.5)
        self.assertIsNone(result.winner_id)
        self.assertIs(result.state, DeliberationState.AUTO_RESOLVED)
        self.assertEqual(self.store.list_unevaluated_reflections(limit=10), [])
        self.assertEqual(self.store.load_agent_state("cfo").peer_trust, {})


class TestBackgroundTaskQueue(unittest.IsolatedAsyncioTestCase):
    async def test_failed_job_history_is_bounded(self) -> None:
        queue = BackgroundTaskQueue(attempts=1, backoff_seconds=0.0, failed_history=2)

        async def _boom() -> None:
            raise RuntimeError("row locked")

        for index in range(3):
            queue.submit(f"job-{index}", _boom)
        await queue.drain()
        self.assertEqual(len(queue.failed_jobs), 2)
        self.assertEqual(queue.pending_count, 0)


if __name__ == "__main__":
    unittest.main()
