from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any, Dict, Optional, Sequence

from workforce_observability.logs import configure_logging
from workforce_state.store import SQLiteStateStore

from .constants import DEFAULT_OUTCOME_BATCH_LIMIT, OUTCOME_EVALUATION_WINDOW_SECONDS
from .decay import DecayScheduler
from .health import WorkforceHealthReview
from .locks import AgentLockRegistry
from .outcomes import ObjectiveProgressResolver, OutcomeEvaluator

logger = logging.getLogger(__name__)


async def run_once(
    store: SQLiteStateStore,
    *,
    decay: bool,
    evaluate_outcomes: bool,
    health: bool,
    limit: int = DEFAULT_OUTCOME_BATCH_LIMIT,
    outcome_window_seconds: float = OUTCOME_EVALUATION_WINDOW_SECONDS,
    locks: Optional[AgentLockRegistry] = None,
) -> Dict[str, Any]:
    registry = locks or AgentLockRegistry()
    report: Dict[str, Any] = {"timestamp": store.now().isoformat()}
    if decay:
        decay_report = await DecayScheduler(store, locks=registry).run_decay_cycle()
        report["decay"] = decay_report.as_dict()
    if evaluate_outcomes:
        evaluator = OutcomeEvaluator(
            store,
            ObjectiveProgressResolver(store, window_seconds=outcome_window_seconds),
            locks=registry,
        )
        report["outcomes"] = (await evaluator.evaluate_outcomes(limit)).as_dict()
    if health:
        report["health"] = (await WorkforceHealthReview(store, locks=registry).review()).as_dict()
    return report


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run workforce decay, outcome evaluation and health review.")
    parser.add_argument("--db", type=str, required=True)
    parser.add_argument("--decay", action="store_true")
    parser.add_argument("--evaluate-outcomes", action="store_true")
    parser.add_argument("--limit", type=int, default=DEFAULT_OUTCOME_BATCH_LIMIT)
    parser.add_argument("--outcome-window-seconds", type=float, default=float(OUTCOME_EVALUATION_WINDOW_SECONDS))
    parser.add_argument("--health", action="store_true")
    parser.add_argument("--interval", type=float, default=None)
    parser.add_argument("--log-level", type=str, default="INFO")
    parser.add_argument("--log-path", type=str, default=None)
    return parser


async def _run(args: argparse.Namespace) -> None:
    store = SQLiteStateStore(args.db)
    run_all = not (args.decay or args.evaluate_outcomes or args.health)
    locks = AgentLockRegistry()
    while True:
        report = await run_once(
            store,
            decay=run_all or args.decay,
            evaluate_outcomes=run_all or args.evaluate_outcomes,
            health=run_all or args.health,
            limit=args.limit,
            outcome_window_seconds=args.outcome_window_seconds,
            locks=locks,
        )
        print(json.dumps(report, ensure_ascii=True, sort_keys=True), flush=True)
        if args.interval is None:
            return
        await asyncio.sleep(max(1.0, float(args.interval)))


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.log_path)
    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        logger.info("RUN_CYCLE_INTERRUPTED")


if __name__ == "__main__":
    main()
