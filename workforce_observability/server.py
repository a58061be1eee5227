from __future__ import annotations

import argparse
import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, List, Optional, Sequence

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from workforce_deliberation.completion import CompletionClient, HTTPCompletionClient
from workforce_deliberation.config import DeliberationConfig
from workforce_deliberation.engine import DeliberationEngine
from workforce_deliberation.errors import DeliberationRequestError
from workforce_governance.constants import DEFAULT_OUTCOME_BATCH_LIMIT
from workforce_governance.decay import DecayScheduler
from workforce_governance.health import WorkforceHealthReview
from workforce_governance.locks import AgentLockRegistry
from workforce_governance.outcomes import OutcomeEvaluator, OutcomeResolver
from workforce_governance.relationship import PeerTrustUpdater
from workforce_state.store import SQLiteStateStore

from .broadcast import BroadcastGate
from .channels import BroadcastChannel, FanoutChannel, WebhookChannel
from .logs import configure_logging
from .models import DeliberationRequest, DeliberationResponse, HealthResponse

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "workforce_state/workforce.db"
MAX_OUTCOME_BATCH_LIMIT = 500


def create_app(
    *,
    store: Optional[SQLiteStateStore] = None,
    db_path: str | Path = DEFAULT_DB_PATH,
    client: Optional[CompletionClient] = None,
    config: Optional[DeliberationConfig] = None,
    channels: Optional[Sequence[BroadcastChannel]] = None,
    webhook_url: Optional[str] = None,
    outcome_resolver: Optional[OutcomeResolver] = None,
    decay_interval_seconds: Optional[float] = None,
) -> FastAPI:
    resolved_config = config or DeliberationConfig.from_env()
    resolved_store = store or SQLiteStateStore(db_path)
    resolved_client = client or HTTPCompletionClient.from_config(resolved_config)
    locks = AgentLockRegistry()

    fanout = FanoutChannel()
    resolved_channels: List[BroadcastChannel] = [fanout]
    if channels is not None:
        resolved_channels.extend(channels)
    if webhook_url:
        resolved_channels.append(WebhookChannel(webhook_url))

    gate = BroadcastGate(resolved_store, resolved_channels)
    engine = DeliberationEngine(
        store=resolved_store,
        client=resolved_client,
        config=resolved_config,
        trust_updater=PeerTrustUpdater(resolved_store, locks=locks),
        publisher=gate,
    )
    decay_scheduler = DecayScheduler(resolved_store, locks=locks)
    evaluator = OutcomeEvaluator(resolved_store, outcome_resolver, locks=locks)
    health_review = WorkforceHealthReview(resolved_store, locks=locks)

    @asynccontextmanager
    async def _lifespan(_: FastAPI):
        stop = asyncio.Event()
        decay_task: Optional[asyncio.Task[None]] = None
        if decay_interval_seconds is not None:
            decay_task = asyncio.create_task(
                decay_scheduler.run_forever(decay_interval_seconds, stop_event=stop),
                name="workforce-decay",
            )
        try:
            yield
        finally:
            stop.set()
            if decay_task is not None:
                await asyncio.gather(decay_task, return_exceptions=True)
            await engine.close()
            close = getattr(resolved_client, "close", None)
            if callable(close):
                close()

    app = FastAPI(
        title="Workforce Council",
        description="Deliberation, trust and reputation backend for the agent workforce.",
        version="1.0.0",
        lifespan=_lifespan,
    )
    app.state.store = resolved_store
    app.state.engine = engine
    app.state.fanout = fanout
    app.state.broadcast_gate = gate
    app.state.locks = locks

    @app.post("/api/deliberations", response_model=DeliberationResponse)
    async def create_deliberation(request: DeliberationRequest) -> DeliberationResponse:
        try:
            run = await engine.run(
                request.topic,
                request.impact_level,
                request.agent_ids,
                context_hint=request.context_hint,
                action_type=request.action_type,
            )
        except DeliberationRequestError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        payload = run.as_dict()
        return DeliberationResponse(
            discussion_id=run.discussion_id,
            skipped=run.skipped,
            states=payload["states"],
            result=payload["result"],
            ranked=payload["ranked"],
        )

    @app.get("/api/deliberations/{discussion_id}")
    async def get_deliberation(discussion_id: str) -> dict:
        discussion = await asyncio.to_thread(resolved_store.load_discussion, discussion_id)
        if discussion is None:
            raise HTTPException(status_code=404, detail=f"unknown discussion '{discussion_id}'")
        return discussion

    @app.get("/api/agents/{agent_id}")
    async def get_agent(agent_id: str) -> dict:
        state = await asyncio.to_thread(resolved_store.load_agent_state, agent_id)
        if state is None:
            raise HTTPException(status_code=404, detail=f"unknown agent '{agent_id}'")
        return state.as_dict()

    @app.post("/api/decay/run")
    async def run_decay() -> dict:
        report = await decay_scheduler.run_decay_cycle()
        return report.as_dict()

    @app.post("/api/outcomes/evaluate")
    async def evaluate_outcomes(limit: int = DEFAULT_OUTCOME_BATCH_LIMIT) -> dict:
        if limit < 1 or limit > MAX_OUTCOME_BATCH_LIMIT:
            raise HTTPException(status_code=422, detail=f"limit must be between 1 and {MAX_OUTCOME_BATCH_LIMIT}")
        report = await evaluator.evaluate_outcomes(limit)
        return report.as_dict()

    @app.get("/api/workforce/health")
    async def workforce_health() -> dict:
        report = await health_review.review()
        return report.as_dict()

    @app.get("/api/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        agent_ids = await asyncio.to_thread(resolved_store.list_agent_ids)
        return HealthResponse(
            status="ok",
            agents=len(agent_ids),
            pending_background_jobs=engine.background.pending_count,
        )

    @app.websocket("/ws/decisions")
    async def ws_decisions(websocket: WebSocket) -> None:
        await websocket.accept()
        queue = fanout.subscribe()
        try:
            while True:
                envelope = await queue.get()
                await websocket.send_json(_model_to_dict(envelope))
        except WebSocketDisconnect:
            return
        finally:
            fanout.unsubscribe(queue)

    return app


def _model_to_dict(model: object) -> dict:
    dump = getattr(model, "model_dump", None)
    if callable(dump):
        return dict(dump())
    return dict(model)  # type: ignore[arg-type]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the Workforce Council deliberation backend.")
    parser.add_argument("--host", type=str, default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8020)
    parser.add_argument("--db", type=str, default=DEFAULT_DB_PATH)
    parser.add_argument("--webhook-url", type=str, default=None)
    parser.add_argument("--decay-interval-seconds", type=float, default=None)
    parser.add_argument("--log-level", type=str, default="info")
    parser.add_argument("--log-path", type=str, default=None)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.log_path)
    app = create_app(
        db_path=args.db,
        webhook_url=args.webhook_url,
        decay_interval_seconds=args.decay_interval_seconds,
    )
    import uvicorn

    uvicorn.run(
        app,
        host=args.host,
        port=max(1, int(args.port)),
        log_level=str(args.log_level).lower(),
    )


if __name__ == "__main__":
    main()
