from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .constants import CONFIDENCE_MAX, CONFIDENCE_MIN, DEFAULT_TRUST, INITIATIVE_DECAY_STEP, OBJECTIVE_STATUS_ACTIVE
from .errors import AgentNotFoundError, StateStoreError
from .models import (
    AgentState,
    CompanyState,
    Doctrine,
    EmotionalEvent,
    Objective,
    Reflection,
    ServiceEconomic,
)
from .schema import SCHEMA_SQL
from .utils import as_float, as_int, as_text, clamp, load_json_column, normalize_agent_id, utc_now

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _iso(moment: datetime) -> str:
    return moment.isoformat(timespec="microseconds")


class SQLiteStateStore:
    """Typed access to agent, company, discussion and reflection records."""

    def __init__(
        self,
        db_path: str | Path,
        *,
        busy_timeout_ms: int = 5000,
        clock: Optional[Clock] = None,
    ) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.busy_timeout_ms = max(100, int(busy_timeout_ms))
        self._clock: Clock = clock or utc_now
        self._initialize_schema()

    def now(self) -> datetime:
        return self._clock()

    # -- agent state -------------------------------------------------------

    def load_agent_state(self, agent_id: str) -> Optional[AgentState]:
        normalized = normalize_agent_id(agent_id)
        if not normalized:
            return None
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM agent_states WHERE employee_id = ?", (normalized,)).fetchone()
        if row is None:
            return None
        return _agent_from_row(row)

    def list_agent_ids(self) -> List[str]:
        with self._connection() as conn:
            rows = conn.execute("SELECT employee_id FROM agent_states ORDER BY employee_id ASC").fetchall()
        return [str(row["employee_id"]) for row in rows]

    def list_agent_states(self) -> List[AgentState]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM agent_states ORDER BY employee_id ASC").fetchall()
        return [_agent_from_row(row) for row in rows]

    def save_agent_state(self, state: AgentState) -> AgentState:
        normalized = replace(state.normalized(), updated_at=_iso(self.now()))
        if not normalized.employee_id:
            raise ValueError("employee_id must be a non-empty string")
        with self._connection() as conn:
            self._write_agent(conn, normalized)
        return normalized

    def mutate_agent(self, agent_id: str, mutate: Callable[[AgentState], AgentState]) -> AgentState:
        """Atomic read-modify-write of one agent row; the result is re-clamped before it is written."""
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                updated = self._mutate_in(conn, agent_id, mutate)
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
        return updated

    def update_peer_trust(self, observer_id: str, peer_id: str, delta: float) -> AgentState:
        peer = normalize_agent_id(peer_id)
        if not peer:
            raise ValueError("peer_id must be a non-empty string")

        def _apply(state: AgentState) -> AgentState:
            trust = dict(state.peer_trust)
            trust[peer] = trust.get(peer, DEFAULT_TRUST) + float(delta)
            return replace(state, peer_trust=trust)

        return self.mutate_agent(observer_id, _apply)

    def adjust_reputation(self, agent_id: str, delta: float) -> AgentState:
        return self.mutate_agent(
            agent_id,
            lambda state: replace(state, reputation_score=state.reputation_score + float(delta)),
        )

    def adjust_confidence(self, agent_id: str, delta: float) -> AgentState:
        return self.mutate_agent(
            agent_id,
            lambda state: replace(state, confidence=state.confidence + float(delta)),
        )

    def adjust_belief(self, agent_id: str, belief: str, delta: float) -> AgentState:
        def _apply(state: AgentState) -> AgentState:
            beliefs = dict(state.beliefs)
            beliefs[belief] = beliefs.get(belief, 0.5) + float(delta)
            return replace(state, beliefs=beliefs)

        return self.mutate_agent(agent_id, _apply)

    def adjust_cognitive_load(self, agent_id: str, task_weight: float) -> AgentState:
        return self.mutate_agent(
            agent_id,
            lambda state: replace(state, cognitive_load=state.cognitive_load + float(task_weight)),
        )

    def boost_initiative(self, agent_id: str, amount: float) -> AgentState:
        return self.mutate_agent(
            agent_id,
            lambda state: replace(state, initiative_score=state.initiative_score + float(amount)),
        )

    def decay_initiative(self, agent_id: str) -> AgentState:
        return self.mutate_agent(
            agent_id,
            lambda state: replace(state, initiative_score=state.initiative_score - INITIATIVE_DECAY_STEP),
        )

    def record_emotional_event(
        self,
        agent_id: str,
        event: str,
        intensity: float,
        *,
        source: Optional[str] = None,
    ) -> AgentState:
        timestamp = _iso(self.now())
        return self.mutate_agent(
            agent_id,
            lambda state: state.with_emotional_event(event, intensity, source=source, timestamp=timestamp),
        )

    def update_performance_metrics(self, agent_id: str, metrics: Mapping[str, float]) -> AgentState:
        def _apply(state: AgentState) -> AgentState:
            merged = dict(state.performance_metrics)
            merged.update({str(key): as_float(value) for key, value in metrics.items()})
            return replace(state, performance_metrics=merged)

        return self.mutate_agent(agent_id, _apply)

    # -- company context ---------------------------------------------------

    def load_company_state(self) -> Optional[CompanyState]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM company_state WHERE id = 1").fetchone()
        if row is None:
            return None
        return CompanyState(
            momentum=str(row["momentum"]),
            stress_level=as_float(row["stress_level"]),
            growth_velocity=str(row["growth_velocity"]),
            risk_exposure=str(row["risk_exposure"]),
            morale=str(row["morale"]),
        )

    def save_company_state(self, state: CompanyState) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO company_state (id, momentum, stress_level, growth_velocity, risk_exposure, morale, updated_at)
                VALUES (1, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    momentum = excluded.momentum,
                    stress_level = excluded.stress_level,
                    growth_velocity = excluded.growth_velocity,
                    risk_exposure = excluded.risk_exposure,
                    morale = excluded.morale,
                    updated_at = excluded.updated_at
                """,
                (
                    state.momentum,
                    float(state.stress_level),
                    state.growth_velocity,
                    state.risk_exposure,
                    state.morale,
                    _iso(self.now()),
                ),
            )

    def list_active_objectives(self) -> List[Objective]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM objectives WHERE status = ? ORDER BY priority ASC, id ASC",
                (OBJECTIVE_STATUS_ACTIVE,),
            ).fetchall()
        return [_objective_from_row(row) for row in rows]

    def load_objective(self, ref: str) -> Optional[Objective]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM objectives WHERE id = ? OR (metric != '' AND metric = ?) ORDER BY priority ASC LIMIT 1",
                (ref, ref),
            ).fetchone()
        return _objective_from_row(row) if row is not None else None

    def save_objective(self, objective: Objective) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO objectives (id, title, metric, target_value, current_value, deadline, priority, status)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    metric = excluded.metric,
                    target_value = excluded.target_value,
                    current_value = excluded.current_value,
                    deadline = excluded.deadline,
                    priority = excluded.priority,
                    status = excluded.status
                """,
                (
                    objective.id,
                    objective.title,
                    objective.metric,
                    float(objective.target_value),
                    float(objective.current_value),
                    objective.deadline,
                    max(1, int(objective.priority)),
                    objective.status,
                ),
            )

    def list_service_economics(self) -> List[ServiceEconomic]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM service_economics ORDER BY scalability_score DESC, id ASC").fetchall()
        return [
            ServiceEconomic(
                id=str(row["id"]),
                name=str(row["name"]),
                category=str(row["category"]),
                margin=as_float(row["margin"]),
                scalability_score=as_float(row["scalability_score"]),
                operational_complexity=as_float(row["operational_complexity"]),
            )
            for row in rows
        ]

    def save_service_economic(self, economic: ServiceEconomic) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO service_economics (id, name, category, margin, scalability_score, operational_complexity)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    category = excluded.category,
                    margin = excluded.margin,
                    scalability_score = excluded.scalability_score,
                    operational_complexity = excluded.operational_complexity
                """,
                (
                    economic.id,
                    economic.name,
                    economic.category,
                    float(economic.margin),
                    float(economic.scalability_score),
                    float(economic.operational_complexity),
                ),
            )

    def load_current_doctrine(self) -> Optional[Doctrine]:
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT strategic_shift, period, created_at FROM doctrines
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """
            ).fetchone()
        if row is None or not str(row["strategic_shift"]).strip():
            return None
        return Doctrine(
            strategic_shift=str(row["strategic_shift"]),
            period=str(row["period"]),
            created_at=str(row["created_at"]),
        )

    def record_doctrine(self, strategic_shift: str, period: str = "", *, created_at: Optional[str] = None) -> Doctrine:
        doctrine = Doctrine(
            strategic_shift=strategic_shift,
            period=period,
            created_at=created_at or _iso(self.now()),
        )
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO doctrines (strategic_shift, period, created_at) VALUES (?, ?, ?)",
                (doctrine.strategic_shift, doctrine.period, doctrine.created_at),
            )
        return doctrine

    # -- discussion log ----------------------------------------------------

    def append_discussion_positions(
        self,
        *,
        discussion_id: str,
        topic: str,
        impact_level: str,
        positions: Sequence[Mapping[str, Any]],
    ) -> int:
        created_at = _iso(self.now())
        rows = [
            (
                discussion_id,
                topic,
                impact_level,
                normalize_agent_id(position.get("employee_id")),
                as_text(position.get("position")),
                as_text(position.get("reasoning")),
                as_float(position.get("confidence")),
                as_text(position.get("objections")),
                json.dumps(list(position.get("objective_impact") or []), ensure_ascii=True),
                1 if position.get("doctrine_aligned") else 0,
                position.get("final_weight"),
                position.get("rank"),
                created_at,
            )
            for position in positions
        ]
        if not rows:
            return 0
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.executemany(
                    """
                    INSERT INTO discussion_positions (
                        discussion_id, topic, impact_level, employee_id, position, reasoning, confidence,
                        objections, objective_impact_json, doctrine_aligned, final_weight, rank, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    rows,
                )
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
        return len(rows)

    def append_discussion_result(self, *, discussion_id: str, topic: str, result: Mapping[str, Any]) -> None:
        with self._connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO discussion_results (
                        discussion_id, topic, decision, reasoning, dissent_json, dissenter_ids_json, winner_id,
                        confidence, impact_level, objective_impact_json, requires_approval, summary, state,
                        doctrine_stale, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        discussion_id,
                        topic,
                        as_text(result.get("decision")),
                        as_text(result.get("reasoning")),
                        json.dumps(list(result.get("dissent") or []), ensure_ascii=True),
                        json.dumps(list(result.get("dissenter_ids") or []), ensure_ascii=True),
                        result.get("winner_id"),
                        as_float(result.get("confidence"), default=0.5),
                        as_text(result.get("impact_level")),
                        json.dumps(list(result.get("objective_impact") or []), ensure_ascii=True),
                        1 if result.get("requires_approval") else 0,
                        as_text(result.get("summary")),
                        as_text(result.get("state")),
                        1 if result.get("doctrine_stale") else 0,
                        _iso(self.now()),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise StateStoreError(f"discussion '{discussion_id}' already has a recorded result") from exc

    def load_discussion(self, discussion_id: str) -> Optional[Dict[str, Any]]:
        with self._connection() as conn:
            result_row = conn.execute(
                "SELECT * FROM discussion_results WHERE discussion_id = ?",
                (discussion_id,),
            ).fetchone()
            position_rows = conn.execute(
                "SELECT * FROM discussion_positions WHERE discussion_id = ? ORDER BY id ASC",
                (discussion_id,),
            ).fetchall()
        if result_row is None and not position_rows:
            return None
        positions = [
            {
                "employee_id": str(row["employee_id"]),
                "position": str(row["position"]),
                "reasoning": str(row["reasoning"]),
                "confidence": as_float(row["confidence"]),
                "objections": str(row["objections"]),
                "objective_impact": load_json_column(row["objective_impact_json"], default=[]),
                "doctrine_aligned": bool(row["doctrine_aligned"]),
                "final_weight": row["final_weight"],
                "rank": row["rank"],
            }
            for row in position_rows
        ]
        result: Optional[Dict[str, Any]] = None
        if result_row is not None:
            result = {
                "discussion_id": str(result_row["discussion_id"]),
                "topic": str(result_row["topic"]),
                "decision": str(result_row["decision"]),
                "reasoning": str(result_row["reasoning"]),
                "dissent": load_json_column(result_row["dissent_json"], default=[]),
                "dissenter_ids": load_json_column(result_row["dissenter_ids_json"], default=[]),
                "winner_id": result_row["winner_id"],
                "confidence": as_float(result_row["confidence"], default=0.5),
                "impact_level": str(result_row["impact_level"]),
                "objective_impact": load_json_column(result_row["objective_impact_json"], default=[]),
                "requires_approval": bool(result_row["requires_approval"]),
                "summary": str(result_row["summary"]),
                "state": str(result_row["state"]),
                "doctrine_stale": bool(result_row["doctrine_stale"]),
                "created_at": str(result_row["created_at"]),
            }
        return {"discussion_id": discussion_id, "result": result, "positions": positions}

    # -- reflections -------------------------------------------------------

    def log_reflection(self, reflection: Reflection) -> int:
        employee_id = normalize_agent_id(reflection.employee_id)
        if not employee_id:
            raise ValueError("reflection employee_id must be a non-empty string")
        created_at = reflection.created_at or _iso(self.now())
        with self._connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO reflections (
                    employee_id, action_ref, reasoning, expected_outcome, confidence, what_would_change_mind,
                    actual_outcome, outcome_evaluated, discussion_id, objective_id, baseline_value, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, NULL, 0, ?, ?, ?, ?)
                """,
                (
                    employee_id,
                    reflection.action_ref,
                    reflection.reasoning,
                    reflection.expected_outcome,
                    clamp(reflection.confidence, CONFIDENCE_MIN, CONFIDENCE_MAX),
                    reflection.what_would_change_mind,
                    reflection.discussion_id,
                    reflection.objective_id,
                    reflection.baseline_value,
                    created_at,
                ),
            )
            return int(cursor.lastrowid)

    def load_reflection(self, reflection_id: int) -> Optional[Reflection]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM reflections WHERE id = ?", (int(reflection_id),)).fetchone()
        return _reflection_from_row(row) if row is not None else None

    def list_unevaluated_reflections(
        self,
        *,
        limit: int = 50,
        created_before: Optional[datetime] = None,
        after: Optional[Tuple[str, int]] = None,
    ) -> List[Reflection]:
        """Oldest first; ``after`` is a ``(created_at, id)`` cursor taken from the last row of a previous page."""
        params: List[Any] = []
        where = "outcome_evaluated = 0"
        if created_before is not None:
            where += " AND created_at <= ?"
            params.append(_iso(created_before))
        if after is not None:
            created_at, reflection_id = after
            where += " AND (created_at > ? OR (created_at = ? AND id > ?))"
            params.extend([str(created_at), str(created_at), int(reflection_id)])
        params.append(max(1, int(limit)))
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM reflections WHERE {where} ORDER BY created_at ASC, id ASC LIMIT ?",
                tuple(params),
            ).fetchall()
        return [_reflection_from_row(row) for row in rows]

    def list_evaluated_reflections(self, *, since: Optional[datetime] = None) -> List[Reflection]:
        params: List[Any] = []
        where = "outcome_evaluated = 1"
        if since is not None:
            where += " AND created_at >= ?"
            params.append(_iso(since))
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM reflections WHERE {where} ORDER BY created_at ASC, id ASC",
                tuple(params),
            ).fetchall()
        return [_reflection_from_row(row) for row in rows]

    def mark_reflection_evaluated(
        self,
        reflection_id: int,
        actual_outcome: str,
        *,
        correct: Optional[bool] = None,
    ) -> bool:
        """Claim a reflection for evaluation; only the first caller gets True."""
        return self.settle_reflection(reflection_id, actual_outcome, correct=correct)

    def settle_reflection(
        self,
        reflection_id: int,
        actual_outcome: str,
        *,
        correct: Optional[bool] = None,
        agent_id: Optional[str] = None,
        mutate: Optional[Callable[[AgentState], AgentState]] = None,
    ) -> bool:
        """Mark a reflection evaluated and apply the agent adjustment in the same transaction.

        Returns False when another caller already evaluated it. If the adjustment fails the
        reflection stays unevaluated.
        """
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(
                    """
                    UPDATE reflections
                    SET outcome_evaluated = 1, actual_outcome = ?, outcome_correct = ?, evaluated_at = ?
                    WHERE id = ? AND outcome_evaluated = 0
                    """,
                    (
                        str(actual_outcome),
                        None if correct is None else (1 if correct else 0),
                        _iso(self.now()),
                        int(reflection_id),
                    ),
                )
                if cursor.rowcount != 1:
                    conn.rollback()
                    return False
                if mutate is not None:
                    if agent_id is None:
                        raise ValueError("agent_id is required when a mutation is given")
                    self._mutate_in(conn, agent_id, mutate)
                conn.commit()
                return True
            except BaseException:
                conn.rollback()
                raise

    # -- audit events ------------------------------------------------------

    def claim_audit_slot(
        self,
        event_type: str,
        *,
        window_seconds: float,
        details: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Insert an audit event only if none of the same type exists within the rolling window."""
        now = self.now()
        cutoff = _iso(now - timedelta(seconds=max(0.0, float(window_seconds))))
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT id FROM audit_events WHERE event_type = ? AND created_at > ? LIMIT 1",
                    (event_type, cutoff),
                ).fetchone()
                if row is not None:
                    conn.rollback()
                    return False
                conn.execute(
                    "INSERT INTO audit_events (event_type, created_at, details_json) VALUES (?, ?, ?)",
                    (event_type, _iso(now), json.dumps(dict(details or {}), ensure_ascii=True, default=str)),
                )
                conn.commit()
                return True
            except BaseException:
                conn.rollback()
                raise

    def count_audit_events(self, event_type: str, *, since: Optional[datetime] = None) -> int:
        params: List[Any] = [event_type]
        where = "event_type = ?"
        if since is not None:
            where += " AND created_at >= ?"
            params.append(_iso(since))
        with self._connection() as conn:
            row = conn.execute(f"SELECT COUNT(*) AS count FROM audit_events WHERE {where}", tuple(params)).fetchone()
        return as_int(row["count"] if row is not None else 0)

    # -- internals ---------------------------------------------------------

    def _mutate_in(
        self,
        conn: sqlite3.Connection,
        agent_id: str,
        mutate: Callable[[AgentState], AgentState],
    ) -> AgentState:
        normalized_id = normalize_agent_id(agent_id)
        row = conn.execute("SELECT * FROM agent_states WHERE employee_id = ?", (normalized_id,)).fetchone()
        if row is None:
            raise AgentNotFoundError(normalized_id)
        updated = mutate(_agent_from_row(row))
        updated = replace(updated.normalized(), employee_id=normalized_id, updated_at=_iso(self.now()))
        self._write_agent(conn, updated)
        return updated

    @staticmethod
    def _write_agent(conn: sqlite3.Connection, state: AgentState) -> None:
        conn.execute(
            """
            INSERT INTO agent_states (
                employee_id, beliefs_json, confidence, reputation_score, initiative_score, cognitive_load,
                peer_trust_json, emotional_memory_json, emotional_stance, core_motivation,
                performance_metrics_json, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(employee_id) DO UPDATE SET
                beliefs_json = excluded.beliefs_json,
                confidence = excluded.confidence,
                reputation_score = excluded.reputation_score,
                initiative_score = excluded.initiative_score,
                cognitive_load = excluded.cognitive_load,
                peer_trust_json = excluded.peer_trust_json,
                emotional_memory_json = excluded.emotional_memory_json,
                emotional_stance = excluded.emotional_stance,
                core_motivation = excluded.core_motivation,
                performance_metrics_json = excluded.performance_metrics_json,
                updated_at = excluded.updated_at
            """,
            (
                state.employee_id,
                json.dumps(state.beliefs, ensure_ascii=True, sort_keys=True),
                state.confidence,
                state.reputation_score,
                state.initiative_score,
                state.cognitive_load,
                json.dumps(state.peer_trust, ensure_ascii=True, sort_keys=True),
                json.dumps([event.as_dict() for event in state.emotional_memory], ensure_ascii=True),
                state.emotional_stance,
                state.core_motivation,
                json.dumps(state.performance_metrics, ensure_ascii=True, sort_keys=True),
                state.updated_at,
            ),
        )

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        connection = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,
            check_same_thread=False,
        )
        try:
            connection.row_factory = sqlite3.Row
            connection.execute(f"PRAGMA busy_timeout={self.busy_timeout_ms};")
            connection.execute("PRAGMA journal_mode=WAL;")
            connection.execute("PRAGMA synchronous=FULL;")
            yield connection
        finally:
            connection.close()

    def _initialize_schema(self) -> None:
        with self._connection() as conn:
            conn.executescript(SCHEMA_SQL)
        logger.debug("STATE_STORE_READY db=%s", self.db_path)


def _agent_from_row(row: sqlite3.Row) -> AgentState:
    memory_raw = load_json_column(row["emotional_memory_json"], default=[])
    memory = [event for event in (EmotionalEvent.coerce(item) for item in memory_raw) if event is not None]
    return AgentState(
        employee_id=str(row["employee_id"]),
        beliefs=load_json_column(row["beliefs_json"], default={}),
        confidence=as_float(row["confidence"], default=0.5),
        reputation_score=as_float(row["reputation_score"], default=0.5),
        initiative_score=as_float(row["initiative_score"], default=0.5),
        cognitive_load=as_float(row["cognitive_load"], default=0.2),
        peer_trust=load_json_column(row["peer_trust_json"], default={}),
        emotional_memory=memory,
        emotional_stance=str(row["emotional_stance"]),
        core_motivation=str(row["core_motivation"]),
        performance_metrics=load_json_column(row["performance_metrics_json"], default={}),
        updated_at=str(row["updated_at"]),
    ).normalized()


def _objective_from_row(row: sqlite3.Row) -> Objective:
    return Objective(
        id=str(row["id"]),
        title=str(row["title"]),
        metric=str(row["metric"] or ""),
        target_value=as_float(row["target_value"]),
        current_value=as_float(row["current_value"]),
        deadline=row["deadline"],
        priority=max(1, as_int(row["priority"], default=3)),
        status=str(row["status"]),
    )


def _reflection_from_row(row: sqlite3.Row) -> Reflection:
    baseline = row["baseline_value"]
    correct = row["outcome_correct"]
    return Reflection(
        id=int(row["id"]),
        employee_id=str(row["employee_id"]),
        action_ref=str(row["action_ref"]),
        reasoning=str(row["reasoning"]),
        expected_outcome=str(row["expected_outcome"]),
        confidence=as_float(row["confidence"], default=0.5),
        what_would_change_mind=str(row["what_would_change_mind"]),
        actual_outcome=row["actual_outcome"],
        outcome_evaluated=bool(row["outcome_evaluated"]),
        outcome_correct=None if correct is None else bool(correct),
        discussion_id=row["discussion_id"],
        objective_id=row["objective_id"],
        baseline_value=float(baseline) if baseline is not None else None,
        created_at=str(row["created_at"]),
        evaluated_at=row["evaluated_at"],
    )
