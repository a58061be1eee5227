from __future__ import annotations

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS agent_states (
    employee_id TEXT PRIMARY KEY,
    beliefs_json TEXT NOT NULL DEFAULT '{}',
    confidence REAL NOT NULL,
    reputation_score REAL NOT NULL,
    initiative_score REAL NOT NULL,
    cognitive_load REAL NOT NULL,
    peer_trust_json TEXT NOT NULL DEFAULT '{}',
    emotional_memory_json TEXT NOT NULL DEFAULT '[]',
    emotional_stance TEXT NOT NULL DEFAULT 'neutral',
    core_motivation TEXT NOT NULL DEFAULT '',
    performance_metrics_json TEXT NOT NULL DEFAULT '{}',
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS company_state (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    momentum TEXT NOT NULL,
    stress_level REAL NOT NULL,
    growth_velocity TEXT NOT NULL,
    risk_exposure TEXT NOT NULL,
    morale TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS objectives (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    metric TEXT NOT NULL DEFAULT '',
    target_value REAL NOT NULL DEFAULT 0,
    current_value REAL NOT NULL DEFAULT 0,
    deadline TEXT,
    priority INTEGER NOT NULL DEFAULT 3,
    status TEXT NOT NULL DEFAULT 'active'
);

CREATE TABLE IF NOT EXISTS service_economics (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    category TEXT NOT NULL,
    margin REAL NOT NULL DEFAULT 0,
    scalability_score REAL NOT NULL DEFAULT 0,
    operational_complexity REAL NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS doctrines (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    strategic_shift TEXT NOT NULL,
    period TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS discussion_positions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    discussion_id TEXT NOT NULL,
    topic TEXT NOT NULL,
    impact_level TEXT NOT NULL,
    employee_id TEXT NOT NULL,
    position TEXT NOT NULL,
    reasoning TEXT NOT NULL DEFAULT '',
    confidence REAL NOT NULL,
    objections TEXT NOT NULL DEFAULT '',
    objective_impact_json TEXT NOT NULL DEFAULT '[]',
    doctrine_aligned INTEGER NOT NULL DEFAULT 0,
    final_weight REAL,
    rank INTEGER,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_discussion_positions_discussion
    ON discussion_positions (discussion_id);

CREATE TABLE IF NOT EXISTS discussion_results (
    discussion_id TEXT PRIMARY KEY,
    topic TEXT NOT NULL,
    decision TEXT NOT NULL,
    reasoning TEXT NOT NULL DEFAULT '',
    dissent_json TEXT NOT NULL DEFAULT '[]',
    dissenter_ids_json TEXT NOT NULL DEFAULT '[]',
    winner_id TEXT,
    confidence REAL NOT NULL,
    impact_level TEXT NOT NULL,
    objective_impact_json TEXT NOT NULL DEFAULT '[]',
    requires_approval INTEGER NOT NULL DEFAULT 0,
    summary TEXT NOT NULL DEFAULT '',
    state TEXT NOT NULL,
    doctrine_stale INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS reflections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    employee_id TEXT NOT NULL,
    action_ref TEXT NOT NULL,
    reasoning TEXT NOT NULL DEFAULT '',
    expected_outcome TEXT NOT NULL DEFAULT '',
    confidence REAL NOT NULL,
    what_would_change_mind TEXT NOT NULL DEFAULT '',
    actual_outcome TEXT,
    outcome_evaluated INTEGER NOT NULL DEFAULT 0,
    outcome_correct INTEGER,
    discussion_id TEXT,
    objective_id TEXT,
    baseline_value REAL,
    created_at TEXT NOT NULL,
    evaluated_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_reflections_pending
    ON reflections (outcome_evaluated, created_at);

CREATE TABLE IF NOT EXISTS audit_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type TEXT NOT NULL,
    created_at TEXT NOT NULL,
    details_json TEXT NOT NULL DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_audit_events_type_time
    ON audit_events (event_type, created_at);

CREATE TRIGGER IF NOT EXISTS discussion_positions_append_only_update
BEFORE UPDATE ON discussion_positions
BEGIN
    SELECT RAISE(ABORT, 'discussion_positions is append-only');
END;

CREATE TRIGGER IF NOT EXISTS discussion_positions_append_only_delete
BEFORE DELETE ON discussion_positions
BEGIN
    SELECT RAISE(ABORT, 'discussion_positions is append-only');
END;

CREATE TRIGGER IF NOT EXISTS discussion_results_append_only_update
BEFORE UPDATE ON discussion_results
BEGIN
    SELECT RAISE(ABORT, 'discussion_results is append-only');
END;

CREATE TRIGGER IF NOT EXISTS discussion_results_append_only_delete
BEFORE DELETE ON discussion_results
BEGIN
    SELECT RAISE(ABORT, 'discussion_results is append-only');
END;

CREATE TRIGGER IF NOT EXISTS reflections_write_once
BEFORE UPDATE ON reflections
WHEN OLD.outcome_evaluated = 1
BEGIN
    SELECT RAISE(ABORT, 'reflection outcome already evaluated');
END;
"""
