from __future__ import annotations

from enum import Enum
from typing import Tuple


class ImpactLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    IRREVERSIBLE = "irreversible"


OBJECTIVE_SCORE_WEIGHT = 0.6
CONFIDENCE_SCORE_WEIGHT = 0.4
DOCTRINE_BONUS = 0.10
REPUTATION_FLOOR = 0.25

DISSENT_MIN_OBJECTION_LENGTH = 5
DISSENT_TRUST_THRESHOLD = 0.5
DISSENT_CONFIDENCE_THRESHOLD = 0.6
DISSENT_MAX_ENTRIES = 2

COGNITIVE_LOAD_GATE = 0.8
GATE_EXEMPT_IMPACT_LEVELS = frozenset({ImpactLevel.HIGH, ImpactLevel.IRREVERSIBLE})

NO_CONSENSUS_DECISION = "no consensus"
NO_CONSENSUS_CONFIDENCE = 0.5

CONFIDENCE_BAND_HIGH = 0.8
CONFIDENCE_BAND_MODERATE = 0.6
SUMMARY_POSITION_LIMIT = 3

APPROVAL_PRIORITY = 1

DEFAULT_SKIP_ACTIONS: Tuple[str, ...] = (
    "routine_health_check",
    "cron_sweep",
    "log_cleanup",
    "report_generation",
    "performance_tracking",
)

DEFAULT_MAX_CONCURRENCY = 8
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0
DEFAULT_DELIBERATION_TIMEOUT_SECONDS = 90.0
DEFAULT_TRUST_UPDATE_ATTEMPTS = 3
DEFAULT_TRUST_UPDATE_BACKOFF_SECONDS = 0.5

DEFAULT_COMPLETION_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_COMPLETION_MODEL = "gpt-4o-mini"

EMOTIONAL_MEMORY_PROMPT_LIMIT = 3
