from __future__ import annotations

from typing import Tuple

POST_SYNTHESIS_ALIGNED_DELTA = 0.05
POST_SYNTHESIS_MISALIGNED_DELTA = -0.03
ALIGNMENT_PIVOT = 0.5

OUTCOME_CONFIDENT_THRESHOLD = 0.7
CONFIDENT_WRONG_CONFIDENCE_DELTA = -0.05
CONFIDENT_WRONG_RISK_TOLERANCE_DELTA = -0.03
UNCONFIDENT_RIGHT_CONFIDENCE_DELTA = 0.03
CONFIDENT_RIGHT_CONFIDENCE_DELTA = 0.01
REPUTATION_RIGHT_DELTA = 0.05
REPUTATION_WRONG_DELTA = -0.08
DISSENTER_TRUST_PENALTY = -0.02
RISK_TOLERANCE_BELIEF = "risk_tolerance"

OUTCOME_EVALUATION_WINDOW_SECONDS = 24 * 60 * 60
DEFAULT_OUTCOME_BATCH_LIMIT = 50

DECAY_COGNITIVE_LOAD_FACTOR = 0.90
DECAY_TRUST_RATE = 0.0006
DECAY_REPUTATION_RATE = 0.0012
DECAY_INTENSITY_FACTOR = 0.995
EMOTIONAL_EVICTION_THRESHOLD = 0.05
DECAY_NEUTRAL = 0.5
DEFAULT_DECAY_INTERVAL_SECONDS = 2 * 60 * 60

HEALTH_WINDOW_DAYS = 7
HEALTH_MIN_SUCCESS_RATE = 0.5
HEALTH_MIN_REPUTATION = 0.35
HEALTH_MAX_COGNITIVE_LOAD = 0.7
HEALTH_NEGATIVE_INTENSITY = 0.3
HEALTH_NEGATIVE_MEMORY_COUNT = 3
NEGATIVE_EVENT_KEYWORDS: Tuple[str, ...] = ("reject", "override", "conflict")

FLAG_LOW_SUCCESS_RATE = "low_success_rate"
FLAG_LOW_REPUTATION = "low_reputation"
FLAG_OVERLOADED = "overloaded"
FLAG_NEGATIVE_EMOTIONAL_PATTERN = "negative_emotional_pattern"
