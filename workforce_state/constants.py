from __future__ import annotations

from typing import Mapping

BELIEF_MIN = 0.1
BELIEF_MAX = 0.9
CONFIDENCE_MIN = 0.1
CONFIDENCE_MAX = 0.9
REPUTATION_MIN = 0.1
REPUTATION_MAX = 0.9
INITIATIVE_MIN = 0.1
INITIATIVE_MAX = 0.9
TRUST_MIN = 0.1
TRUST_MAX = 0.9
COGNITIVE_LOAD_MIN = 0.0
COGNITIVE_LOAD_MAX = 1.0
INTENSITY_MIN = 0.0
INTENSITY_MAX = 1.0

DEFAULT_TRUST = 0.5
DEFAULT_REPUTATION = 0.5
DEFAULT_CONFIDENCE = 0.5
DEFAULT_INITIATIVE = 0.5
DEFAULT_COGNITIVE_LOAD = 0.2

DEFAULT_BELIEFS: Mapping[str, float] = {
    "growth_priority": 0.5,
    "risk_tolerance": 0.5,
    "speed_vs_quality": 0.5,
}

EMOTIONAL_MEMORY_CAP = 10
INITIATIVE_DECAY_STEP = 0.05

DOCTRINE_STALE_DAYS = 100

OBJECTIVE_STATUS_ACTIVE = "active"

AUDIT_EVENT_BROADCAST = "deliberation_broadcast"
