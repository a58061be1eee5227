from .decay import DecayReport, DecayScheduler, decay_agent_state
from .health import AgentHealth, HealthReport, WorkforceHealthReview
from .locks import AgentLockRegistry
from .outcomes import (
    ObjectiveProgressResolver,
    OutcomeAdjustment,
    OutcomeEvaluator,
    OutcomeReport,
    OutcomeResolver,
    OutcomeVerdict,
)
from .relationship import PeerTrustUpdater, TrustChange

__all__ = [
    "AgentHealth",
    "AgentLockRegistry",
    "DecayReport",
    "DecayScheduler",
    "HealthReport",
    "ObjectiveProgressResolver",
    "OutcomeAdjustment",
    "OutcomeEvaluator",
    "OutcomeReport",
    "OutcomeResolver",
    "OutcomeVerdict",
    "PeerTrustUpdater",
    "TrustChange",
    "WorkforceHealthReview",
    "decay_agent_state",
]
