from .background import BackgroundTaskQueue
from .collector import PositionCollector
from .completion import CompletionClient, HTTPCompletionClient
from .config import DeliberationConfig
from .constants import ImpactLevel
from .context import ContextBuilder, ContextBundle
from .engine import DeliberationEngine
from .errors import CompletionError, DeliberationError, DeliberationRequestError, PositionParseError
from .models import (
    DeliberationResult,
    DeliberationRun,
    DeliberationState,
    ObjectiveImpact,
    Position,
    ScoredPosition,
)
from .schemas import PositionPayload, parse_position_payload
from .synthesis import SynthesisEngine, should_deliberate

__all__ = [
    "BackgroundTaskQueue",
    "CompletionClient",
    "CompletionError",
    "ContextBuilder",
    "ContextBundle",
    "DeliberationConfig",
    "DeliberationEngine",
    "DeliberationError",
    "DeliberationRequestError",
    "DeliberationResult",
    "DeliberationRun",
    "DeliberationState",
    "HTTPCompletionClient",
    "ImpactLevel",
    "ObjectiveImpact",
    "Position",
    "PositionCollector",
    "PositionParseError",
    "PositionPayload",
    "ScoredPosition",
    "SynthesisEngine",
    "parse_position_payload",
    "should_deliberate",
]
