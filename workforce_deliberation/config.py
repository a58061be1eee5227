from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional

from .constants import (
    COGNITIVE_LOAD_GATE,
    DEFAULT_COMPLETION_MODEL,
    DEFAULT_COMPLETION_URL,
    DEFAULT_DELIBERATION_TIMEOUT_SECONDS,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_SKIP_ACTIONS,
    DEFAULT_TRUST_UPDATE_ATTEMPTS,
    DEFAULT_TRUST_UPDATE_BACKOFF_SECONDS,
)

ENV_PREFIX = "WORKFORCE_"


@dataclass(frozen=True)
class DeliberationConfig:
    skip_actions: FrozenSet[str] = field(default_factory=lambda: frozenset(DEFAULT_SKIP_ACTIONS))
    cognitive_load_gate: float = COGNITIVE_LOAD_GATE
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    deliberation_timeout_seconds: float = DEFAULT_DELIBERATION_TIMEOUT_SECONDS
    trust_update_attempts: int = DEFAULT_TRUST_UPDATE_ATTEMPTS
    trust_update_backoff_seconds: float = DEFAULT_TRUST_UPDATE_BACKOFF_SECONDS
    completion_url: str = DEFAULT_COMPLETION_URL
    completion_model: str = DEFAULT_COMPLETION_MODEL
    completion_api_key: Optional[str] = None

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.request_timeout_seconds <= 0 or self.deliberation_timeout_seconds <= 0:
            raise ValueError("timeouts must be positive")
        if self.trust_update_attempts < 1:
            raise ValueError("trust_update_attempts must be at least 1")
        object.__setattr__(
            self,
            "skip_actions",
            frozenset(action.strip().lower() for action in self.skip_actions if action and action.strip()),
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DeliberationConfig":
        env = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}

        raw_skip = env.get(f"{ENV_PREFIX}SKIP_ACTIONS")
        if raw_skip is not None:
            overrides["skip_actions"] = frozenset(part for part in raw_skip.split(",") if part.strip())

        for name, cast in (
            ("cognitive_load_gate", float),
            ("max_concurrency", int),
            ("request_timeout_seconds", float),
            ("deliberation_timeout_seconds", float),
            ("trust_update_attempts", int),
            ("trust_update_backoff_seconds", float),
        ):
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None or not raw.strip():
                continue
            try:
                overrides[name] = cast(raw.strip())
            except ValueError as exc:
                raise ValueError(f"{ENV_PREFIX}{name.upper()} is not a valid {cast.__name__}: {raw!r}") from exc

        for name in ("completion_url", "completion_model", "completion_api_key"):
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw.strip():
                overrides[name] = raw.strip()

        return cls(**overrides)

    def is_skipped_action(self, action_type: Optional[str]) -> bool:
        if not action_type:
            return False
        return action_type.strip().lower() in self.skip_actions
