from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Protocol, Sequence, Set, Tuple

import requests

from workforce_deliberation.models import DeliberationResult, ScoredPosition
from workforce_state.models import Doctrine
from workforce_state.utils import display_name, iso_now

from .models import CHANNEL_DECISIONS, StreamEnvelope

logger = logging.getLogger(__name__)


class ChannelError(Exception):
    """Raised by a channel that could not deliver a broadcast."""


@dataclass(frozen=True)
class BroadcastMessage:
    topic: str
    impact_level: str
    discussion_id: str
    decision: str
    summary: str
    confidence: float
    requires_approval: bool
    winner_name: Optional[str] = None
    positions: Tuple[Dict[str, Any], ...] = ()
    dissent: Tuple[str, ...] = ()
    doctrine_text: Optional[str] = None
    created_at: str = field(default_factory=iso_now)

    @classmethod
    def build(
        cls,
        *,
        topic: str,
        ranked: Sequence[ScoredPosition],
        result: DeliberationResult,
        doctrine: Optional[Doctrine] = None,
    ) -> "BroadcastMessage":
        return cls(
            topic=topic,
            impact_level=result.impact_level.value,
            discussion_id=result.discussion_id,
            decision=result.decision,
            summary=result.summary,
            confidence=result.confidence,
            requires_approval=result.requires_approval,
            winner_name=display_name(result.winner_id) if result.winner_id else None,
            positions=tuple(
                {
                    "employee_id": item.employee_id,
                    "position": item.position.position,
                    "final_weight": round(item.final_weight, 4),
                    "rank": item.rank,
                }
                for item in ranked
            ),
            dissent=tuple(result.dissent),
            doctrine_text=doctrine.strategic_shift if doctrine is not None else None,
        )

    def render_text(self) -> str:
        lines: List[str] = [f"[{self.impact_level.upper()}] {self.topic}"]
        if self.winner_name:
            lines.append(f"decision: {self.decision} (proposed by {self.winner_name})")
        else:
            lines.append(f"decision: {self.decision}")
        lines.append(f"{len(self.positions)} position(s), confidence {round(self.confidence * 10)}/10")
        if self.summary:
            lines.append("")
            lines.append(self.summary)
        if self.doctrine_text:
            lines.append("")
            lines.append(f"doctrine: {self.doctrine_text}")
        if self.requires_approval:
            lines.append("")
            lines.append("approval required before execution.")
        return "\n".join(lines)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "impact_level": self.impact_level,
            "discussion_id": self.discussion_id,
            "decision": self.decision,
            "summary": self.summary,
            "confidence": self.confidence,
            "requires_approval": self.requires_approval,
            "winner_name": self.winner_name,
            "positions": [dict(item) for item in self.positions],
            "dissent": list(self.dissent),
            "doctrine_text": self.doctrine_text,
            "created_at": self.created_at,
            "text": self.render_text(),
        }


class BroadcastChannel(Protocol):
    name: str

    async def send(self, message: BroadcastMessage) -> None:
        ...


class WebhookChannel:
    """Posts the rendered decision as JSON to an incoming-webhook URL."""

    name = "webhook"

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self._timeout_seconds = max(0.1, float(timeout_seconds))
        self._session = session or requests.Session()

    async def send(self, message: BroadcastMessage) -> None:
        await asyncio.to_thread(self._post, message)

    def _post(self, message: BroadcastMessage) -> None:
        body = {"text": message.render_text(), "decision": message.as_dict()}
        try:
            response = self._session.post(self.url, json=body, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            raise ChannelError(f"webhook request failed: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise ChannelError(f"webhook returned HTTP {response.status_code}")


class FanoutChannel:
    """In-process subscriber queues; each slow subscriber drops its oldest envelope rather than blocking."""

    name = "fanout"

    def __init__(self, *, subscriber_queue_size: int = 64, history_size: int = 50) -> None:
        self._subscriber_queue_size = max(8, int(subscriber_queue_size))
        self._subscribers: Set["asyncio.Queue[StreamEnvelope]"] = set()
        self._history: Deque[StreamEnvelope] = deque(maxlen=max(1, int(history_size)))

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> "asyncio.Queue[StreamEnvelope]":
        queue: "asyncio.Queue[StreamEnvelope]" = asyncio.Queue(maxsize=self._subscriber_queue_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: "asyncio.Queue[StreamEnvelope]") -> None:
        self._subscribers.discard(queue)

    def history(self) -> List[StreamEnvelope]:
        return list(self._history)

    async def send(self, message: BroadcastMessage) -> None:
        envelope = StreamEnvelope.build(
            channel=CHANNEL_DECISIONS,
            source="broadcast_gate",
            timestamp=message.created_at,
            data=message.as_dict(),
        )
        self._history.append(envelope)
        for subscriber in list(self._subscribers):
            self._enqueue_subscriber(subscriber, envelope)

    @staticmethod
    def _enqueue_subscriber(queue: "asyncio.Queue[StreamEnvelope]", envelope: StreamEnvelope) -> None:
        if queue.full():
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
        try:
            queue.put_nowait(envelope)
        except asyncio.QueueFull:
            logger.warning("FANOUT_SUBSCRIBER_FULL channel=%s", CHANNEL_DECISIONS)
