from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from workforce_deliberation.constants import ImpactLevel
from workforce_deliberation.models import DeliberationResult, ScoredPosition
from workforce_state.constants import AUDIT_EVENT_BROADCAST
from workforce_state.models import Doctrine
from workforce_state.store import SQLiteStateStore

from .channels import BroadcastChannel, BroadcastMessage

logger = logging.getLogger(__name__)

BROADCAST_WINDOW_SECONDS = 60 * 60


class BroadcastGate:
    """At most one decision broadcast per rolling window, system-wide.

    The slot is claimed with a single conditional insert into the audit log, so
    concurrent publishers (threads or processes sharing the database) cannot both
    pass the check. The audit row is written at claim time, before delivery.
    """

    def __init__(
        self,
        store: SQLiteStateStore,
        channels: Sequence[BroadcastChannel],
        *,
        window_seconds: float = BROADCAST_WINDOW_SECONDS,
        event_type: str = AUDIT_EVENT_BROADCAST,
    ) -> None:
        self._store = store
        self._channels: List[BroadcastChannel] = list(channels)
        self._window_seconds = float(window_seconds)
        self._event_type = event_type

    async def publish(
        self,
        *,
        topic: str,
        ranked: Sequence[ScoredPosition],
        result: DeliberationResult,
        doctrine: Optional[Doctrine] = None,
    ) -> bool:
        """Return True when this call won the slot and attempted delivery."""
        if result.impact_level is ImpactLevel.LOW:
            return False
        message = BroadcastMessage.build(topic=topic, ranked=ranked, result=result, doctrine=doctrine)
        try:
            claimed = await asyncio.to_thread(
                self._store.claim_audit_slot,
                self._event_type,
                window_seconds=self._window_seconds,
                details={
                    "discussion_id": result.discussion_id,
                    "topic": topic,
                    "impact_level": result.impact_level.value,
                },
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("BROADCAST_SLOT_CLAIM_FAILED discussion=%s", result.discussion_id, exc_info=True)
            return False

        if not claimed:
            logger.info("BROADCAST_RATE_LIMITED discussion=%s window=%ss", result.discussion_id, self._window_seconds)
            return False

        for channel in self._channels:
            try:
                await channel.send(message)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "BROADCAST_CHANNEL_FAILED channel=%s discussion=%s error=%s",
                    getattr(channel, "name", type(channel).__name__),
                    result.discussion_id,
                    exc,
                )
        logger.info("BROADCAST_SENT discussion=%s channels=%d", result.discussion_id, len(self._channels))
        return True
