from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple

from workforce_state.models import CompanyState, Doctrine, Objective, ServiceEconomic
from workforce_state.store import SQLiteStateStore
from workforce_state.utils import utc_now

from .constants import ImpactLevel

logger = logging.getLogger(__name__)

_SAAS_CATEGORIES = {"saas", "software", "subscription", "product"}


@dataclass(frozen=True)
class ContextBundle:
    """Shared situational brief handed to every agent in one deliberation."""

    company: Optional[CompanyState] = None
    objectives: Tuple[Objective, ...] = ()
    economics: Tuple[ServiceEconomic, ...] = ()
    doctrine: Optional[Doctrine] = None
    loaded_at: datetime = field(default_factory=utc_now)

    @property
    def doctrine_stale(self) -> bool:
        return self.doctrine is not None and self.doctrine.is_stale(self.loaded_at)

    def objective_for(self, ref: str) -> Optional[Objective]:
        for objective in self.objectives:
            if objective.matches(ref):
                return objective
        return None

    def render_brief(self, topic: str, impact_level: ImpactLevel, context_hint: Optional[str] = None) -> str:
        lines: List[str] = [f"Topic: {topic}", f"Impact level: {impact_level.value}"]
        if context_hint:
            lines.append(f"Additional context: {context_hint}")

        lines.append("")
        company = self.company or CompanyState()
        lines.append(
            "Company state: "
            f"momentum={company.momentum}, stress={company.stress_level}, "
            f"growth={company.growth_velocity}, risk={company.risk_exposure}, morale={company.morale}"
        )

        lines.append("")
        lines.append("Active objectives:")
        if self.objectives:
            for objective in self.objectives:
                lines.append(
                    f"- [P{objective.priority}] {objective.title} "
                    f"({objective.current_value:g}/{objective.target_value:g})"
                )
        else:
            lines.append("- none recorded")

        saas = [item for item in self.economics if item.category.strip().lower() in _SAAS_CATEGORIES]
        services = [item for item in self.economics if item not in saas]
        lines.append("")
        lines.append("Service economics:")
        if not self.economics:
            lines.append("- none recorded")
        for label, group in (("SaaS", saas), ("Service", services)):
            for item in group:
                lines.append(
                    f"- {label}: {item.name} ({item.category}), margin={round(item.margin * 100)}%, "
                    f"scalability={item.scalability_score:g}/10, complexity={item.operational_complexity:g}"
                )

        if self.doctrine is not None:
            lines.append("")
            period = f" ({self.doctrine.period})" if self.doctrine.period else ""
            lines.append(f"Current doctrine{period}: {self.doctrine.strategic_shift}")
            if self.doctrine_stale:
                lines.append("Note: this doctrine is more than 100 days old.")
        return "\n".join(lines)


class ContextBuilder:
    def __init__(self, store: SQLiteStateStore) -> None:
        self._store = store

    async def build(self) -> ContextBundle:
        company, objectives, economics, doctrine = await asyncio.gather(
            self._read("company_state", self._store.load_company_state, None),
            self._read("objectives", self._store.list_active_objectives, []),
            self._read("service_economics", self._store.list_service_economics, []),
            self._read("doctrine", self._store.load_current_doctrine, None),
        )
        return ContextBundle(
            company=company,
            objectives=tuple(objectives),
            economics=tuple(economics),
            doctrine=doctrine,
            loaded_at=self._store.now(),
        )

    @staticmethod
    async def _read(name: str, reader: Callable[[], Any], empty: Any) -> Any:
        try:
            return await asyncio.to_thread(reader)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("CONTEXT_READ_FAILED part=%s", name, exc_info=True)
            return empty
