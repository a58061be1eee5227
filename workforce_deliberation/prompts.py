from __future__ import annotations

from typing import Dict, List, Optional

from workforce_state.models import AgentState, Doctrine

from .constants import EMOTIONAL_MEMORY_PROMPT_LIMIT

_RESPONSE_SHAPE = (
    '{"position": "...", "reasoning": "...", "objections": "...", "confidence": 0.0, '
    '"objective_impact": [{"objective_id": "...", "expected_delta": 0.0, "confidence": 0.0}]'
)


def _persona(state: AgentState) -> str:
    lines = [f"You are {state.name}, an employee in an autonomous AI workforce."]
    if state.core_motivation:
        lines.append(f"Your core motivation: {state.core_motivation}")
    beliefs = ", ".join(f"{name}={value:.2f}" for name, value in sorted(state.beliefs.items()))
    if beliefs:
        lines.append(f"Your beliefs: {beliefs}")
    lines.append(f"Your confidence: {state.confidence:.2f}")
    lines.append(f"Your emotional stance: {state.emotional_stance}")
    recent = state.emotional_memory[-EMOTIONAL_MEMORY_PROMPT_LIMIT:]
    if recent:
        lines.append("Recent experiences:")
        for event in recent:
            lines.append(f"- {event.event} (intensity {event.intensity:.2f})")
    return "\n".join(lines)


def build_position_messages(
    state: AgentState,
    brief: str,
    doctrine: Optional[Doctrine] = None,
) -> List[Dict[str, str]]:
    instructions = [
        brief,
        "",
        "Give your position on this topic in 2-3 sentences. Be direct. Include:",
        "1. Your stance (support/oppose/conditional)",
        "2. Why, based on your motivation and the data",
        "3. Any objection to other likely positions",
        "4. Impact on objectives (which objective, expected change, your confidence)",
    ]
    shape = _RESPONSE_SHAPE
    if doctrine is not None:
        instructions.append("5. Whether your position is aligned with the current doctrine")
        shape += ', "doctrine_aligned": true'
    shape += "}"
    instructions.append("")
    instructions.append(f"Respond only with a JSON object: {shape}")
    return [
        {"role": "system", "content": _persona(state)},
        {"role": "user", "content": "\n".join(instructions)},
    ]
