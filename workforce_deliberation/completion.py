from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import requests

from .config import DeliberationConfig
from .errors import CompletionError

logger = logging.getLogger(__name__)

Message = Mapping[str, str]


class CompletionClient(Protocol):
    async def complete(self, messages: Sequence[Message]) -> str:
        ...


class HTTPCompletionClient:
    """Chat-completions client for any OpenAI-compatible endpoint, asking for a JSON object."""

    def __init__(
        self,
        *,
        url: str,
        model: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.model = model
        self._api_key = api_key
        self._timeout_seconds = max(0.1, float(timeout_seconds))
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, config: DeliberationConfig) -> "HTTPCompletionClient":
        return cls(
            url=config.completion_url,
            model=config.completion_model,
            api_key=config.completion_api_key,
            timeout_seconds=config.request_timeout_seconds,
        )

    async def complete(self, messages: Sequence[Message]) -> str:
        return await asyncio.to_thread(self._post, [dict(message) for message in messages])

    def close(self) -> None:
        self._session.close()

    def _post(self, messages: List[Dict[str, str]]) -> str:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "response_format": {"type": "json_object"},
        }
        try:
            response = self._session.post(self.url, json=body, headers=headers, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            raise CompletionError(f"completion request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise CompletionError(
                f"completion service returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise CompletionError("completion service returned a non-JSON body") from exc

        content = _first_message_content(data)
        if content is None:
            raise CompletionError("completion response has no choices[0].message.content")
        logger.debug("COMPLETION_OK model=%s chars=%d", self.model, len(content))
        return content


def _first_message_content(data: Any) -> Optional[str]:
    if not isinstance(data, Mapping):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, Mapping):
        return None
    message = first.get("message")
    if not isinstance(message, Mapping):
        return None
    content = message.get("content")
    if not isinstance(content, str) or not content.strip():
        return None
    return content
