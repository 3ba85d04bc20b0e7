"""OpenAI-compatible chat client used to deploy agents against a model endpoint.

Any backend exposing ``POST {base_url}/chat/completions`` works: Ollama,
vLLM, LM Studio, or a cloud provider.  No retries; a non-2xx response raises
``httpx.HTTPStatusError`` and the pipeline treats it as a failed deployment.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from flightdeck.config.constants import LLM_CHAT_DEFAULT_TIMEOUT_S
from flightdeck.config.schema import ModelConfig
from flightdeck.domain import LLMResponse

logger = logging.getLogger(__name__)


def parse_chat_response(data: Dict[str, Any]) -> LLMResponse:
    """Turn a chat-completions response body into an LLMResponse.

    Raises ValueError when the body has no choices.
    """
    choices = data.get("choices") or []
    if not choices:
        raise ValueError("chat response contains no choices")
    choice = choices[0]
    message = choice.get("message") or {}
    return LLMResponse(
        content=message.get("content"),
        finish_reason=choice.get("finish_reason"),
        usage=data.get("usage") or {},
    )


class GenericChatClient:
    """Bare OpenAI-compatible chat client.

    ``transport`` is passed to ``httpx.AsyncClient``; tests use
    ``httpx.MockTransport`` to avoid the network.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout_s: float = LLM_CHAT_DEFAULT_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout_s
        self._transport = transport

    async def chat(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        *,
        temperature: float = 0.1,
        top_p: float = 0.9,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        url = f"{self._base_url}/chat/completions"
        headers: Dict[str, str] = {}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        payload = {
            "model": model,
            "messages": messages,
            "stream": False,
            "temperature": temperature,
            "top_p": top_p,
            "max_tokens": max_tokens,
        }
        logger.debug("POST %s model=%s messages=%d", url, model, len(messages))
        async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout), transport=self._transport) as client:
            r = await client.post(url, headers=headers, json=payload)
            r.raise_for_status()
            return parse_chat_response(r.json())


def build_chat_client(
    model_config: ModelConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> GenericChatClient:
    return GenericChatClient(
        base_url=model_config.base_url,
        api_key=model_config.api_key,
        timeout_s=model_config.timeout_s,
        transport=transport,
    )
