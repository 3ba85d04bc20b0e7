"""Deploy agents by sending their prompt body plus a JSON request to a chat model."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from flightdeck.application.ports import AgentRegistry, ChatClient
from flightdeck.config.schema import ModelConfig
from flightdeck.domain import FlightdeckError

from .chat_client import build_chat_client

logger = logging.getLogger(__name__)

DEFAULT_MODEL_KEY = "default"


def resolve_model_key(
    alias: Optional[str],
    models: Mapping[str, ModelConfig],
    agent_model_map: Mapping[str, str],
    override: Optional[str] = None,
) -> str:
    """Pick the models[] key for an agent.

    Order: explicit override, the alias mapped through ``agent_model_map``,
    the alias itself when it names a model key, then ``"default"``.
    """
    for candidate in (override, agent_model_map.get(alias or ""), alias, DEFAULT_MODEL_KEY):
        if candidate and candidate in models:
            return candidate
    raise FlightdeckError(
        f"No model configured for alias {alias!r}; add a 'default' entry to models in the flightdeck config."
    )


class LLMAgentRunner:
    """AgentRunner port: system message is the agent body, user message the JSON request."""

    def __init__(
        self,
        registry: AgentRegistry,
        models: Mapping[str, ModelConfig],
        agent_model_map: Optional[Mapping[str, str]] = None,
        model_key_override: Optional[str] = None,
        client_factory: Callable[[ModelConfig], ChatClient] = build_chat_client,
    ):
        self._registry = registry
        self._models = dict(models)
        self._map = dict(agent_model_map or {})
        self._override = model_key_override
        self._client_factory = client_factory
        self._clients: Dict[str, ChatClient] = {}

    def _client_for(self, key: str) -> ChatClient:
        if key not in self._clients:
            self._clients[key] = self._client_factory(self._models[key])
        return self._clients[key]

    async def run(self, agent_name: str, request: Dict[str, Any]) -> str:
        definition = self._registry.get(agent_name)
        key = resolve_model_key(definition.model, self._models, self._map, self._override)
        model_cfg = self._models[key]
        messages = [
            {"role": "system", "content": definition.body.strip()},
            {"role": "user", "content": json.dumps(request, indent=2, ensure_ascii=False)},
        ]
        logger.debug("Deploying %s on %s (%s)", agent_name, key, model_cfg.model)
        response = await self._client_for(key).chat(
            messages,
            model_cfg.model,
            temperature=model_cfg.temperature,
            top_p=model_cfg.top_p,
            max_tokens=model_cfg.max_tokens,
        )
        if not (response.content or "").strip():
            raise FlightdeckError(f"{agent_name} returned an empty response")
        if response.finish_reason == "length":
            logger.warning("%s hit max_tokens; the report may be truncated", agent_name)
        return response.content
