"""Tests for agent deployment: chat client, model resolution, runner, registry and approvers."""
from __future__ import annotations

import json

import httpx
import pytest
from rich.console import Console

from flightdeck.config.schema import ModelConfig
from flightdeck.domain import FlightdeckError, LLMResponse
from flightdeck.infrastructure.agents import (
    ConsoleApprover,
    FileAgentRegistry,
    GenericChatClient,
    LLMAgentRunner,
    StaticApprover,
    build_chat_client,
    parse_chat_response,
    resolve_model_key,
)

MODELS = {
    "default": ModelConfig(base_url="http://local/v1", model="small"),
    "big": ModelConfig(base_url="http://cloud/v1", model="large", api_key="sk-test", max_tokens=8000),
}

AGENT_MD = """---
name: bug-fixer
description: Fixes bugs
model: opus
tools: Read, Edit
---
You fix bugs.
"""


def _completion(content, finish_reason="stop"):
    return {
        "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": finish_reason}],
        "usage": {"total_tokens": 12},
    }


# ---------------------------------------------------------------------------
# Chat client
# ---------------------------------------------------------------------------

def test_parse_chat_response():
    resp = parse_chat_response(_completion("hello"))
    assert resp.content == "hello"
    assert resp.finish_reason == "stop"
    assert resp.usage == {"total_tokens": 12}


def test_parse_chat_response_without_choices():
    with pytest.raises(ValueError, match="no choices"):
        parse_chat_response({"choices": []})


@pytest.mark.asyncio
async def test_chat_client_posts_openai_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion('{"ok": true}'))

    client = GenericChatClient("http://cloud/v1/", api_key="sk-test", transport=httpx.MockTransport(handler))
    resp = await client.chat([{"role": "user", "content": "hi"}], "large", max_tokens=100)

    assert resp.content == '{"ok": true}'
    assert seen["url"] == "http://cloud/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "large"
    assert seen["body"]["max_tokens"] == 100
    assert seen["body"]["stream"] is False


@pytest.mark.asyncio
async def test_chat_client_without_key_sends_no_auth_header():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json=_completion("x"))

    client = build_chat_client(MODELS["default"], transport=httpx.MockTransport(handler))
    await client.chat([], "small")
    assert seen["auth"] is None


@pytest.mark.asyncio
async def test_chat_client_raises_on_http_error():
    client = GenericChatClient("http://local/v1", transport=httpx.MockTransport(lambda r: httpx.Response(503)))
    with pytest.raises(httpx.HTTPStatusError):
        await client.chat([], "small")


# ---------------------------------------------------------------------------
# Model resolution
# ---------------------------------------------------------------------------

def test_resolve_model_key_order():
    mapping = {"opus": "big"}
    assert resolve_model_key("opus", MODELS, mapping) == "big"
    assert resolve_model_key("big", MODELS, {}) == "big"
    assert resolve_model_key("sonnet", MODELS, mapping) == "default"
    assert resolve_model_key(None, MODELS, mapping) == "default"
    assert resolve_model_key("opus", MODELS, mapping, override="default") == "default"


def test_resolve_model_key_without_default():
    with pytest.raises(FlightdeckError, match="No model configured"):
        resolve_model_key("haiku", {"big": MODELS["big"]}, {})


# ---------------------------------------------------------------------------
# Registry and runner
# ---------------------------------------------------------------------------

@pytest.fixture
def agents_dir(tmp_path):
    d = tmp_path / "agents"
    d.mkdir()
    (d / "bug-fixer.md").write_text(AGENT_MD, encoding="utf-8")
    (d / "notes.txt").write_text("ignored", encoding="utf-8")
    return d


def test_registry_lists_and_caches(agents_dir):
    registry = FileAgentRegistry(agents_dir)
    assert registry.list() == ["bug-fixer"]
    first = registry.get("bug-fixer")
    assert first.model == "opus"
    assert first.tools == ("Read", "Edit")
    assert registry.get("bug-fixer") is first


def test_registry_unknown_agent(agents_dir):
    with pytest.raises(FlightdeckError, match="Available: bug-fixer"):
        FileAgentRegistry(agents_dir).get("code-reviewer")


def test_registry_missing_dir(tmp_path):
    assert FileAgentRegistry(tmp_path / "nope").list() == []


class FakeClient:
    def __init__(self, response: LLMResponse):
        self.response = response
        self.calls = []

    async def chat(self, messages, model, **kwargs):
        self.calls.append((messages, model, kwargs))
        return self.response


@pytest.mark.asyncio
async def test_runner_sends_body_and_request(agents_dir):
    clients = {}

    def factory(cfg: ModelConfig):
        clients[cfg.model] = FakeClient(LLMResponse(content='{"narrative_report": "done"}'))
        return clients[cfg.model]

    runner = LLMAgentRunner(FileAgentRegistry(agents_dir), MODELS, {"opus": "big"}, client_factory=factory)
    text = await runner.run("bug-fixer", {"role": "coding", "task_id": "T-1"})

    assert text == '{"narrative_report": "done"}'
    messages, model, kwargs = clients["large"].calls[0]
    assert model == "large"
    assert kwargs["max_tokens"] == 8000
    assert messages[0] == {"role": "system", "content": "You fix bugs."}
    assert json.loads(messages[1]["content"]) == {"role": "coding", "task_id": "T-1"}


@pytest.mark.asyncio
async def test_runner_reuses_clients(agents_dir):
    made = []

    def factory(cfg):
        made.append(cfg.model)
        return FakeClient(LLMResponse(content="x"))

    runner = LLMAgentRunner(FileAgentRegistry(agents_dir), MODELS, client_factory=factory)
    await runner.run("bug-fixer", {})
    await runner.run("bug-fixer", {})
    assert made == ["small"]


@pytest.mark.asyncio
async def test_runner_empty_response_raises(agents_dir):
    runner = LLMAgentRunner(FileAgentRegistry(agents_dir), MODELS,
                            client_factory=lambda cfg: FakeClient(LLMResponse(content="  ")))
    with pytest.raises(FlightdeckError, match="empty response"):
        await runner.run("bug-fixer", {})


# ---------------------------------------------------------------------------
# Approvers
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_static_approver_records_summaries():
    approver = StaticApprover(False)
    assert await approver.approve({"task_id": "T-1"}) is False
    assert approver.calls == [{"task_id": "T-1"}]


@pytest.mark.asyncio
async def test_console_approver_shows_gates_and_asks(monkeypatch):
    monkeypatch.setattr("flightdeck.infrastructure.agents.approval.typer.confirm", lambda *a, **k: True)
    console = Console(record=True, width=100)
    approver = ConsoleApprover(console)
    answer = await approver.approve({
        "task_id": "T-1",
        "gates": {"test-runner": "PASS", "code-reviewer": "PASS"},
        "files_modified": ["app.py"],
    })
    assert answer is True
    text = console.export_text()
    assert "Authorize commit for T-1" in text
    assert "code-reviewer" in text
    assert "app.py" in text
