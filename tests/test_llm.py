from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List

import pytest
from pydantic import BaseModel

from conftest import PatternSource

from junction.models import (
    AnthropicMessagesClient,
    LLMRequest,
    LLMRetryError,
    OpenAIResponsesClient,
)
from junction.models.llm_client import LLMClient, response_schema
from junction.models.openai import resolve_timeout
from junction.planning.context import ContextBuilder
from junction.planning.llm import PARSE_FAILURE_REASON, LlmPlanner, build_prompt
from junction.schema import DiagnosticSnapshot, Plan, RenameElement

PLAN_JSON = {
    "targetCodes": [2305],
    "why": ["rename Switch"],
    "confidence": 0.6,
    "ops": [{"kind": "RENAME_ELEMENT", "file": "src/App.tsx", "from": "Switch", "to": "Routes"}],
}


class RecordingTransport:
    """Replays canned responses and keeps every payload it was sent."""

    def __init__(self, *responses: str) -> None:
        self.responses = list(responses)
        self.payloads: List[Dict[str, Any]] = []

    def __call__(self, payload: Dict[str, Any]) -> str:
        self.payloads.append(payload)
        index = min(len(self.payloads) - 1, len(self.responses) - 1)
        return self.responses[index]


def _openai(transport: RecordingTransport, **kwargs: Any) -> OpenAIResponsesClient:
    return OpenAIResponsesClient(transport=transport, retry_delay=0.0, **kwargs)


def _request(**kwargs: Any) -> LLMRequest[Plan]:
    return LLMRequest(prompt="fix it", response_model=Plan, system_prompt="system", **kwargs)


def test_openai_payload_uses_strict_json_schema() -> None:
    transport = RecordingTransport(json.dumps({"output_text": json.dumps(PLAN_JSON)}))

    plan = _openai(transport, model="gpt-test").invoke(_request(metadata={"diagnostics": 3}))

    assert plan.ops == [RenameElement(file="src/App.tsx", from_name="Switch", to_name="Routes")]
    payload = transport.payloads[0]
    assert payload["model"] == "gpt-test"
    assert [message["role"] for message in payload["input"]] == ["system", "user"]
    fmt = payload["text"]["format"]
    assert fmt["type"] == "json_schema" and fmt["strict"] is True and fmt["name"] == "Plan"
    assert fmt["schema"]["required"] == ["targetCodes", "ops", "why", "confidence"]
    assert payload["metadata"] == {"diagnostics": "3"}
    assert "temperature" not in payload


def test_openai_reads_nested_output_content() -> None:
    body = {"output": [{"type": "message", "content": [{"type": "output_text", "text": json.dumps(PLAN_JSON)}]}]}
    transport = RecordingTransport(json.dumps(body))

    plan = _openai(transport).invoke(_request())

    assert plan.target_codes == [2305]


def test_invalid_reply_is_retried_then_accepted() -> None:
    transport = RecordingTransport("not json at all", json.dumps({"output_text": json.dumps(PLAN_JSON)}))
    attempts: List[int] = []

    plan, raw = _openai(transport).invoke_structured(
        _request(), logger=lambda payload, text, data, error, attempt: attempts.append(attempt)
    )

    assert plan.confidence == 0.6
    assert raw["targetCodes"] == [2305]
    assert attempts == [1, 2]
    assert len(transport.payloads) == 2


def test_exhausted_retries_raise() -> None:
    transport = RecordingTransport(json.dumps({"output_text": '{"ops": "nope"}'}))

    with pytest.raises(LLMRetryError, match="after 2 attempt"):
        _openai(transport, max_attempts=2).invoke(_request())
    assert len(transport.payloads) == 2


def test_json_is_repaired_from_fenced_noisy_output() -> None:
    noisy = 'Here you go:\n```json\n{"targetCodes": [], "why": ["a }"], "confidence": 0.1, "ops": [],}\n```\nthanks'

    assert LLMClient._parse_json(noisy) == {"targetCodes": [], "why": ["a }"], "confidence": 0.1, "ops": []}
    assert LLMClient._parse_json("{'ops': [], 'why': None}") == {"ops": [], "why": None}


def test_anthropic_puts_schema_in_system_prompt() -> None:
    reply = {"content": [{"type": "text", "text": json.dumps(PLAN_JSON)[:20]}, {"type": "text", "text": json.dumps(PLAN_JSON)[20:]}]}
    transport = RecordingTransport(json.dumps(reply))
    client = AnthropicMessagesClient(transport=transport, model="claude-test", retry_delay=0.0)

    plan = client.invoke(_request())

    assert plan.why == ["rename Switch"]
    payload = transport.payloads[0]
    assert payload["model"] == "claude-test"
    assert payload["max_tokens"] == 4096
    assert payload["messages"] == [{"role": "user", "content": "fix it"}]
    assert payload["system"].startswith("system\n\nThe reply must validate against this JSON schema:")
    assert json.dumps(response_schema(Plan), separators=(",", ":")) in payload["system"]


def test_default_transport_requires_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

    with pytest.raises(ValueError):
        OpenAIResponsesClient()
    with pytest.raises(ValueError):
        AnthropicMessagesClient()


def test_timeout_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("JUNCTION_LLM_TIMEOUT", "12.5")
    assert resolve_timeout(60.0) == 12.5
    monkeypatch.setenv("JUNCTION_LLM_TIMEOUT", "soon")
    assert resolve_timeout(60.0) == 60.0


def test_planner_turns_parse_failure_into_empty_plan(tsx_project: Path) -> None:
    transport = RecordingTransport("I cannot help with that.")
    planner = LlmPlanner(_openai(transport, max_attempts=1))
    context = ContextBuilder(project_root=tsx_project).build(DiagnosticSnapshot())

    plan = asyncio.run(planner.propose(context))

    assert plan.ops == []
    assert plan.why == [PARSE_FAILURE_REASON]
    assert plan.confidence == 0.0


def test_prompt_carries_diagnostics_snippets_and_target(tsx_project: Path) -> None:
    snapshot = PatternSource({2322: r"\bexact\b"}).query(tsx_project)
    context = ContextBuilder(project_root=tsx_project).build(snapshot, target=snapshot.diagnostics[0])

    prompt = build_prompt(context)

    assert prompt.startswith("Input (JSON):\n")
    assert prompt.endswith("Return ONLY the JSON plan object, no markdown, no fences.")
    body = json.loads(prompt.split("\n", 1)[1].rsplit("\n", 1)[0])
    assert body["diagnostics"][0]["code"] == 2322
    assert "exact" in body["diagnostics"][0]["snippet"]
    assert "react-router-dom" in body["diagnostics"][0]["importsHead"]
    assert body["target"]["diagnostic"]["code"] == 2322
    assert any(path.endswith("App.tsx") for path in body["files"])


def test_response_schema_dispatches_on_model_type() -> None:
    class ScopedPlan(Plan):
        pass

    class Summary(BaseModel):
        title: str
        notes: List[str] = []

    generic = response_schema(Summary)

    assert response_schema(ScopedPlan) == response_schema(Plan)
    assert "ops" in response_schema(Plan)["properties"]
    assert generic["additionalProperties"] is False
    assert generic["required"] == ["title", "notes"]
