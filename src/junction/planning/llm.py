"""Language-model planner that proposes plans in the op vocabulary."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Dict, List

from ..models import AnthropicMessagesClient, LLMClient, LLMClientError, LLMRequest, OpenAIResponsesClient
from ..schema import Plan
from .context import PlannerContext, read_excerpt, read_head

if TYPE_CHECKING:
    from ..config import MigrationSettings

LOGGER = logging.getLogger(__name__)

MAX_DIAGNOSTICS = 40
MAX_FILES = 100
SNIPPET_RADIUS = 400
HEAD_LIMIT = 800
PARSE_FAILURE_REASON = "llm parse failure"

SYSTEM_PROMPT = """You are a code migration planner.

Return a single JSON object (and nothing else). Do not include commentary, code fences, or markdown. The JSON MUST match this structure:
{
  "targetCodes": number[],   // Diagnostic codes you intend to address
  "why": string[],           // Brief high-level rationale for your plan
  "confidence": number,      // 0..1 calibrated confidence in proposed edits
  "ops": Op[]                // List of editing operations to perform
}

Op (only use these kinds exactly as specified):
- { "kind": "EDIT_IMPORT", "file": string, "fromModule": string, "fromNamed": string|null, "toModule": string, "toNamed": string|null }
- { "kind": "RENAME_ELEMENT", "file": string, "from": string, "to": string }
- { "kind": "REMOVE_ATTRIBUTE", "file": string, "tag": string, "attr": string }
- { "kind": "CONVERT_ATTRIBUTE_TO_ELEMENT", "file": string, "tag": string, "fromAttr": string, "toAttr": string }
- { "kind": "REWRITE_CALL", "file": string, "calleeName": string, "edits": [{"op": "RENAME"|"INSERT_ARG"|"DROP_ARG"|"WRAP_ARG", "index": number|null, "value": string|null}] }
- { "kind": "EDIT_TEXT_NEAR_ANCHOR", "file": string, "anchor": string|null, "before": string, "after": string, "maxChars": number }
- { "kind": "FORMAT_FILES", "files": string[] }

Planning constraints:
- Derive minimal, safe ops from the provided diagnostics and code snippets only.
- Prefer conservative edits that cannot worsen types or runtime behavior.
- If you are unsure, return an empty plan ("ops": []).
- Do not propose free-form diffs; only the exact Ops above are allowed.
- When you rename a named import for a JSX component (e.g. Switch to Routes, Redirect to Navigate), also include a matching RENAME_ELEMENT op on the same file so the JSX elements are updated to the new name.
- When a "target" is given, address that diagnostic first and keep edits local to its file.
"""


def build_prompt(context: PlannerContext) -> str:
    """Render the JSON user message for ``context``."""
    enriched: List[Dict[str, Any]] = []
    for diagnostic in context.diagnostics[:MAX_DIAGNOSTICS]:
        entry: Dict[str, Any] = {
            "code": diagnostic.code,
            "message": diagnostic.message,
            "file": diagnostic.file,
            "snippet": read_excerpt(diagnostic.file, diagnostic.span, SNIPPET_RADIUS),
            "importsHead": read_head(diagnostic.file, HEAD_LIMIT),
        }
        if diagnostic.module_name:
            entry["moduleName"] = diagnostic.module_name
        enriched.append(entry)

    payload: Dict[str, Any] = {
        "diagnostics": enriched,
        "files": [path.as_posix() for path in context.files[:MAX_FILES]],
    }
    full = context.to_payload()
    if "target" in full:
        payload["target"] = full["target"]
    if "guidance" in full:
        payload["guidance"] = full["guidance"]
    body = json.dumps(payload, ensure_ascii=False)
    return f"Input (JSON):\n{body}\nReturn ONLY the JSON plan object, no markdown, no fences."


class LlmPlanner:
    """Planner that delegates to an ``LLMClient`` off the event loop."""

    def __init__(self, client: LLMClient, *, system_prompt: str = SYSTEM_PROMPT) -> None:
        self._client = client
        self._system_prompt = system_prompt

    @property
    def client(self) -> LLMClient:
        return self._client

    def request_for(self, context: PlannerContext) -> LLMRequest[Plan]:
        metadata: Dict[str, Any] = {"diagnostics": str(len(context.diagnostics))}
        if context.target is not None:
            metadata["target"] = f"TS{context.target.code}"
        return LLMRequest(
            prompt=build_prompt(context),
            response_model=Plan,
            system_prompt=self._system_prompt,
            metadata=metadata,
        )

    def propose_sync(self, context: PlannerContext) -> Plan:
        """Blocking variant; parse or transport failures yield an empty plan."""
        request = self.request_for(context)
        try:
            return self._client.invoke(request)
        except LLMClientError as error:
            LOGGER.warning("LLM planner failed: %s", error)
            return Plan.empty(PARSE_FAILURE_REASON)

    async def propose(self, context: PlannerContext) -> Plan:
        return await asyncio.to_thread(self.propose_sync, context)


def build_client(settings: "MigrationSettings") -> LLMClient:
    """Create the configured provider client.

    Raises ``ValueError`` when no API key is available.
    """
    kwargs: Dict[str, Any] = {
        "model": settings.model,
        "timeout": settings.timeout,
        "max_attempts": settings.max_attempts,
        "retry_delay": settings.retry_delay,
    }
    if settings.base_url:
        kwargs["base_url"] = settings.base_url
    if settings.api_key:
        kwargs["api_key"] = settings.api_key
    if settings.provider == "anthropic":
        return AnthropicMessagesClient(**kwargs)
    return OpenAIResponsesClient(**kwargs)


__all__ = [
    "HEAD_LIMIT",
    "LlmPlanner",
    "MAX_DIAGNOSTICS",
    "PARSE_FAILURE_REASON",
    "SNIPPET_RADIUS",
    "SYSTEM_PROMPT",
    "build_client",
    "build_prompt",
]
