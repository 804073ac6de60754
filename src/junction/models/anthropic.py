"""Anthropic client over the Messages API."""

from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.request
from typing import Any, Dict, Optional

from .llm_client import LLMClient, LLMRequest, LLMResponseFormatError, LLMTransportError, response_schema
from .openai import Transport, resolve_timeout

__all__ = ["AnthropicMessagesClient"]

LOGGER = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicMessagesClient(LLMClient):
    """Messages API adapter; the schema travels in the system prompt."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = "https://api.anthropic.com/v1/messages",
        model: str = "claude-3-5-sonnet-latest",
        transport: Optional[Transport] = None,
        timeout: float = 60.0,
        max_tokens: int = 4096,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        super().__init__(model=model, max_attempts=max_attempts, retry_delay=retry_delay)
        self._api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self._base_url = base_url
        self._timeout = resolve_timeout(timeout)
        self._max_tokens = max_tokens
        self._transport = transport or self._http_transport

        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")

    def _render_payload(self, request: LLMRequest[Any]) -> Dict[str, Any]:
        schema = json.dumps(response_schema(request.response_model), separators=(",", ":"))
        system = (request.system_prompt or "").rstrip()
        system = f"{system}\n\nThe reply must validate against this JSON schema:\n{schema}".lstrip()
        payload: Dict[str, Any] = {
            "model": request.model or self._model,
            "max_tokens": self._max_tokens,
            "system": system,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.temperature not in (None, 0.0):
            payload["temperature"] = request.temperature
        return payload

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        try:
            raw_response = self._transport(payload)
        except LLMTransportError:
            raise
        except OSError as error:
            raise LLMTransportError(f"Transport rejected the request: {error}") from error

        text = self._extract_text(raw_response)
        if text is None:
            raise LLMResponseFormatError("Anthropic response did not contain a text block.")
        return text

    def _http_transport(self, payload: Dict[str, Any]) -> str:
        LOGGER.debug("POST %s model=%s", self._base_url, payload.get("model"))
        request = urllib.request.Request(
            self._base_url,
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "x-api-key": self._api_key or "",
                "anthropic-version": ANTHROPIC_VERSION,
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = response.read()
                status = getattr(response, "status", 200)
        except TimeoutError as error:  # pragma: no cover - network-dependent
            raise LLMTransportError("Anthropic response timed out.") from error
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            message = error.read().decode("utf-8", errors="ignore")
            raise LLMTransportError(f"HTTP {error.code}: {message}") from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise LLMTransportError(f"Failed to reach Anthropic endpoint: {error.reason}") from error

        if status >= 400:
            raise LLMTransportError(f"Unexpected HTTP status {status}")
        return raw.decode("utf-8")

    @staticmethod
    def _extract_text(raw_response: str) -> Optional[str]:
        if not raw_response:
            return None
        try:
            data = json.loads(raw_response)
        except json.JSONDecodeError:
            return raw_response
        if not isinstance(data, dict):
            return raw_response
        blocks = data.get("content")
        if not isinstance(blocks, list):
            return raw_response
        texts = [
            block["text"]
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
        ]
        if not texts:
            return None
        return "".join(texts)
