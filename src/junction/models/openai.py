"""OpenAI client that speaks the JSON Responses API."""

from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.request
from typing import Any, Callable, Dict, Optional

from .llm_client import LLMClient, LLMRequest, LLMResponseFormatError, LLMTransportError, response_schema

__all__ = ["OpenAIResponsesClient", "Transport", "resolve_timeout"]

LOGGER = logging.getLogger(__name__)

Transport = Callable[[Dict[str, Any]], str]

_MAX_METADATA_LEN = 512


def resolve_timeout(timeout: float) -> float:
    """Honour a positive ``JUNCTION_LLM_TIMEOUT`` override."""
    override = os.getenv("JUNCTION_LLM_TIMEOUT")
    if override:
        try:
            parsed = float(override)
        except ValueError:
            LOGGER.warning("Ignoring non-numeric JUNCTION_LLM_TIMEOUT=%r", override)
        else:
            if parsed > 0:
                return parsed
    return timeout


class OpenAIResponsesClient(LLMClient):
    """Thin adapter around the OpenAI Responses API."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1/responses",
        model: str = "gpt-4o-mini",
        transport: Optional[Transport] = None,
        timeout: float = 60.0,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        super().__init__(model=model, max_attempts=max_attempts, retry_delay=retry_delay)
        self._api_key = api_key or os.getenv("OPENAI_API_KEY")
        self._base_url = base_url
        self._timeout = resolve_timeout(timeout)
        self._transport = transport or self._http_transport

        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")

    def _render_payload(self, request: LLMRequest[Any]) -> Dict[str, Any]:
        def _message(role: str, text: str) -> Dict[str, Any]:
            return {"role": role, "content": [{"type": "input_text", "text": text}]}

        messages: list[Dict[str, Any]] = []
        if request.system_prompt:
            messages.append(_message("system", request.system_prompt))
        messages.append(_message("user", request.prompt))

        payload: Dict[str, Any] = {
            "model": request.model or self._model,
            "input": messages,
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": getattr(request.response_model, "__name__", "junction_response"),
                    "schema": response_schema(request.response_model),
                    "strict": True,
                }
            },
        }
        if request.temperature not in (None, 0.0):
            payload["temperature"] = request.temperature
        if request.metadata:
            serialised: Dict[str, str] = {}
            for key, value in request.metadata.items():
                formatted = value if isinstance(value, str) else json.dumps(value, separators=(",", ":"), sort_keys=True)
                if len(formatted) > _MAX_METADATA_LEN:
                    formatted = f"{formatted[: _MAX_METADATA_LEN - 3]}..."
                serialised[key] = formatted
            payload["metadata"] = serialised
        return payload

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        """Send the request over the configured transport."""
        try:
            raw_response = self._transport(payload)
        except LLMTransportError:
            raise
        except OSError as error:
            raise LLMTransportError(f"Transport rejected the request: {error}") from error

        normalised = self._extract_model_payload(raw_response)
        if normalised is None:
            raise LLMResponseFormatError("OpenAI response did not contain output text.")
        return normalised

    def _http_transport(self, payload: Dict[str, Any]) -> str:
        """Default HTTP transport that targets the OpenAI Responses API."""
        LOGGER.debug("POST %s model=%s", self._base_url, payload.get("model"))
        request = urllib.request.Request(
            self._base_url,
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = response.read()
                status = getattr(response, "status", 200)
        except TimeoutError as error:  # pragma: no cover - network-dependent
            raise LLMTransportError("OpenAI response timed out.") from error
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            message = error.read().decode("utf-8", errors="ignore")
            raise LLMTransportError(f"HTTP {error.code}: {message}") from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise LLMTransportError(f"Failed to reach OpenAI endpoint: {error.reason}") from error

        if status >= 400:
            raise LLMTransportError(f"Unexpected HTTP status {status}")
        return raw.decode("utf-8")

    def _extract_model_payload(self, raw_response: str) -> Optional[str]:
        """Extract the text content returned by the Responses API."""
        if not raw_response:
            return None
        try:
            data = json.loads(raw_response)
        except json.JSONDecodeError:
            return raw_response

        if isinstance(data, dict):
            if isinstance(data.get("output_text"), str) and data["output_text"].strip():
                return data["output_text"]
            text_payload = self._first_text_content(data.get("output"))
            if text_payload:
                return text_payload
            text_payload = self._first_text_content(data.get("choices"))
            if text_payload:
                return text_payload
        return raw_response

    @staticmethod
    def _first_text_content(container: Any) -> Optional[str]:
        """Return the first text field found within the responses container."""
        if not container:
            return None
        if isinstance(container, dict):
            container = [container]

        for item in container:
            if not isinstance(item, dict):
                continue
            contents = item.get("content")
            if isinstance(contents, list):
                for content_item in contents:
                    if not isinstance(content_item, dict):
                        continue
                    text = content_item.get("text")
                    if isinstance(text, str) and text.strip():
                        return text
            # Chat-completions style payloads.
            message = item.get("message")
            if isinstance(message, dict):
                text = message.get("content")
                if isinstance(text, str) and text.strip():
                    return text
        return None
