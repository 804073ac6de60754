"""Typed client base class shared by all language-model integrations."""

from __future__ import annotations

import ast
import json
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Optional, Type, TypeVar

from pydantic import ValidationError
from pydantic.type_adapter import TypeAdapter

from ..schema import Plan

__all__ = [
    "LLMClient",
    "LLMClientError",
    "LLMRequest",
    "LLMResponseFormatError",
    "LLMRetryError",
    "LLMTransportError",
    "response_schema",
]


T = TypeVar("T")


def _close_schema(value: Any) -> Any:
    """Recursively tighten JSON Schema objects to disallow unknown keys."""
    if isinstance(value, dict):
        if value.get("type") == "object":
            value["additionalProperties"] = False
            properties = value.get("properties")
            if isinstance(properties, dict):
                required = value.get("required")
                if not isinstance(required, list):
                    required = list(properties.keys())
                else:
                    required.extend(key for key in properties if key not in required)
                value["required"] = required
                for key, child in list(properties.items()):
                    properties[key] = _close_schema(child)
        for key, child in list(value.items()):
            if key == "properties":
                continue
            value[key] = _close_schema(child)
    elif isinstance(value, list):
        return [_close_schema(item) for item in value]
    return value


def _op_schema(kind: str, properties: Dict[str, Any]) -> Dict[str, Any]:
    body = {"kind": {"type": "string", "enum": [kind]}, "file": {"type": "string"}}
    body.update(properties)
    return {
        "type": "object",
        "additionalProperties": False,
        "properties": body,
        "required": list(body.keys()),
    }


def _plan_response_schema() -> Dict[str, Any]:
    """Hand-authored strict schema for ``Plan`` using the camelCase wire names."""
    string = {"type": "string"}
    nullable_string = {"anyOf": [{"type": "string"}, {"type": "null"}]}
    nullable_integer = {"anyOf": [{"type": "integer"}, {"type": "null"}]}

    call_edit_schema: Dict[str, Any] = {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "op": {"type": "string", "enum": ["RENAME", "INSERT_ARG", "DROP_ARG", "WRAP_ARG"]},
            "index": nullable_integer,
            "value": nullable_string,
        },
        "required": ["op", "index", "value"],
    }
    format_schema: Dict[str, Any] = {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "kind": {"type": "string", "enum": ["FORMAT_FILES"]},
            "files": {"type": "array", "items": string},
        },
        "required": ["kind", "files"],
    }
    op_schemas = [
        _op_schema(
            "EDIT_IMPORT",
            {
                "fromModule": string,
                "fromNamed": nullable_string,
                "toModule": string,
                "toNamed": nullable_string,
            },
        ),
        _op_schema("RENAME_ELEMENT", {"from": string, "to": string}),
        _op_schema("REMOVE_ATTRIBUTE", {"tag": string, "attr": string}),
        _op_schema("CONVERT_ATTRIBUTE_TO_ELEMENT", {"tag": string, "fromAttr": string, "toAttr": string}),
        _op_schema("REWRITE_CALL", {"calleeName": string, "edits": {"type": "array", "items": call_edit_schema}}),
        _op_schema(
            "EDIT_TEXT_NEAR_ANCHOR",
            {"anchor": nullable_string, "before": string, "after": string, "maxChars": {"type": "integer"}},
        ),
        format_schema,
    ]
    return {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "targetCodes": {"type": "array", "items": {"type": "integer"}},
            "ops": {"type": "array", "items": {"anyOf": op_schemas}},
            "why": {"type": "array", "items": string},
            "confidence": {"type": "number"},
        },
        "required": ["targetCodes", "ops", "why", "confidence"],
    }


def response_schema(model: Type[Any]) -> Dict[str, Any]:
    """Return the strict JSON schema sent alongside requests for ``model``."""
    if isinstance(model, type) and issubclass(model, Plan):
        return _plan_response_schema()
    schema = TypeAdapter(model).json_schema(by_alias=True)
    return _close_schema(schema)


class LLMClientError(RuntimeError):
    """Base error raised for structured LLM client failures."""


class LLMTransportError(LLMClientError):
    """Raised when the underlying transport fails to return a response."""


class LLMResponseFormatError(LLMClientError):
    """Raised when the model returns payload that is not valid JSON."""


class LLMRetryError(LLMClientError):
    """Raised after exhausting retries due to repeated validation failures."""


@dataclass(slots=True)
class LLMRequest(Generic[T]):
    """Typed request payload sent to an LLM."""

    prompt: str
    response_model: Type[T]
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    temperature: float = 0.0
    max_attempts: Optional[int] = None


AttemptLogger = Callable[[Dict[str, Any], Optional[str], Optional[Any], Optional[Exception], int], None]


class LLMClient:
    """High-level helper that enforces JSON responses and schema validation.

    Subclasses render provider payloads in ``_render_payload`` and perform
    the transport call in ``_raw_invoke``; the base class owns parsing,
    validation and the retry loop.
    """

    def __init__(self, model: str, *, max_attempts: int = 3, retry_delay: float = 0.5) -> None:
        self._model = model
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay

    @property
    def model(self) -> str:
        """Return the default model name configured for this client."""
        return self._model

    def invoke(self, request: LLMRequest[T]) -> T:
        """Invoke the underlying model and return a validated response."""
        result, _ = self.invoke_structured(request)
        return result

    def invoke_structured(
        self,
        request: LLMRequest[T],
        *,
        logger: Optional[AttemptLogger] = None,
    ) -> tuple[T, Any]:
        """Invoke the model and return both the structured response and raw payload."""
        attempts = request.max_attempts or self._max_attempts
        adapter = TypeAdapter(request.response_model)
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            payload = self._render_payload(request)
            raw: Optional[str] = None
            data: Optional[Any] = None
            try:
                raw = self._raw_invoke(payload)
                data = self._parse_json(raw)
                validated = adapter.validate_python(data)
            except (LLMResponseFormatError, ValidationError, LLMTransportError) as error:
                last_error = error
                if logger:
                    logger(payload, raw, data, error, attempt)
                if attempt >= attempts:
                    break
                time.sleep(self._retry_delay)
                continue
            if logger:
                logger(payload, raw, data, None, attempt)
            return validated, data

        error_message = (
            f"Failed to produce schema-valid JSON after {attempts} attempt(s) for model "
            f"{request.model or self._model}"
        )
        raise LLMRetryError(error_message) from last_error

    def _render_payload(self, request: LLMRequest[Any]) -> Dict[str, Any]:
        """Build the provider request body. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _render_payload().")

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        """Perform the transport call. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _raw_invoke().")

    @staticmethod
    def _parse_json(raw_response: str) -> Any:
        """Parse JSON payloads and normalize errors."""
        text = raw_response.strip()
        if not text:
            raise LLMResponseFormatError("Model returned an empty response.")

        text = _normalise_json_string(text)
        candidates = [text]
        repaired = _repair_json_payload(text)
        if repaired and repaired not in candidates:
            candidates.append(_normalise_json_string(repaired))

        for candidate in candidates:
            try:
                return json.loads(candidate)
            except json.JSONDecodeError:
                pythonic = _coerce_python_literal(candidate)
                if pythonic is not None:
                    return pythonic

        snippet = text[:200]
        raise LLMResponseFormatError(f"Model returned invalid JSON: {snippet}")


def _strip_code_fence(payload: str) -> str:
    """Remove Markdown-style code fences that wrap JSON payloads."""
    fence = re.search(r"```(?:json)?[ \t]*\n(?P<body>.*?)```", payload, re.IGNORECASE | re.DOTALL)
    if fence is None:
        return payload
    return fence.group("body").strip()


def _normalise_json_string(payload: str) -> str:
    """Normalise common non-JSON characters emitted by models."""
    if not payload:
        return payload
    translation = {
        0x201C: '"',
        0x201D: '"',
        0x2018: "'",
        0x2019: "'",
        0x00A0: " ",
        0xFEFF: "",
    }
    return payload.translate(str.maketrans(translation))


def _strip_trailing_commas(payload: str) -> str:
    """Remove trailing commas before closing braces/brackets."""
    return re.sub(r",(\s*[}\]])", r"\1", payload)


def _repair_json_payload(raw: str) -> str | None:
    """Attempt to salvage a JSON object embedded in noisy output."""
    stripped = _strip_code_fence(raw.strip())
    if not stripped:
        return None

    try:
        json.loads(stripped)
    except json.JSONDecodeError:
        pass
    else:
        return stripped

    opening_idx = None
    expected: list[str] = []
    in_string = False
    escaped = False
    for index, char in enumerate(stripped):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"' and expected:
            in_string = True
        elif char in "{[":
            if opening_idx is None:
                opening_idx = index
            expected.append("}" if char == "{" else "]")
        elif expected and char == expected[-1]:
            expected.pop()
            if not expected and opening_idx is not None:
                return _strip_trailing_commas(stripped[opening_idx : index + 1].strip())
    return None


def _coerce_python_literal(candidate: str) -> Any | None:
    """Fall back to Python literal parsing when JSON decoding fails."""
    try:
        literal = ast.literal_eval(candidate)
    except (SyntaxError, ValueError):
        return None
    return _normalise_literal(literal)


def _normalise_literal(value: Any) -> Any:
    """Convert Python literals into JSON-compatible structures recursively."""
    if isinstance(value, dict):
        return {str(key): _normalise_literal(sub) for key, sub in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_normalise_literal(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)
