"""
Shared OpenAI helper for the question pipeline.

Used by:
  - question_generator.py   (generation + boilerplate import)
  - duplicate_detector.py   (semantic grouping)
  - validator.py            (fact-check with web search, translation check)

Every call goes through the Responses API with a strict JSON schema, so the
model output is either schema-conforming JSON or a ValidationFailed.
Conversation continuation uses the previous response id as the handle.

Model: gpt-4o-mini  (override with GPT_MODEL env var, e.g. "gpt-4o")
"""

import asyncio
import json
import logging
import os
from typing import Any, Dict, Optional

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel

from services.errors import UpstreamServiceError, ValidationFailed, describe

log = logging.getLogger("generation.pipeline")

# ── Model config ───────────────────────────────────────────────────────────────
GPT_MODEL = os.getenv("GPT_MODEL", "gpt-4o-mini")
GPT_VALIDATION_MODEL = os.getenv("GPT_VALIDATION_MODEL", "gpt-4o")
COMPLETION_TIMEOUT_SECONDS = float(os.getenv("COMPLETION_TIMEOUT_SECONDS", "120"))
GPT_MAX_RETRIES = int(os.getenv("GPT_MAX_RETRIES", "2"))

# Reasoning models reject a sampling temperature
_NO_TEMPERATURE_PREFIXES = ("o1", "o3", "o4", "gpt-5")

# Lazy singleton
_client: AsyncOpenAI | None = None


def _get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError(
                "OPENAI_API_KEY is not set. Add it to your .env file."
            )
        _client = AsyncOpenAI(api_key=api_key, max_retries=GPT_MAX_RETRIES)
    return _client


def supports_temperature(model: str) -> bool:
    return not model.lower().startswith(_NO_TEMPERATURE_PREFIXES)


class CompletionRequest(BaseModel):
    """One structured-output call to the completion service."""
    input: str
    schema_name: str
    json_schema: Dict[str, Any]
    instructions: Optional[str] = None          # omitted when continuing a conversation
    model: str = GPT_MODEL
    temperature: Optional[float] = None
    previous_response_id: Optional[str] = None  # continuation handle
    web_search: bool = False
    max_output_tokens: Optional[int] = None


class CompletionResult(BaseModel):
    data: Dict[str, Any]
    total_tokens: int
    output_tokens: int
    response_id: str


class GptClient:
    """Schema-constrained completion calls with a bounded timeout."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, timeout: float = COMPLETION_TIMEOUT_SECONDS):
        self._client = client
        self.timeout = timeout

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = _get_client()
        return self._client

    def _build_kwargs(self, request: CompletionRequest) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": request.model,
            "input": request.input,
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": request.schema_name,
                    "schema": request.json_schema,
                    "strict": True,
                }
            },
        }
        if request.instructions:
            kwargs["instructions"] = request.instructions
        if request.previous_response_id:
            kwargs["previous_response_id"] = request.previous_response_id
        if request.temperature is not None and supports_temperature(request.model):
            kwargs["temperature"] = request.temperature
        if request.web_search:
            kwargs["tools"] = [{"type": "web_search_preview"}]
        if request.max_output_tokens:
            kwargs["max_output_tokens"] = request.max_output_tokens
        return kwargs

    async def complete(self, request: CompletionRequest, operation: str = "complete") -> CompletionResult:
        """
        Call the Responses API and return parsed JSON plus usage.

        Raises:
            UpstreamServiceError: missing API key, transport/API failure or timeout
            ValidationFailed:     refusal, truncated output, or non-JSON output
        """
        try:
            client = self.client
        except RuntimeError as e:
            log.error(f"[GPT] {operation} not attempted: {e}")
            raise UpstreamServiceError(
                "completion service is not configured", operation, model=request.model
            ) from e

        kwargs = self._build_kwargs(request)
        try:
            response = await asyncio.wait_for(
                client.responses.create(**kwargs),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            log.error(f"[GPT] {operation} timed out after {self.timeout}s (model={request.model})")
            raise UpstreamServiceError(
                "completion service timed out", operation, model=request.model
            ) from e
        except openai.OpenAIError as e:
            log.error(f"[GPT] {operation} failed: {describe(e)}")
            raise UpstreamServiceError(
                "completion service call failed", operation, model=request.model, cause=describe(e)
            ) from e

        status = getattr(response, "status", "completed")
        if status and status != "completed":
            reason = getattr(getattr(response, "incomplete_details", None), "reason", None)
            log.error(f"[GPT] {operation} returned status={status} reason={reason}")
            raise ValidationFailed(
                "completion did not finish", operation, status=status, reason=reason
            )

        raw = (response.output_text or "").strip()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            log.error(f"[GPT] {operation} returned non-JSON output: {raw[:200]!r}")
            raise ValidationFailed("completion output is not JSON", operation) from e
        if not isinstance(data, dict):
            raise ValidationFailed("completion output is not a JSON object", operation)

        usage = getattr(response, "usage", None)
        total_tokens = int(getattr(usage, "total_tokens", 0) or 0)
        output_tokens = int(getattr(usage, "output_tokens", 0) or 0)

        log.info(
            f"[GPT] {operation} OK model={request.model} tokens={total_tokens} "
            f"(output={output_tokens}) continued={bool(request.previous_response_id)}"
        )
        return CompletionResult(
            data=data,
            total_tokens=total_tokens,
            output_tokens=output_tokens,
            response_id=response.id,
        )
