"""
LLM gateway client

Every model call goes through an OpenAI-compatible chat-completions gateway.
Three call shapes are used by the app:
- forced tool call returning structured arguments (training sessions)
- plain completion expected to contain one JSON object (plans, meals)
- streamed completion relayed to the browser as server-sent events (coaches)

Gateway failures are mapped to the three user-facing outcomes: 429 (rate
limited), 402 (credits exhausted), 500 (anything else).
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional

import openai
from openai import OpenAI

from core.config import settings
from core.exceptions import (
    APIException,
    PaymentRequiredError,
    RateLimitedError,
    UpstreamServiceError,
)

logger = logging.getLogger(__name__)


class LLMGatewayError(Exception):
    """Gateway call failed. ``status_code`` is the upstream HTTP status when known."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MissingToolCallError(LLMGatewayError):
    """The model answered without calling the required tool. Worth one retry."""


class InvalidModelOutputError(LLMGatewayError):
    pass


_client: Optional[OpenAI] = None


def get_client() -> OpenAI:
    global _client
    if _client is None:
        if not settings.LLM_API_KEY:
            raise LLMGatewayError("LLM_API_KEY not configured")
        _client = OpenAI(
            api_key=settings.LLM_API_KEY,
            base_url=settings.LLM_GATEWAY_BASE_URL,
            timeout=settings.LLM_TIMEOUT_S,
            max_retries=0,
        )
    return _client


def _wrap_openai_error(e: Exception) -> LLMGatewayError:
    status_code = getattr(e, "status_code", None)
    if isinstance(e, openai.RateLimitError):
        status_code = 429
    logger.error(
        "LLM gateway call failed",
        extra={"extra_fields": {"status_code": status_code, "error": str(e)[:500]}},
    )
    return LLMGatewayError(str(e), status_code=status_code)


def to_api_exception(e: LLMGatewayError) -> APIException:
    if e.status_code == 429:
        return RateLimitedError()
    if e.status_code == 402:
        return PaymentRequiredError()
    return UpstreamServiceError()


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` block if the model added one."""
    cleaned = (text or "").strip()
    cleaned = re.sub(r"^```(?:json)?\s*", "", cleaned)
    cleaned = re.sub(r"\s*```$", "", cleaned)
    return cleaned.strip()


def extract_json_object(text: str) -> Dict[str, Any]:
    """First JSON object in the model output."""
    cleaned = strip_code_fences(text)
    if not cleaned:
        raise InvalidModelOutputError("Empty model response")

    try:
        parsed = json.loads(cleaned)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise InvalidModelOutputError("No JSON object found in model response")
    try:
        parsed = json.loads(cleaned[start : end + 1])
    except json.JSONDecodeError as e:
        raise InvalidModelOutputError(f"Invalid JSON in model response: {e}")
    if not isinstance(parsed, dict):
        raise InvalidModelOutputError("Model response JSON is not an object")
    return parsed


def call_tool(
    messages: List[Dict[str, str]],
    tool: Dict[str, Any],
    *,
    model: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Force a single function call and return its parsed arguments.

    Raises MissingToolCallError when the model replies without the call and
    InvalidModelOutputError when its arguments are not a JSON object.
    """
    tool_name = tool["function"]["name"]
    try:
        response = get_client().chat.completions.create(
            model=model or settings.LLM_MODEL,
            messages=messages,
            tools=[tool],
            tool_choice={"type": "function", "function": {"name": tool_name}},
        )
    except openai.OpenAIError as e:
        raise _wrap_openai_error(e)

    message = response.choices[0].message if response.choices else None
    tool_calls = getattr(message, "tool_calls", None) or []
    if not tool_calls:
        raise MissingToolCallError(f"No tool call in response for {tool_name}")

    raw_args = tool_calls[0].function.arguments or ""
    try:
        args = json.loads(raw_args)
    except json.JSONDecodeError:
        raise InvalidModelOutputError(f"Unparseable arguments for {tool_name}")
    if not isinstance(args, dict):
        raise InvalidModelOutputError(f"Arguments for {tool_name} are not an object")
    return args


def complete_json(
    system_prompt: str,
    user_prompt: str,
    *,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {}
    if temperature is not None:
        kwargs["temperature"] = temperature
    try:
        response = get_client().chat.completions.create(
            model=model or settings.LLM_MODEL,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            **kwargs,
        )
    except openai.OpenAIError as e:
        raise _wrap_openai_error(e)

    content = response.choices[0].message.content if response.choices else None
    return extract_json_object(content or "")


def open_chat_stream(
    messages: List[Dict[str, str]],
    *,
    model: Optional[str] = None,
) -> Iterator[Dict[str, Any]]:
    """
    Start a streamed completion and return an iterator of chunk dicts.

    The request is sent before this returns, so status errors (429/402) raise
    here rather than mid-stream.
    """
    try:
        stream = get_client().chat.completions.create(
            model=model or settings.LLM_MODEL,
            messages=messages,
            stream=True,
        )
    except openai.OpenAIError as e:
        raise _wrap_openai_error(e)

    def _chunks() -> Iterator[Dict[str, Any]]:
        try:
            for chunk in stream:
                yield chunk.model_dump(exclude_none=True)
        except openai.OpenAIError as e:
            raise _wrap_openai_error(e)

    return _chunks()


def chunk_text(chunk: Dict[str, Any]) -> str:
    """Text delta carried by one streamed chunk ('' when none)."""
    for choice in chunk.get("choices") or []:
        delta = choice.get("delta") or {}
        content = delta.get("content")
        if content:
            return content
    return ""
