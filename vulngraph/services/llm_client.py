"""Chat-completions client for a LiteLLM (OpenAI-compatible) proxy, JSON response mode only."""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from vulngraph.core.config import Settings

logger = logging.getLogger(__name__)


class LLMServiceError(Exception):
    """Raised when the LLM call cannot complete (unreachable, timeout, non-2xx, or invalid JSON)."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)


def llm_is_configured(settings: Settings) -> bool:
    """True when both base URL and API key are set; otherwise LLM steps are skipped."""
    if not settings.LITELLM_BASE_URL or not settings.LITELLM_BASE_URL.strip():
        return False
    if settings.LITELLM_API_KEY is None:
        return False
    return bool(settings.LITELLM_API_KEY.get_secret_value().strip())


def _strip_code_fence(text: str) -> str:
    """Remove a markdown code fence if the model wrapped its JSON in one."""
    text = text.strip()
    if not text.startswith("```"):
        return text
    lines = text.split("\n")
    if lines[0].startswith("```"):
        lines = lines[1:]
    if lines and lines[-1].strip() == "```":
        lines = lines[:-1]
    return "\n".join(lines)


def _log_failure(elapsed: float, model: str, purpose: str) -> None:
    logger.info(
        "LLM request failed",
        extra={
            "llm_latency_seconds": elapsed,
            "model": model,
            "purpose": purpose,
            "status": "error",
        },
    )


async def chat_completion_json(
    settings: Settings,
    *,
    model: str,
    temperature: float,
    system_prompt: str,
    user_content: str,
    purpose: str,
) -> dict[str, Any] | None:
    """
    POST one chat-completions request and parse the first choice's content as a JSON object.

    Returns None when the model produced no content. Raises LLMServiceError on transport
    failure, non-2xx status, or content that is not a JSON object. Callers check
    llm_is_configured() first.
    """
    base_url = (settings.LITELLM_BASE_URL or "").rstrip("/")
    api_key = settings.LITELLM_API_KEY.get_secret_value() if settings.LITELLM_API_KEY else ""
    url = f"{base_url}/chat/completions"
    payload = {
        "model": model,
        "temperature": temperature,
        "response_format": {"type": "json_object"},
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ],
    }
    headers = {"Authorization": f"Bearer {api_key}"}
    timeout = httpx.Timeout(settings.LLM_REQUEST_TIMEOUT_SEC)
    start = time.perf_counter()

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(url, json=payload, headers=headers)
        elapsed = time.perf_counter() - start
    except httpx.ConnectError as e:
        _log_failure(time.perf_counter() - start, model, purpose)
        raise LLMServiceError(
            "LiteLLM is unreachable. Check LITELLM_BASE_URL.",
            cause=e,
        ) from e
    except httpx.TimeoutException as e:
        _log_failure(time.perf_counter() - start, model, purpose)
        raise LLMServiceError(
            "LiteLLM request timed out. Try increasing LLM_REQUEST_TIMEOUT_SEC.",
            cause=e,
        ) from e
    except httpx.HTTPError as e:
        _log_failure(time.perf_counter() - start, model, purpose)
        raise LLMServiceError("LiteLLM request failed.", cause=e) from e

    if not 200 <= response.status_code < 300:
        _log_failure(elapsed, model, purpose)
        raise LLMServiceError(
            f"LiteLLM request failed: {response.status_code} {response.reason_phrase}"
        )

    logger.info(
        "LLM request completed",
        extra={
            "llm_latency_seconds": elapsed,
            "model": model,
            "purpose": purpose,
        },
    )

    try:
        body = response.json()
    except json.JSONDecodeError as e:
        raise LLMServiceError("LiteLLM response body is not valid JSON.", cause=e) from e

    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = None
    if not content:
        return None
    if not isinstance(content, str):
        raise LLMServiceError("Model content is not a string.")

    try:
        parsed = json.loads(_strip_code_fence(content))
    except json.JSONDecodeError as e:
        raise LLMServiceError(
            f"Failed to parse {purpose} JSON from model: {e.msg}",
            cause=e,
        ) from e
    if not isinstance(parsed, dict):
        raise LLMServiceError("Model output is not a JSON object.")
    return parsed
