from __future__ import annotations

import logging
from typing import Any, Dict

import httpx
from openai import OpenAI, OpenAIError

from ..config import get_settings
from ..errors import ProviderError

logger = logging.getLogger(__name__)

RESPONSES_URL = "https://api.openai.com/v1/responses"


def call_openai_responses(
    *,
    model: str,
    system_prompt: str,
    user_prompt: str,
    max_output_tokens: int,
    top_p: float | None = None,
    reasoning_effort: str | None = None,
) -> str:
    """Call the OpenAI Responses API and return the combined text output.

    Blocking; async callers run it through ``asyncio.to_thread``.
    """
    settings = get_settings()
    if not settings.openai_api_key:
        raise ProviderError("OpenAI not configured")
    client = OpenAI(api_key=settings.openai_api_key, timeout=settings.openai_request_timeout_seconds)
    response_payload: Dict[str, Any] = {
        "model": model,
        "input": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "max_output_tokens": max_output_tokens,
    }
    if top_p is not None:
        response_payload["top_p"] = top_p
    if reasoning_effort:
        response_payload["reasoning"] = {"effort": reasoning_effort}

    responses_client = getattr(client, "responses", None)
    if responses_client and hasattr(responses_client, "create"):
        try:
            response = responses_client.create(**response_payload)
        except OpenAIError as exc:
            logger.error("OpenAI Responses API call failed: %s", exc)
            raise ProviderError("Planning model call failed", details={"model": model}) from exc
        if getattr(response, "status", "completed") != "completed":
            reason = getattr(getattr(response, "incomplete_details", None), "reason", "unknown")
            logger.error("OpenAI Responses API returned incomplete status: %s", reason)
            raise ProviderError(
                "Planning model did not complete successfully",
                details={"model": model, "reason": reason},
            )
        text = _extract_response_text(response)
        if not text:
            raise ProviderError("Planning model returned empty output", details={"model": model})
        return text

    logger.warning("OpenAI client missing Responses API; falling back to HTTP call")
    try:
        resp = httpx.post(
            RESPONSES_URL,
            json=response_payload,
            headers={
                "Authorization": f"Bearer {settings.openai_api_key}",
                "Content-Type": "application/json",
            },
            timeout=settings.openai_request_timeout_seconds,
        )
    except httpx.TimeoutException as exc:
        logger.error("HTTP timeout calling OpenAI Responses API after %ss", settings.openai_request_timeout_seconds)
        raise ProviderError("Timed out waiting for the planning model", details={"model": model}) from exc
    except httpx.HTTPError as exc:  # pragma: no cover - network failure path
        logger.error("HTTP error calling OpenAI Responses API: %s", exc)
        raise ProviderError("Unable to reach OpenAI", details={"model": model}) from exc

    if resp.status_code >= 400:
        logger.error("OpenAI Responses REST API returned %s: %s", resp.status_code, resp.text)
        raise ProviderError(
            "Planning model call failed", details={"model": model, "status_code": resp.status_code}
        )

    text = _extract_response_text(resp.json())
    if not text:
        raise ProviderError("Planning model returned empty output", details={"model": model})
    return text


def _extract_response_text(response: Any) -> str:
    output_text = getattr(response, "output_text", None)
    if isinstance(output_text, str) and output_text.strip():
        return output_text.strip()
    chunks: list[str] = []
    output = getattr(response, "output", None)
    if output is None and isinstance(response, dict):
        output = response.get("output")
    for block in output or []:
        block_content = getattr(block, "content", None)
        if block_content is None and isinstance(block, dict):
            block_content = block.get("content")
        for content in block_content or []:
            part_text = getattr(content, "text", None)
            if part_text is None and isinstance(content, dict):
                part_text = content.get("text")
            if part_text:
                chunks.append(part_text)
    return "".join(chunks).strip()
