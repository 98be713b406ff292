"""Chat completions API wrapper used for both model turns."""
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from tool_dispatch import config
from tool_dispatch.errors import CompletionServiceError

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred"


def _headers() -> Dict[str, str]:
    if not config.COMPLETION_API_KEY:
        raise CompletionServiceError("OpenAI API Key not found", status_code=500)
    headers = {
        "Authorization": f"Bearer {config.COMPLETION_API_KEY}",
        "Content-Type": "application/json",
    }
    if config.COMPLETION_ORGANIZATION:
        headers["OpenAI-Organization"] = config.COMPLETION_ORGANIZATION
    return headers


def _completions_url() -> str:
    return f"{config.COMPLETION_BASE_URL.rstrip('/')}/chat/completions"


def _error_message(response: httpx.Response) -> str:
    """Pull ``error.message`` out of a completion service error body."""
    try:
        body = response.json()
    except ValueError:
        return UNEXPECTED_ERROR_MESSAGE
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return UNEXPECTED_ERROR_MESSAGE


def build_payload(model: str, messages: List[Dict[str, Any]], tools: Optional[List[Dict[str, Any]]] = None, stream: bool = False) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"model": model, "messages": messages}
    # Some backends reject an empty tools list, so leave the key out entirely.
    if tools:
        payload["tools"] = tools
    if stream:
        payload["stream"] = True
    return payload


async def call_completion(
    model: str,
    messages: List[Dict[str, Any]],
    tools: Optional[List[Dict[str, Any]]] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """Run one non-streaming completion and return the assistant message.

    Transient 5xx and network errors are retried with exponential backoff.
    """
    headers = _headers()
    url = _completions_url()
    payload = build_payload(model, messages, tools)

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=config.COMPLETION_TIMEOUT)
    try:
        attempt = 0
        while True:
            try:
                logger.info(
                    f"[COMPLETION] request model={model} messages={len(messages)} "
                    f"tools={len(tools) if tools else 0} attempt={attempt}"
                )
                response = await client.post(url, headers=headers, json=payload)

                # Retry on transient 5xx
                if 500 <= response.status_code < 600 and attempt < config.COMPLETION_MAX_RETRIES:
                    backoff = config.COMPLETION_RETRY_BACKOFF * (2 ** attempt)
                    logger.warning(f"[COMPLETION] 5xx {response.status_code}, retrying in {backoff:.1f}s")
                    await asyncio.sleep(backoff)
                    attempt += 1
                    continue

                if not response.is_success:
                    message = _error_message(response)
                    logger.error(f"[COMPLETION] HTTP {response.status_code}: {message}")
                    raise CompletionServiceError(message, status_code=response.status_code)

                data = response.json()
                choices = data.get("choices") or []
                if not choices or not isinstance(choices[0].get("message"), dict):
                    raise CompletionServiceError("No choices returned by the completion service", status_code=502)
                message = choices[0]["message"]
                logger.info(
                    f"[COMPLETION] response chars={len(message.get('content') or '')} "
                    f"tool_calls={len(message.get('tool_calls') or [])}"
                )
                return message
            except httpx.RequestError as e:
                if attempt < config.COMPLETION_MAX_RETRIES:
                    backoff = config.COMPLETION_RETRY_BACKOFF * (2 ** attempt)
                    logger.warning(f"[COMPLETION] request error {e.__class__.__name__}, retrying in {backoff:.1f}s")
                    await asyncio.sleep(backoff)
                    attempt += 1
                    continue
                logger.error(f"[COMPLETION] request error: {repr(e)}")
                raise CompletionServiceError(f"Completion service network error: {e.__class__.__name__}", status_code=503) from e
            except ValueError as e:
                logger.error(f"[COMPLETION] could not decode response: {e}")
                raise CompletionServiceError("Completion service returned invalid JSON", status_code=502) from e
    finally:
        if owns_client:
            await client.aclose()


def parse_stream_line(line: str) -> Optional[str]:
    """Extract the content delta from one SSE line, or None if it carries no text."""
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if not data or data == "[DONE]":
        return None
    try:
        chunk = json.loads(data)
    except ValueError:
        logger.warning(f"[COMPLETION] skipping undecodable stream chunk: {data[:200]}")
        return None
    choices = chunk.get("choices") or []
    if not choices:
        return None
    return (choices[0].get("delta") or {}).get("content") or None


async def _relay_tokens(client: httpx.AsyncClient, response: httpx.Response) -> AsyncIterator[str]:
    try:
        async for line in response.aiter_lines():
            if line.strip() == "data: [DONE]":
                break
            token = parse_stream_line(line)
            if token:
                yield token
    finally:
        await response.aclose()
        await client.aclose()


async def open_completion_stream(
    model: str,
    messages: List[Dict[str, Any]],
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[str]:
    """Start a streaming completion (no tools) and return an iterator over content tokens.

    The status is checked before returning, so a rejected request raises
    ``CompletionServiceError`` here rather than mid-stream. Not retried.
    """
    headers = _headers()
    if client is None:
        client = httpx.AsyncClient(timeout=config.COMPLETION_TIMEOUT)
    request = client.build_request("POST", _completions_url(), headers=headers, json=build_payload(model, messages, stream=True))
    logger.info(f"[COMPLETION] streaming request model={model} messages={len(messages)}")
    try:
        response = await client.send(request, stream=True)
    except httpx.RequestError as e:
        await client.aclose()
        logger.error(f"[COMPLETION] streaming request error: {repr(e)}")
        raise CompletionServiceError(f"Completion service network error: {e.__class__.__name__}", status_code=503) from e

    if not response.is_success:
        await response.aread()
        message = _error_message(response)
        await response.aclose()
        await client.aclose()
        logger.error(f"[COMPLETION] streaming HTTP {response.status_code}: {message}")
        raise CompletionServiceError(message, status_code=response.status_code)

    return _relay_tokens(client, response)
