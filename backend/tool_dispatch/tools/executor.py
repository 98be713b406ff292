"""Resolve model tool calls to HTTP requests, execute them and fold results into the conversation."""
import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx
from pydantic import BaseModel

from tool_dispatch.errors import ArgumentParseError, DownstreamHttpError
from tool_dispatch.llm.tools import ToolCallRequest
from tool_dispatch.tools.catalogue import Catalogue
from tool_dispatch.tools.utils import build_query_string, parse_custom_headers, substitute_path

logger = logging.getLogger(__name__)


class PreparedRequest(BaseModel):
    """A fully resolved HTTP request for one tool call."""
    method: str
    url: str
    headers: Dict[str, str] = {}
    json_body: Optional[Any] = None


def parse_arguments(call: ToolCallRequest) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Return (arguments object, parameters mapping) for a tool call."""
    try:
        arguments = json.loads(call.arguments.strip() or "{}")
    except ValueError as e:
        raise ArgumentParseError(f"Arguments for function {call.function_name} are not valid JSON: {e}") from e
    if not isinstance(arguments, dict):
        raise ArgumentParseError(f"Arguments for function {call.function_name} must be a JSON object")
    parameters = arguments.get("parameters")
    if parameters is None:
        parameters = {}
    if not isinstance(parameters, Mapping):
        raise ArgumentParseError(f"'parameters' for function {call.function_name} must be an object")
    return arguments, dict(parameters)


def prepare_request(catalogue: Catalogue, call: ToolCallRequest) -> PreparedRequest:
    """Turn one tool call into an HTTP request without sending it.

    Body-mode tools are POSTed a JSON body (``requestBody`` if the model gave
    one, else the whole arguments object). Query-mode tools get a GET with
    ``parameters`` in the query string.
    """
    arguments, parameters = parse_arguments(call)
    binding = catalogue.resolve(call.function_name)
    detail = binding.detail
    path = substitute_path(binding.path_template, parameters, call.function_name, binding.path_parameters)
    custom_headers = parse_custom_headers(detail.headers, detail.tool_name)

    if detail.request_in_body:
        headers = {"Content-Type": "application/json"}
        headers.update(custom_headers)
        body = arguments.get("requestBody")
        return PreparedRequest(
            method="POST",
            url=detail.server_url + path,
            headers=headers,
            json_body=body if body is not None else arguments,
        )

    query = build_query_string(parameters)
    return PreparedRequest(
        method="GET",
        url=detail.server_url + path + (f"?{query}" if query else ""),
        headers=custom_headers,
    )


async def send_request(client: httpx.AsyncClient, request: PreparedRequest) -> Any:
    """Send a prepared request and return the decoded JSON payload.

    Raises:
        DownstreamHttpError: the API answered with a non-2xx status
    """
    if request.method == "POST":
        response = await client.post(
            request.url,
            headers=request.headers,
            content=json.dumps(request.json_body),
        )
    else:
        response = await client.get(request.url, headers=request.headers)

    logger.info(f"[TOOL CALL] {request.method} {request.url} -> {response.status_code}")
    if not response.is_success:
        raise DownstreamHttpError(response.status_code, response.reason_phrase)
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {"result": response.text}


async def run_tool_call(client: httpx.AsyncClient, call: ToolCallRequest, request: PreparedRequest) -> Any:
    """Execute one call; HTTP failures become an ``{"error": ...}`` payload for the model."""
    try:
        return await send_request(client, request)
    except DownstreamHttpError as e:
        logger.warning(f"[TOOL CALL] {call.function_name} failed with HTTP {e.status_code} {e.reason}")
        return {"error": e.reason}
    except httpx.RequestError as e:
        logger.warning(f"[TOOL CALL] {call.function_name} request error: {e.__class__.__name__}: {e}")
        return {"error": f"{e.__class__.__name__}: {e}"}


def tool_result_message(call: ToolCallRequest, result: Any) -> Dict[str, Any]:
    return {
        "tool_call_id": call.id,
        "role": "tool",
        "name": call.function_name,
        "content": json.dumps(result),
    }


async def execute_tool_calls(
    client: httpx.AsyncClient,
    catalogue: Catalogue,
    tool_calls: Sequence[ToolCallRequest],
    messages: List[Dict[str, Any]],
    concurrent: bool = False,
) -> List[Dict[str, Any]]:
    """Run every tool call and append one ``tool`` message per call, in call order.

    Every call is resolved before any request is sent, so a bad call aborts
    the batch without side effects. Returns the appended messages.
    """
    prepared = [(call, prepare_request(catalogue, call)) for call in tool_calls]

    if concurrent:
        # Let every call settle before an unexpected failure aborts the batch
        results = await asyncio.gather(
            *(run_tool_call(client, call, request) for call, request in prepared),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
    else:
        results = []
        for call, request in prepared:
            results.append(await run_tool_call(client, call, request))

    appended = []
    for (call, _), result in zip(prepared, results):
        message = tool_result_message(call, result)
        messages.append(message)
        appended.append(message)
    return appended
