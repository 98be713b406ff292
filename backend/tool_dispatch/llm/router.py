"""Router for the tool-calling chat endpoint."""
import logging
from typing import Any, Dict, List

import httpx
from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, ConfigDict

from tool_dispatch import config
from tool_dispatch.errors import CompletionServiceError
from tool_dispatch.llm.agent import UNEXPECTED_ERROR_MESSAGE, open_completion_stream
from tool_dispatch.llm.tools import run_tool_turn
from tool_dispatch.tools.catalogue import ToolDescriptor, build_catalogue
from tool_dispatch.tools.executor import execute_tool_calls

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


class ChatSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    model: str


class ToolChatRequest(BaseModel):
    chatSettings: ChatSettings
    messages: List[Dict[str, Any]]
    selectedTools: List[ToolDescriptor] = []


def tool_http_client() -> httpx.AsyncClient:
    """Client used for the selected tools' own APIs."""
    return httpx.AsyncClient(timeout=config.TOOL_REQUEST_TIMEOUT)


def error_response(error: Exception) -> JSONResponse:
    """Convert any uncaught error into ``{"message": ...}`` with the best status we know."""
    if isinstance(error, CompletionServiceError):
        return JSONResponse({"message": error.message}, status_code=error.status_code)
    status_code = getattr(error, "status_code", None)
    if not isinstance(status_code, int):
        status_code = 500
    return JSONResponse({"message": UNEXPECTED_ERROR_MESSAGE}, status_code=status_code)


@router.post("/tools")
async def handle_tool_chat(request: ToolChatRequest):
    """Let the model call the selected tools once, then stream its final answer.

    Answers directly (not streamed) when the model calls no tool.
    """
    messages = list(request.messages)
    model = request.chatSettings.model
    logger.info(f"[API REQUEST] model={model} messages={len(messages)} tools={[tool.name for tool in request.selectedTools]}")

    try:
        catalogue = build_catalogue(request.selectedTools)
        turn = await run_tool_turn(model, messages, catalogue)

        if not turn.wants_tools:
            logger.info(f"[API RESPONSE] Direct answer, chars={len(turn.content or '')}")
            return Response(content=turn.content or "", media_type="application/json")

        async with tool_http_client() as client:
            await execute_tool_calls(
                client,
                catalogue,
                turn.tool_calls,
                messages,
                concurrent=config.TOOL_CALLS_CONCURRENT,
            )

        tokens = await open_completion_stream(model, messages)
        logger.info(f"[API RESPONSE] Streaming final answer after {len(turn.tool_calls)} tool call(s)")
        return StreamingResponse(tokens, media_type="text/plain; charset=utf-8")

    except Exception as e:
        logger.error(f"[ROUTER ERROR] Tool chat failed: {e}", exc_info=True)
        logger.error(f"[ROUTER ERROR] Exception type: {type(e).__name__}")
        return error_response(e)
