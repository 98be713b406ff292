"""Model turn driver: offer the tool catalogue to the model and read back its tool calls."""
import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from tool_dispatch.errors import ArgumentParseError
from tool_dispatch.llm.agent import call_completion
from tool_dispatch.tools.catalogue import Catalogue

logger = logging.getLogger(__name__)


class ToolCallRequest(BaseModel):
    """One function call requested by the model."""
    id: str
    function_name: str
    arguments: str = ""


class TurnResult(BaseModel):
    content: Optional[str] = None
    tool_calls: List[ToolCallRequest] = []

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


def extract_tool_calls(message: Dict[str, Any]) -> List[ToolCallRequest]:
    """Read the ``tool_calls`` of an assistant message into ToolCallRequests."""
    calls = []
    for raw in message.get("tool_calls") or []:
        function = raw.get("function") if isinstance(raw, dict) else None
        if not isinstance(function, dict) or not function.get("name"):
            raise ArgumentParseError("Tool call is missing its function name")
        arguments = function.get("arguments")
        calls.append(ToolCallRequest(
            id=str(raw.get("id", "")),
            function_name=function["name"],
            arguments=arguments if isinstance(arguments, str) else json.dumps(arguments or {}),
        ))
    return calls


async def run_tool_turn(model: str, messages: List[Dict[str, Any]], catalogue: Catalogue) -> TurnResult:
    """Ask the model for a reply with the catalogue on offer.

    The assistant message is appended to ``messages`` as returned, tool calls
    included, so later tool results can refer to the call ids.
    """
    message = await call_completion(model, messages, tools=catalogue.tools())
    messages.append(message)
    tool_calls = extract_tool_calls(message)
    if tool_calls:
        logger.info(f"[TOOL CALL] model requested {[call.function_name for call in tool_calls]}")
    return TurnResult(content=message.get("content"), tool_calls=tool_calls)
