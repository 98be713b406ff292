"""Helpers for building tool HTTP requests: path substitution, query strings and headers."""
import json
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote, urlencode

from tool_dispatch.errors import ArgumentParseError, MissingParameterError

logger = logging.getLogger(__name__)

PATH_PLACEHOLDER = re.compile(r":([\w-]+)")

# Characters encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "-_.!~*'()"


def format_value(value: Any) -> str:
    """Render a primitive the way a JSON client would put it in a URL."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def encode_uri_component(value: Any) -> str:
    return quote(format_value(value), safe=_URI_COMPONENT_SAFE)


def placeholder_pattern(names: Sequence[str]) -> "re.Pattern[str]":
    """Match ``:name`` only for the given placeholder names, so literal colons stay put."""
    alternatives = "|".join(re.escape(name) for name in sorted(names, key=len, reverse=True))
    return re.compile(rf":({alternatives})(?![\w-])")


def substitute_path(
    path_template: str,
    parameters: Mapping[str, Any],
    function_name: str,
    placeholders: Optional[Sequence[str]] = None,
) -> str:
    """Replace the ``:param`` placeholders in ``path_template`` with percent-encoded values.

    With ``placeholders`` given only those names are substituted (``/models/:model:generate``
    keeps its literal ``:generate``); without it every ``:word`` is a placeholder.

    Raises:
        MissingParameterError: a placeholder has no value (absent, None or empty string)
    """
    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        value = parameters.get(name)
        if value is None or value == "":
            raise MissingParameterError(f"Parameter {name} not found for function {function_name}")
        return encode_uri_component(value)

    if placeholders is None:
        pattern = PATH_PLACEHOLDER
    elif not placeholders:
        return path_template
    else:
        pattern = placeholder_pattern(placeholders)
    return pattern.sub(_replace, path_template)


def build_query_string(parameters: Mapping[str, Any]) -> str:
    """URL-encode ``parameters`` as a query string.

    Lists repeat the key, None values are dropped and nested objects are rejected.
    """
    pairs: List[Tuple[str, str]] = []
    for name, value in parameters.items():
        if value is None:
            continue
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            if isinstance(item, (dict, list, tuple)):
                raise ArgumentParseError(f"Query parameter {name} must be a primitive value")
            pairs.append((name, format_value(item)))
    return urlencode(pairs)


def parse_custom_headers(raw: Any, tool_name: Optional[str] = None) -> Dict[str, str]:
    """Decode a tool's custom headers.

    Headers may arrive as a JSON object string, a mapping, or nothing at all.
    Anything that is not an object is ignored with a warning.
    """
    if raw is None or raw == "":
        return {}
    headers = raw
    if isinstance(raw, (str, bytes)):
        try:
            headers = json.loads(raw)
        except ValueError:
            logger.warning(f"[TOOL CALL] Ignoring malformed custom headers for tool '{tool_name}'")
            return {}
    if not isinstance(headers, Mapping):
        logger.warning(f"[TOOL CALL] Ignoring custom headers for tool '{tool_name}': expected an object")
        return {}
    return {str(name): format_value(value) for name, value in headers.items() if value is not None}
