"""Error types raised while compiling tool schemas and dispatching tool calls."""
from typing import Optional


class ToolDispatchError(Exception):
    """Base class for all tool dispatch errors.

    ``status_code`` is the HTTP status the top-level handler answers with when
    the error escapes a request.
    """
    status_code = 500


class SchemaCompilationError(ToolDispatchError):
    """A tool's schema document is malformed or not a recognised shape."""


class ArgumentParseError(ToolDispatchError):
    """The model's tool call arguments are not a usable JSON object."""


class UnknownFunctionError(ToolDispatchError):
    """No selected tool exposes the requested function."""


class UnknownRouteError(ToolDispatchError):
    """The function is known but has no path template to call."""


class MissingParameterError(ToolDispatchError):
    """A path placeholder has no value in the call's parameters."""


class DownstreamHttpError(ToolDispatchError):
    """A tool's HTTP API answered with a non-2xx status."""

    def __init__(self, status_code: int, reason: str):
        super().__init__(f"HTTP {status_code}: {reason}")
        self.status_code = status_code
        self.reason = reason


class CompletionServiceError(ToolDispatchError):
    """The completion service failed or rejected the request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
