"""Aggregate the compiled schemas of every selected tool into one request catalogue."""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from tool_dispatch.errors import SchemaCompilationError, UnknownFunctionError, UnknownRouteError
from tool_dispatch.tools.schema_compiler import CompiledCatalogueEntry, CompiledSchema, compile_schema

logger = logging.getLogger(__name__)


class ToolDescriptor(BaseModel):
    """One selected tool as stored for the user: base URL, schema and custom headers."""
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    name: str
    url: Optional[str] = ""
    schema_document: Any = Field(default=None, alias="schema")
    custom_headers: Any = None


class SchemaDetail(BaseModel):
    """Per-tool metadata needed to turn a function call into an HTTP request."""
    model_config = ConfigDict(frozen=True)

    tool_name: str
    title: str
    description: str = ""
    server_url: str
    headers: Any = None
    route_map: Dict[str, str]
    request_in_body: bool
    function_names: Tuple[str, ...] = ()


class RouteBinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    function_name: str
    path_template: str
    path_parameters: Tuple[str, ...] = ()
    detail: SchemaDetail


class Catalogue(BaseModel):
    """Immutable result of folding every selected tool into one catalogue.

    ``entries`` is what the model sees, in tool order then function order and
    without deduplication. ``bindings`` is what dispatch uses. ``route_map`` is
    the flattened path map, kept for logging and debugging only.
    """
    model_config = ConfigDict(frozen=True)

    entries: Tuple[CompiledCatalogueEntry, ...] = ()
    route_map: Dict[str, str] = {}
    details: Tuple[SchemaDetail, ...] = ()
    bindings: Dict[str, RouteBinding] = {}
    skipped: Tuple[str, ...] = ()

    @property
    def function_names(self) -> List[str]:
        return [entry.function_name for entry in self.entries]

    def tools(self) -> Optional[List[Dict[str, Any]]]:
        """Tool definitions for the completion service, or None when there are none."""
        if not self.entries:
            return None
        return [entry.to_tool() for entry in self.entries]

    def resolve(self, function_name: str) -> RouteBinding:
        """Find the route and owning tool for a function the model asked to call."""
        binding = self.bindings.get(function_name)
        if binding is not None:
            return binding
        if function_name in self.function_names:
            raise UnknownRouteError(f"Path for function {function_name} not found")
        raise UnknownFunctionError(f"Function {function_name} not found in any schema")


def build_route_map(compiled: CompiledSchema) -> Dict[str, str]:
    """Map each path template to its operation id; later routes on the same path win."""
    route_map: Dict[str, str] = {}
    for route in compiled.routes:
        route_map[route.path] = route.operation_id
    return route_map


def schema_detail_for(tool: ToolDescriptor, compiled: CompiledSchema) -> SchemaDetail:
    return SchemaDetail(
        tool_name=tool.name,
        title=compiled.info.title,
        description=compiled.info.description,
        server_url=compiled.info.server,
        headers=tool.custom_headers,
        route_map=build_route_map(compiled),
        request_in_body=compiled.request_in_body,
        function_names=tuple(entry.function_name for entry in compiled.functions),
    )


def build_catalogue(tools: Sequence[ToolDescriptor]) -> Catalogue:
    """Compile every tool in order and fold the results into one Catalogue.

    A tool whose schema fails to compile is logged and left out; the other
    tools still contribute their functions.
    """
    entries: List[CompiledCatalogueEntry] = []
    route_map: Dict[str, str] = {}
    details: List[SchemaDetail] = []
    bindings: Dict[str, RouteBinding] = {}
    skipped: List[str] = []

    for tool in tools:
        try:
            compiled = compile_schema(tool.schema_document, fallback_server=tool.url or None)
        except SchemaCompilationError as e:
            logger.warning(f"[CATALOGUE] Skipping tool '{tool.name}': {e}")
            skipped.append(tool.name)
            continue

        detail = schema_detail_for(tool, compiled)
        entries.extend(compiled.functions)
        route_map.update(detail.route_map)
        details.append(detail)
        placeholders = {entry.function_name: entry.path_parameters for entry in compiled.functions}

        for path_template, function_name in detail.route_map.items():
            existing = bindings.get(function_name)
            if existing is not None:
                logger.warning(
                    f"[CATALOGUE] Function '{function_name}' from tool '{tool.name}' is shadowed by "
                    f"tool '{existing.detail.tool_name}'; calls go to the first tool"
                )
                continue
            bindings[function_name] = RouteBinding(
                function_name=function_name,
                path_template=path_template,
                path_parameters=placeholders[function_name],
                detail=detail,
            )

    logger.info(
        f"[CATALOGUE] {len(entries)} function(s) from {len(details)} tool(s), "
        f"{len(skipped)} skipped"
    )
    return Catalogue(
        entries=tuple(entries),
        route_map=route_map,
        details=tuple(details),
        bindings=bindings,
        skipped=tuple(skipped),
    )
