"""Compile OpenAPI / Swagger documents into model-callable function definitions.

A tool's schema document is classified as one of the recognised shapes
(OpenAPI 3.x or Swagger 2.0). Anything else is rejected with
``SchemaCompilationError`` so the caller can drop that tool and keep going.

Each operation becomes one function whose call signature is::

    {"parameters": {<query/path/header params>}, "requestBody": <json body>}

and one route entry mapping the colon-style path template (``/users/:id``)
to the operation id.
"""
import copy
import json
import logging
import re
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError

from tool_dispatch.errors import SchemaCompilationError

logger = logging.getLogger(__name__)

OPENAPI3 = "openapi3"
SWAGGER2 = "swagger2"

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

# Swagger 2.0 puts the schema keywords of non-body parameters on the parameter itself
_SWAGGER_SCHEMA_KEYS = (
    "type", "format", "items", "enum", "default", "minimum", "maximum",
    "minLength", "maxLength", "pattern",
)

_BRACE_PLACEHOLDER = re.compile(r"\{([\w-]+)\}")


class CompiledCatalogueEntry(BaseModel):
    """One callable function derived from a schema operation."""
    model_config = ConfigDict(frozen=True)

    function_name: str
    description: str
    path_template: str
    http_method: str
    request_in_body: bool
    parameter_schema: Dict[str, Any]
    path_parameters: Tuple[str, ...] = ()

    def to_tool(self) -> Dict[str, Any]:
        """Render as a chat completions ``tools`` entry."""
        return {
            "type": "function",
            "function": {
                "name": self.function_name,
                "description": self.description,
                "parameters": copy.deepcopy(self.parameter_schema),
            },
        }


class RouteEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    method: str
    operation_id: str
    request_in_body: bool


class SchemaInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: str = ""
    server: str


class CompiledSchema(BaseModel):
    """Result of compiling one schema document."""
    model_config = ConfigDict(frozen=True)

    functions: List[CompiledCatalogueEntry]
    routes: List[RouteEntry]
    info: SchemaInfo

    @property
    def request_in_body(self) -> bool:
        # The first route speaks for the whole document; mixed documents are not modelled.
        return self.routes[0].request_in_body


def to_path_template(path: str) -> str:
    """Turn ``/users/{id}`` into ``/users/:id``."""
    return _BRACE_PLACEHOLDER.sub(r":\1", path)


def load_schema_document(document: Any) -> Dict[str, Any]:
    """Decode a schema given either as JSON text or as an already parsed mapping."""
    if isinstance(document, (str, bytes)):
        try:
            parsed = json.loads(document)
        except ValueError as e:
            raise SchemaCompilationError(f"Schema is not valid JSON: {e}") from e
    else:
        parsed = document
    if not isinstance(parsed, Mapping):
        raise SchemaCompilationError("Schema document must be a JSON object")
    return dict(parsed)


def detect_schema_shape(document: Mapping[str, Any]) -> Optional[str]:
    """Return the recognised shape of ``document`` or None when it is unrecognised."""
    version = document.get("openapi")
    if isinstance(version, str) and version.startswith("3"):
        return OPENAPI3
    if str(document.get("swagger", "")) == "2.0":
        return SWAGGER2
    return None


def _mapping(value: Any, what: str) -> Dict[str, Any]:
    """Return ``value`` as a dict, or reject the document when it is not an object."""
    if not isinstance(value, Mapping):
        raise SchemaCompilationError(f"{what} must be an object")
    return dict(value)


def path_parameter_names(path: str) -> Tuple[str, ...]:
    """Names of the ``{x}`` placeholders in a source path, in order of first appearance."""
    return tuple(dict.fromkeys(_BRACE_PLACEHOLDER.findall(path)))


def _lookup_pointer(root: Mapping[str, Any], ref: str) -> Any:
    node: Any = root
    for token in ref[2:].split("/"):
        token = token.replace("~1", "/").replace("~0", "~")
        if not isinstance(node, Mapping) or token not in node:
            raise SchemaCompilationError(f"Unresolvable reference: {ref}")
        node = node[token]
    return node


def _resolve_refs(node: Any, root: Mapping[str, Any], seen: Tuple[str, ...] = ()) -> Any:
    """Inline local ``$ref`` pointers. Recursive references collapse to ``{}``."""
    if isinstance(node, Mapping):
        ref = node.get("$ref")
        if isinstance(ref, str) and ref.startswith("#/"):
            if ref in seen:
                return {}
            resolved = _resolve_refs(_lookup_pointer(root, ref), root, seen + (ref,))
            siblings = {key: value for key, value in node.items() if key != "$ref"}
            if siblings and isinstance(resolved, dict):
                resolved = {**resolved, **_resolve_refs(siblings, root, seen)}
            return resolved
        return {key: _resolve_refs(value, root, seen) for key, value in node.items()}
    if isinstance(node, list):
        return [_resolve_refs(item, root, seen) for item in node]
    return node


def _server_url(document: Mapping[str, Any], shape: str) -> Optional[str]:
    if shape == OPENAPI3:
        servers = document.get("servers")
        if not isinstance(servers, list) or not servers or not isinstance(servers[0], Mapping):
            return None
        url = servers[0].get("url")
        if not isinstance(url, str) or not url:
            return None
        variables = _mapping(servers[0].get("variables") or {}, "servers[0].variables")
        for name, variable in variables.items():
            if isinstance(variable, Mapping) and "default" in variable:
                url = url.replace("{" + name + "}", str(variable["default"]))
        return url

    host = document.get("host")
    if not isinstance(host, str) or not host:
        return None
    schemes = document.get("schemes") or ["https"]
    base_path = document.get("basePath") or ""
    if not isinstance(schemes, list) or not isinstance(schemes[0], str) or not isinstance(base_path, str):
        raise SchemaCompilationError("Swagger schemes/basePath are malformed")
    return f"{schemes[0]}://{host}{base_path}"


def _schema_info(document: Mapping[str, Any], shape: str, fallback_server: Optional[str]) -> SchemaInfo:
    info = document.get("info")
    if not isinstance(info, Mapping) or not isinstance(info.get("title"), str):
        raise SchemaCompilationError("Schema is missing info.title")
    server = _server_url(document, shape) or fallback_server
    if not server:
        raise SchemaCompilationError("Schema declares no server URL")
    return SchemaInfo(
        title=info["title"],
        description=info.get("description") or "",
        server=server.rstrip("/"),
    )


def _merge_parameters(shared: Any, own: Any, where: str) -> List[Dict[str, Any]]:
    """Merge path-level and operation-level parameters; the operation wins on (name, in)."""
    merged: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for params in (shared, own):
        if not isinstance(params, list):
            raise SchemaCompilationError(f"Parameters of {where} must be a list")
        for param in params:
            if not isinstance(param, Mapping) or not isinstance(param.get("name"), str):
                raise SchemaCompilationError(f"Malformed parameter in {where}")
            merged[(param["name"], str(param.get("in", "query")))] = dict(param)
    return list(merged.values())


def _iter_operations(paths: Mapping[str, Any]) -> Iterator[Tuple[str, str, Mapping[str, Any], List[Dict[str, Any]]]]:
    for path, path_item in paths.items():
        if not isinstance(path_item, Mapping):
            raise SchemaCompilationError(f"Path item for {path} must be an object")
        shared = path_item.get("parameters") or []
        for method, operation in path_item.items():
            if method.lower() not in HTTP_METHODS:
                continue
            where = f"{method.upper()} {path}"
            if not isinstance(operation, Mapping):
                raise SchemaCompilationError(f"Operation {where} must be an object")
            parameters = _merge_parameters(shared, operation.get("parameters") or [], where)
            yield path, method.lower(), operation, parameters


def _request_body(operation: Mapping[str, Any], parameters: List[Dict[str, Any]], shape: str) -> Tuple[Optional[Dict[str, Any]], bool]:
    """Return (body schema, body required). A None schema means the operation takes no body."""
    if shape == SWAGGER2:
        for param in parameters:
            if param.get("in") == "body":
                schema = _mapping(param.get("schema") or {"type": "object"}, f"Schema of body parameter {param['name']}")
                return schema, bool(param.get("required"))
        return None, False

    request_body = operation.get("requestBody")
    if not request_body:
        return None, False
    if not isinstance(request_body, Mapping):
        raise SchemaCompilationError("requestBody must be an object")
    content = _mapping(request_body.get("content") or {}, "requestBody.content")
    media = content.get("application/json")
    if media is None:
        media = next((value for key, value in content.items() if "json" in key), None)
    if media is None and content:
        media = next(iter(content.values()))
    schema = media.get("schema") if isinstance(media, Mapping) else None
    return _mapping(schema or {"type": "object"}, "requestBody schema"), bool(request_body.get("required"))


def _parameter_schema(parameters: List[Dict[str, Any]], body_schema: Optional[Dict[str, Any]], body_required: bool, shape: str) -> Dict[str, Any]:
    properties: Dict[str, Any] = {}
    required: List[str] = []
    for param in parameters:
        location = param.get("in")
        if location == "body":
            continue
        schema = param.get("schema")
        if schema is None and shape == SWAGGER2:
            schema = {key: param[key] for key in _SWAGGER_SCHEMA_KEYS if key in param}
        prop = _mapping(schema or {"type": "string"}, f"Schema of parameter {param['name']}")
        if param.get("description") and "description" not in prop:
            prop["description"] = param["description"]
        properties[param["name"]] = prop
        if param.get("required") or location == "path":
            required.append(param["name"])

    signature: Dict[str, Any] = {"type": "object", "properties": {}}
    top_required: List[str] = []
    if properties:
        params_schema: Dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            params_schema["required"] = required
            top_required.append("parameters")
        signature["properties"]["parameters"] = params_schema
    if body_schema is not None:
        signature["properties"]["requestBody"] = body_schema
        if body_required:
            top_required.append("requestBody")
    if top_required:
        signature["required"] = top_required
    return signature


def _compile(document: Any, fallback_server: Optional[str]) -> CompiledSchema:
    raw = load_schema_document(document)
    shape = detect_schema_shape(raw)
    if shape is None:
        raise SchemaCompilationError("Unrecognised schema document: expected OpenAPI 3.x or Swagger 2.0")

    resolved = _resolve_refs(raw, raw)
    info = _schema_info(resolved, shape, fallback_server)

    paths = resolved.get("paths")
    if not isinstance(paths, Mapping) or not paths:
        raise SchemaCompilationError("Schema declares no paths")

    functions: List[CompiledCatalogueEntry] = []
    routes: List[RouteEntry] = []
    seen = set()
    for path, method, operation, parameters in _iter_operations(paths):
        operation_id = operation.get("operationId")
        if not isinstance(operation_id, str) or not operation_id.strip():
            raise SchemaCompilationError(f"Operation {method.upper()} {path} is missing an operationId")
        if operation_id in seen:
            raise SchemaCompilationError(f"Duplicate operationId: {operation_id}")
        seen.add(operation_id)

        body_schema, body_required = _request_body(operation, parameters, shape)
        entry = CompiledCatalogueEntry(
            function_name=operation_id,
            description=operation.get("description") or operation.get("summary") or "",
            path_template=to_path_template(path),
            path_parameters=path_parameter_names(path),
            http_method=method.upper(),
            request_in_body=body_schema is not None,
            parameter_schema=_parameter_schema(parameters, body_schema, body_required, shape),
        )
        functions.append(entry)
        routes.append(RouteEntry(
            path=entry.path_template,
            method=entry.http_method,
            operation_id=operation_id,
            request_in_body=entry.request_in_body,
        ))

    if not functions:
        raise SchemaCompilationError("Schema declares no operations")

    logger.info(f"[SCHEMA] Compiled '{info.title}' ({shape}): {len(functions)} function(s), server={info.server}")
    return CompiledSchema(functions=functions, routes=routes, info=info)


def compile_schema(document: Any, fallback_server: Optional[str] = None) -> CompiledSchema:
    """Compile one schema document into functions, routes and document info.

    Args:
        document: JSON text or mapping of an OpenAPI 3.x / Swagger 2.0 document
        fallback_server: base URL used when the document declares no server

    Raises:
        SchemaCompilationError: the document is malformed or unrecognised
    """
    try:
        return _compile(document, fallback_server)
    except ValidationError as e:
        raise SchemaCompilationError(f"Schema has malformed fields: {e.error_count()} validation error(s)") from e
