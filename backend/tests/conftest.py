"""Shared schema documents and tool descriptors for the test suite."""
import copy
import json

import httpx
import pytest

from tool_dispatch.tools.catalogue import ToolDescriptor


WEATHER_SCHEMA = {
    "openapi": "3.1.0",
    "info": {"title": "Weather", "description": "Current weather by city", "version": "1.0.0"},
    "servers": [{"url": "https://weather.example.com"}],
    "paths": {
        "/weather/{city}": {
            "get": {
                "operationId": "getWeather",
                "summary": "Weather for a city",
                "parameters": [
                    {"name": "city", "in": "path", "required": True, "schema": {"type": "string"}},
                    {
                        "name": "units",
                        "in": "query",
                        "description": "Temperature units",
                        "schema": {"type": "string", "enum": ["C", "F"]},
                    },
                ],
            }
        }
    },
}

PETS_SCHEMA = {
    "openapi": "3.0.0",
    "info": {"title": "Pets", "version": "1.0.0"},
    "servers": [{"url": "https://pets.example.com/v1/"}],
    "paths": {
        "/pets": {
            "post": {
                "operationId": "createPet",
                "description": "Create a pet",
                "requestBody": {
                    "required": True,
                    "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Pet"}}},
                },
            }
        }
    },
    "components": {
        "schemas": {
            "Pet": {"type": "object", "properties": {"name": {"type": "string"}}},
        }
    },
}

SWAGGER_SCHEMA = {
    "swagger": "2.0",
    "info": {"title": "Legacy", "version": "1"},
    "host": "legacy.example.com",
    "basePath": "/api",
    "schemes": ["http"],
    "paths": {
        "/items/{id}": {
            "parameters": [{"name": "id", "in": "path", "required": True, "type": "integer"}],
            "put": {
                "operationId": "updateItem",
                "parameters": [{"name": "body", "in": "body", "required": True, "schema": {"type": "object"}}],
            },
            "get": {
                "operationId": "getItem",
                "parameters": [{"name": "verbose", "in": "query", "type": "boolean"}],
            },
        }
    },
}

SAME_PATH_SCHEMA = {
    "openapi": "3.0.0",
    "info": {"title": "Notes", "version": "1"},
    "servers": [{"url": "https://notes.example.com"}],
    "paths": {
        "/notes": {
            "get": {"operationId": "listNotes"},
            "post": {
                "operationId": "createNote",
                "requestBody": {"content": {"application/json": {"schema": {"type": "object"}}}},
            },
        }
    },
}


@pytest.fixture
def weather_schema():
    return copy.deepcopy(WEATHER_SCHEMA)


@pytest.fixture
def pets_schema():
    return copy.deepcopy(PETS_SCHEMA)


@pytest.fixture
def swagger_schema():
    return copy.deepcopy(SWAGGER_SCHEMA)


@pytest.fixture
def same_path_schema():
    return copy.deepcopy(SAME_PATH_SCHEMA)


@pytest.fixture
def weather_tool():
    return ToolDescriptor(name="weather", url="", schema=json.dumps(WEATHER_SCHEMA))


@pytest.fixture
def pets_tool():
    return ToolDescriptor(
        name="pets",
        url="https://pets.example.com",
        schema=json.dumps(PETS_SCHEMA),
        custom_headers=json.dumps({"X-Api-Key": "secret"}),
    )


@pytest.fixture
def broken_tool():
    return ToolDescriptor(name="broken", url="https://broken.example.com", schema="{not json")


@pytest.fixture
def make_client():
    """Build an AsyncClient whose requests are answered by a handler instead of the network."""
    def _make(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return _make
