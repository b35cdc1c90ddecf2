"""
OpenAPI / Swagger documentation for the Token Gateway API.

Uses Flasgger to serve Swagger UI at /apidocs and the JSON spec at /apispec_1.json.
"""

from __future__ import annotations

from flask import Flask
from flasgger import Swagger

from gateway import __version__
from gateway.config.settings import TTL_MAX, TTL_MIN


SWAGGER_TEMPLATE: dict = {
    "info": {
        "title": "Guacamole Token Gateway API",
        "version": __version__,
        "description": (
            "Issues short-lived encrypted tokens that authorize one browser "
            "tunnel to a shell, desktop or container-exec session."
        ),
    },
    "securityDefinitions": {
        "ApiKeyAuth": {
            "type": "apiKey",
            "in": "header",
            "name": "X-API-Key",
            "description": "API key passed in the X-API-Key header.",
        },
        "BearerAuth": {
            "type": "apiKey",
            "in": "header",
            "name": "Authorization",
            "description": "Bearer token passed as 'Authorization: Bearer <key>'.",
        },
    },
    "paths": {
        "/token": {
            "post": {
                "summary": "Issue a tunnel token",
                "security": [{"ApiKeyAuth": []}, {"BearerAuth": []}],
                "parameters": [{
                    "in": "body",
                    "name": "body",
                    "required": True,
                    "schema": {"$ref": "#/definitions/TokenRequest"},
                }],
                "responses": {
                    "200": {"description": "Token issued", "schema": {"$ref": "#/definitions/TokenResponse"}},
                    "400": {"description": "Invalid request", "schema": {"$ref": "#/definitions/ErrorResponse"}},
                    "401": {"description": "Missing or wrong API key", "schema": {"$ref": "#/definitions/ErrorResponse"}},
                    "404": {"description": "Unknown preset", "schema": {"$ref": "#/definitions/ErrorResponse"}},
                },
            },
        },
        "/presets": {
            "get": {
                "summary": "List preset names",
                "security": [{"ApiKeyAuth": []}, {"BearerAuth": []}],
                "responses": {
                    "200": {"description": "Preset names", "schema": {"$ref": "#/definitions/PresetList"}},
                    "401": {"description": "Missing or wrong API key", "schema": {"$ref": "#/definitions/ErrorResponse"}},
                },
            },
        },
        "/health": {
            "get": {
                "summary": "Liveness check",
                "responses": {"200": {"description": "Service is up"}},
            },
        },
    },
    "definitions": {
        "ErrorResponse": {
            "type": "object",
            "properties": {
                "success": {"type": "boolean", "example": False},
                "error": {"type": "string"},
            },
        },
        "TokenRequest": {
            "type": "object",
            "description": "Exactly one of 'preset' or 'connection'.",
            "properties": {
                "preset": {"type": "string", "example": "lab-shell"},
                "connection": {
                    "type": "object",
                    "example": {"kind": "shell", "host": "10.0.0.5", "username": "alice"},
                },
                "ttl": {"type": "integer", "minimum": TTL_MIN, "maximum": TTL_MAX, "example": 300},
            },
        },
        "TokenResponse": {
            "type": "object",
            "properties": {
                "success": {"type": "boolean", "example": True},
                "data": {
                    "type": "object",
                    "properties": {
                        "token": {"type": "string"},
                        "ws_url": {"type": "string", "example": "wss://gateway.example.com/ws?token=..."},
                        "expires_at": {"type": "integer", "description": "Epoch seconds"},
                        "mode": {"type": "string", "enum": ["preset", "dynamic"]},
                        "connection_type": {"type": "string", "enum": ["shell", "desktop", "container-exec"]},
                    },
                },
            },
        },
        "PresetList": {
            "type": "object",
            "properties": {
                "success": {"type": "boolean", "example": True},
                "data": {
                    "type": "object",
                    "properties": {
                        "presets": {"type": "array", "items": {"type": "string"}},
                    },
                },
            },
        },
    },
}

SWAGGER_CONFIG: dict = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/apispec_1.json",
            "rule_filter": lambda rule: True,
            "model_filter": lambda tag: True,
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def init_swagger(app: Flask) -> Swagger:
    """Initialize Flasgger and exempt Swagger UI from the rate limiter.

    The Swagger endpoints live outside the ``api`` blueprint, so the API key
    hook never runs for them.
    """
    swagger = Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    from gateway.api.rate_limit import limiter

    for name in ("flasgger.apidocs", "flasgger.apispec_1"):
        view = app.view_functions.get(name)
        if view is not None:
            limiter.exempt(view)

    return swagger
