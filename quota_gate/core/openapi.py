"""OpenAPI customization.

Adds the ``X-API-Key`` security scheme, marks every operation as requiring
it except the health check, and registers tag descriptions.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

TAGS_METADATA = [
    {
        "name": "Quota",
        "description": "Backend capacity, admission decisions, search quota and operator resets.",
    },
    {
        "name": "Messages",
        "description": "Splitting long answers into platform-sized messages.",
    },
    {
        "name": "Health",
        "description": "Liveness checks.",
    },
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Wrap FastAPI's OpenAPI generation to add tags and API key security."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        security_schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Provide your API key via the X-API-Key header.",
            },
        )
        schema.setdefault("security", [{"ApiKeyAuth": []}])

        tags = schema.setdefault("tags", [])
        known = {tag.get("name") for tag in tags}
        tags.extend(tag for tag in TAGS_METADATA if tag["name"] not in known)

        for path, methods in schema.get("paths", {}).items():
            if not path.endswith("/health"):
                continue
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj["security"] = []

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
