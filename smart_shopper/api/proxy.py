"""
Key-injecting proxy for the Gemini generateContent endpoint.

The browser-side client never sees the provider key: it posts
``{"model": ..., "payload": ...}`` here and the server appends the key
before forwarding the payload upstream.
"""

import asyncio

import requests
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..config import get_config_manager
from ..utils import get_logger

router = APIRouter()
logger = get_logger("gemini_proxy")

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


def build_upstream_url(base_url: str, model: str) -> str:
    return f"{base_url.rstrip('/')}/{model}:generateContent"


@router.api_route("/api/gemini", methods=ALL_METHODS)
async def gemini_proxy(request: Request) -> JSONResponse:
    """Forward a generateContent request with the server-held API key."""
    if request.method != "POST":
        return JSONResponse(status_code=405, content={"message": "Method Not Allowed"})

    config = get_config_manager()
    api_key = config.get_provider_api_key()
    if not api_key:
        logger.error("Provider API key is not configured")
        return JSONResponse(status_code=500, content={"message": "Server error: Key missing."})

    try:
        body = await request.json()
        model = body.get("model") or config.get("llm.model")
        url = build_upstream_url(config.get("llm.base_url"), model)

        response = await asyncio.to_thread(
            requests.post,
            url,
            params={"key": api_key},
            json=body.get("payload"),
            timeout=config.get("llm.timeout_seconds", 60),
        )
        data = response.json()
    except (requests.RequestException, ValueError, AttributeError) as e:
        logger.error(f"Gemini proxy error: {e}")
        return JSONResponse(status_code=500, content={"message": "Internal Server Error."})

    if not response.ok:
        logger.warning(f"Upstream returned status {response.status_code} for model {model}")
    return JSONResponse(status_code=response.status_code, content=data)
