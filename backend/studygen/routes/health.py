"""Health check endpoints.

Checks that the configured LLM provider can be instantiated and, for
hosted providers, that an API key is configured.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from studygen.core.config import settings
from studygen.services.llm_service.llm import get_llm_structured

logger = logging.getLogger(__name__)
router = APIRouter()

_KEYED_PROVIDERS = {
    "GOOGLE": lambda: settings.GOOGLE_API_KEY,
    "NVIDIA": lambda: settings.NVIDIA_API_KEY,
}


@router.get("/health")
async def health_check():
    """Report LLM provider readiness without making a billable call."""
    health_status = {"provider": settings.LLM_PROVIDER, "llm": "unknown"}

    try:
        get_llm_structured()
        key_getter = _KEYED_PROVIDERS.get(settings.LLM_PROVIDER)
        if key_getter is not None and not key_getter():
            health_status["llm"] = "warning"
        else:
            health_status["llm"] = "ok"
        logger.debug("LLM health check: %s", health_status["llm"])
    except Exception as e:
        health_status["llm"] = "error"
        logger.error(f"LLM health check failed: {e}")

    status_code = 503 if health_status["llm"] == "error" else 200
    return JSONResponse(content=health_status, status_code=status_code)


@router.get("/health/simple")
async def simple_health_check():
    """Simple health check - just returns 200 OK."""
    return {"status": "ok"}
