# api/health.py

from fastapi import APIRouter

from tool_dispatch import config

health_router = APIRouter(tags=["health"])


@health_router.get("/health")
async def health_check():
    """Liveness plus whether the completion service can be reached at all."""
    return {
        "status": "healthy",
        "message": "Tool Dispatch Chat API is running",
        "completion_configured": bool(config.COMPLETION_API_KEY),
        "concurrent_tool_calls": config.TOOL_CALLS_CONCURRENT,
    }
