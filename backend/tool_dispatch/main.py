"""Main FastAPI application entry point."""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from tool_dispatch import config
from tool_dispatch.api.health import health_router
from tool_dispatch.llm.router import router as chat_router

app = FastAPI(title="Tool Dispatch Chat API", version="1.0.0")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Configure logging
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Mount routers
app.include_router(health_router)
app.include_router(chat_router)


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    """Malformed request bodies get the same {message} shape as every other error."""
    logger.warning(f"[API REQUEST] Rejected {request.url.path}: {len(exc.errors())} validation error(s)")
    return JSONResponse({"message": "Invalid request body"}, status_code=400)
