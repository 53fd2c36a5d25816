from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import structlog
from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

# Internal Imports
from photojobs.core.config import settings
from photojobs.core.dependencies import get_edit_service, get_history_store
from photojobs.core.exceptions import (
    ProviderNotConfiguredError,
    UpstreamError,
    ValidationException,
)
from photojobs.core.logging import configure_logging
from photojobs.core.telemetry import setup_telemetry
from photojobs.domain.interfaces import HistoryStore
from photojobs.domain.models import EditSubmitBody, HistoryFilter
from photojobs.services.edit_service import EditService
from photojobs.services.model_catalog import SUPPORTED_MODELS

# 1. Configure Logging
configure_logging(json_logs=(settings.ENV == "production"), log_level=settings.LOG_LEVEL)
logger = structlog.get_logger()


# 2. Lifespan (Startup/Shutdown)
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("startup_initiated", env=settings.ENV, default_model=settings.default_model)
    setup_telemetry()

    yield

    logger.info("shutdown_initiated")


# 3. Create Main App
app = FastAPI(title=settings.APP_NAME, lifespan=lifespan, version="1.0.0")


# 4. Exception Handlers
@app.exception_handler(ValidationException)
async def validation_error_handler(request: Request, exc: ValidationException):
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})


@app.exception_handler(ProviderNotConfiguredError)
async def provider_not_configured_handler(request: Request, exc: ProviderNotConfiguredError):
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    logger.warning("upstream_error", error=str(exc), upstream_status=exc.status_code, path=request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled_exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "An unexpected error occurred.",
        },
    )


# 5. Edit endpoint (queue submit + status polling)
@app.post("/api/fal/nano-banana/edit")
async def submit_edit_endpoint(
    body: Optional[EditSubmitBody] = None, service: EditService = Depends(get_edit_service)
) -> Dict[str, Any]:
    """
    Queue an image edit. Returns the requestId to poll with.
    """
    return await service.submit(body)


@app.get("/api/fal/nano-banana/edit")
async def edit_status_endpoint(
    request_id: Optional[str] = Query(default=None, alias="requestId"),
    model: Optional[str] = None,
    service: EditService = Depends(get_edit_service),
) -> Dict[str, Any]:
    """
    Check if the edit is ready. Images are included once status is COMPLETED.
    """
    return await service.status(request_id, model)


# 6. Setup / History
@app.get("/api/v1/setup/status")
def setup_status_endpoint() -> Dict[str, Any]:
    return {
        "fal": {
            "configured": bool((settings.FAL_KEY or "").strip()),
            "model": settings.default_model,
            "supportedModels": SUPPORTED_MODELS,
        }
    }


@app.get("/api/v1/photo-generations")
async def photo_generations_endpoint(
    tool: Optional[str] = None,
    property_id: Optional[str] = Query(default=None, alias="propertyId"),
    contact_id: Optional[str] = Query(default=None, alias="contactId"),
    limit: int = Query(default=settings.HISTORY_LIMIT, ge=1),
    history: HistoryStore = Depends(get_history_store),
) -> Dict[str, Any]:
    entries = await history.list(
        HistoryFilter(tool=tool, property_id=property_id, contact_id=contact_id), limit=limit
    )
    return {"success": True, "data": [e.model_dump(mode="json") for e in entries]}


@app.get("/health")
def health_check():
    return {"status": "ok", "env": settings.ENV}
