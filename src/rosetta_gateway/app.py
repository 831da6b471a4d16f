import logging
import traceback
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from rosetta_gateway.errors import (
    GatewayError,
    MalformedUnit,
    SilentFailureDetected,
    TransportError,
    UnrecoverableTokenLimit,
)
from rosetta_gateway.pipeline import NormalizerFactory
from rosetta_gateway.routers.normalize import router as normalize_router
from rosetta_gateway.settings import Settings

logger = logging.getLogger("rosetta_gateway")

_STATUS_CODES = {
    MalformedUnit: 422,
    SilentFailureDetected: 502,
    UnrecoverableTokenLimit: 413,
}


def status_for(error: GatewayError) -> int:
    if isinstance(error, TransportError):
        return error.status_code or 502
    for cls, status in _STATUS_CODES.items():
        if isinstance(error, cls):
            return status
    return 500


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    app = FastAPI(
        title="Rosetta Gateway",
        description="Normalize LLM output into one canonical, structurally valid form",
    )
    app.state.settings = settings
    app.state.factory = NormalizerFactory(settings)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, e: GatewayError) -> JSONResponse:
        status = status_for(e)
        logger.error(f"{e.error_type} ({status}) on {request.method} {request.url}: {e.message}")
        return JSONResponse(status_code=status, content=e.to_dict())

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, e: ValidationError) -> JSONResponse:
        logger.error(f"Validation error on {request.method} {request.url}: {e}")
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": e.errors(include_url=False)},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, e: Exception) -> JSONResponse:
        logger.error(f"Unhandled exception on {request.method} {request.url}:")
        logger.error(traceback.format_exc())
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error": str(e)},
        )

    app.include_router(normalize_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    return app
