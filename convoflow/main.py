"""FastAPI application factory and HTTP translation of pipeline errors."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from convoflow.config import get_settings
from convoflow.exceptions import (
    CollaboratorUnavailable,
    PipelineError,
    PipelineFailed,
    PipelineValidationError,
    StateViolation,
    StorageUnavailable,
)
from convoflow.infra.logging_config import LoggingConfig, get_logger
from convoflow.routers.conversations import router as conversations_router
from convoflow.schemas.conversation import ErrorResponse

logger = get_logger("api")

_STATUS_BY_ERROR: list[tuple[type[PipelineError], int]] = [
    (PipelineValidationError, 400),
    (StateViolation, 409),
    (PipelineFailed, 503),
    (CollaboratorUnavailable, 503),
    (StorageUnavailable, 503),
]


def _error(status: int, message: str) -> JSONResponse:
    body = ErrorResponse(error=message).model_dump(exclude_none=True)
    return JSONResponse(status_code=status, content=body)


def _status_for(exc: PipelineError) -> int:
    for error_cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status
    return 500


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    status = _status_for(exc)
    if status >= 500:
        logger.error(
            "Pipeline failure on %s: %s %s", request.url.path, exc.message, exc.context()
        )
    else:
        logger.info(
            "Pipeline request refused on %s: %s %s",
            request.url.path,
            exc.message,
            exc.context(),
        )
    return _error(status, exc.message)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info("Invalid request body on %s: %s", request.url.path, exc.errors())
    return _error(400, "Invalid request body")


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error on %s", request.url.path)
    return _error(500, "Internal server error")


def create_app(testing: bool = False) -> FastAPI:
    LoggingConfig()
    settings = get_settings()
    app = FastAPI(title=settings.app_name)
    if not testing:
        logger.info(
            "Starting %s env=%s pipeline_mode=%s",
            settings.app_name,
            settings.environment,
            settings.pipeline_mode,
        )

    app.add_exception_handler(PipelineError, pipeline_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(conversations_router)

    @app.get("/health", tags=["system"])
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
