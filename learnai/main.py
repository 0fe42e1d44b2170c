"""
Main application entry point for the LearnAI progress engine.

This module builds the FastAPI application, registers the routers and the
error handlers, and manages the service container's lifetime.

Usage:
    - Direct: python -m learnai.main
    - ASGI server: uvicorn --factory learnai.main:create_app
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from learnai.api import learning_router, progress_router, recommendations_router
from learnai.api.schemas import ErrorResponse
from learnai.common.config import AppConfig, get_config
from learnai.common.error_handling import (
    LearnAIError,
    NotFoundError,
    TransientIOError,
    ValidationError,
    error_response,
    log_error,
)
from learnai.common.logger import app_logger, configure_from_settings
from learnai.container import ServiceContainer, create_container

# Setup module logger
logger = app_logger.getChild("main")

ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


def status_for(error: LearnAIError) -> int:
    if isinstance(error, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, TransientIOError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app(config: Optional[AppConfig] = None, container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Application configuration, defaults to ``get_config()``
        container: Prebuilt services; when omitted the SQL-backed container
            is created on startup

    Returns:
        Configured application
    """
    config = config or (container.config if container else get_config())
    configure_from_settings(config.logging)

    app = FastAPI(
        title="LearnAI Progress API",
        description="Mastery tracking, spaced repetition and learning path recommendations",
        version=config.version,
        debug=config.api.debug,
    )
    app.state.config = config
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for router in (progress_router, recommendations_router, learning_router):
        app.include_router(router, prefix=config.api.prefix, responses=ERROR_RESPONSES)

    @app.exception_handler(LearnAIError)
    async def learnai_error_handler(request: Request, exc: LearnAIError) -> JSONResponse:
        status_code = status_for(exc)
        level = logging.WARNING if status_code < 500 else logging.ERROR
        log_error(exc, level=level, include_stack_trace=status_code >= 500,
                  context={"path": request.url.path}, log=logger)
        return JSONResponse(
            status_code=status_code,
            content=error_response(exc, include_details=not config.is_production),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        error_details = [
            {
                "location": list(error.get("loc", [])),
                "message": error.get("msg", "Unknown validation error"),
                "type": error.get("type", ""),
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"status": "error", "message": "Validation error", "details": error_details},
        )

    @app.on_event("startup")
    async def startup_event():
        """Initialize services on application startup."""
        if app.state.container is not None:
            return
        try:
            app.state.container = await create_container(config)
            logger.info("Application startup complete")
        except Exception as e:
            logger.error(f"Failed to initialize application: {str(e)}")
            raise

    @app.on_event("shutdown")
    async def shutdown_event():
        """Release the database engine and the cache on shutdown."""
        if app.state.container is not None:
            await app.state.container.close()
        logger.info("Application shutdown complete")

    @app.get("/")
    async def root():
        return {"message": "Welcome to the LearnAI Progress API"}

    @app.get("/health")
    async def health():
        return {"status": "ok", "environment": config.environment.env}

    return app


# Entry point for running the application directly
if __name__ == "__main__":
    import uvicorn

    settings = get_config()
    logger.info(f"Starting server on {settings.api.host}:{settings.api.port}")
    uvicorn.run(
        "learnai.main:create_app",
        factory=True,
        host=settings.api.host,
        port=settings.api.port,
        log_level=settings.logging.level.lower(),
    )
