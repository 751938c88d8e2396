"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from statutory_engine import __version__
from statutory_engine.api.routes import health_router, statutory_router
from statutory_engine.database import dispose_db, init_db
from statutory_engine.errors import InvalidRuleData, StatutoryEngineError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    init_db()
    yield
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Statutory Deduction Engine API",
        description="Statutory deductions, reliefs and cumulative income tax",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidRuleData)
    async def invalid_rule_data_handler(request: Request, exc: InvalidRuleData) -> JSONResponse:
        """Report malformed reference data."""
        logger.warning("Invalid rule data: %s", exc)
        content = {"detail": str(exc), "code": "INVALID_RULE_DATA"}
        if exc.rule_id is not None:
            content["rule_id"] = str(exc.rule_id)
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=content)

    @app.exception_handler(StatutoryEngineError)
    async def engine_error_handler(request: Request, exc: StatutoryEngineError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": str(exc), "code": "STATUTORY_ENGINE_ERROR"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    app.include_router(health_router)
    app.include_router(statutory_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
