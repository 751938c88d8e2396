"""API routes."""

from statutory_engine.api.routes.health import router as health_router
from statutory_engine.api.routes.statutory import router as statutory_router

__all__ = ["health_router", "statutory_router"]
