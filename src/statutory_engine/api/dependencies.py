"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_engine.calculators.engine import StatutoryEngine
from statutory_engine.config import get_settings
from statutory_engine.database import init_db
from statutory_engine.rules.cache import RuleSetCache


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


@lru_cache
def get_statutory_engine() -> StatutoryEngine:
    """Shared engine instance; it holds no per-call state."""
    return StatutoryEngine(get_settings())


@lru_cache
def get_rule_set_cache() -> RuleSetCache:
    return RuleSetCache()


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Engine = Annotated[StatutoryEngine, Depends(get_statutory_engine)]
RuleCache = Annotated[RuleSetCache, Depends(get_rule_set_cache)]
