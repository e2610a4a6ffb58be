"""FastAPI application."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

import adagent.models  # noqa: F401
from adagent.config import get_settings
from adagent.database import Base, engine
from adagent.errors import register_exception_handlers
from adagent.logging_config import configure_logging
from adagent.middleware import AgentAPIMiddleware
from adagent.routers.admin import router as admin_router
from adagent.routers.agent import router as agent_router
from adagent.routers.bootstrap import router as bootstrap_router
from adagent.services.audit import get_audit_writer
from adagent.services.ratelimit import get_rate_limiter, prune_buckets


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Configure logging and the schema, and prune idle rate-limit buckets.

    On shutdown the pruning task is cancelled and queued audits are flushed.

    Yields
    ------
    None
        Runs the application lifespan.
    """
    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.log_json)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    pruning = asyncio.create_task(
        prune_buckets(
            get_rate_limiter(),
            interval_seconds=settings.rate_limit_cleanup_interval_seconds,
        ),
        name="rate-limit-pruning",
    )
    yield
    pruning.cancel()
    try:
        await pruning
    except asyncio.CancelledError:
        pass
    await get_audit_writer().close()


app = FastAPI(title=get_settings().app_name, lifespan=lifespan)
app.add_middleware(AgentAPIMiddleware)
register_exception_handlers(app)
app.include_router(bootstrap_router)
app.include_router(admin_router)
app.include_router(agent_router)
