"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from greenhouse.config import Settings, get_settings
from greenhouse.database import close_pool, ensure_schema, get_pool
from greenhouse.services.context import context_from_settings

logger = logging.getLogger("greenhouse.main")


def configure_logging(settings: Settings) -> None:
    level = logging.DEBUG if settings.DEBUG else settings.LOG_LEVEL.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    settings = get_settings()
    ctx = None
    # Startup: pool, schema, monitoring core
    pool = await get_pool()
    try:
        await ensure_schema(pool)
        ctx = context_from_settings(pool, settings)
        app.state.monitoring = ctx
        if settings.MONITOR_AUTOSTART:
            ctx.monitor.start()
        else:
            logger.info("Threshold monitoring autostart disabled")
        yield
    finally:
        # Shutdown: let an in-flight sweep finish, then close the pool
        if ctx is not None:
            await ctx.monitor.stop()
        await close_pool()


settings = get_settings()
configure_logging(settings)

app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    return {"status": "ok"}


# ── API routers ──
from greenhouse.api.monitoring import (  # noqa: E402
    alerts_router,
    breaches_router,
    monitor_router,
    readings_router,
)

app.include_router(readings_router, prefix="/api/v1")
app.include_router(alerts_router, prefix="/api/v1")
app.include_router(breaches_router, prefix="/api/v1")
app.include_router(monitor_router, prefix="/api/v1")
