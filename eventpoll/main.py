from contextlib import asynccontextmanager

from fastapi import FastAPI

from eventpoll.api.routes import health, sources
from eventpoll.core.config import settings
from eventpoll.core.logging import get_logger
from eventpoll.services.adapter_service import init_adapters, shutdown_adapters

log = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info(f"Starting application in {settings.ENV.upper()} mode")

    # Startup: a misconfigured adapter is fatal, same as for the standalone runner
    try:
        await init_adapters(settings)
    except Exception:
        log.exception("Failed to start adapters")
        await shutdown_adapters()
        raise

    yield

    log.info("Shutting down adapters...")
    await shutdown_adapters()
    log.info("Application shutdown complete")


app = FastAPI(
    title="Event Poller",
    description="Incremental polling connectors for SaaS security event APIs",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.docs_enabled else None,
    redoc_url="/redoc" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
    debug=settings.debug_enabled,
)


app.include_router(health.router)
app.include_router(sources.router)
