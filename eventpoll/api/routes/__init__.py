from eventpoll.api.routes.health import router as health_router
from eventpoll.api.routes.sources import router as sources_router

__all__ = ["health_router", "sources_router"]
