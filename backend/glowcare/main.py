"""Main FastAPI application for the GlowCare backend."""
from fastapi import FastAPI, Request

from glowcare.api.routes.cache import router as cache_router
from glowcare.api.routes.plan import router as plan_router
from glowcare.api.routes.profiles import router as profiles_router
from glowcare.api.routes.recommendations import router as recommendations_router
from glowcare.api.routes.rules import router as rules_router
from glowcare.core.config import settings
from glowcare.core.logging import configure_logging
from glowcare.core.middleware import RequestIDMiddleware
from glowcare.observability.client import init_opik
from glowcare.observability.tracing import trace
from glowcare.services.cache import get_cache

configure_logging(log_level=settings.log_level)

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(RequestIDMiddleware)
app.include_router(profiles_router)
app.include_router(recommendations_router)
app.include_router(plan_router)
app.include_router(cache_router)
app.include_router(rules_router)


@app.on_event("startup")
async def startup_observability() -> None:
    """Initialize observability backends after the event loop starts."""
    init_opik()


@app.on_event("shutdown")
async def shutdown_cache() -> None:
    get_cache().close()


@app.get("/health", tags=["health"], summary="Readiness probe")
async def health_check(request: Request) -> dict[str, str]:
    """Return a simple status payload so automation can probe the API."""
    with trace("http.health_check", metadata={"route": "/health"}, request_id=request.state.request_id):
        return {"status": "ok", "cache": get_cache().backend_kind}
