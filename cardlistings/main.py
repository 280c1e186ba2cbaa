import os
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from cardlistings.api.routes import router as api_router
from cardlistings.cache import TTLCache, ttl_from_env
from cardlistings.db import Base, engine
from cardlistings.errors import InvalidTransition, NotFound, PersistenceUnavailable
from cardlistings.utils import logger, utcnow
import cardlistings.models  # noqa: F401 ensure models are imported so tables are known
from cardlistings import scheduler

# create FastAPI instance
app = FastAPI(title="cardlistings")
app.include_router(api_router)

# caches are owned by the app and handed to each request's lifecycle manager
app.state.listing_cache = TTLCache(ttl_from_env("LISTING_CACHE_TTL_SECONDS", 60))
app.state.tier_cache = TTLCache(ttl_from_env("TIER_CACHE_TTL_SECONDS", 300))
app.state.clock = utcnow


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    return JSONResponse(status_code=409, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": "Listing already removed", "code": exc.code})


@app.exception_handler(PersistenceUnavailable)
async def persistence_unavailable_handler(request: Request, exc: PersistenceUnavailable):
    logger.error("Store unavailable on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=503,
        content={"detail": "Listing store unavailable, try again", "code": exc.code, "retryable": True},
    )


@app.on_event("startup")
def on_startup_create_tables():
    # Ensure database tables are created on startup
    Base.metadata.create_all(bind=engine)
    if os.getenv("ENABLE_SCHEDULER", "0") == "1":
        scheduler.start()


@app.on_event("shutdown")
def on_shutdown_stop_scheduler():
    scheduler.shutdown()
