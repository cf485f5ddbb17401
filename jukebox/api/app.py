import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from jukebox.api.routes import music, stats, tracking
from jukebox.app_settings import get_settings
from jukebox.services.analytics_store import get_analytics_store
from jukebox.services.errors import PersistenceFailure
from jukebox.services.reporting import get_reporting_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.debug_logging:
        logging.getLogger("jukebox").setLevel(logging.DEBUG)

    store = get_analytics_store()
    try:
        store.init()
    except PersistenceFailure:
        # Leave the store uninitialized; every analytics route answers 503
        logger.exception("Could not load analytics snapshot")

    if not settings.music_dir.is_dir():
        logger.warning(f"Music directory {settings.music_dir} does not exist")
    logger.info(f"Serving music from {settings.music_dir}")
    logger.info(f"Analytics snapshot at {settings.db_path}")
    logger.info(f"Stats graph showing last {settings.stats_days} days")

    yield

    get_analytics_store().close()


settings = get_settings()

app = FastAPI(
    title="Jukebox API",
    description="Music jukebox with play, download and visit analytics",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(tracking.router, prefix="/api", tags=["tracking"])
app.include_router(music.router, prefix="/api", tags=["music"])
app.include_router(stats.router, prefix="/api", tags=["stats"])

app.mount("/music", StaticFiles(directory=settings.music_dir, check_dir=False), name="music")


@app.get("/")
async def root():
    return {"message": "Jukebox API", "version": "1.0.0"}


@app.get("/health")
async def health():
    """Health check with analytics store and cache stats."""
    try:
        store_stats = get_analytics_store().get_stats()
        cache_stats = get_reporting_service().cache.get_stats()
        status = "healthy" if store_stats["ready"] and not store_stats["persistence_error"] else "degraded"
        return {
            "status": status,
            "store": store_stats,
            "cache": cache_stats,
        }
    except Exception as e:
        return {
            "status": "degraded",
            "error": str(e),
        }
