"""
Feed Service — entry point.

Startup sequence (skipped when a FeedService is injected, as in tests):
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Create the async DB engine and tables
  3. Build the feed cache (in-memory or Redis)
  4. Wire the content store, social graph and response builder into FeedService
  5. Start the expired-entry sweeper for the in-memory cache
  6. Expose Prometheus /metrics endpoint
"""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from feedrank.cache.redis_store import RedisFeedCache
from feedrank.cache.store import FeedCache, InMemoryFeedCache
from feedrank.clients.content_store import SqlContentStore
from feedrank.clients.social_graph import SqlSocialGraph
from feedrank.clients.viewer_response import SqlResponseBuilder
from feedrank.config import FeedConfig, Settings, settings as default_settings
from feedrank.database import init_db, make_engine, make_sessionmaker
from feedrank.errors import FeedError, feed_error_body, feed_error_status
from feedrank.feeds.service import FeedService
from feedrank.routers import feed, posts, social
from feedrank.telemetry import instrument_app, setup_tracing

logging.basicConfig(
    level=default_settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_cache(settings: Settings) -> FeedCache:
    if settings.cache_backend == "redis":
        return RedisFeedCache.from_settings(settings.redis_host, settings.redis_port)
    return InMemoryFeedCache()


async def sweep_expired(cache: FeedCache, interval: int) -> None:
    """Periodically drop expired entries so idle keys don't pin memory."""
    while True:
        await asyncio.sleep(interval)
        try:
            purged = await cache.purge_expired()
        except Exception as exc:
            logger.warning("Cache sweep failed: %s", exc)
            continue
        if purged:
            logger.debug("Cache sweep purged %d expired entries", purged)


def create_app(
    settings: Optional[Settings] = None,
    feed_service: Optional[FeedService] = None,
) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage startup and shutdown of the engine, cache and sweeper."""
        logger.info("Starting Feed Service (env=%s)", settings.environment)
        if settings.tracing_enabled:
            setup_tracing(settings)

        engine = None
        sweeper = None
        if app.state.feed_service is None:
            engine = make_engine(settings.database_url)
            await init_db(engine)
            sessions = make_sessionmaker(engine)
            app.state.sessionmaker = sessions
            app.state.feed_service = FeedService(
                cache=build_cache(settings),
                store=SqlContentStore(sessions),
                social_graph=SqlSocialGraph(sessions),
                response_builder=SqlResponseBuilder(sessions),
                config=FeedConfig.from_settings(settings),
            )

        cache = app.state.feed_service.cache
        if isinstance(cache, InMemoryFeedCache):
            sweeper = asyncio.create_task(sweep_expired(cache, settings.cache_sweep_interval))

        logger.info("Feed cache backend: %s. API ready.", cache.backend)
        yield

        logger.info("Shutting down...")
        if sweeper:
            sweeper.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper
        if isinstance(cache, RedisFeedCache):
            await cache.close()
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title="Feed Service",
        description=(
            "Ranked, cached activity feeds: home, following, trending and "
            "community, with precise invalidation on content changes."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.feed_service = feed_service
    app.state.sessionmaker = None

    @app.exception_handler(FeedError)
    async def feed_error_handler(request: Request, exc: FeedError):
        return JSONResponse(status_code=feed_error_status(exc), content=feed_error_body(exc))

    # ── Routers ────────────────────────────────────────────────────────────
    app.include_router(feed.router, prefix="/feed", tags=["Feed"])
    app.include_router(feed.communities_router, prefix="/communities", tags=["Feed"])
    app.include_router(posts.router, prefix="/posts", tags=["Posts"])
    app.include_router(social.users_router, prefix="/users", tags=["Social"])
    app.include_router(social.communities_router, prefix="/communities", tags=["Social"])

    # ── Prometheus metrics endpoint ────────────────────────────────────────
    app.mount("/metrics", make_asgi_app())

    if settings.tracing_enabled:
        instrument_app(app)

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok", "service": settings.service_name}

    return app


app = create_app()
