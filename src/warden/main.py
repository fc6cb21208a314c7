"""FastAPI application factory.

Learn: App factory pattern: create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown of the process-wide handles:

    app.state.session_factory  → credential store sessions
    app.state.redis            → Redis client (None when running without it)
    app.state.registry         → session registry (Redis or in-memory)
    app.state.issuer           → token issuer
    app.state.activity_logger  → audit writer

Routes and dependencies read these from app.state, never from module
globals, so tests can build an app and wire their own handles in.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from warden import __version__
from warden.api import api_router
from warden.audit.logger import ActivityLogger
from warden.auth.jwt import TokenIssuer
from warden.config import settings
from warden.db.engine import build_engine, build_session_factory
from warden.errors import register_exception_handlers
from warden.sessions.registry import (
    InMemorySessionRegistry,
    RedisSessionRegistry,
    connect_redis,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown. Redis is required outside development: a production
    server without the session registry would be unable to log anyone in.
    """
    logger.info(
        "warden.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    engine = build_engine(settings.database_url, echo=settings.debug)
    session_factory = build_session_factory(engine)
    app.state.session_factory = session_factory
    app.state.issuer = TokenIssuer(
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expire_minutes=settings.token_expire_minutes,
    )
    app.state.activity_logger = ActivityLogger(
        session_factory, timeout=settings.store_timeout_seconds
    )

    try:
        redis = await connect_redis(settings.redis_url)
        app.state.redis = redis
        app.state.registry = RedisSessionRegistry(
            redis, timeout=settings.registry_timeout_seconds
        )
        logger.info("warden.redis_connected", url=settings.redis_url)
    except Exception as e:
        if not settings.is_development:
            logger.error("warden.redis_unavailable", error=str(e))
            await engine.dispose()
            raise
        # Dev only: sessions live in this process and die with it
        logger.warning("warden.redis_unavailable_using_memory", error=str(e))
        app.state.redis = None
        app.state.registry = InMemorySessionRegistry()

    yield

    logger.info("warden.shutdown")
    if app.state.redis is not None:
        await app.state.redis.aclose()
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Warden",
        description="Authentication, single-session enforcement, and RBAC for users and admins",
        version=__version__,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    from warden.middleware.rate_limit import RateLimitMiddleware
    from warden.middleware.request_id import RequestIdMiddleware
    from warden.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: warden.main:app)
app = create_app()
