"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tutorug.auth.router import router as auth_router
from tutorug.config import get_settings
from tutorug.database import close_db, init_db
from tutorug.health.router import router as health_router
from tutorug.middleware import setup_middleware
from tutorug.payments.router import router as payments_router
from tutorug.quizzes.router import router as quizzes_router
from tutorug.redis_client import close_redis, init_redis
from tutorug.reputation.router import router as reputation_router
from tutorug.subscriptions.router import router as subscriptions_router
from tutorug.tutor.router import router as tutor_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="TutorUG API",
        description="Backend API for TutorUG — AI tutoring for Ugandan O-Level students",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(reputation_router)
    app.include_router(subscriptions_router)
    app.include_router(payments_router)
    app.include_router(quizzes_router)
    app.include_router(tutor_router)

    return app


app = create_app()
