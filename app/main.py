"""
Starlight Entitlements API

Subscription webhooks from RevenueCat, entitlement status for the mobile app,
the daily affirmation quota and engagement streaks.
"""
from dotenv import load_dotenv
load_dotenv()

import logging
import sys
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config

# Render captures stdout/stderr, but logging module is more reliable
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True  # Override any existing configuration
)

logger = logging.getLogger(__name__)


def run_migrations(database_url: str) -> None:
    """Run Alembic migrations on startup.
    Fails startup if migrations fail, so the DB is never left out of sync."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("alembic.ini not found, skipping Alembic migrations")
        return
    try:
        alembic_cfg = Config(str(alembic_ini))
        alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
        alembic_cfg.attributes["database_url"] = database_url
        command.upgrade(alembic_cfg, "head")
        logger.info("Alembic migrations completed successfully")
    except Exception as e:
        logger.exception("Alembic migration failed: %s", e)
        raise  # Fail startup; fix migration or env and redeploy


from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.api.routes import affirmations, subscriptions, users
from app.core.config import Settings
from app.core.errors import AppError
from app.core.rate_limit import RATE_LIMIT_CODE, RATE_LIMIT_MESSAGE, limiter
from app.db.base import Base
from app.db.session import create_db_engine, create_session_factory
from app.services.entitlement_cache import create_cache
# Import all models to ensure they're registered with Base
from app.models import UserEntitlement, SubscriptionEvent, AffirmationView  # noqa: F401


def _error_body(code: str, message: str) -> dict:
    return {"success": False, "error": {"code": code, "message": message}}


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    # Refuse to start rather than accept unsigned webhooks in production
    settings.validate()

    app = FastAPI(title="Starlight Entitlements API", version="1.0.0")
    app.state.settings = settings
    app.state.limiter = limiter
    app.state.engine = create_db_engine(settings)
    app.state.session_factory = create_session_factory(app.state.engine)
    app.state.cache = create_cache(settings.redis_url, timeout_seconds=min(settings.store_timeout_seconds, 2.0))

    if not settings.revenuecat_webhook_secret:
        logger.warning(
            "[Config] REVENUECAT_WEBHOOK_SECRET not set (env=%s, test_mode=%s); "
            "webhooks are rejected unless WEBHOOK_TEST_MODE is enabled",
            settings.app_env,
            settings.webhook_test_mode,
        )

    @app.on_event("startup")
    def startup_event():
        """Create tables, then run Alembic migrations on every server restart."""
        try:
            logger.info("[DB] Creating database tables...")
            Base.metadata.create_all(bind=app.state.engine)
        except Exception as e:
            logger.error("[DB] Error creating tables: %s", e)
            raise

        if settings.run_migrations:
            run_migrations(settings.database_url)

    @app.on_event("shutdown")
    def shutdown_event():
        app.state.cache.close()
        app.state.engine.dispose()

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content=_error_body("VALIDATION_ERROR", message))

    @app.exception_handler(RateLimitExceeded)
    def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        logger.warning("[RateLimit] %s %s: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=429, content=_error_body(RATE_LIMIT_CODE, RATE_LIMIT_MESSAGE))

    # Applies GLOBAL_RATE_LIMIT to every route without its own limit
    app.add_middleware(SlowAPIMiddleware)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    app.include_router(subscriptions.router, prefix="/api/subscriptions", tags=["Subscriptions"])
    app.include_router(users.router, prefix="/api/users", tags=["Users"])
    app.include_router(affirmations.router, prefix="/api/affirmations", tags=["Affirmations"])

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
