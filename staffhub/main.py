import os

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .config import settings
from .db import Base, engine, SessionLocal
from .errors import register_exception_handlers
from .logging import setup_logging, RequestIdMiddleware
from .auth.router import router as auth_router
from .routes.attendance import router as attendance_router
from .routes.approvals import router as approvals_router
from .routes.leave import router as leave_router
from .routes.live_tracking import router as live_tracking_router
from .routes.locations import router as locations_router
from .routes.zones import router as zones_router
from .routes.assignments import router as assignments_router
from .routes.kmz import router as kmz_router
from .routes.system import router as system_router
from .services.auto_clock_out import AutoClockOutScheduler


logger = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origin.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    register_exception_handlers(app)

    # Routers
    app.include_router(auth_router)
    app.include_router(attendance_router)
    app.include_router(approvals_router)
    app.include_router(leave_router)
    app.include_router(live_tracking_router)
    app.include_router(locations_router)
    app.include_router(zones_router)
    app.include_router(assignments_router)
    app.include_router(kmz_router)
    app.include_router(system_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health():
        return {"success": True, "data": {"status": "ok", "environment": settings.environment}}

    app.state.auto_clock_out = AutoClockOutScheduler(SessionLocal)

    @app.on_event("startup")
    def _startup():
        logger.info("startup.begin", environment=settings.environment)
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)
        if settings.auto_clock_out_enabled:
            app.state.auto_clock_out.start()
        logger.info("startup.complete")

    @app.on_event("shutdown")
    def _shutdown():
        app.state.auto_clock_out.stop()

    return app


app = create_app()
