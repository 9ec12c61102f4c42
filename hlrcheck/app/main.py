# hlrcheck/app/main.py
"""
FastAPI application entrypoint.

- create_app() factory (tests build their own instance)
- CORS + request logging middleware
- routers under /api, batch progress WebSocket under /ws
- /metrics (Prometheus), /api/health, /ready
- startup: create tables; shutdown: log batches still running
- Use: uvicorn hlrcheck.app.main:app --reload
"""

import logging
import time
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
import redis
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from hlrcheck.app.config import settings
from hlrcheck.app.db import engine, init_db
from hlrcheck.app.middleware.request_logger import RequestLoggerMiddleware
from hlrcheck.app.routers import admin, auth, email, export_templates, hlr, ws_batches
from hlrcheck.app.services.batch_processor import active_batches
from hlrcheck.app.services.ws_broker import ws_broker

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

API_ROUTERS = (auth.router, hlr.router, email.router, admin.router, export_templates.router)


def create_app() -> FastAPI:
    app = FastAPI(
        title="HLR Checker",
        description="HLR phone lookups and email verification with batch processing",
        version="1.0.0",
    )
    started_at = time.time()

    # ---------------------
    # Middleware
    # ---------------------
    allow_origins = [o.strip() for o in settings.CORS_ALLOW_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggerMiddleware)

    # ---------------------
    # Routers
    # ---------------------
    for router in API_ROUTERS:
        app.include_router(router, prefix="/api")
    app.include_router(ws_batches.router)
    logger.info("Routers included: %d", len(API_ROUTERS) + 1)

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # ---------------------
    # Health & Readiness
    # ---------------------
    @app.get("/api/health")
    def health():
        return {
            "status": "ok",
            "uptime_seconds": int(time.time() - started_at),
            "active_batches": active_batches(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/ready")
    def ready():
        checks = {}

        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            checks["db"] = "ok"
        except SQLAlchemyError as e:
            checks["db"] = f"error: {str(e)[:200]}"

        if settings.REDIS_URL:
            try:
                redis.from_url(settings.REDIS_URL).ping()
                checks["redis"] = "ok"
            except redis.RedisError as e:
                checks["redis"] = f"error: {str(e)[:200]}"
        else:
            checks["redis"] = "disabled"

        ready_ok = all(v in ("ok", "disabled") for v in checks.values())
        return JSONResponse(
            status_code=200 if ready_ok else 503,
            content={"status": "ready" if ready_ok else "not_ready", "checks": checks},
        )

    # ---------------------
    # Lifecycle
    # ---------------------
    @app.on_event("startup")
    def _startup():
        init_db()
        logger.info("Database initialised")

    @app.on_event("shutdown")
    async def _shutdown():
        running = active_batches()
        if running:
            # left as-is in the DB; resume picks up the remainder
            logger.warning("Shutting down with %d active batches: %s", len(running), running)
        await ws_broker.close()

    return app


app = create_app()
