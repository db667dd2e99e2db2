"""FastAPI application: routers, error mapping and health check."""

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from api.deps import get_database
from api.routes import (
    admin,
    analytics,
    auth,
    domains,
    favicons,
    magazine,
    profile,
    prompt_sets,
    stripe,
    team,
    tracking,
    tracking_configs,
)
from core.errors import VisicheckError
from database.connection import DatabaseConnection

logger = structlog.get_logger(__name__)

ROUTERS = (
    auth.router,
    profile.router,
    domains.router,
    prompt_sets.router,
    tracking_configs.router,
    tracking.router,
    analytics.router,
    favicons.router,
    team.router,
    stripe.router,
    admin.router,
    magazine.router,
)


async def handle_visicheck_error(request: Request, exc: VisicheckError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message, code=exc.code)
    else:
        logger.info(
            "request_rejected", path=request.url.path, status=exc.status_code, error=exc.message
        )
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


def create_app() -> FastAPI:
    """Build the API. The database must be initialized with ``init_db`` first."""
    app = FastAPI(title="Visicheck API", version="1.0.0")
    app.add_exception_handler(VisicheckError, handle_visicheck_error)

    for router in ROUTERS:
        app.include_router(router)

    @app.get("/health")
    def health(db: DatabaseConnection = Depends(get_database)):
        healthy = db.health_check()
        body = {
            "status": "ok" if healthy else "degraded",
            "database": healthy,
            "pool": db.get_pool_status(),
        }
        return JSONResponse(body, status_code=200 if healthy else 503)

    return app
