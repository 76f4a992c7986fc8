import logging
import time
from pathlib import Path
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import sessionmaker

from craftstore.core.cache import CacheService
from craftstore.core.config import Settings, get_settings
from craftstore.core.errors import register_exception_handlers
from craftstore.core.logging import configure_logging
from craftstore.core.rate_limit import RateLimiter
from craftstore.db.session import get_session_factory
from craftstore.dependencies import Repositories
from craftstore.routers import (
    admin_analytics,
    admin_categories,
    admin_orders,
    admin_products,
    auth,
    categories,
    orders,
    products,
    wishlist,
)
from craftstore.services.uploads import PUBLIC_PREFIX

logger = logging.getLogger("craftstore.http")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def create_app(settings: Optional[Settings] = None, session_factory: Optional[sessionmaker] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title=settings.project_name)
    register_exception_handlers(app)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        logger.info(
            "request_completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response

    cache = CacheService(
        enabled=settings.cache_enabled,
        default_ttl=settings.cache_default_ttl,
        max_keys=settings.cache_max_keys,
        ttls=settings.cache_ttls(),
    )
    app.state.cache = cache
    app.state.repositories = Repositories.build(session_factory or get_session_factory(), cache)
    app.state.login_limiter = RateLimiter(
        max_requests=settings.login_rate_limit_max_attempts,
        window_seconds=settings.login_rate_limit_window_seconds,
    )

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount(PUBLIC_PREFIX, StaticFiles(directory=str(upload_dir)), name="uploads")

    for module in (
        auth,
        categories,
        products,
        orders,
        wishlist,
        admin_products,
        admin_categories,
        admin_orders,
        admin_analytics,
    ):
        app.include_router(module.router)

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "ok", "cache": cache.stats()}

    return app


app = create_app()
