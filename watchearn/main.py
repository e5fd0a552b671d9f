import time
import uuid
from pathlib import Path

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from fastapi.staticfiles import StaticFiles

from watchearn.container import Container, build_container
from watchearn.core.config import Settings, get_settings
from watchearn.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from watchearn.core.logging import bind_request_id, clear_request_context, configure_logging, get_logger
from watchearn.routers import admin, auth, me, plans, referrals, videos, wallet

log = get_logger(__name__)

API_PREFIX = "/api/v1"


def create_app(settings: Settings | None = None, container: Container | None = None) -> FastAPI:
    """A prebuilt container (tests) skips building one from settings at startup."""
    settings = settings or (container.settings if container else get_settings())
    configure_logging(debug=settings.debug, env=settings.env)

    app = FastAPI(
        title="WatchEarn API",
        version="1.0.0",
        default_response_class=ORJSONResponse,
    )
    if container is not None:
        app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_id_middleware(request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        clear_request_context()
        bind_request_id(request_id)
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        log.info(
            "request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        response.headers["X-Request-ID"] = request_id
        return response

    app.add_exception_handler(AppError, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Routers
    app.include_router(auth.router, prefix=f"{API_PREFIX}/auth", tags=["auth"])
    app.include_router(me.router, prefix=f"{API_PREFIX}/me", tags=["me"])
    app.include_router(plans.router, prefix=f"{API_PREFIX}/plans", tags=["plans"])
    app.include_router(videos.router, prefix=f"{API_PREFIX}/videos", tags=["videos"])
    app.include_router(wallet.router, prefix=f"{API_PREFIX}/wallet", tags=["wallet"])
    app.include_router(referrals.router, prefix=f"{API_PREFIX}/referrals", tags=["referrals"])
    app.include_router(admin.router, prefix=f"{API_PREFIX}/admin", tags=["admin"])

    if settings.storage_backend == "local" and settings.storage_public_base_url.startswith("/"):
        media_root = Path(settings.storage_local_path)
        media_root.mkdir(parents=True, exist_ok=True)
        app.mount(settings.storage_public_base_url.rstrip("/"), StaticFiles(directory=media_root), name="media")

    @app.on_event("startup")
    async def startup():
        if settings.sentry_dsn:
            import sentry_sdk
            sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
            log.info("startup", msg="Sentry enabled")
        if not hasattr(app.state, "container"):
            app.state.container = build_container(settings)
        await app.state.container.datastore.connect()
        log.info("startup", msg="Datastore connected", backend=settings.datastore_backend)
        await app.state.container.accounts.ensure_bootstrap_admin()

    @app.on_event("shutdown")
    async def shutdown():
        if hasattr(app.state, "container"):
            await app.state.container.datastore.close()

    @app.get("/health")
    async def health():
        """Health check for load balancers and monitoring."""
        return {"status": "ok"}

    return app


app = create_app()
