import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from newsblog.config import Settings, settings
from newsblog.errors import install_error_handlers
from newsblog.kvstore import KeyValueStore, create_kv_store
from newsblog.middleware import RequestLoggingMiddleware
from newsblog.routers import logs, newsposts, users
from newsblog.services.logging_service import LoggingService, build_audit_logger


def _common_setup(app: FastAPI, config: Settings, service: str) -> None:
    app.state.settings = config
    install_error_handlers(app)
    app.add_middleware(RequestLoggingMiddleware, service=service)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Posts API
# ---------------------------------------------------------------------------

def create_posts_app(config: Settings = settings) -> FastAPI:
    started = time.monotonic()
    app = FastAPI(
        title="News Posts API",
        description="News/blog posts with pagination, drafts and soft delete",
        version=config.APP_VERSION,
    )
    _common_setup(app, config, "posts")
    app.include_router(newsposts.router)

    @app.get("/api/health", tags=["health"])
    async def health():
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - started, 3),
            "version": config.APP_VERSION,
        }

    return app


# ---------------------------------------------------------------------------
# User service
# ---------------------------------------------------------------------------

def create_user_app(config: Settings = settings, store: KeyValueStore | None = None) -> FastAPI:
    kv_store = store if store is not None else create_kv_store(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await kv_store.connect()
        yield
        await kv_store.disconnect()

    app = FastAPI(title="User Service", version=config.APP_VERSION, lifespan=lifespan)
    app.state.kv_store = kv_store
    _common_setup(app, config, "user-service")
    app.include_router(users.router)

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "OK", "service": "user-service"}

    return app


# ---------------------------------------------------------------------------
# Logging service
# ---------------------------------------------------------------------------

def create_logging_app(
    config: Settings = settings,
    store: KeyValueStore | None = None,
    logging_service: LoggingService | None = None,
) -> FastAPI:
    kv_store = store if store is not None else create_kv_store(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Audit log files are created here, never at import time.
        if app.state.logging_service is None:
            app.state.logging_service = LoggingService(build_audit_logger(config))
        await kv_store.connect()
        await app.state.logging_service.subscribe(kv_store)
        yield
        await kv_store.disconnect()

    app = FastAPI(title="Logging Service", version=config.APP_VERSION, lifespan=lifespan)
    app.state.kv_store = kv_store
    app.state.logging_service = logging_service
    _common_setup(app, config, "logging-service")
    app.include_router(logs.router)

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "OK", "service": "logging-service"}

    return app


app = create_posts_app()
user_app = create_user_app()
logging_app = create_logging_app()
