import logging
import sys
import time
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.deps import get_kv_store, get_settings
from src.core.ports.kv import KVStoreError
from src.rules.loader import load_rules
from src.shell.http.health import (
    create_health_router,
    get_metrics_collector,
    mark_startup_complete,
    setup_default_health_checks,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "invite-inbox"
SERVICE_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Load rules and validate on startup (fail-fast)
    try:
        rules = load_rules(settings.rules_path)
        logger.info(
            "Rules loaded from %s (%s %s)", settings.rules_path, rules.service.name, rules.service.version
        )
    except (FileNotFoundError, ValueError) as e:
        logger.critical("Rules load failed: %s", e)
        sys.exit(1)

    override = app.dependency_overrides.get(get_kv_store)
    setup_default_health_checks(override() if override else get_kv_store(settings))
    mark_startup_complete()
    yield


app = FastAPI(
    title="Invite Inbox API",
    version=SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Routers ---
from src.api.routes import auth, invite_codes, messages, signup, users  # noqa: E402

app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(invite_codes.router, prefix="/invite-codes", tags=["Invite Codes"])
app.include_router(signup.router, prefix="/signup", tags=["Signup"])
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(messages.router, prefix="/messages", tags=["Messages"])
app.include_router(create_health_router(service=SERVICE_NAME, version=SERVICE_VERSION))


# --- Request logging ---
@app.middleware("http")
async def log_requests(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    get_metrics_collector().record_request(elapsed_ms, response.status_code)
    logger.info(
        "%s %s -> %d (%.1fms)", request.method, request.url.path, response.status_code, elapsed_ms
    )
    return response


# --- Store failures ---
@app.exception_handler(KVStoreError)
async def kv_store_error_handler(request: Request, exc: KVStoreError) -> JSONResponse:
    logger.error("KV store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": {"code": "store-unavailable", "message": "Storage temporarily unavailable"}},
    )


# CORS (origins from rules.yaml)
def _cors_origins() -> list[str]:
    try:
        return load_rules(get_settings().rules_path).cors.allowed_origins
    except (FileNotFoundError, ValueError):
        # lifespan reports the broken rules file
        return []


origins = _cors_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials="*" not in origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
