import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from .admin import router as admin_router
from .booking.routes import router as booking_router
from .booking.store import StorageUnavailable
from .core.config import get_settings
from .core.db import AsyncSessionLocal, Base, engine
from .core.responses import ErrorCodes, error_json
from .public_forms import router as forms_router
from .visits import VisitTrackingMiddleware
from .visits import router as visits_router


settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "no-referrer",
    "X-Frame-Options": "DENY",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}

STATUS_REASONS = {
    status.HTTP_400_BAD_REQUEST: ErrorCodes.INVALID_REQUEST,
    status.HTTP_404_NOT_FOUND: ErrorCodes.NOT_FOUND,
    status.HTTP_429_TOO_MANY_REQUESTS: ErrorCodes.RATE_LIMITED,
}


@asynccontextmanager
async def lifespan(api_app: FastAPI):
    """Create tables on startup and dispose of the pool on shutdown."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Folio backend started")
    yield
    await engine.dispose()


app = FastAPI(title="Folio Backend", lifespan=lifespan)
app.state.session_factory = AsyncSessionLocal

app.add_middleware(VisitTrackingMiddleware, paths=settings.track_paths_list)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    return response


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(StorageUnavailable)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
    return error_json(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Storage unavailable. Please retry.",
        ErrorCodes.STORAGE_UNAVAILABLE,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info("Rejected malformed request to %s: %s", request.url.path, exc.errors())
    return error_json(status.HTTP_400_BAD_REQUEST, "Invalid request body.", ErrorCodes.INVALID_REQUEST)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        message, reason = exc.detail["error"], exc.detail.get("reason", ErrorCodes.INVALID_REQUEST)
    else:
        message = str(exc.detail)
        fallback = ErrorCodes.INTERNAL_ERROR if exc.status_code >= 500 else ErrorCodes.INVALID_REQUEST
        reason = STATUS_REASONS.get(exc.status_code, fallback)
    return error_json(exc.status_code, message, reason, headers=getattr(exc, "headers", None))


app.include_router(booking_router)
app.include_router(forms_router)
app.include_router(visits_router)
app.include_router(admin_router)


@app.get("/health")
async def healthcheck():
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("folio.main:app", host="0.0.0.0", port=8000)
