import time

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from basma_clinic import __version__
from basma_clinic.config import get_settings
from basma_clinic.database import init_db, ping_db
from basma_clinic.exceptions import RecordValidationError
from basma_clinic.i18n import Translator, resolve_language
from basma_clinic.rate_limit import limiter
from basma_clinic.utils.logger import get_logger

logger = get_logger("main")
settings = get_settings()

# Routers
from basma_clinic.routers import categories as categories_router
from basma_clinic.routers import patients as patients_router
from basma_clinic.routers import sessions as sessions_router
from basma_clinic.services.socket_service import get_socket_app

app = FastAPI(
    title="Basma Clinic API",
    version=__version__,
    debug=settings.APP_DEBUG,
)

# Mount Socket.IO app
socket_app = get_socket_app()
app.mount("/socket.io", socket_app)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(patients_router.router)
app.include_router(sessions_router.router)
app.include_router(categories_router.router)


def _translator(request: Request) -> Translator:
    return Translator(resolve_language(request.query_params.get("lang"), request.headers.get("accept-language")))


def _field_name(loc) -> str:
    parts = [str(p) for p in loc]
    if parts and parts[0] in ("body", "query", "path", "header"):
        parts = parts[1:]
    return ".".join(parts)


# Error handlers
@app.exception_handler(RecordValidationError)
async def record_validation_handler(request: Request, exc: RecordValidationError):
    t = _translator(request)
    logger.warning(f"Record validation failed: {exc.errors} - Path: {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": t(exc.message_key),
            "errors": [
                {"field": field, "message": t(key), "code": key}
                for field, key in exc.errors.items()
            ],
            "status_code": 422,
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP {exc.status_code}: {exc.detail} - Path: {request.url.path}")
    content = {"detail": exc.detail, "status_code": exc.status_code}
    message_key = getattr(exc, "message_key", None)
    if message_key:
        content["message"] = _translator(request)(message_key)
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    t = _translator(request)
    errors = []
    for err in exc.errors():
        key = (err.get("ctx") or {}).get("message_key")
        errors.append({
            "field": _field_name(err.get("loc") or ()),
            "message": t(key) if key else err.get("msg", ""),
            "code": key or err.get("type", "invalid"),
        })
    logger.warning(f"Validation error: {errors} - Path: {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": t("errors.validationFailed"), "errors": errors, "status_code": 422},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "message": _translator(request)("errors.internal"),
            "status_code": 500,
        },
    )


# Middleware Logging
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    logger.info(
        f"{request.method} {request.url.path} - "
        f"Status: {response.status_code} - "
        f"Time: {process_time:.3f}s"
    )
    return response


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


@app.get("/readyz")
async def readyz():
    if not await ping_db():
        raise HTTPException(status_code=503, detail="Database not ready")
    return {"status": "ok", "database": "up", "backend": settings.RECORD_BACKEND}


# Global scheduler instance
scheduler = None


@app.on_event("startup")
async def on_startup():
    from apscheduler.schedulers.asyncio import AsyncIOScheduler
    from basma_clinic.services.reconcile_service import run_scheduled_reconcile

    global scheduler

    logger.info(f"Starting {settings.APP_NAME} ({settings.APP_ENV})...")
    await init_db()
    logger.info("Database initialized")

    if not settings.RECONCILE_ENABLED:
        return
    # Periodic sweep that keeps sessionCount / sessionsIndex in line with the sessions
    try:
        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            run_scheduled_reconcile,
            trigger="interval",
            minutes=settings.RECONCILE_INTERVAL_MINUTES,
            id="reconcile_sessions_index",
            replace_existing=True,
        )
        scheduler.start()
        logger.info(f"Index reconcile scheduler started (every {settings.RECONCILE_INTERVAL_MINUTES} min)")
    except Exception as e:
        logger.error(f"Failed to start index reconcile scheduler: {e}")


@app.on_event("shutdown")
async def on_shutdown():
    global scheduler
    if scheduler:
        try:
            scheduler.shutdown()
            logger.info("Index reconcile scheduler stopped")
        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")
        scheduler = None
    logger.info("Shutting down application...")
