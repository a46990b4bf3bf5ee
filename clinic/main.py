from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
import time
import logging

from .api.v1.appointments import router as appointments_router
from .api.v1.auth import router as auth_router
from .api.v1.cron import router as cron_router
from .api.v1.medical_history import router as medical_history_router
from .api.v1.payments import router as payments_router
from .api.v1.prescriptions import router as prescriptions_router
from .api.v1.schedule import router as schedule_router
from .core.config import settings
from .core.database import get_db, init_db

logging.basicConfig(level=logging.DEBUG if settings.DEBUG else logging.INFO)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

# name -> router, also listed by /api/v1/info
ROUTERS = {
    "authentication": auth_router,
    "appointments": appointments_router,
    "schedule": schedule_router,
    "payments": payments_router,
    "prescriptions": prescriptions_router,
    "medical_history": medical_history_router,
    "reminders": cron_router,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    backend = settings.get_database_url.split(":", 1)[0]
    logger.info(f"Starting {settings.APP_NAME} for {settings.CLINIC_NAME} ({settings.CLINIC_TIMEZONE}), database: {backend}")
    if not settings.SMTP_HOST:
        logger.warning("SMTP_HOST is not set, email notifications will only be logged")
    if not settings.REALTIME_WEBHOOK_URL:
        logger.info("REALTIME_WEBHOOK_URL is not set, real-time events are disabled")

    try:
        init_db()
    except Exception as e:
        logger.error(f"Could not create tables: {str(e)}")
        raise

    yield
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Clinic appointment booking, scheduling and billing",
    openapi_url=f"{API_PREFIX}/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# TestClient sends "testserver" as host
if not settings.TESTING:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=["localhost", "127.0.0.1", "*.localhost"]
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started
    response.headers["X-Process-Time"] = f"{elapsed:.4f}"
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} in {elapsed * 1000:.1f}ms")
    return response


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail
    if exc.status_code == 404 and message == "Not Found":
        message = "The requested resource was not found"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": message},
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query"))
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid request"
    logger.info(f"Rejected {request.method} {request.url.path}: {message}")
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {str(exc)}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


for router in ROUTERS.values():
    app.include_router(router, prefix=API_PREFIX)


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Liveness plus a round trip to the database."""
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        logger.error(f"Health check could not reach the database: {str(e)}")
        database = "unavailable"
    return {
        "status": "healthy" if database == "ok" else "degraded",
        "database": database,
        "version": settings.VERSION,
    }


@app.get("/")
async def root():
    return {
        "message": f"Welcome to the {settings.CLINIC_NAME} API",
        "version": settings.VERSION,
        "docs": "/docs",
        "health": "/health",
    }


@app.get(f"{API_PREFIX}/info")
async def api_info():
    endpoints = {}
    for name, router in ROUTERS.items():
        endpoints[name] = f"{API_PREFIX}{router.prefix}"
    endpoints["openapi"] = app.openapi_url
    return {
        "name": settings.APP_NAME,
        "version": settings.VERSION,
        "clinic": settings.CLINIC_NAME,
        "timezone": settings.CLINIC_TIMEZONE,
        "endpoints": endpoints,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("clinic.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
