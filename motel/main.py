"""
Main FastAPI application
"""
import json
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from motel.config.database import DatabaseConfig
from motel.config.settings import settings
from motel.context import build_context
from motel.database.db_operations import DBOperations
from motel.services.period_catalog import seed_default_periods
from motel.utils.exceptions import DependencyError, PMSError

from motel.routes import (
    auth,
    users,
    rooms,
    periods,
    reservations,
    customers,
    products,
    orders,
    dashboard,
)

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events"""
    # Startup
    db_config = DatabaseConfig()
    await db_config.connect_db()
    await db_config.ensure_indexes()
    db = DBOperations(db_config)
    await seed_default_periods(db)
    pms = build_context(db)
    await pms.periods.refresh()
    app.state.db_config = db_config
    app.state.pms = pms
    logger.info("🚀 %s v%s started (conflict policy: %s)",
                settings.APP_NAME, settings.VERSION, settings.CONFLICT_CHECK_POLICY)
    yield
    # Shutdown
    await db_config.close_db()
    logger.info("👋 Application shutdown")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PMSError)
async def pms_exception_handler(request: Request, exc: PMSError):
    content = {"success": False, "detail": exc.message, **exc.payload}
    headers = None
    if isinstance(exc, DependencyError):
        headers = {"Retry-After": "5"}
        logger.error("❌ %s %s - storage unavailable: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Round-trip through json with default=str to handle non-serializable objects (e.g. ValueError)
    safe_errors = json.loads(json.dumps(exc.errors(), default=str))
    logger.warning("❌ 422 VALIDATION ERROR on %s %s: %s", request.method, request.url.path,
                   json.dumps(safe_errors))
    return JSONResponse(status_code=422, content={"detail": safe_errors})


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time
    logger.info("🌐 %s %s - %s (%.2fs)", request.method, request.url.path, response.status_code, duration)
    return response


# Include routers
app.include_router(auth.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(rooms.router, prefix="/api")
app.include_router(periods.router, prefix="/api")
app.include_router(reservations.router, prefix="/api")
app.include_router(customers.router, prefix="/api")
app.include_router(products.router, prefix="/api")
app.include_router(orders.router, prefix="/api")
app.include_router(dashboard.router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "app": settings.APP_NAME,
        "version": settings.VERSION,
        "status": "running",
    }


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint; reports a degraded period catalog"""
    pms = getattr(request.app.state, "pms", None)
    catalog = pms.periods.status() if pms else None
    degraded = bool(catalog and catalog["degraded"])
    return {"status": "degraded" if degraded else "healthy", "periodCatalog": catalog}
