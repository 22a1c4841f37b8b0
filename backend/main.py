from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from database import get_db

# ENV
from config.env import ENV, LOG_LEVEL, CORS_ALLOWED_ORIGINS, validate_production_env

# ERRORS
from utils.errors import MarketplaceError, ValidationError
from utils.indexes import ensure_indexes
from utils.store import guarded

# ROUTES
from routes.products import router as products_router
from routes.orders import router as orders_router
from routes.admin import router as admin_router
from routes.reports import router as reports_router

# WORKERS
from workers.reservation_sweep_worker import reservation_sweep_worker

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

validate_production_env()
logger.info("ENV: %s", ENV)

app = FastAPI(
    title="Marketplace API",
    version="1.0.0",
    docs_url=None if ENV == "production" else "/docs",
    redoc_url=None if ENV == "production" else "/redoc",
    openapi_url=None if ENV == "production" else "/openapi.json",
)

# -----------------------------
# CORS
# -----------------------------

allowed_origins = [origin.strip() for origin in CORS_ALLOWED_ORIGINS if origin.strip()]
if not allowed_origins:
    allowed_origins = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------
# ERRORS
# -----------------------------

@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    """Map MarketplaceError subclasses to their HTTP status."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "error_type": type(exc).__name__,
            "details": exc.details,
        },
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(p) for p in err.get("loc", ()) if p != "body") for err in exc.errors()]
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={
            "detail": "Invalid request body",
            "error_type": ValidationError.__name__,
            "details": {"fields": fields},
        },
    )

# -----------------------------
# ROUTES
# -----------------------------

app.include_router(products_router, prefix="/api")
app.include_router(orders_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(reports_router, prefix="/api")

# -----------------------------
# HEALTH CHECKS
# -----------------------------

@app.get("/api/health")
async def health():

    return {"status": "ok"}

@app.get("/api/health/db")
async def health_db():
    db = get_db()
    await guarded(db.command("ping"), "ping")
    return {"status": "mongodb connected"}

# -----------------------------
# STARTUP
# -----------------------------

@app.on_event("startup")
async def startup():
    await ensure_indexes(get_db())
    asyncio.create_task(reservation_sweep_worker())
