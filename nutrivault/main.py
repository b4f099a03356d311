import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from . import config
from . import models  # noqa: F401  (registers tables on Base)
from .database import Base, engine
from .domain.documents import public_router as public_documents_router
from .domain.documents import router as document_shares_router
from .errors import ShareAccessError, share_access_error_handler
from .rate_limiter import create_password_limiter
from .security_headers import SecurityHeadersMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("passlib").setLevel(logging.ERROR)

SECURITY_HEADERS_ENABLED = os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true"

PUBLIC_PREFIX = "/public/"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")
            raise

    # Password attempts live as long as this process (or in Redis when configured)
    app.state.password_limiter = create_password_limiter()

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="NutriVault Document Sharing API", version="1.0.0", lifespan=lifespan)

app.add_exception_handler(ShareAccessError, share_access_error_handler)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Public share routes answer malformed tokens and bodies with the
    {"success": false, "error": ...} shape; other routes keep FastAPI's 422.
    """
    details = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    logger.warning(f"Validation error for {request.url.path}: {details}")

    if request.url.path.startswith(PUBLIC_PREFIX):
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Validation failed", "details": details},
        )
    return JSONResponse(status_code=422, content={"detail": details})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"❌ Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    if request.url.path.startswith(PUBLIC_PREFIX):
        return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"])
    logger.info("Security headers enabled")
else:
    logger.warning("Security headers DISABLED - only use in development!")


# CORS Configuration
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "Content-Length", "Retry-After"],
)

# Only honour X-Forwarded-For from known proxies
if config.TRUSTED_PROXY_IPS:
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=config.TRUSTED_PROXY_IPS)
    logger.info(f"Trusting forwarded headers from: {config.TRUSTED_PROXY_IPS}")

# Routes
app.include_router(document_shares_router)
app.include_router(public_documents_router)


@app.get("/")
def root():
    return {"message": "NutriVault Document Sharing API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
