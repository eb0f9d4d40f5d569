"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from trial_matcher import __version__
from trial_matcher.config.settings import get_settings
from trial_matcher.config.logging_config import setup_logging, get_logger
from trial_matcher.storage.database import init_db, close_db
from trial_matcher.api.middleware import SecurityHeadersMiddleware
from trial_matcher.api.routes import match, terms

settings = get_settings()

# Initialize logging
setup_logging(log_level=settings.log_level, json_logs=settings.app_env == "production")
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Clinical Trial Matcher", version=__version__)

    settings = get_settings()
    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY not set — semantic matching unavailable")

    await init_db()

    if settings.persist_semantic_cache:
        client = match.get_semantic_client()
        if client is not None:
            await client.load_persisted_cache()

    yield

    logger.info("Shutting down Clinical Trial Matcher")
    await match.shutdown_semantic_client()
    await close_db()


# Create FastAPI app
app = FastAPI(
    title="Clinical Trial Matcher",
    description="Confidence-scored eligibility matching of patients against clinical trials",
    version=__version__,
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=settings.cors_origin_regex,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "X-Requested-With"],
)
app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.app_env == "production")


# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors as ``{"error": ...}``."""
    if exc.status_code == 404 and exc.detail == "Not Found":
        content = {"error": "Not found", "path": request.url.path}
    else:
        content = {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("Request validation failed", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler — logs details server-side, returns generic message to client."""
    error_id = str(uuid.uuid4())[:8]
    logger.error(
        "Unhandled exception",
        error_id=error_id,
        error=str(exc),
        path=request.url.path,
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "error_id": error_id}
    )


# Include routers
app.include_router(terms.router, prefix="/api")
app.include_router(match.router, prefix="/api")


@app.get("/api/health")
async def health_check():
    """Liveness probe. Does not call the oracle."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "trial_matcher.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development"
    )
