import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.deps import close_registry, get_registry
from .config import get_settings

settings = get_settings()

# Ensure logs directory exists
logs_dir = Path(settings.LOG_DIR)
if not logs_dir.is_absolute():
    logs_dir = Path(__file__).parent.parent / logs_dir
logs_dir.mkdir(parents=True, exist_ok=True)

# Configure both file and console logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.FileHandler(logs_dir / "counsel.log", encoding="utf-8"),
        logging.StreamHandler(),
    ],
)
logger = logging.getLogger(__name__)


def close_log_handlers() -> None:
    root_logger = logging.getLogger()
    for h in list(root_logger.handlers):
        h.flush()
        h.close()
        root_logger.removeHandler(h)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.STORE_BACKEND == "firestore" and settings.GOOGLE_APPLICATION_CREDENTIALS:
        creds_path = Path(settings.GOOGLE_APPLICATION_CREDENTIALS)
        if not creds_path.exists():
            logger.warning("STORE_BACKEND=firestore but Google credentials not found at %s", creds_path)
        else:
            logger.info("Using Google credentials from %s", creds_path)
            os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = str(creds_path)

    # Build the registry up front so configuration errors show in the startup log
    registry = get_registry()
    if registry.init_error is not None:
        logger.error("Started without history: %s", registry.init_error)
    try:
        yield
    finally:
        await close_registry()
        if settings.STORE_BACKEND == "sql":
            from .db.base import SessionLocal, engine

            SessionLocal.remove()
            engine.dispose()
        close_log_handlers()


# Initialize FastAPI app with lifespan
app = FastAPI(
    title="Biblical Counsel API",
    description="Scripture-grounded counsel, prayer prompts and actionable steps",
    version=settings.VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# Set up CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_origin_regex=getattr(settings, "CORS_ORIGIN_REGEX", None),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "Biblical Counsel API",
        "environment": get_settings().ENVIRONMENT,
        "store_backend": get_settings().STORE_BACKEND,
    }


# Import and include routers
from .api import pages  # noqa: E402
from .api.v1.routers import counsel  # noqa: E402

app.include_router(counsel.router, prefix="/api/v1", tags=["counsel"])
app.include_router(pages.router, tags=["pages"])


# Error handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )
