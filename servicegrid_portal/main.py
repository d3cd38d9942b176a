"""
ServiceGrid Portal API - Main Application

Customer portal authentication: magic links, passwords, portal sessions,
business context switching, staff invites and access revocation.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from servicegrid_portal.api.v1.router import api_router
from servicegrid_portal.config import settings
from servicegrid_portal.database import init_db
from servicegrid_portal.exceptions import PortalException, create_exception_handlers
from servicegrid_portal.middleware.request_id import RequestIdLogFilter, RequestIdMiddleware
from servicegrid_portal.services.notification_dispatcher import wait_for_background_tasks
from servicegrid_portal.tasks.invite_maintenance import start_invite_scheduler, stop_invite_scheduler
# Import all models to register them with SQLAlchemy metadata before init_db()
import servicegrid_portal.models  # noqa: F401

# Configure secure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdLogFilter())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting ServiceGrid Portal API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        # SECURITY: Don't log full exception details which may contain credentials
        logger.error(f"Database initialization failed: {type(e).__name__}")
        logger.warning("App starting without database - some features may not work")

    if settings.SCHEDULER_ENABLED:
        start_invite_scheduler()

    yield

    logger.info("Shutting down ServiceGrid Portal API...")
    stop_invite_scheduler()
    await wait_for_background_tasks(timeout=10)


app = FastAPI(
    title="ServiceGrid Portal API",
    description="Customer portal authentication and access control",
    version=settings.VERSION,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None,
    lifespan=lifespan,
)

allowed_origins = list(settings.CORS_ORIGINS)

handlers = create_exception_handlers(allowed_origins)
app.add_exception_handler(PortalException, handlers["portal"])
app.add_exception_handler(StarletteHTTPException, handlers["http"])
app.add_exception_handler(RequestValidationError, handlers["validation"])
app.add_exception_handler(Exception, handlers["generic"])

app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials="*" not in allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
    }


# For running with uvicorn directly (development only)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "servicegrid_portal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
