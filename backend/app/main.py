"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import Base, engine
from app.errors import AppError
from app.logging_config import setup_logging
from app.services.expiry_sweep import ExpirySweeper

# Import routers
from app.routers import users, categories, events, pencil_holds

# Import all models so Base.metadata knows about them
from app.models.user import User                          # noqa: F401
from app.models.category import Category                  # noqa: F401
from app.models.event import Event                        # noqa: F401
from app.models.pencil_hold import PencilHold             # noqa: F401
from app.models.hold_transition import HoldTransition     # noqa: F401

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Community Events",
    description="Community events calendar with pencil holds, conflict detection and an expiry sweep",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(categories.router, prefix="/api/categories", tags=["Categories"])
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(pencil_holds.router, prefix="/api/pencil-holds", tags=["PencilHolds"])

sweeper = ExpirySweeper()


@app.exception_handler(AppError)
def app_error_handler(request: Request, exc: AppError):
    """Render domain errors as ``{"detail": {"message", "error", ...}}``."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder({"detail": exc.to_dict()}))


@app.on_event("startup")
def on_startup():
    """Create database tables (SQLite dev mode) and start the expiry sweep."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    if settings.EXPIRY_SWEEP_ENABLED:
        sweeper.start()


@app.on_event("shutdown")
def on_shutdown():
    if sweeper.running:
        sweeper.stop()


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
