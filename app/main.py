import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.database import AsyncSessionLocal, engine
from app.services.swush_client import build_swush_client
from app.utils.logging_setup import setup_logging

settings = get_settings()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging(settings.log_level)
    try:
        app.state.swush_client = build_swush_client(settings, AsyncSessionLocal)
    except ValueError as e:
        logger.warning(f"SWUSH sync endpoints disabled: {e}")
        app.state.swush_client = None
    yield
    # Shutdown
    await engine.dispose()


app = FastAPI(
    title="SWUSH Sync",
    description="Syncs SWUSH fantasy game data into the local database",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
_origins = (
    settings.allowed_origins.split(",")
    if settings.allowed_origins != "*"
    else ["*"]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# Import and include routers after app is created
from app.api.router import api_router
app.include_router(api_router, prefix="/api/v1")
