"""
Main FastAPI application for the location verification service
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tp_location import __version__
from tp_location.api import location, system
from tp_location.config import settings
from tp_location.errors import register_exception_handlers

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.APP_DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info(f"Starting TP Location Verification service in {settings.APP_ENV} mode...")
    
    yield
    
    logger.info("Shutting down TP Location Verification service...")


app = FastAPI(
    title="TP Location Verification",
    description="Geofenced presence verification for teaching practice supervisors",
    version=__version__,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(system.router, tags=["System"])
app.include_router(location.router, prefix="/api", tags=["Location Tracking"])
