"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from novelshelf.config import settings
from novelshelf.models.database.base import init_db
from novelshelf.api.v1.routes import novels, preview

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup: Initialize database
    await init_db()
    logger.info("Database ready at %s", settings.database_url)

    yield
    # Shutdown: cleanup if needed


app = FastAPI(
    title=settings.app_name,
    description="EPUB novel import with multi-language chapters",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(novels.router, prefix="/api/v1", tags=["novels"])
app.include_router(preview.router, prefix="/api/v1", tags=["preview"])

# Serve stored covers locally unless they live behind an external URL
if settings.public_base_url.startswith("/"):
    settings.storage_dir.mkdir(parents=True, exist_ok=True)
    app.mount(
        settings.public_base_url,
        StaticFiles(directory=settings.storage_dir),
        name="storage",
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Novelshelf API", "version": "0.1.0"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
