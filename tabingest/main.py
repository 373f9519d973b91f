# Main application entry point

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from tabingest.api.routes import router
from tabingest.catalog.database import check_database_connection, init_db
from tabingest.common.logging_config import setup_logging
from tabingest.common.metrics import get_metrics, get_metrics_content_type
from tabingest.config.settings import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    setup_logging(settings.log_level, json_format=settings.log_json)
    if settings.debug:
        init_db()
    logger.info(
        f"Starting tabingest (batch_size={settings.batch_size}, "
        f"strictness={settings.strictness_mode})"
    )
    yield
    logger.info("tabingest stopped")


app = FastAPI(
    title="Tabular Ingestion API",
    description="Loads CSV and Excel files into relational tables",
    version="0.1.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Tabular Ingestion API",
        "version": "0.1.0",
        "status": "running",
        "docs": "/docs"
    }


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy"}


@app.get("/ready")
def readiness():
    """Readiness check endpoint"""
    db_healthy = check_database_connection()

    return {
        "status": "ready" if db_healthy else "not_ready",
        "database": "connected" if db_healthy else "disconnected"
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics"""
    if not settings.metrics_enabled:
        return Response(status_code=404)
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


if __name__ == "__main__":
    uvicorn.run(
        "tabingest.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug
    )
