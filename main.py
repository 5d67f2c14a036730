"""
Service Desk Reports - Main Application

Reporting backend for the service desk: management reports over tickets,
work logs and reference data stored in Supabase, cached behind
tag-invalidated keys.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
import os
import logging

load_dotenv()

from app.config import get_settings
from app.reporting import ReportCache, ReportDataLoader, ReportService
from app.routers import cache, reports, work_logs
from app.services.auth import SupabaseAuthenticator
from app.services.supabase_client import get_supabase_client

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    logger.info("Starting Service Desk Reports...")
    if getattr(app.state, "report_service", None) is None:
        client = get_supabase_client()
        app.state.report_service = ReportService(
            loader=ReportDataLoader(client, settings),
            cache=ReportCache(),
            settings=settings,
        )
        app.state.authenticator = SupabaseAuthenticator(client, settings)
    yield
    # Shutdown
    logger.info("Shutting down Service Desk Reports...")
    app.state.report_service.cache.clear()


# Initialize FastAPI app
app = FastAPI(
    title="Service Desk Reports",
    description="Ticket, technician, customer, equipment and revenue reports with tag-based caching",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(reports.router, prefix="/api/reports", tags=["Reports"])
app.include_router(work_logs.router, prefix="/api/tickets", tags=["Work Logs"])
app.include_router(cache.router, prefix="/api/cache", tags=["Cache"])


@app.get("/")
def read_root():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "Service Desk Reports",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Detailed health check"""
    service = getattr(app.state, "report_service", None)
    return {
        "status": "healthy",
        "supabase_configured": bool(settings.supabase_url and settings.supabase_key),
        "webhook_secret_configured": bool(settings.cache_webhook_secret),
        "cache": service.cache.stats() if service else None,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", 8000)), reload=True)
