"""
Compliance Feedback Loop - Main Application
FastAPI entry point for the note-accuracy feedback loop of the due-diligence report service
"""

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from apscheduler.schedulers.background import BackgroundScheduler
import structlog

from app.config import settings
from app.database import init_db
from app.middleware import CorrelationIdMiddleware
from app.routers import corrections_router, learning_router
from app.scheduler import start_scheduler
from app.services.monitoring import init_sentry, setup_logging

setup_logging()
init_sentry()

logger = structlog.get_logger()

app = FastAPI(
    title="Compliance Feedback Loop",
    description="Learns from analyst corrections to AI-generated NYC compliance notes",
    version="0.1.0",
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url="/redoc" if settings.environment == "development" else None,
)

app.add_middleware(CorrelationIdMiddleware, header_name="X-Request-ID")

# APScheduler instance (module level)
scheduler = BackgroundScheduler(timezone="America/New_York")

app.include_router(corrections_router)
app.include_router(learning_router)


@app.on_event("startup")
async def startup_event():
    """Application Startup"""
    logger.info("startup", environment=settings.environment)

    init_db()

    if settings.accuracy_refresh_cron_hour is not None and settings.environment != "testing":
        start_scheduler(scheduler, settings.accuracy_refresh_cron_hour)


@app.on_event("shutdown")
async def shutdown_event():
    """Application Shutdown"""
    logger.info("shutdown")

    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")


@app.get("/")
async def root():
    """Root Endpoint"""
    return {
        "message": "Compliance Feedback Loop API",
        "version": "0.1.0",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health Check Endpoint"""
    health_status = {
        "status": "healthy",
        "environment": settings.environment,
        "services": {
            "api": "running",
            "scheduler": "running" if scheduler.running else "stopped",
            "database": "configured" if settings.database_url else "not_configured",
            "llm": "configured" if settings.anthropic_api_key else "not_configured",
        }
    }

    return JSONResponse(
        content=health_status,
        status_code=200
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development"
    )
