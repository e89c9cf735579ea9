"""
Adaptive Tutor - FastAPI Application

Entry point for the tutoring API. Business logic lives in the tutor
services and orchestration packages; this module only wires routers.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings, validate_required_settings
from database import get_db_manager
from shared.api import health
from tutor.api import tutor

settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("main")

# Validate configuration on startup
validate_required_settings()

app = FastAPI(
    title="Adaptive Tutor",
    description="Personalized tutoring API with assistant-driven lesson orchestration",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(tutor.router)


@app.on_event("startup")
async def startup_event():
    """Create tables and check the database connection."""
    logger.info("Starting Adaptive Tutor...")

    db_manager = get_db_manager()
    if not db_manager.health_check():
        logger.warning("Database health check failed on startup")
    else:
        db_manager.create_tables()
        logger.info("Database connection healthy")

    logger.info("Application started successfully")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True
    )
