"""Health check API endpoints."""
from fastapi import APIRouter

from config import get_settings
from database import get_db_manager

router = APIRouter(tags=["health"])


@router.get("/")
def read_root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "Adaptive Tutor",
        "version": "1.0.0",
        "llm_configured": get_settings().llm_configured,
    }


@router.get("/health/db")
def database_health():
    """Database health check."""
    db_manager = get_db_manager()
    if db_manager.health_check():
        return {"status": "ok", "database": "connected"}
    return {"status": "error", "database": "connection_failed"}
