"""Health and readiness endpoints for deployment platforms."""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session
from database.connection import get_db
from utils.time import iso_utc

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    """Liveness probe - always healthy if the process answers."""
    return {"status": "healthy", "timestamp": iso_utc()}


@router.get("/readiness")
async def readiness(db: Session = Depends(get_db)):
    """Readiness probe - checks audit database connectivity."""
    try:
        db.execute(text("SELECT 1"))
        return {"ready": True, "timestamp": iso_utc(), "database": "connected"}
    except Exception as e:
        return {"ready": False, "timestamp": iso_utc(), "database": f"error: {str(e)}"}
