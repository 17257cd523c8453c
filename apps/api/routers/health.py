"""
Health check endpoints.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config import validate_security_settings
from database import engine
from services.kv_store import KeyValueStore, get_kv_store

router = APIRouter()


async def _probe_database() -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return "up"
    except Exception as e:
        return f"down: {str(e)}"


async def _probe_store(store: KeyValueStore) -> str:
    # Lockouts and timeline caching both depend on the store.
    try:
        await store.ping()
        return "up"
    except Exception as e:
        return f"down: {str(e)}"


@router.get("/health")
async def health_check(store: KeyValueStore = Depends(get_kv_store)):
    """
    Health check endpoint.
    Reports database and key-value store reachability.
    """
    database = await _probe_database()
    kv_store = await _probe_store(store)
    degraded = database != "up" or kv_store != "up"
    return {
        "status": "degraded" if degraded else "healthy",
        "api": "up",
        "database": database,
        "kv_store": kv_store,
    }


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}


@router.get("/health/ready")
async def readiness_check(store: KeyValueStore = Depends(get_kv_store)):
    """Kubernetes-style readiness probe. Share verification needs a strong JWT secret and the store."""
    problems = []
    try:
        validate_security_settings()
    except ValueError as e:
        problems.append(str(e))
    if await _probe_store(store) != "up":
        problems.append("kv_store unreachable")

    if problems:
        return JSONResponse(status_code=503, content={"ready": False, "problems": problems})
    return {"ready": True}
