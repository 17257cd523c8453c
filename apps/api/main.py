"""
Share Portal - FastAPI Backend
Password-gated external shares of marketing projects.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings, validate_security_settings
from database import engine, Base
import models  # noqa: F401
from routers import external_shares, health, public_share
from services.kv_store import RedisKeyValueStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Share Portal API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    if getattr(app.state, "kv_store", None) is None:
        app.state.kv_store = RedisKeyValueStore(settings.REDIS_URL)
    yield
    # Shutdown
    store = getattr(app.state, "kv_store", None)
    if store is not None:
        await store.close()
        app.state.kv_store = None
    await engine.dispose()
    print("👋 Shutting down API...")


app = FastAPI(
    title="Share Portal API",
    description="Password-protected, time-bounded project shares for external viewers",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(external_shares.router, prefix="/admin/external-shares", tags=["External Shares"])
app.include_router(public_share.router, prefix="/public/share", tags=["Public Share"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Share Portal API",
        "version": "0.1.0",
        "status": "running"
    }
