"""
Public router for external viewers of a password-protected share.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import get_share_claims
from services.kv_store import KeyValueStore, get_kv_store
from services.session_token import ShareClaims
from services.share_admission import verify_share_password
from services.share_projects import get_shared_project_detail
from services.share_timeline import get_share_timeline

router = APIRouter()
logger = logging.getLogger(__name__)


def client_identifier(request: Request) -> str:
    """Peer address of the caller, falling back to X-Forwarded-For."""
    if request.client and request.client.host:
        return request.client.host
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return "unknown"


class VerifySharePasswordRequest(BaseModel):
    password: Optional[Any] = None


class VerifySharePasswordResponse(BaseModel):
    token: str
    expires_in: int
    share_code: str


@router.post("/{share_code}/verify", response_model=VerifySharePasswordResponse)
async def verify_share(
    share_code: str,
    body: VerifySharePasswordRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    store: KeyValueStore = Depends(get_kv_store),
):
    """Exchange the share password for a 30-minute viewer token."""
    try:
        return await verify_share_password(
            share_code=share_code,
            password=body.password,
            client_ip=client_identifier(request),
            user_agent=request.headers.get("user-agent"),
            db=db,
            store=store,
        )
    except HTTPException:
        raise
    except Exception:
        logger.exception("Share verification failed share=%s", share_code)
        raise HTTPException(status_code=500, detail="Failed to verify share password.")


@router.get("/{share_code}/contents")
async def get_contents(
    share_code: str,
    claims: ShareClaims = Depends(get_share_claims),
    db: AsyncSession = Depends(get_db),
    store: KeyValueStore = Depends(get_kv_store),
):
    """Shared projects as a category/year/quarter timeline."""
    try:
        return await get_share_timeline(share_code=share_code, claims=claims, db=db, store=store)
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to load share timeline share=%s", share_code)
        raise HTTPException(status_code=500, detail="Failed to fetch shared contents.")


@router.get("/{share_code}/project/{project_id}")
async def get_project(
    share_code: str,
    project_id: str,
    claims: ShareClaims = Depends(get_share_claims),
    db: AsyncSession = Depends(get_db),
):
    """Files of one shared project, grouped by file type flag."""
    try:
        return await get_shared_project_detail(
            share_code=share_code,
            project_id=project_id,
            claims=claims,
            db=db,
        )
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to load shared project share=%s project=%s", share_code, project_id)
        raise HTTPException(status_code=500, detail="Failed to fetch shared project.")
