"""
Admin router for creating and maintaining external shares.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, require_admin
from services.kv_store import KeyValueStore, get_kv_store
from services.share_admin import (
    add_share_content,
    create_share,
    delete_share,
    get_share_detail,
    list_share_access_logs,
    list_shares,
    remove_share_content,
    update_share,
)

router = APIRouter(dependencies=[Depends(require_admin)])
logger = logging.getLogger(__name__)


class ProjectSelection(BaseModel):
    project_id: str
    category: str
    year: int
    quarter: str
    display_order: Optional[int] = None


class CreateShareRequest(BaseModel):
    project_selections: List[ProjectSelection] = Field(default_factory=list)
    password: str
    expires_at: Optional[datetime] = None


class UpdateShareRequest(BaseModel):
    share_code: Optional[str] = None
    password: Optional[str] = None
    is_active: Optional[bool] = None
    expires_at: Optional[datetime] = None
    project_selections: Optional[List[ProjectSelection]] = None


@router.post("", status_code=201)
async def create_external_share(
    request: CreateShareRequest,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    store: KeyValueStore = Depends(get_kv_store),
):
    """Create a password-protected share over a set of projects."""
    try:
        return await create_share(
            project_selections=[selection.model_dump() for selection in request.project_selections],
            password=request.password,
            expires_at=request.expires_at,
            created_by=auth.user_id,
            db=db,
            store=store,
        )
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to create external share user=%s", auth.user_id)
        raise HTTPException(status_code=500, detail="Failed to create external share.")


@router.get("")
async def list_external_shares(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    is_active: Optional[bool] = None,
    is_expired: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await list_shares(db=db, page=page, limit=limit, is_active=is_active, is_expired=is_expired)
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to list external shares")
        raise HTTPException(status_code=500, detail="Failed to list external shares.")


@router.get("/{share_id}")
async def get_external_share(share_id: str, db: AsyncSession = Depends(get_db)):
    try:
        return await get_share_detail(share_id=share_id, db=db)
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to load external share id=%s", share_id)
        raise HTTPException(status_code=500, detail="Failed to fetch external share.")


@router.patch("/{share_id}")
async def update_external_share(
    share_id: str,
    request: UpdateShareRequest,
    db: AsyncSession = Depends(get_db),
    store: KeyValueStore = Depends(get_kv_store),
):
    """Rotate password, toggle, re-date, rename or re-populate a share."""
    changes = request.model_dump(exclude_unset=True)
    if request.project_selections is not None:
        changes["project_selections"] = [selection.model_dump() for selection in request.project_selections]
    try:
        return await update_share(share_id=share_id, changes=changes, db=db, store=store)
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to update external share id=%s", share_id)
        raise HTTPException(status_code=500, detail="Failed to update external share.")


@router.delete("/{share_id}")
async def delete_external_share(
    share_id: str,
    db: AsyncSession = Depends(get_db),
    store: KeyValueStore = Depends(get_kv_store),
):
    try:
        await delete_share(share_id=share_id, db=db, store=store)
        return {"deleted": True, "id": share_id}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to delete external share id=%s", share_id)
        raise HTTPException(status_code=500, detail="Failed to delete external share.")


@router.post("/{share_id}/contents", status_code=201)
async def add_external_share_content(
    share_id: str,
    request: ProjectSelection,
    db: AsyncSession = Depends(get_db),
    store: KeyValueStore = Depends(get_kv_store),
):
    try:
        return await add_share_content(share_id=share_id, selection=request.model_dump(), db=db, store=store)
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to add content to external share id=%s", share_id)
        raise HTTPException(status_code=500, detail="Failed to add share content.")


@router.delete("/{share_id}/contents/{content_id}")
async def remove_external_share_content(
    share_id: str,
    content_id: int,
    db: AsyncSession = Depends(get_db),
    store: KeyValueStore = Depends(get_kv_store),
):
    try:
        await remove_share_content(share_id=share_id, content_id=content_id, db=db, store=store)
        return {"deleted": True, "id": content_id}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to remove content=%s from external share id=%s", content_id, share_id)
        raise HTTPException(status_code=500, detail="Failed to remove share content.")


@router.get("/{share_id}/access-logs")
async def get_external_share_access_logs(
    share_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await list_share_access_logs(share_id=share_id, db=db, page=page, limit=limit)
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to list access logs for external share id=%s", share_id)
        raise HTTPException(status_code=500, detail="Failed to fetch access logs.")
