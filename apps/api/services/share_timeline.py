"""Timeline read model for external shares.

Associations are grouped category -> year -> quarter. Within a quarter,
projects are ordered by display order, then by insertion order.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.content import Content
from models.external_share import ExternalShare
from models.project import Project
from models.share_content import SHARE_CATEGORIES, ShareContent
from services.kv_store import KeyValueStore
from services.session_token import ShareClaims
from services.share_errors import ShareTokenError
from services.share_state import ensure_share_accessible
from services.timeline_cache import load_cached_timeline, store_cached_timeline


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _thumbnail_subquery():
    return (
        select(Content.thumbnail_url)
        .where(Content.project_id == Project.id)
        .order_by(Content.created_at.asc(), Content.id.asc())
        .limit(1)
        .correlate(Project)
        .scalar_subquery()
    )


def _file_count_subquery():
    return (
        select(func.count(Content.id))
        .where(Content.project_id == Project.id)
        .correlate(Project)
        .scalar_subquery()
    )


async def build_share_timeline(share_id: str, db: AsyncSession) -> Dict[str, Dict[str, Dict[str, List[Dict[str, Any]]]]]:
    """Join a share's associations to project metadata and nest them."""
    result = await db.execute(
        select(
            ShareContent,
            Project,
            _thumbnail_subquery().label("thumbnail_url"),
            _file_count_subquery().label("file_count"),
        )
        .join(Project, ShareContent.project_id == Project.id)
        .where(ShareContent.share_id == share_id)
        .order_by(
            ShareContent.year.desc(),
            ShareContent.quarter.asc(),
            ShareContent.display_order.asc(),
            ShareContent.id.asc(),
        )
    )

    grouped: Dict[str, Dict[str, Dict[str, List[Dict[str, Any]]]]] = {category: {} for category in SHARE_CATEGORIES}
    for association, project, thumbnail_url, file_count in result.all():
        category = grouped.setdefault(association.category, {})
        year = category.setdefault(str(association.year), {})
        quarter = year.setdefault(association.quarter, [])
        quarter.append(
            {
                "project_id": project.id,
                "title": project.title,
                "description": project.description,
                "thumbnail_url": thumbnail_url,
                "file_count": int(file_count or 0),
                "created_at": _iso(project.created_at),
                "display_order": association.display_order,
            }
        )

    return {category: years for category, years in grouped.items() if years}


async def get_share_timeline(
    *,
    share_code: str,
    claims: ShareClaims,
    db: AsyncSession,
    store: KeyValueStore,
) -> Dict[str, Any]:
    """Serve the timeline for a token-holding viewer.

    Share state is checked on every read, before the cache, so disabling or
    expiring a share takes effect immediately even while an entry is cached.
    """
    result = await db.execute(select(ExternalShare).where(ExternalShare.share_code == share_code))
    share = ensure_share_accessible(result.scalar_one_or_none())
    if share.id != claims.share_id:
        raise ShareTokenError("Share token was issued for a different share.")

    generation, cached = await load_cached_timeline(store, share_code)
    if cached is not None:
        return cached

    payload = {
        "share_code": share_code,
        "timeline": await build_share_timeline(share.id, db),
    }
    await store_cached_timeline(store, share_code, generation, payload)
    return payload
