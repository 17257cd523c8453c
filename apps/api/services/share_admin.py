"""Admin-side lifecycle of external shares and their project associations.

Every mutation goes through ``commit_share_mutation`` which commits and then
drops the cached timelines of every affected share code before returning.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import delete, distinct, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.external_share import ExternalShare
from models.project import Project
from models.share_access_log import ShareAccessLog
from models.share_content import SHARE_CATEGORIES, SHARE_QUARTERS, ShareContent
from services.crypto import hash_password_async
from services.kv_store import KeyValueStore
from services.share_codes import generate_share_code, is_valid_share_code, is_valid_share_password
from services.share_errors import (
    ProjectNotFoundError,
    ShareCodeConflictError,
    ShareCodeGenerationError,
    ShareContentConflictError,
    ShareContentNotFoundError,
    ShareNotFoundError,
    ShareValidationError,
)
from services.share_state import as_utc, share_status, utcnow
from services.timeline_cache import invalidate_share_timelines


logger = logging.getLogger(__name__)

MIN_YEAR = 2020
MAX_YEAR = 2099


def share_url(share_code: str) -> str:
    return f"{settings.PUBLIC_APP_ORIGIN.rstrip('/')}/share/{share_code}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    normalized = as_utc(value)
    return normalized.isoformat() if normalized else None


def serialize_share(share: ExternalShare, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "id": share.id,
        "share_code": share.share_code,
        "share_url": share_url(share.share_code),
        "is_active": bool(share.is_active),
        "status": share_status(share, now),
        "expires_at": _iso(share.expires_at),
        "view_count": int(share.view_count or 0),
        "last_accessed_at": _iso(share.last_accessed_at),
        "created_by": share.created_by,
        "created_at": _iso(share.created_at),
        "updated_at": _iso(share.updated_at),
    }


async def commit_share_mutation(db: AsyncSession, store: KeyValueStore, share_codes: Iterable[Optional[str]]) -> None:
    """Commit pending changes, then invalidate cached timelines for ``share_codes``."""
    await db.commit()
    await invalidate_share_timelines(store, share_codes)


def _validate_password(password: Any) -> str:
    if not is_valid_share_password(password):
        raise ShareValidationError("Password must be exactly 4 digits.")
    return password


def _validate_selection(selection: Mapping[str, Any]) -> Dict[str, Any]:
    project_id = str(selection.get("project_id") or "").strip()
    category = selection.get("category")
    year = selection.get("year")
    quarter = selection.get("quarter")
    if not project_id or category is None or year is None or quarter is None:
        raise ShareValidationError("Each project selection needs project_id, category, year and quarter.")
    if category not in SHARE_CATEGORIES:
        raise ShareValidationError("Category must be 'holding' or 'bank'.", field="category")
    if quarter not in SHARE_QUARTERS:
        raise ShareValidationError("Quarter must be one of 1Q, 2Q, 3Q, 4Q.", field="quarter")
    if isinstance(year, bool) or not isinstance(year, int) or not MIN_YEAR <= year <= MAX_YEAR:
        raise ShareValidationError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}.", field="year")
    display_order = selection.get("display_order")
    if display_order is not None and (isinstance(display_order, bool) or not isinstance(display_order, int)):
        raise ShareValidationError("display_order must be an integer.", field="display_order")
    return {
        "project_id": project_id,
        "category": category,
        "year": year,
        "quarter": quarter,
        "display_order": display_order,
    }


def _validate_selections(selections: Sequence[Mapping[str, Any]], *, allow_empty: bool) -> List[Dict[str, Any]]:
    if not allow_empty and not selections:
        raise ShareValidationError("Select at least one project.")
    validated = [_validate_selection(selection) for selection in selections]
    slots = [(item["project_id"], item["category"], item["year"], item["quarter"]) for item in validated]
    if len(set(slots)) != len(slots):
        raise ShareContentConflictError("Duplicate project selection in request.")
    return validated


async def _ensure_projects_exist(db: AsyncSession, project_ids: Iterable[str]) -> None:
    wanted = set(project_ids)
    if not wanted:
        return
    result = await db.execute(select(Project.id).where(Project.id.in_(wanted)))
    missing = sorted(wanted - set(result.scalars().all()))
    if missing:
        raise ProjectNotFoundError(f"Project not found: {missing[0]}", project_ids=missing)


def _build_associations(share_id: str, selections: List[Dict[str, Any]]) -> List[ShareContent]:
    return [
        ShareContent(
            share_id=share_id,
            project_id=selection["project_id"],
            category=selection["category"],
            year=selection["year"],
            quarter=selection["quarter"],
            display_order=selection["display_order"] if selection["display_order"] is not None else index,
        )
        for index, selection in enumerate(selections)
    ]


async def _get_share(db: AsyncSession, share_id: str) -> ExternalShare:
    result = await db.execute(select(ExternalShare).where(ExternalShare.id == share_id))
    share = result.scalar_one_or_none()
    if share is None:
        raise ShareNotFoundError("External share not found.")
    return share


async def _share_code_taken(db: AsyncSession, share_code: str, exclude_id: Optional[str] = None) -> bool:
    query = select(ExternalShare.id).where(ExternalShare.share_code == share_code)
    if exclude_id:
        query = query.where(ExternalShare.id != exclude_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none() is not None


async def _allocate_share_code(db: AsyncSession) -> str:
    attempts = max(int(settings.SHARE_CODE_GENERATION_ATTEMPTS), 1)
    for _ in range(attempts):
        candidate = generate_share_code()
        if not await _share_code_taken(db, candidate):
            return candidate
    logger.error("Share code generation exhausted %s attempts", attempts)
    raise ShareCodeGenerationError()


async def _project_count(db: AsyncSession, share_id: str) -> int:
    result = await db.execute(
        select(func.count(distinct(ShareContent.project_id))).where(ShareContent.share_id == share_id)
    )
    return int(result.scalar_one() or 0)


async def create_share(
    *,
    project_selections: Sequence[Mapping[str, Any]],
    password: Any,
    created_by: Optional[str],
    db: AsyncSession,
    store: KeyValueStore,
    expires_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    selections = _validate_selections(project_selections, allow_empty=False)
    _validate_password(password)
    current_time = now or utcnow()
    expiry = as_utc(expires_at)
    if expiry is not None and expiry <= current_time:
        raise ShareValidationError("Expiry must be in the future.", field="expires_at")

    await _ensure_projects_exist(db, (selection["project_id"] for selection in selections))
    password_hash = await hash_password_async(password)

    attempts = max(int(settings.SHARE_CODE_GENERATION_ATTEMPTS), 1)
    for _ in range(attempts):
        share_code = await _allocate_share_code(db)
        share = ExternalShare(
            share_code=share_code,
            password_hash=password_hash,
            is_active=True,
            expires_at=expiry,
            view_count=0,
            created_by=created_by,
        )
        db.add(share)
        try:
            await db.flush()
            db.add_all(_build_associations(share.id, selections))
            await commit_share_mutation(db, store, [share_code])
            break
        except IntegrityError as exc:
            await db.rollback()
            # A concurrent create can claim the code between allocation and insert.
            if not await _share_code_taken(db, share_code):
                raise ShareContentConflictError("Share content could not be stored.") from exc
            logger.warning("Share code %s was claimed concurrently; regenerating", share_code)
    else:
        logger.error("Share code insert collided %s times", attempts)
        raise ShareCodeGenerationError()

    await db.refresh(share)
    logger.info("Created external share id=%s code=%s projects=%s", share.id, share_code, len(selections))
    payload = serialize_share(share, current_time)
    payload["project_count"] = len({selection["project_id"] for selection in selections})
    return payload


async def list_shares(
    *,
    db: AsyncSession,
    page: int = 1,
    limit: int = 20,
    is_active: Optional[bool] = None,
    is_expired: Optional[bool] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    current_time = now or utcnow()
    page = max(int(page), 1)
    limit = max(1, min(int(limit), 100))

    conditions = []
    if is_active is not None:
        conditions.append(ExternalShare.is_active.is_(is_active))
    if is_expired is True:
        conditions.append(ExternalShare.expires_at.is_not(None))
        conditions.append(ExternalShare.expires_at < current_time)
    elif is_expired is False:
        conditions.append((ExternalShare.expires_at.is_(None)) | (ExternalShare.expires_at >= current_time))

    total_result = await db.execute(select(func.count(ExternalShare.id)).where(*conditions))
    total = int(total_result.scalar_one() or 0)

    rows = await db.execute(
        select(ExternalShare, func.count(distinct(ShareContent.project_id)).label("project_count"))
        .outerjoin(ShareContent, ShareContent.share_id == ExternalShare.id)
        .where(*conditions)
        .group_by(ExternalShare.id)
        .order_by(ExternalShare.created_at.desc(), ExternalShare.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    items = []
    for share, project_count in rows.all():
        item = serialize_share(share, current_time)
        item["project_count"] = int(project_count or 0)
        items.append(item)

    return {
        "items": items,
        "meta": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
    }


async def get_share_detail(*, share_id: str, db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, Any]:
    share = await _get_share(db, share_id)
    result = await db.execute(
        select(ShareContent, Project.title, Project.description)
        .join(Project, ShareContent.project_id == Project.id)
        .where(ShareContent.share_id == share.id)
        .order_by(
            ShareContent.year.desc(),
            ShareContent.quarter.asc(),
            ShareContent.display_order.asc(),
            ShareContent.id.asc(),
        )
    )
    projects = [
        {
            "id": association.id,
            "project_id": association.project_id,
            "category": association.category,
            "year": association.year,
            "quarter": association.quarter,
            "display_order": association.display_order,
            "project_title": title,
            "project_description": description,
        }
        for association, title, description in result.all()
    ]
    payload = serialize_share(share, now)
    payload["projects"] = projects
    payload["project_count"] = len({item["project_id"] for item in projects})
    return payload


async def update_share(
    *,
    share_id: str,
    changes: Mapping[str, Any],
    db: AsyncSession,
    store: KeyValueStore,
) -> Dict[str, Any]:
    """Apply a partial update. Only keys present in ``changes`` are touched.

    Recognised keys: ``share_code``, ``password``, ``is_active``,
    ``expires_at`` (None clears it) and ``project_selections``.
    """
    share = await _get_share(db, share_id)
    old_code = share.share_code

    new_code = changes.get("share_code")
    rename = new_code not in (None, "") and new_code != old_code
    if rename and not is_valid_share_code(new_code):
        raise ShareValidationError("Share code must be 4-20 letters or digits.", field="share_code")
    new_password = changes.get("password")
    if new_password is not None:
        _validate_password(new_password)
    replaced = changes.get("project_selections")
    selections = _validate_selections(replaced, allow_empty=True) if replaced is not None else None

    if rename:
        if await _share_code_taken(db, new_code, exclude_id=share.id):
            raise ShareCodeConflictError()
        share.share_code = new_code

    if new_password is not None:
        share.password_hash = await hash_password_async(new_password)

    if changes.get("is_active") is not None:
        share.is_active = bool(changes["is_active"])

    if "expires_at" in changes:
        share.expires_at = as_utc(changes["expires_at"])

    if selections is not None:
        await _ensure_projects_exist(db, (selection["project_id"] for selection in selections))
        await db.execute(delete(ShareContent).where(ShareContent.share_id == share.id))
        db.add_all(_build_associations(share.id, selections))

    current_code = share.share_code
    try:
        await commit_share_mutation(db, store, [old_code, current_code])
    except IntegrityError as exc:
        await db.rollback()
        if rename:
            raise ShareCodeConflictError() from exc
        raise ShareContentConflictError("Duplicate project selection in request.") from exc

    await db.refresh(share)
    if current_code != old_code:
        logger.info("Renamed external share id=%s code %s -> %s", share.id, old_code, current_code)
    payload = serialize_share(share)
    payload["project_count"] = await _project_count(db, share.id)
    return payload


async def delete_share(*, share_id: str, db: AsyncSession, store: KeyValueStore) -> None:
    share = await _get_share(db, share_id)
    share_code = share.share_code
    await db.execute(delete(ShareContent).where(ShareContent.share_id == share.id))
    await db.execute(delete(ExternalShare).where(ExternalShare.id == share.id))
    await commit_share_mutation(db, store, [share_code])
    logger.info("Deleted external share id=%s code=%s", share_id, share_code)


async def add_share_content(
    *,
    share_id: str,
    selection: Mapping[str, Any],
    db: AsyncSession,
    store: KeyValueStore,
) -> Dict[str, Any]:
    share = await _get_share(db, share_id)
    share_code = share.share_code
    validated = _validate_selection(selection)
    await _ensure_projects_exist(db, [validated["project_id"]])

    display_order = validated["display_order"]
    if display_order is None:
        max_result = await db.execute(
            select(func.max(ShareContent.display_order)).where(ShareContent.share_id == share.id)
        )
        current_max = max_result.scalar_one_or_none()
        display_order = (current_max + 1) if current_max is not None else 0

    association = ShareContent(
        share_id=share.id,
        project_id=validated["project_id"],
        category=validated["category"],
        year=validated["year"],
        quarter=validated["quarter"],
        display_order=display_order,
    )
    db.add(association)
    try:
        await db.flush()
        association_id = association.id
        await commit_share_mutation(db, store, [share_code])
    except IntegrityError as exc:
        await db.rollback()
        raise ShareContentConflictError() from exc

    return {
        "id": association_id,
        "project_id": validated["project_id"],
        "category": validated["category"],
        "year": validated["year"],
        "quarter": validated["quarter"],
        "display_order": display_order,
    }


async def remove_share_content(
    *,
    share_id: str,
    content_id: int,
    db: AsyncSession,
    store: KeyValueStore,
) -> None:
    share = await _get_share(db, share_id)
    share_code = share.share_code
    result = await db.execute(
        delete(ShareContent).where(ShareContent.id == content_id, ShareContent.share_id == share.id)
    )
    if not result.rowcount:
        await db.rollback()
        raise ShareContentNotFoundError()
    await commit_share_mutation(db, store, [share_code])


async def list_share_access_logs(
    *,
    share_id: str,
    db: AsyncSession,
    page: int = 1,
    limit: int = 50,
) -> Dict[str, Any]:
    await _get_share(db, share_id)
    page = max(int(page), 1)
    limit = max(1, min(int(limit), 200))

    total_result = await db.execute(
        select(func.count(ShareAccessLog.id)).where(ShareAccessLog.share_id == share_id)
    )
    total = int(total_result.scalar_one() or 0)
    rows = await db.execute(
        select(ShareAccessLog)
        .where(ShareAccessLog.share_id == share_id)
        .order_by(ShareAccessLog.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    items = [
        {
            "id": row.id,
            "share_code": row.share_code,
            "ip_address": row.ip_address,
            "user_agent": row.user_agent,
            "success": bool(row.success),
            "outcome": row.outcome,
            "created_at": _iso(row.created_at),
        }
        for row in rows.scalars().all()
    ]
    return {
        "items": items,
        "meta": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
    }
