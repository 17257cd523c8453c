"""Project detail for viewers holding a share token."""

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.content import Content
from models.external_share import ExternalShare
from models.project import Project
from models.share_content import ShareContent
from services.session_token import ShareClaims
from services.share_errors import ProjectNotFoundError, ProjectNotInShareError, ShareTokenError
from services.share_state import ensure_share_accessible


PROPOSAL_DRAFT = "PROPOSAL_DRAFT"
FINAL_MANUSCRIPT = "FINAL_MANUSCRIPT"


def _serialize_file(row: Content) -> Dict[str, Any]:
    return {
        "id": row.id,
        "title": row.title,
        "file_url": row.file_url,
        "file_type": row.file_type,
        "file_size": row.file_size,
        "thumbnail_url": row.thumbnail_url,
        "file_type_flag": row.file_type_flag,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


async def get_shared_project_detail(
    *,
    share_code: str,
    project_id: str,
    claims: ShareClaims,
    db: AsyncSession,
) -> Dict[str, Any]:
    share_result = await db.execute(select(ExternalShare).where(ExternalShare.share_code == share_code))
    share = ensure_share_accessible(share_result.scalar_one_or_none())
    if share.id != claims.share_id:
        raise ShareTokenError("Share token was issued for a different share.")

    # Membership first, so unrelated project ids are indistinguishable from missing ones.
    membership = await db.execute(
        select(ShareContent.id)
        .where(ShareContent.share_id == share.id, ShareContent.project_id == project_id)
        .limit(1)
    )
    if membership.scalar_one_or_none() is None:
        raise ProjectNotInShareError()

    project_result = await db.execute(select(Project).where(Project.id == project_id))
    project = project_result.scalar_one_or_none()
    if project is None:
        raise ProjectNotFoundError()

    files_result = await db.execute(
        select(Content)
        .where(Content.project_id == project_id)
        .order_by(Content.file_type_flag.is_(None), Content.file_type_flag, Content.created_at, Content.id)
    )
    files = [_serialize_file(row) for row in files_result.scalars().all()]

    return {
        "id": project.id,
        "title": project.title,
        "description": project.description,
        "created_at": project.created_at.isoformat() if project.created_at else None,
        "updated_at": project.updated_at.isoformat() if project.updated_at else None,
        "proposal_drafts": [item for item in files if item["file_type_flag"] == PROPOSAL_DRAFT],
        "final_manuscripts": [item for item in files if item["file_type_flag"] == FINAL_MANUSCRIPT],
        "files": files,
        "total_files": len(files),
    }
