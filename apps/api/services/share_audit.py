"""Best-effort access audit trail for share verification attempts."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from models.share_access_log import ShareAccessLog


logger = logging.getLogger(__name__)


async def record_share_access(
    db: AsyncSession,
    *,
    share_code: str,
    client_ip: str,
    success: bool,
    outcome: str,
    share_id: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> bool:
    """Append one audit row and commit it.

    Audit is telemetry: a failed write is logged and rolled back, never raised.
    Returns whether the row was stored.
    """
    try:
        db.add(
            ShareAccessLog(
                share_id=share_id,
                share_code=share_code[:64],
                ip_address=client_ip,
                user_agent=(user_agent or "")[:512] or None,
                success=success,
                outcome=outcome,
            )
        )
        await db.commit()
        return True
    except Exception:
        logger.exception(
            "Failed to write share access log share_code=%s ip=%s outcome=%s",
            share_code,
            client_ip,
            outcome,
        )
        await db.rollback()
        return False
