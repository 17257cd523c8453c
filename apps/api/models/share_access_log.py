"""ShareAccessLog model: append-only record of verify attempts."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from database import Base


class ShareAccessLog(Base):
    """One row per password verification attempt against a share.

    ``share_id`` is a plain reference (no foreign key) so rows outlive the
    share they describe.
    """

    __tablename__ = "share_access_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    share_id = Column(String, nullable=True, index=True)
    share_code = Column(String(64), nullable=False, index=True)
    ip_address = Column(String, nullable=False)
    user_agent = Column(String, nullable=True)
    success = Column(Boolean, nullable=False, default=False)
    outcome = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
