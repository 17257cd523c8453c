"""ExternalShare model for password-gated project bundles."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class ExternalShare(Base):
    """Password-gated, optionally expiring share of projects for external viewers."""

    __tablename__ = "external_shares"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    share_code = Column(String(20), nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    view_count = Column(Integer, nullable=False, default=0)
    last_accessed_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    creator = relationship("User", back_populates="external_shares")
    contents = relationship(
        "ShareContent",
        back_populates="share",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
