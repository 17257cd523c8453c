"""Content model for files attached to a project."""

from sqlalchemy import BigInteger, Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class Content(Base):
    """Uploaded file belonging to a project."""

    __tablename__ = "contents"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    file_url = Column(String, nullable=False)
    file_type = Column(String, nullable=True)
    file_size = Column(BigInteger, nullable=True)
    thumbnail_url = Column(String, nullable=True)
    file_type_flag = Column(String, nullable=True)  # PROPOSAL_DRAFT, FINAL_MANUSCRIPT
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    project = relationship("Project", back_populates="contents")
