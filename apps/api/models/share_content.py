"""ShareContent model placing a project on a share's timeline."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


SHARE_CATEGORIES = ("holding", "bank")
SHARE_QUARTERS = ("1Q", "2Q", "3Q", "4Q")


class ShareContent(Base):
    """Project association annotated with category, year, quarter and display order."""

    __tablename__ = "share_contents"
    __table_args__ = (
        UniqueConstraint("share_id", "project_id", "category", "year", "quarter", name="uq_share_contents_slot"),
    )

    # Autoincrement id doubles as insertion order for timeline tie-breaks.
    id = Column(Integer, primary_key=True, autoincrement=True)
    share_id = Column(String, ForeignKey("external_shares.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    category = Column(String, nullable=False)  # holding, bank
    year = Column(Integer, nullable=False)
    quarter = Column(String, nullable=False)  # 1Q..4Q
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    share = relationship("ExternalShare", back_populates="contents")
    project = relationship("Project")
