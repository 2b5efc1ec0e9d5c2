import uuid
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.core.types import GUID

class WaitlistEntry(Base):
    __tablename__ = "waitlist_entries"
    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    project_id = Column(GUID(), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    # Stored lower-cased and trimmed
    email = Column(String(255), nullable=False)
    # Set by the ledger at insert time, never updated
    joined_at = Column(DateTime(timezone=True), nullable=False)
    referral_token = Column(String, nullable=False)
    # Referral token of the entry that referred this one, as supplied by the joiner
    referred_by = Column(String, nullable=True)
    priority_score = Column(Integer, nullable=False, default=0)

    project = relationship("Project", back_populates="entries")

    __table_args__ = (
        UniqueConstraint('project_id', 'email', name='uq_waitlist_project_email'),
        UniqueConstraint('project_id', 'referral_token', name='uq_waitlist_project_referral_token'),
        Index('ix_waitlist_entries_project_joined_at', 'project_id', 'joined_at'),
    )
