from sqlalchemy import Column, String, DateTime, Boolean, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
import enum

from app.core.database import Base
from app.core.types import GUID


class RankingMode(enum.Enum):
    """How the dashboard/export orders a waitlist.

    Display-only: admission and rank computation never branch on it.
    """
    FIFO = "fifo"
    RANDOM = "random"
    SCORE_BASED = "score_based"
    MANUAL = "manual"


class Project(Base):
    __tablename__ = "projects"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    # Owning account lives outside this service
    owner_id = Column(String, nullable=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    api_key = Column(String, unique=True, index=True, nullable=False)

    is_frozen = Column(Boolean, default=False, nullable=False)
    show_position = Column(Boolean, default=True, nullable=False)
    mode = Column(
        SQLEnum(RankingMode, name="rankingmode", values_callable=lambda e: [m.value for m in e]),
        default=RankingMode.FIFO,
        nullable=False,
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    entries = relationship("WaitlistEntry", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)
