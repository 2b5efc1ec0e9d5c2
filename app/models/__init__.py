# Import all models here for Alembic
from app.models.project import Project, RankingMode
from app.models.waitlist_entry import WaitlistEntry

__all__ = [
    "Project",
    "RankingMode",
    "WaitlistEntry",
]
