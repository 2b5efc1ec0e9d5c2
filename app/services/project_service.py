"""
Project (credential store) access.

The admission path only reads projects by API key. The write helpers here
back the operator scripts and tests; dashboard CRUD lives elsewhere.
"""
import logging
import re
import secrets
import uuid
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import InvalidInputError, NotFoundError
from app.models.project import Project, RankingMode

logger = logging.getLogger(__name__)

_SLUG_INVALID = re.compile(r"[^a-z0-9-]")


def normalize_slug(slug: str) -> str:
    return _SLUG_INVALID.sub("-", slug.lower())


def generate_api_key() -> str:
    return settings.API_KEY_PREFIX + secrets.token_hex(16)


class ProjectService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, project_id: uuid.UUID) -> Optional[Project]:
        return self.db.query(Project).filter(Project.id == project_id).first()

    def get_by_api_key(self, api_key: str) -> Optional[Project]:
        return self.db.query(Project).filter(Project.api_key == api_key).first()

    def get_by_slug(self, slug: str) -> Optional[Project]:
        return self.db.query(Project).filter(Project.slug == slug).first()

    def _require(self, project_id: uuid.UUID) -> Project:
        project = self.get(project_id)
        if project is None:
            raise NotFoundError("Project not found")
        return project

    def create_project(
        self,
        name: str,
        slug: str,
        owner_id: Optional[str] = None,
        show_position: bool = True,
        mode: RankingMode = RankingMode.FIFO,
    ) -> Project:
        if not name or not slug:
            raise InvalidInputError("Name and slug are required")
        project = Project(
            name=name,
            slug=normalize_slug(slug),
            api_key=generate_api_key(),
            owner_id=owner_id,
            show_position=show_position,
            mode=mode,
        )
        self.db.add(project)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise InvalidInputError("A project with this slug already exists")
        self.db.refresh(project)
        logger.info("Created project %s (%s)", project.id, project.slug)
        return project

    def rotate_api_key(self, project_id: uuid.UUID) -> Project:
        """Issue a new API key; the old one stops working immediately."""
        project = self._require(project_id)
        project.api_key = generate_api_key()
        self.db.commit()
        self.db.refresh(project)
        logger.info("Rotated API key for project %s", project.id)
        return project

    def update_settings(
        self,
        project_id: uuid.UUID,
        *,
        name: Optional[str] = None,
        is_frozen: Optional[bool] = None,
        show_position: Optional[bool] = None,
        mode: Optional[RankingMode] = None,
    ) -> Project:
        project = self._require(project_id)
        changes = {
            "name": name,
            "is_frozen": is_frozen,
            "show_position": show_position,
            "mode": mode,
        }
        changes = {k: v for k, v in changes.items() if v is not None}
        if not changes:
            raise InvalidInputError("No fields to update")
        for field, value in changes.items():
            setattr(project, field, value)
        self.db.commit()
        self.db.refresh(project)
        return project
