from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.exceptions import NotFoundError
from app.schemas.project import PublicProject, PublicProjectResponse
from app.services.project_service import ProjectService

router = APIRouter(prefix="/public", tags=["public"])


@router.get("/project/{slug}", response_model=PublicProjectResponse)
def get_public_project(slug: str, db: Session = Depends(get_db)):
    """Project id and API key for the embed script"""
    project = ProjectService(db).get_by_slug(slug)
    if project is None:
        raise NotFoundError("Project not found")
    return PublicProjectResponse(
        project=PublicProject(id=project.id, slug=project.slug, api_key=project.api_key),
    )
