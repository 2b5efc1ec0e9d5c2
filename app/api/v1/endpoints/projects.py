import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import require_admin_token
from app.core.exceptions import NotFoundError
from app.schemas.project import ProjectOut
from app.schemas.waitlist import WaitlistEntryOut, WaitlistStats
from app.services.ledger_service import LedgerService
from app.services.project_service import ProjectService

router = APIRouter(prefix="/projects", tags=["projects"], dependencies=[Depends(require_admin_token)])


def _project_or_404(db: Session, project_id: uuid.UUID):
    project = ProjectService(db).get(project_id)
    if project is None:
        raise NotFoundError("Project not found")
    return project


@router.get("/{project_id}", response_model=ProjectOut)
def get_project(project_id: uuid.UUID, db: Session = Depends(get_db)):
    return _project_or_404(db, project_id)


@router.get("/{project_id}/entries", response_model=List[WaitlistEntryOut])
def list_entries(
    project_id: uuid.UUID,
    limit: Optional[int] = Query(None, ge=1, le=10000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Entries of a project, newest first"""
    project = _project_or_404(db, project_id)
    return LedgerService(db).list_entries(project.id, limit=limit, offset=offset)


@router.get("/{project_id}/stats", response_model=WaitlistStats)
def get_stats(project_id: uuid.UUID, db: Session = Depends(get_db)):
    """Total entries and entries since UTC midnight"""
    project = _project_or_404(db, project_id)
    return WaitlistStats(**LedgerService(db).stats(project.id))
