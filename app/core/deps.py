import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.services.admission_service import AdmissionController
from app.utils.rate_limiter import allow_for_credential


def get_rate_limiter():
    """Callable that checks one request against the per-API-key budget"""
    return allow_for_credential


def get_admission_controller(
    db: Session = Depends(get_db),
    rate_limit=Depends(get_rate_limiter),
) -> AdmissionController:
    return AdmissionController(db, rate_limit=rate_limit)


def require_admin_token(x_admin_token: Optional[str] = Header(None)) -> None:
    """Guard for the dashboard read API"""
    if not settings.ADMIN_API_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Dashboard API is disabled"
        )
    if not x_admin_token or not secrets.compare_digest(x_admin_token, settings.ADMIN_API_TOKEN):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token"
        )
