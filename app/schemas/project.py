from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
import uuid

from app.models.project import RankingMode


class PublicProject(BaseModel):
    """What the embed script needs to post joins for a slug"""
    id: uuid.UUID
    slug: str
    api_key: str = Field(..., alias="apiKey")

    class Config:
        populate_by_name = True


class PublicProjectResponse(BaseModel):
    success: bool = True
    project: PublicProject


class ProjectOut(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    is_frozen: bool
    show_position: bool
    mode: RankingMode
    created_at: Optional[datetime]

    class Config:
        from_attributes = True
