from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
import uuid


class SubscribeRequest(BaseModel):
    # Field names match what the embed widget posts
    api_key: Optional[str] = Field(None, alias="apiKey")
    email: Optional[str] = None
    ref: Optional[str] = None

    class Config:
        populate_by_name = True


class SubscribeResponse(BaseModel):
    success: bool = True
    accepted: bool = True
    already_member: bool = Field(False, alias="alreadyMember")
    position: Optional[int] = None
    tier: Optional[str] = None
    referral_token: str = Field(..., alias="referralCode")
    message: Optional[str] = None

    class Config:
        populate_by_name = True


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class WaitlistEntryOut(BaseModel):
    id: uuid.UUID
    email: str
    joined_at: datetime
    referral_token: str
    referred_by: Optional[str]
    priority_score: int

    class Config:
        from_attributes = True


class WaitlistStats(BaseModel):
    total: int
    today: int
