"""Pydantic schemas for client profiles, invitations and email verification."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, field_validator


class ProfileOut(BaseModel):
    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    invite_type: str
    invite_status: str | None = None
    invite_expiry: datetime | None = None
    invite_by: str | None = None
    email_verified: bool = False
    created_at: datetime

    model_config = {"from_attributes": True}


class InviteCreate(BaseModel):
    email: EmailStr
    first_name: str
    last_name: str | None = None
    phone: str | None = None


class InviteResponse(BaseModel):
    profile: ProfileOut
    notification_sent: bool


class InviteRespond(BaseModel):
    email: EmailStr
    response: str

    @field_validator("response")
    @classmethod
    def valid_response(cls, v: str) -> str:
        if v not in ("accepted", "rejected"):
            raise ValueError("response must be 'accepted' or 'rejected'")
        return v


class VerificationRequest(BaseModel):
    email: EmailStr


class VerificationSent(BaseModel):
    email: str
    notification_sent: bool
