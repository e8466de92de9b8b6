"""Email verification (public).

Endpoints:
    POST /api/verification/send             Email a one-hour verification link
    POST /api/verification/verify/{token}   Mark the profile's email verified
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.database import get_db
from servicehub.schemas.profile import ProfileOut, VerificationRequest, VerificationSent
from servicehub.services import invites
from servicehub.services.notifications import NotificationService, get_notifications

router = APIRouter()


@router.post("/send", response_model=VerificationSent)
async def send_verification(
    body: VerificationRequest,
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notifications),
):
    sent = await invites.send_verification(db, body.email, notifications)
    return VerificationSent(email=body.email.lower(), notification_sent=sent)


@router.post("/verify/{token}", response_model=ProfileOut)
async def verify_email(token: str, db: AsyncSession = Depends(get_db)):
    return await invites.verify_email(db, token)
