"""Client invitations and email verification.

An invite creates a pending Profile and emails a 5-day link.  Acceptance
checks the token AND the stored invite_expiry, so an admin can shorten
an invite after it was sent.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.jwt import (
    PURPOSE_EMAIL_VERIFICATION,
    PURPOSE_INVITE,
    issue_token,
    verify_token,
)
from servicehub.config import settings
from servicehub.middleware.exceptions import (
    ConflictError,
    ResourceNotFoundError,
    TokenExpiredError,
)
from servicehub.models.profile import Profile
from servicehub.schemas.profile import InviteCreate
from servicehub.services.notifications import NotificationService

logger = logging.getLogger(__name__)


async def _profile_by_email(db: AsyncSession, email: str) -> Profile | None:
    result = await db.execute(
        select(Profile).where(func.lower(Profile.email) == email.lower())
    )
    return result.scalar_one_or_none()


async def send_invite(
    db: AsyncSession,
    body: InviteCreate,
    invite_by: str,
    notifications: NotificationService,
) -> tuple[Profile, bool]:
    email = body.email.lower()
    if await _profile_by_email(db, email):
        raise ConflictError(f"A profile already exists for {email}")

    ttl = timedelta(days=settings.invite_token_expire_days)
    profile = Profile(
        email=email,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
        invite_type="invite",
        invite_email=email,
        invite_by=invite_by,
        invite_status="pending",
        invite_expiry=datetime.utcnow() + ttl,
    )
    db.add(profile)
    await db.commit()
    logger.info("Invited %s (profile %s) by %s", email, profile.id, invite_by)

    token = issue_token(email, PURPOSE_INVITE, ttl)
    sent = await notifications.send_invite(
        email=email, first_name=profile.first_name, invite_by=invite_by, token=token
    )
    return profile, sent


async def list_invites(db: AsyncSession) -> list[Profile]:
    result = await db.execute(
        select(Profile)
        .where(Profile.invite_type == "invite")
        .order_by(Profile.created_at.desc(), Profile.id.desc())
    )
    return list(result.scalars().all())


async def respond_to_invite(db: AsyncSession, email: str, response: str) -> Profile:
    profile = await _profile_by_email(db, email)
    if not profile or profile.invite_type != "invite":
        raise ResourceNotFoundError("Invite", email)
    profile.invite_status = response
    await db.flush()
    return profile


async def accept_invite(db: AsyncSession, token: str) -> Profile:
    claims = verify_token(token, PURPOSE_INVITE)
    profile = await _profile_by_email(db, claims["sub"])
    if not profile or profile.invite_type != "invite":
        raise ResourceNotFoundError("Invite", claims["sub"])
    if profile.invite_status != "pending":
        raise ConflictError(f"Invite is already {profile.invite_status}")
    if profile.invite_expiry and profile.invite_expiry < datetime.utcnow():
        raise TokenExpiredError("Invite has expired")

    profile.invite_status = "accepted"
    await db.flush()
    logger.info("Invite accepted by %s", profile.email)
    return profile


# ── Email verification ───────────────────────────────────────

async def send_verification(
    db: AsyncSession, email: str, notifications: NotificationService
) -> bool:
    profile = await _profile_by_email(db, email)
    if not profile:
        raise ResourceNotFoundError("Profile", email)
    token = issue_token(
        profile.email,
        PURPOSE_EMAIL_VERIFICATION,
        timedelta(minutes=settings.verification_token_expire_minutes),
    )
    return await notifications.send_verification(email=profile.email, token=token)


async def verify_email(db: AsyncSession, token: str) -> Profile:
    claims = verify_token(token, PURPOSE_EMAIL_VERIFICATION)
    profile = await _profile_by_email(db, claims["sub"])
    if not profile:
        raise ResourceNotFoundError("Profile", claims["sub"])
    profile.email_verified = True
    await db.flush()
    return profile
