"""Client invitations.

Endpoints:
    POST /api/invites                  Invite a client by email
    GET  /api/invites                  List invited profiles
    POST /api/invites/respond          Set an invite's response (accepted/rejected)
    POST /api/invites/accept/{token}   Accept via emailed link (public)
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.deps import CurrentUser, require_permission
from servicehub.database import get_db
from servicehub.schemas.profile import InviteCreate, InviteRespond, InviteResponse, ProfileOut
from servicehub.services import invites
from servicehub.services.notifications import NotificationService, get_notifications

router = APIRouter()


@router.post("", response_model=InviteResponse, status_code=status.HTTP_201_CREATED)
async def send_invite(
    body: InviteCreate,
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notifications),
    user: CurrentUser = Depends(require_permission("invites.manage")),
):
    profile, sent = await invites.send_invite(db, body, user.email, notifications)
    return InviteResponse(profile=ProfileOut.model_validate(profile), notification_sent=sent)


@router.get("", response_model=list[ProfileOut])
async def list_invites(
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("invites.manage")),
):
    return await invites.list_invites(db)


@router.post("/respond", response_model=ProfileOut)
async def respond_to_invite(
    body: InviteRespond,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("invites.manage")),
):
    return await invites.respond_to_invite(db, body.email, body.response)


@router.post("/accept/{token}", response_model=ProfileOut)
async def accept_invite(token: str, db: AsyncSession = Depends(get_db)):
    return await invites.accept_invite(db, token)
