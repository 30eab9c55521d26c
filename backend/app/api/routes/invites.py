"""Invitation API Routes - Email invites and invite links"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, EmailStr, Field

from ..deps import get_current_user_dep, get_org_context_dep
from ...domain.models import ActorContext, OrgContext
from ...domain.enums import InviteStatus, Role
from ...services.invite_service import InviteService

router = APIRouter()


class SendInviteRequest(BaseModel):
    email: EmailStr
    role: Role = Role.MEMBER


class GenerateLinkRequest(BaseModel):
    role: Role = Role.MEMBER
    max_uses: Optional[int] = Field(None, ge=1)
    expires_in_days: Optional[int] = Field(None, ge=1, le=365)


def _joined(ctx: OrgContext):
    return {"organization": ctx.organization, "role": ctx.role}


# ============================================================================
# Email Invites
# ============================================================================

@router.post("/organizations/{slug}/invites", status_code=status.HTTP_201_CREATED)
async def send_invite(request: SendInviteRequest, ctx: OrgContext = Depends(get_org_context_dep)):
    """Invite an email address; the invitation email is queued"""
    return InviteService().send_invite(ctx, request.email, request.role)


@router.get("/organizations/{slug}/invites")
async def list_invites(
    invite_status: Optional[InviteStatus] = Query(None, alias="status"),
    ctx: OrgContext = Depends(get_org_context_dep)
):
    return {"items": InviteService().list_invites(ctx, invite_status)}


@router.post("/invites/{invite_id}/accept")
async def accept_invite(invite_id: str, actor: ActorContext = Depends(get_current_user_dep)):
    """Accept an invite sent to the caller's email"""
    return _joined(InviteService().accept_invite(actor, invite_id))


# ============================================================================
# Invite Links
# ============================================================================

@router.post("/organizations/{slug}/invite-links", status_code=status.HTTP_201_CREATED)
async def generate_invite_link(request: GenerateLinkRequest, ctx: OrgContext = Depends(get_org_context_dep)):
    return InviteService().generate_link(ctx, request.role, request.max_uses, request.expires_in_days)


@router.get("/organizations/{slug}/invite-links")
async def list_invite_links(ctx: OrgContext = Depends(get_org_context_dep)):
    return {"items": InviteService().list_links(ctx)}


@router.post("/organizations/{slug}/invite-links/{link_id}/deactivate")
async def deactivate_invite_link(link_id: str, ctx: OrgContext = Depends(get_org_context_dep)):
    return {"link": InviteService().deactivate_link(ctx, link_id)}


@router.get("/invite-links/{link_id}")
async def describe_invite_link(link_id: str, actor: ActorContext = Depends(get_current_user_dep)):
    """Organization and role behind a link, and whether it can still be used"""
    return InviteService().describe_link(link_id)


@router.post("/invite-links/{link_id}/use")
async def use_invite_link(link_id: str, actor: ActorContext = Depends(get_current_user_dep)):
    """
    Join an organization through an invite link

    Fails with 409 LIMIT_EXCEEDED once the link has no uses left.
    """
    return _joined(InviteService().use_link(actor, link_id))
