"""Invite Service - Email invites and shareable invite links

Link redemption order:
1. Link checks: active, not expired, under cap
2. Membership and replay checks
3. Claim a slot (conditional increment)
4. Record usage, then insert membership
Any failure after step 3 deletes the usage row and releases the slot.
"""
from typing import Any, Dict, List, Optional

from ..domain.models import (
    ActorContext, Invite, InviteLink, InviteLinkUsage, Membership, NotificationIntent, OrgContext
)
from ..domain.enums import InviteStatus, NotificationTemplateKey, Role
from ..domain.errors import (
    DuplicateError, ForbiddenError, InviteNotFoundError, LimitExceededError,
    OrganizationNotFoundError, ValidationError
)
from ..repositories.invite_repo import InviteRepository
from ..repositories.organization_repo import OrganizationRepository
from ..engine.permission_guard import PermissionGuard
from .notification_service import NotificationService
from ..config.settings import settings
from ..utils.idgen import (
    generate_invite_id, generate_invite_link_id, generate_link_usage_id, generate_membership_id
)
from ..utils.time import add_days, is_expired, utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


def signup_url(invite_id: str) -> str:
    return f"{settings.frontend_url}/auth/signup?token={invite_id}"


def invite_link_url(link_id: str) -> str:
    return f"{settings.frontend_url}/invite/{link_id}"


class InviteService:
    """Service for invitations"""

    def __init__(
        self,
        notification_service: Optional[NotificationService] = None,
        permission_guard: Optional[PermissionGuard] = None
    ):
        self.repo = InviteRepository()
        self.org_repo = OrganizationRepository()
        self.notification_service = notification_service or NotificationService()
        self.permission_guard = permission_guard or PermissionGuard()

    def _ensure_can_invite(self, ctx: OrgContext, role: Role) -> None:
        self.permission_guard.ensure_admin(ctx.role)
        if role == Role.OWNER and ctx.role != Role.OWNER:
            raise ForbiddenError("Only owner can assign owner role", details={"rule": "owner_grant"})

    def _add_member(self, org_id: str, user_id: str, role: Role) -> Membership:
        return self.org_repo.create_membership(Membership(
            membership_id=generate_membership_id(),
            org_id=org_id,
            user_id=user_id,
            role=role,
            created_at=utc_now(),
        ))

    def _context_for(self, actor: ActorContext, org_id: str, role: Role) -> OrgContext:
        organization = self.org_repo.get_organization(org_id)
        if organization is None:
            raise OrganizationNotFoundError(f"Organization {org_id} not found")
        return OrgContext(actor=actor, organization=organization, role=role)

    # =========================================================================
    # Email Invites
    # =========================================================================

    def send_invite(self, ctx: OrgContext, email: str, role: Role) -> Dict[str, Any]:
        """
        Create a pending invite and queue the invitation email

        Returns:
            Dict with the invite, its signup URL and the side-effect report
        """
        self._ensure_can_invite(ctx, role)

        email = email.strip().lower()
        if self.repo.get_pending_invite(ctx.org_id, email):
            raise DuplicateError("An invite is already pending for this email", details={"email": email})

        invite = self.repo.create_invite(Invite(
            invite_id=generate_invite_id(),
            org_id=ctx.org_id,
            email=email,
            role=role,
            invited_by=ctx.user_id,
            created_at=utc_now(),
        ))
        url = signup_url(invite.invite_id)

        report = self.notification_service.enqueue_intents([
            NotificationIntent(
                recipient_email=email,
                template_key=NotificationTemplateKey.ORGANIZATION_INVITE,
                payload={
                    "org_name": ctx.organization.name,
                    "org_slug": ctx.organization.slug,
                    "inviter_name": ctx.actor.display_name,
                    "role": role.value,
                    "signup_url": url,
                },
            )
        ])

        logger.info(
            f"Invited {email} as {role.value}",
            extra={"org_id": ctx.org_id, "actor_id": ctx.user_id}
        )
        return {"invite": invite, "invite_url": url, "side_effects": report}

    def list_invites(self, ctx: OrgContext, status: Optional[InviteStatus] = None) -> List[Invite]:
        self.permission_guard.ensure_admin(ctx.role)
        return self.repo.list_invites(ctx.org_id, status)

    def accept_invite(self, actor: ActorContext, invite_id: str) -> OrgContext:
        """Consume a pending invite addressed to the actor's email"""
        invite = self.repo.get_invite_or_raise(invite_id)
        if str(invite.email).lower() != str(actor.email).lower():
            raise ForbiddenError("This invite was sent to a different email address")

        if self.repo.mark_invite_accepted(invite_id) is None:
            raise DuplicateError("This invite has already been used", details={"invite_id": invite_id})

        try:
            self._add_member(invite.org_id, actor.user_id, invite.role)
        except Exception:
            self.repo.revert_invite_acceptance(invite_id)
            raise

        logger.info(
            f"Accepted invite {invite_id}",
            extra={"org_id": invite.org_id, "actor_id": actor.user_id}
        )
        return self._context_for(actor, invite.org_id, invite.role)

    # =========================================================================
    # Invite Links
    # =========================================================================

    def generate_link(
        self,
        ctx: OrgContext,
        role: Role,
        max_uses: Optional[int] = None,
        expires_in_days: Optional[int] = None
    ) -> Dict[str, Any]:
        self._ensure_can_invite(ctx, role)
        if max_uses is not None and max_uses < 1:
            raise ValidationError("max_uses must be at least 1", details={"max_uses": max_uses})
        if expires_in_days is not None and expires_in_days < 1:
            raise ValidationError("expires_in_days must be at least 1", details={"expires_in_days": expires_in_days})

        now = utc_now()
        link = self.repo.create_link(InviteLink(
            link_id=generate_invite_link_id(),
            org_id=ctx.org_id,
            role=role,
            created_by=ctx.user_id,
            expires_at=add_days(now, expires_in_days) if expires_in_days else None,
            max_uses=max_uses,
            created_at=now,
        ))
        return {"link": link, "invite_url": invite_link_url(link.link_id)}

    def list_links(self, ctx: OrgContext) -> List[InviteLink]:
        self.permission_guard.ensure_admin(ctx.role)
        return self.repo.list_links(ctx.org_id)

    def deactivate_link(self, ctx: OrgContext, link_id: str) -> InviteLink:
        self.permission_guard.ensure_admin(ctx.role)
        return self.repo.deactivate_link(ctx.org_id, link_id)

    def describe_link(self, link_id: str) -> Dict[str, Any]:
        """What the invite page shows before redemption"""
        link = self.repo.get_link_or_raise(link_id)
        organization = self.org_repo.get_organization(link.org_id)
        if organization is None:
            raise InviteNotFoundError(f"Invite link {link_id} not found")

        usable = (
            link.is_active
            and not is_expired(link.expires_at)
            and (link.max_uses is None or link.current_uses < link.max_uses)
        )
        return {
            "link_id": link.link_id,
            "org_name": organization.name,
            "org_slug": organization.slug,
            "role": link.role,
            "usable": usable,
        }

    def _check_link(self, link: InviteLink) -> None:
        if not link.is_active:
            raise ValidationError("Invalid or expired link", details={"link_id": link.link_id})
        if is_expired(link.expires_at):
            raise ValidationError("Link has expired", details={"link_id": link.link_id})
        if link.max_uses is not None and link.current_uses >= link.max_uses:
            raise LimitExceededError("Link usage limit reached", details={"link_id": link.link_id})

    def use_link(self, actor: ActorContext, link_id: str) -> OrgContext:
        """
        Redeem an invite link for the actor

        Raises:
            InviteNotFoundError: Unknown link
            ValidationError: Inactive or expired link
            LimitExceededError: No uses left, including losing a race for the last one
            DuplicateError: Already a member, or this email already used the link
        """
        link = self.repo.get_link_or_raise(link_id)
        self._check_link(link)

        email = str(actor.email).lower()
        if self.org_repo.get_membership(link.org_id, actor.user_id):
            raise DuplicateError("You are already a member of this organization", details={"org_id": link.org_id})
        if self.repo.has_link_usage(link_id, email):
            raise DuplicateError("Email already used this link", details={"link_id": link_id})

        if not self.repo.claim_link_slot(link_id, link.max_uses):
            # Lost a race: the link filled up or was deactivated in between
            self._check_link(self.repo.get_link_or_raise(link_id))
            raise LimitExceededError("Link usage limit reached", details={"link_id": link_id})

        usage_id = generate_link_usage_id()
        usage_recorded = False
        try:
            self.repo.record_link_usage(InviteLinkUsage(
                usage_id=usage_id,
                link_id=link_id,
                email=email,
                user_id=actor.user_id,
                used_at=utc_now(),
            ))
            usage_recorded = True
            self._add_member(link.org_id, actor.user_id, link.role)
        except Exception:
            if usage_recorded:
                self.repo.delete_link_usage(usage_id)
            self.repo.release_link_slot(link_id)
            logger.warning(
                f"Invite link redemption rolled back for {email}",
                extra={"link_id": link_id, "org_id": link.org_id, "actor_id": actor.user_id}
            )
            raise

        logger.info(
            f"Redeemed invite link {link_id}",
            extra={"link_id": link_id, "org_id": link.org_id, "actor_id": actor.user_id}
        )
        return self._context_for(actor, link.org_id, link.role)
