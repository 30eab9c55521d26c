"""Organization Service - Organizations, memberships and member administration"""
from typing import Any, Dict, List, Optional

from ..domain.models import ActorContext, Membership, Organization, OrgContext
from ..domain.enums import Role
from ..domain.errors import (
    DuplicateError, OrganizationNotFoundError, ValidationError
)
from ..repositories.organization_repo import OrganizationRepository
from ..repositories.profile_repo import ProfileRepository
from ..engine.permission_guard import PermissionGuard
from .policy_service import PolicyService
from ..utils.idgen import generate_membership_id, generate_organization_id, slugify
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

MAX_SLUG_ATTEMPTS = 100
EDITABLE_ORG_FIELDS = ("name", "settings")


class OrganizationService:
    """Service for organization and membership operations"""

    def __init__(
        self,
        permission_guard: Optional[PermissionGuard] = None,
        policy_service: Optional[PolicyService] = None
    ):
        self.repo = OrganizationRepository()
        self.profile_repo = ProfileRepository()
        self.permission_guard = permission_guard or PermissionGuard()
        self.policy_service = policy_service or PolicyService(self.permission_guard)

    # =========================================================================
    # Context
    # =========================================================================

    def resolve_context(self, actor: ActorContext, slug: str) -> OrgContext:
        """
        Resolve the acting user's organization and role from a slug.

        Non-members get the same error as a missing org so slugs do not leak.
        """
        organization = self.repo.get_organization_by_slug(slug)
        if organization is None:
            raise OrganizationNotFoundError(f"Organization {slug} not found")

        role = self.repo.get_membership_role(organization.org_id, actor.user_id)
        if role is None:
            raise OrganizationNotFoundError(f"Organization {slug} not found")

        return OrgContext(actor=actor, organization=organization, role=role)

    # =========================================================================
    # Organizations
    # =========================================================================

    def _unique_slug(self, name: str) -> str:
        base = slugify(name)
        if not self.repo.slug_exists(base):
            return base
        for suffix in range(1, MAX_SLUG_ATTEMPTS):
            candidate = f"{base}-{suffix}"
            if not self.repo.slug_exists(candidate):
                return candidate
        raise DuplicateError(f"Could not generate a unique slug for {name}")

    def create_organization(self, actor: ActorContext, name: str, settings: Optional[Dict[str, Any]] = None) -> OrgContext:
        """
        Create an organization with the actor as owner and the default policies

        Returns:
            OrgContext for the founder
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Organization name is required")

        now = utc_now()
        organization = self.repo.create_organization(Organization(
            org_id=generate_organization_id(),
            name=name,
            slug=self._unique_slug(name),
            created_by=actor.user_id,
            settings=settings or {},
            created_at=now,
        ))

        self.repo.create_membership(Membership(
            membership_id=generate_membership_id(),
            org_id=organization.org_id,
            user_id=actor.user_id,
            role=Role.OWNER,
            created_at=now,
        ))
        self.policy_service.seed_default_policies(organization.org_id)

        logger.info(
            f"Created organization {organization.slug}",
            extra={"org_id": organization.org_id, "actor_id": actor.user_id}
        )
        return OrgContext(actor=actor, organization=organization, role=Role.OWNER)

    def list_my_organizations(self, actor: ActorContext) -> List[Dict[str, Any]]:
        return self.repo.list_organizations_for_user(actor.user_id)

    def update_organization(self, ctx: OrgContext, data: Dict[str, Any]) -> Organization:
        self.permission_guard.ensure_admin(ctx.role)

        updates = {k: v for k, v in data.items() if k in EDITABLE_ORG_FIELDS and v is not None}
        if "name" in updates:
            updates["name"] = updates["name"].strip()
            if not updates["name"]:
                raise ValidationError("Organization name is required")
        if not updates:
            raise ValidationError("No organization fields to update")

        return self.repo.update_organization(ctx.org_id, updates)

    # =========================================================================
    # Members
    # =========================================================================

    def list_members(self, ctx: OrgContext, roles: Optional[List[Role]] = None) -> List[Dict[str, Any]]:
        """Memberships joined with directory profiles"""
        memberships = self.repo.list_memberships(ctx.org_id, roles)
        profiles = self.profile_repo.get_profiles([m.user_id for m in memberships])

        members = []
        for membership in memberships:
            profile = profiles.get(membership.user_id)
            members.append({
                "membership": membership,
                "email": profile.email if profile else None,
                "full_name": profile.full_name if profile else None,
            })
        return members

    def update_member_role(self, ctx: OrgContext, target_user_id: str, new_role: Role) -> Membership:
        target = self.repo.get_membership(ctx.org_id, target_user_id)
        self.permission_guard.authorize_role_change(
            ctx.user_id, ctx.role, target, new_role, target_user_id=target_user_id
        )

        updated = self.repo.update_membership_role(ctx.org_id, target_user_id, new_role, expected_role=target.role)
        logger.info(
            f"Changed role of {target_user_id}: {target.role.value} -> {new_role.value}",
            extra={"org_id": ctx.org_id, "actor_id": ctx.user_id}
        )
        return updated

    def remove_member(self, ctx: OrgContext, target_user_id: str) -> None:
        target = self.repo.get_membership(ctx.org_id, target_user_id)
        self.permission_guard.authorize_member_removal(
            ctx.user_id, ctx.role, target, target_user_id=target_user_id
        )
        self.repo.delete_membership(ctx.org_id, target_user_id)
        logger.info(f"Removed member {target_user_id}", extra={"org_id": ctx.org_id, "actor_id": ctx.user_id})

