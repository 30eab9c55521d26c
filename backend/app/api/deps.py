"""API Dependencies - Common dependencies for routes"""
from typing import Optional
from fastapi import Depends, Header

from ..domain.models import ActorContext, OrgContext
from ..domain.errors import AuthenticationError
from ..repositories.profile_repo import ProfileRepository
from ..services.organization_service import OrganizationService
from ..utils.jwt import get_current_user as _jwt_get_current_user  # Internal use only


async def get_current_user_dep(
    authorization: Optional[str] = Header(None)
) -> ActorContext:
    """
    Dependency to get current user from Authorization header

    Validates the JWT and refreshes the user's directory profile so
    notification routing can resolve their email and name.

    Raises:
        AuthenticationError: 401 if token is invalid or missing
    """
    if not authorization:
        raise AuthenticationError("Authorization header is missing")

    actor = _jwt_get_current_user(authorization)
    ProfileRepository().upsert_from_actor(actor)
    return actor


async def get_org_context_dep(
    slug: str,
    actor: ActorContext = Depends(get_current_user_dep)
) -> OrgContext:
    """
    Resolve the organization in the path and the actor's role in it

    Raises:
        OrganizationNotFoundError: 404 for unknown slugs and for non-members
    """
    return OrganizationService().resolve_context(actor, slug)
