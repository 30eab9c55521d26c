"""Organization API Routes - Organizations and members"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ..deps import get_current_user_dep, get_org_context_dep
from ...domain.models import ActorContext, OrgContext
from ...domain.enums import Role
from ...services.organization_service import OrganizationService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class CreateOrganizationRequest(BaseModel):
    """Request to create an organization"""
    name: str = Field(..., min_length=1, max_length=200)
    settings: Dict[str, Any] = Field(default_factory=dict)


class UpdateOrganizationRequest(BaseModel):
    """Request to update organization metadata"""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    settings: Optional[Dict[str, Any]] = None


class UpdateMemberRoleRequest(BaseModel):
    """Request to change a member's role"""
    role: Role


def _org_view(ctx: OrgContext) -> Dict[str, Any]:
    return {"organization": ctx.organization, "role": ctx.role}


# ============================================================================
# Organizations
# ============================================================================

@router.post("/organizations", status_code=status.HTTP_201_CREATED)
async def create_organization(
    request: CreateOrganizationRequest,
    actor: ActorContext = Depends(get_current_user_dep)
):
    """
    Create an organization

    The caller becomes its owner and the default policy table is seeded.
    """
    ctx = OrganizationService().create_organization(actor, request.name, request.settings)
    return _org_view(ctx)


@router.get("/organizations")
async def list_my_organizations(actor: ActorContext = Depends(get_current_user_dep)):
    """Organizations the caller belongs to, with their role in each"""
    return {"items": OrganizationService().list_my_organizations(actor)}


@router.get("/organizations/{slug}")
async def get_organization(ctx: OrgContext = Depends(get_org_context_dep)):
    return _org_view(ctx)


@router.patch("/organizations/{slug}")
async def update_organization(
    request: UpdateOrganizationRequest,
    ctx: OrgContext = Depends(get_org_context_dep)
):
    organization = OrganizationService().update_organization(ctx, request.model_dump(exclude_unset=True))
    return {"organization": organization, "role": ctx.role}


# ============================================================================
# Members
# ============================================================================

@router.get("/organizations/{slug}/members")
async def list_members(
    role: Optional[List[Role]] = Query(None),
    ctx: OrgContext = Depends(get_org_context_dep)
):
    """Members with their directory names and emails"""
    return {"items": OrganizationService().list_members(ctx, role)}


@router.patch("/organizations/{slug}/members/{user_id}")
async def update_member_role(
    user_id: str,
    request: UpdateMemberRoleRequest,
    ctx: OrgContext = Depends(get_org_context_dep)
):
    """
    Change a member's role

    Owners and admins only. Nobody changes their own role, only owners
    touch other owners, and only owners grant the owner role.
    """
    membership = OrganizationService().update_member_role(ctx, user_id, request.role)
    return {"membership": membership}


@router.delete("/organizations/{slug}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    user_id: str,
    ctx: OrgContext = Depends(get_org_context_dep)
):
    OrganizationService().remove_member(ctx, user_id)
