"""Policy API Routes"""
from typing import Optional
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..deps import get_org_context_dep
from ...domain.models import OrgContext
from ...services.policy_service import PolicyService

router = APIRouter()


class PolicyRequest(BaseModel):
    """Create a policy row"""
    expense_type: str = Field(..., min_length=1, max_length=200)
    upper_limit: Optional[float] = Field(None, ge=0)
    eligibility: Optional[str] = Field(None, max_length=200)
    conditions: Optional[str] = Field(None, max_length=4000)
    per_unit_cost: Optional[str] = Field(None, max_length=100)


class UpdatePolicyRequest(BaseModel):
    """Partial policy update"""
    expense_type: Optional[str] = Field(None, min_length=1, max_length=200)
    upper_limit: Optional[float] = Field(None, ge=0)
    eligibility: Optional[str] = Field(None, max_length=200)
    conditions: Optional[str] = Field(None, max_length=4000)
    per_unit_cost: Optional[str] = Field(None, max_length=100)


class PolicyCheckRequest(BaseModel):
    """Preview the policy warning for an amount"""
    expense_type: str
    amount: float = Field(..., gt=0)
    eligibility: Optional[str] = None


@router.get("/organizations/{slug}/policies")
async def list_policies(ctx: OrgContext = Depends(get_org_context_dep)):
    """Policies in stored order"""
    return {"items": PolicyService().list_policies(ctx)}


@router.post("/organizations/{slug}/policies", status_code=status.HTTP_201_CREATED)
async def create_policy(request: PolicyRequest, ctx: OrgContext = Depends(get_org_context_dep)):
    return {"policy": PolicyService().create_policy(ctx, request.model_dump())}


@router.post("/organizations/{slug}/policies/check")
async def check_policy(request: PolicyCheckRequest, ctx: OrgContext = Depends(get_org_context_dep)):
    """Advisory only; never blocks a submission"""
    warning = PolicyService().check_amount(ctx, request.expense_type, request.amount, request.eligibility)
    return {"policy_warning": warning}


@router.patch("/organizations/{slug}/policies/{policy_id}")
async def update_policy(
    policy_id: str,
    request: UpdatePolicyRequest,
    ctx: OrgContext = Depends(get_org_context_dep)
):
    policy = PolicyService().update_policy(ctx, policy_id, request.model_dump(exclude_unset=True))
    return {"policy": policy}


@router.delete("/organizations/{slug}/policies/{policy_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_policy(policy_id: str, ctx: OrgContext = Depends(get_org_context_dep)):
    PolicyService().delete_policy(ctx, policy_id)
