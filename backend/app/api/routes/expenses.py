"""Expense API Routes - Expenses, workflow actions, comments and history"""
from datetime import date
from typing import Any, Dict, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from pydantic import BaseModel, Field

from ..deps import get_org_context_dep
from ...domain.models import OrgContext, TransitionResult
from ...domain.enums import ApprovalType, ExpenseAction, ExpenseStatus
from ...services.expense_service import ExpenseService, ExpenseView
from ...services.voucher_service import VoucherService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class CreateExpenseRequest(BaseModel):
    """Request to create an expense"""
    amount: float = Field(..., gt=0)
    expense_type: str = Field(..., min_length=1, max_length=200)
    expense_date: date
    description: Optional[str] = Field(None, max_length=4000)
    approver_id: Optional[str] = None
    event_id: Optional[str] = None
    receipt_path: Optional[str] = None
    custom_fields: Dict[str, Any] = Field(default_factory=dict)
    status: ExpenseStatus = ExpenseStatus.DRAFT


class UpdateExpenseRequest(BaseModel):
    """Partial update of an editable expense"""
    amount: Optional[float] = Field(None, gt=0)
    expense_type: Optional[str] = Field(None, min_length=1, max_length=200)
    expense_date: Optional[date] = None
    description: Optional[str] = Field(None, max_length=4000)
    approver_id: Optional[str] = None
    event_id: Optional[str] = None
    receipt_path: Optional[str] = None
    custom_fields: Optional[Dict[str, Any]] = None


class TransitionRequest(BaseModel):
    """Workflow action on an expense"""
    action: ExpenseAction
    approval_type: Optional[ApprovalType] = None
    approved_amount: Optional[float] = None
    reason: Optional[str] = Field(None, max_length=2000)
    eligibility: Optional[str] = None


class CommentRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=4000)


def _transition_view(result: TransitionResult) -> Dict[str, Any]:
    return {
        "expense": result.expense,
        "previous_status": result.previous_status,
        "stage": result.stage,
        "custom_amount": result.custom_amount,
        "policy_warning": result.policy_warning,
        "side_effects": result.side_effects,
    }


# ============================================================================
# Expenses
# ============================================================================

@router.post("/organizations/{slug}/expenses", status_code=status.HTTP_201_CREATED)
async def create_expense(
    request: CreateExpenseRequest,
    ctx: OrgContext = Depends(get_org_context_dep)
):
    """
    Create an expense as draft or submitted

    Submitting on creation notifies the approver.
    """
    return ExpenseService().create_expense(ctx, request.model_dump())


@router.get("/organizations/{slug}/expenses")
async def list_expenses(
    view: str = Query(ExpenseView.MINE),
    status_filter: Optional[ExpenseStatus] = Query(None, alias="status"),
    expense_type: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    ctx: OrgContext = Depends(get_org_context_dep)
):
    """
    List expenses

    Views: mine, approvals, finance, payments, records, all.
    """
    return ExpenseService().list_expenses(ctx, view, status_filter, expense_type, skip, limit)


@router.get("/organizations/{slug}/expenses/{expense_id}")
async def get_expense(expense_id: str, ctx: OrgContext = Depends(get_org_context_dep)):
    """Expense detail with policy warning and the caller's available actions"""
    return ExpenseService().get_expense(ctx, expense_id)


@router.patch("/organizations/{slug}/expenses/{expense_id}")
async def update_expense(
    expense_id: str,
    request: UpdateExpenseRequest,
    ctx: OrgContext = Depends(get_org_context_dep)
):
    expense = ExpenseService().update_expense(ctx, expense_id, request.model_dump(exclude_unset=True))
    return {"expense": expense}


@router.post("/organizations/{slug}/expenses/{expense_id}/transitions")
async def transition_expense(
    expense_id: str,
    request: TransitionRequest,
    background_tasks: BackgroundTasks,
    ctx: OrgContext = Depends(get_org_context_dep)
):
    """
    Apply a workflow action

    Manager approval of an expense that already has a voucher schedules
    the voucher PDF to be regenerated after the response is sent.
    """
    result = ExpenseService().transition(
        ctx,
        expense_id,
        request.action,
        approval_type=request.approval_type,
        approved_amount=request.approved_amount,
        reason=request.reason,
        eligibility=request.eligibility,
    )

    if result.voucher_id_to_render:
        background_tasks.add_task(VoucherService().generate_pdf_best_effort, result.voucher_id_to_render)

    return _transition_view(result)


# ============================================================================
# Comments & History
# ============================================================================

@router.get("/organizations/{slug}/expenses/{expense_id}/comments")
async def list_comments(expense_id: str, ctx: OrgContext = Depends(get_org_context_dep)):
    return {"items": ExpenseService().list_comments(ctx, expense_id)}


@router.post("/organizations/{slug}/expenses/{expense_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    expense_id: str,
    request: CommentRequest,
    ctx: OrgContext = Depends(get_org_context_dep)
):
    return ExpenseService().add_comment(ctx, expense_id, request.content)


@router.get("/organizations/{slug}/expenses/{expense_id}/history")
async def get_history(expense_id: str, ctx: OrgContext = Depends(get_org_context_dep)):
    """History entries, newest first"""
    return {"items": ExpenseService().get_history(ctx, expense_id)}
