"""Expense Service - Business logic for expenses, comments and history

Status changes are delegated to the ExpenseWorkflowEngine; this service
owns creation, editing, queues and discussion.
"""
from datetime import date
from typing import Any, Dict, List, Optional

from ..domain.models import (
    Expense, ExpenseComment, ExpenseHistoryEntry, OrgContext, SideEffectReport, TransitionResult
)
from ..domain.enums import (
    ApprovalType, ExpenseAction, ExpenseStatus, Role, ADMIN_ROLES, EDITABLE_STATUSES
)
from ..domain.errors import ExpenseNotFoundError, ForbiddenError, ValidationError
from ..repositories.expense_repo import ExpenseRepository
from ..repositories.audit_repo import AuditRepository
from ..repositories.organization_repo import OrganizationRepository
from ..engine import ExpenseWorkflowEngine, find_matching_policy
from ..utils.idgen import generate_comment_id, generate_expense_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

EDITABLE_EXPENSE_FIELDS = (
    "amount", "expense_type", "expense_date", "description", "approver_id",
    "event_id", "receipt_path", "custom_fields"
)

REVIEW_ROLES = ADMIN_ROLES | {Role.FINANCE}


class ExpenseView:
    """Named list filters"""
    MINE = "mine"
    APPROVALS = "approvals"
    FINANCE = "finance"
    PAYMENTS = "payments"
    RECORDS = "records"
    ALL = "all"

    CHOICES = (MINE, APPROVALS, FINANCE, PAYMENTS, RECORDS, ALL)


VIEW_STATUSES = {
    ExpenseView.FINANCE: [ExpenseStatus.APPROVED],
    ExpenseView.PAYMENTS: [ExpenseStatus.FINANCE_APPROVED],
    ExpenseView.RECORDS: [ExpenseStatus.PAYMENT_PROCESSED, ExpenseStatus.PAYMENT_NOT_PROCESSED],
}


class ExpenseService:
    """Service for expense operations"""

    def __init__(self, engine: Optional[ExpenseWorkflowEngine] = None):
        self.engine = engine or ExpenseWorkflowEngine()
        self.repo = ExpenseRepository()
        self.audit_repo = AuditRepository()
        self.org_repo = OrganizationRepository()

    # =========================================================================
    # Lookup
    # =========================================================================

    def _load(self, ctx: OrgContext, expense_id: str) -> Expense:
        expense = self.repo.get_expense(expense_id)
        if expense is None or expense.org_id != ctx.org_id:
            raise ExpenseNotFoundError(f"Expense {expense_id} not found")
        return expense

    def _ensure_approver_is_member(self, ctx: OrgContext, approver_id: Optional[str]) -> None:
        if approver_id and self.org_repo.get_membership(ctx.org_id, approver_id) is None:
            raise ValidationError(
                "Approver must be a member of this organization",
                details={"approver_id": approver_id}
            )

    @staticmethod
    def _validate_amount(amount: Any) -> float:
        if amount is None:
            raise ValidationError("Amount is required")
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero", details={"amount": amount})
        return float(amount)

    # =========================================================================
    # Create / Update
    # =========================================================================

    def create_expense(self, ctx: OrgContext, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create an expense in draft or submitted status

        Creating directly as submitted notifies the approver exactly like a
        submit transition.

        Returns:
            Dict with the expense, the policy warning and the side-effect report
        """
        status = ExpenseStatus(data.get("status") or ExpenseStatus.DRAFT)
        if status not in (ExpenseStatus.DRAFT, ExpenseStatus.SUBMITTED):
            raise ValidationError(
                "New expenses start as draft or submitted",
                details={"status": status.value}
            )

        expense_type = (data.get("expense_type") or "").strip()
        if not expense_type:
            raise ValidationError("Expense type is required")

        approver_id = data.get("approver_id")
        self._ensure_approver_is_member(ctx, approver_id)

        expense = self.repo.create_expense(Expense(
            expense_id=generate_expense_id(),
            org_id=ctx.org_id,
            user_id=ctx.user_id,
            approver_id=approver_id,
            amount=self._validate_amount(data.get("amount")),
            expense_type=expense_type,
            expense_date=data.get("expense_date") or date.today(),
            description=data.get("description"),
            status=status,
            event_id=data.get("event_id"),
            receipt_path=data.get("receipt_path"),
            custom_fields=data.get("custom_fields") or {},
            created_at=utc_now(),
        ))

        report = self.engine.record_created(ctx.actor, expense)
        policy_warning = None
        if status == ExpenseStatus.SUBMITTED:
            policy_warning = self.engine.evaluate_policy_for(expense)
            report = report.merge(self.engine.notify_action(
                ctx, expense, ExpenseAction.SUBMIT, policy_warning=policy_warning
            ))

        return {"expense": expense, "policy_warning": policy_warning, "side_effects": report}

    def update_expense(self, ctx: OrgContext, expense_id: str, data: Dict[str, Any]) -> Expense:
        """Edit an expense (creator only, while draft or rejected)"""
        expense = self._load(ctx, expense_id)
        self.engine.permission_guard.ensure_creator(ctx.user_id, expense)

        if expense.status not in EDITABLE_STATUSES:
            raise ValidationError(
                f"Expense cannot be edited in status {expense.status.value}",
                details={"status": expense.status.value}
            )

        updates = {k: v for k, v in data.items() if k in EDITABLE_EXPENSE_FIELDS}
        if not updates:
            raise ValidationError("No expense fields to update")
        if "amount" in updates:
            updates["amount"] = self._validate_amount(updates["amount"])
        if "approver_id" in updates:
            self._ensure_approver_is_member(ctx, updates["approver_id"])
        if isinstance(updates.get("expense_date"), date):
            updates["expense_date"] = updates["expense_date"].isoformat()

        updated = self.repo.update_expense_fields(expense_id, updates, list(EDITABLE_STATUSES))

        try:
            self.engine.audit_writer.write_updated(expense_id, ctx.actor, ", ".join(sorted(updates)))
        except Exception as e:
            logger.warning(f"Failed to write history: {e}", extra={"expense_id": expense_id})

        return updated

    # =========================================================================
    # Read
    # =========================================================================

    def get_expense(self, ctx: OrgContext, expense_id: str) -> Dict[str, Any]:
        """Expense detail with policy warning and the actions available to the caller"""
        expense = self._load(ctx, expense_id)
        voucher = self.engine.voucher_repo.get_voucher_for_expense(expense_id)
        return {
            "expense": expense,
            "policy_warning": self.engine.evaluate_policy_for(expense),
            "allowed_actions": self.engine.allowed_actions(ctx, expense),
            "voucher_id": voucher.voucher_id if voucher else None,
        }

    def list_expenses(
        self,
        ctx: OrgContext,
        view: str = ExpenseView.MINE,
        status: Optional[ExpenseStatus] = None,
        expense_type: Optional[str] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Dict[str, Any]:
        """
        List expenses for one of the named views

        - mine: created by the caller
        - approvals: submitted and assigned to the caller (all submitted for admins)
        - finance: manager approved, waiting for finance
        - payments: finance approved, waiting for payment
        - records: payment outcomes
        - all: everything in the org (admins and finance)
        """
        filters: Dict[str, Any] = {"expense_type": expense_type}
        statuses: Optional[List[ExpenseStatus]] = None

        if view == ExpenseView.MINE:
            filters["user_id"] = ctx.user_id
        elif view == ExpenseView.APPROVALS:
            if ctx.role not in ADMIN_ROLES:
                filters["approver_id"] = ctx.user_id
            statuses = [ExpenseStatus.SUBMITTED]
        elif view in (ExpenseView.FINANCE, ExpenseView.PAYMENTS, ExpenseView.RECORDS, ExpenseView.ALL):
            if ctx.role not in REVIEW_ROLES:
                raise ForbiddenError("Insufficient permissions", details={"view": view})
            statuses = VIEW_STATUSES.get(view)
        else:
            raise ValidationError(f"Unknown view: {view}", details={"choices": list(ExpenseView.CHOICES)})

        # A status filter narrows the view; outside the view it matches nothing
        if status:
            if statuses is not None and status not in statuses:
                return {"items": [], "total": 0, "skip": skip, "limit": limit}
            statuses = [status]

        items = self.repo.list_expenses(ctx.org_id, statuses=statuses, skip=skip, limit=limit, **filters)
        total = self.repo.count_expenses(ctx.org_id, statuses=statuses, **filters)
        return {"items": items, "total": total, "skip": skip, "limit": limit}

    # =========================================================================
    # Transitions
    # =========================================================================

    def transition(
        self,
        ctx: OrgContext,
        expense_id: str,
        action: ExpenseAction,
        approval_type: Optional[ApprovalType] = None,
        approved_amount: Optional[float] = None,
        reason: Optional[str] = None,
        eligibility: Optional[str] = None
    ) -> TransitionResult:
        """
        Apply a workflow action, translating the approval type into an amount

        - full: no override (manager approval takes the requested amount)
        - policy: the matching policy limit, never above the requested amount
        - custom: the amount supplied by the caller
        """
        if approval_type == ApprovalType.CUSTOM:
            if approved_amount is None:
                raise ValidationError("Approved amount is required for a custom approval")
        elif approval_type == ApprovalType.POLICY:
            approved_amount = self._policy_amount(ctx, expense_id, eligibility)
        elif approval_type == ApprovalType.FULL:
            approved_amount = None

        return self.engine.transition(
            ctx, expense_id, action, approved_amount=approved_amount, reason=reason
        )

    def _policy_amount(self, ctx: OrgContext, expense_id: str, eligibility: Optional[str]) -> float:
        expense = self._load(ctx, expense_id)
        policy = find_matching_policy(
            expense.expense_type, self.engine.policy_repo.list_policies(ctx.org_id), eligibility
        )
        if policy is None or policy.upper_limit is None:
            raise ValidationError(
                f"No policy limit for {expense.expense_type}",
                details={"expense_type": expense.expense_type}
            )
        return min(expense.amount, policy.upper_limit)

    # =========================================================================
    # Comments & History
    # =========================================================================

    def add_comment(self, ctx: OrgContext, expense_id: str, content: str) -> Dict[str, Any]:
        """Add a comment and notify the other parties"""
        expense = self._load(ctx, expense_id)
        content = (content or "").strip()
        if not content:
            raise ValidationError("Comment cannot be empty")

        comment = self.repo.add_comment(ExpenseComment(
            comment_id=generate_comment_id(),
            expense_id=expense_id,
            user_id=ctx.user_id,
            user_name=ctx.actor.display_name,
            content=content,
            created_at=utc_now(),
        ))

        report = SideEffectReport()
        try:
            self.engine.audit_writer.write_comment(expense_id, ctx.actor, content)
        except Exception as e:
            logger.warning(f"Failed to write history: {e}", extra={"expense_id": expense_id})
            report.failures.append(f"history: {e}")

        report = report.merge(self.engine.notify_comment(ctx, expense, comment))
        return {"comment": comment, "side_effects": report}

    def list_comments(self, ctx: OrgContext, expense_id: str) -> List[ExpenseComment]:
        self._load(ctx, expense_id)
        return self.repo.list_comments(expense_id)

    def get_history(self, ctx: OrgContext, expense_id: str) -> List[ExpenseHistoryEntry]:
        self._load(ctx, expense_id)
        return self.audit_repo.get_history_for_expense(expense_id)
