"""
Expense Workflow Engine - The Brain of the System

This module contains the ExpenseWorkflowEngine class that moves expenses
through their approval workflow.

=============================================================================
MODULE STRUCTURE
=============================================================================

1. INITIALIZATION
   - Constructor with repository, guard and service dependencies

2. TRANSITIONS
   - transition: the single entry point for every status change
   - _resolve_approved_amount: approval amount and custom-amount tagging
   - _require_reason: rejection reason check
   - _build_updates: fields persisted with the new status

3. SIDE EFFECTS (best-effort, reported, never raised)
   - _record_history: append-only history
   - notify_action / notify_comment: route and enqueue
   - _voucher_to_render: voucher coupling after manager approval

4. DECISION SUPPORT
   - evaluate_policy_for: advisory policy warning

=============================================================================
TRANSITION CONTRACT (order matters)
=============================================================================

1. Load the expense                          -> ExpenseNotFoundError
2. Authorize through the rule table          -> ForbiddenError
3. Check the edge                            -> InvalidTransitionError
4. Approval actions: approved amount         -> ValidationError
5. Rejection actions: non-blank reason       -> ValidationError
6. Compare-and-set on the prior status       -> ConflictError
7. History + notifications, best-effort
8. Return the expense with a side-effect report

=============================================================================
"""

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..domain.models import (
    ActorContext, Expense, ExpenseComment, OrgContext, PolicyWarning,
    SideEffectReport, TransitionResult
)
from ..domain.enums import (
    ExpenseAction, ExpenseStatus, DecisionStage, APPROVAL_ACTIONS, REJECTION_ACTIONS,
    STATUS_LABELS
)
from ..domain.errors import ExpenseNotFoundError, ValidationError
from ..repositories.expense_repo import ExpenseRepository
from ..repositories.policy_repo import PolicyRepository
from ..repositories.profile_repo import ProfileRepository
from ..repositories.voucher_repo import VoucherRepository
from .permission_guard import PermissionGuard
from .transition_resolver import TransitionResolver
from .audit_writer import AuditWriter
from .policy_evaluator import evaluate_policy
from .notification_router import route_action, route_comment, RoutingResult
from ..utils.logger import get_logger

if TYPE_CHECKING:
    from ..services.notification_service import NotificationService

logger = get_logger(__name__)

MANAGER_DECISIONS = frozenset({ExpenseAction.MANAGER_APPROVE, ExpenseAction.MANAGER_REJECT})
POLICY_CHECKED_ACTIONS = frozenset({
    ExpenseAction.SUBMIT, ExpenseAction.RESUBMIT, ExpenseAction.MANAGER_APPROVE
})


class ExpenseWorkflowEngine:
    """
    The Expense Workflow Engine - Central orchestrator for expense transitions

    Responsibilities:
    - Enforce authorization via PermissionGuard
    - Enforce the state machine via TransitionResolver
    - Persist status changes with a compare-and-set on the prior status
    - Write history and notification outbox rows without letting them fail the change
    - Surface advisory policy warnings
    """

    def __init__(
        self,
        notification_service: Optional["NotificationService"] = None,
        permission_guard: Optional[PermissionGuard] = None,
        transition_resolver: Optional[TransitionResolver] = None,
        audit_writer: Optional[AuditWriter] = None
    ):
        self.expense_repo = ExpenseRepository()
        self.policy_repo = PolicyRepository()
        self.profile_repo = ProfileRepository()
        self.voucher_repo = VoucherRepository()
        self.permission_guard = permission_guard or PermissionGuard()
        self.transition_resolver = transition_resolver or TransitionResolver()
        self.audit_writer = audit_writer or AuditWriter()
        if notification_service is None:
            from ..services.notification_service import NotificationService
            notification_service = NotificationService()
        self.notification_service = notification_service

    # =========================================================================
    # Transitions
    # =========================================================================

    def transition(
        self,
        ctx: OrgContext,
        expense_id: str,
        action: ExpenseAction,
        approved_amount: Optional[float] = None,
        reason: Optional[str] = None
    ) -> TransitionResult:
        """
        Move an expense along one edge of the workflow

        Args:
            ctx: Acting user, their organization and role
            expense_id: Expense to move
            action: Requested action
            approved_amount: Optional amount for approval actions
            reason: Required for rejection actions

        Returns:
            TransitionResult with the updated expense and side-effect report
        """
        # 1. Load
        expense = self.expense_repo.get_expense(expense_id)
        if expense is None or expense.org_id != ctx.org_id:
            raise ExpenseNotFoundError(f"Expense {expense_id} not found")

        # 2. Authorize
        self.permission_guard.authorize_action(ctx.user_id, ctx.role, expense, action)

        # 3. Edge
        edge = self.transition_resolver.resolve(expense.status, action)

        # 4. Approved amount
        final_amount, custom_amount = self._resolve_approved_amount(expense, action, approved_amount)

        # 5. Rejection reason
        clean_reason = self._require_reason(action, reason)

        # 6. Compare-and-set
        updates = self._build_updates(ctx, action, edge.to_status, final_amount, clean_reason)
        updated = self.expense_repo.update_expense_status(expense_id, updates, expected_status=expense.status)

        logger.info(
            f"Expense {expense_id}: {expense.status.value} -> {updated.status.value}",
            extra={
                "expense_id": expense_id,
                "org_id": ctx.org_id,
                "actor_id": ctx.user_id,
                "action": action.value,
                "status": updated.status.value,
            }
        )

        # 7. Side effects
        policy_warning = self.evaluate_policy_for(updated) if action in POLICY_CHECKED_ACTIONS else None

        report = self._record_history(
            ctx.actor, updated, edge.history_action, expense.status,
            note=clean_reason or (self._amount_note(final_amount) if action in APPROVAL_ACTIONS else None)
        )
        report = report.merge(self.notify_action(
            ctx, updated, action,
            custom_amount=custom_amount,
            reason=clean_reason,
            policy_warning=policy_warning,
            stage=edge.stage,
        ))

        voucher_id = self._voucher_to_render(updated) if action == ExpenseAction.MANAGER_APPROVE else None

        # 8. Result
        return TransitionResult(
            expense=updated,
            action=action,
            previous_status=expense.status,
            stage=edge.stage,
            custom_amount=custom_amount,
            policy_warning=policy_warning,
            side_effects=report,
            voucher_id_to_render=voucher_id,
        )

    def _resolve_approved_amount(
        self,
        expense: Expense,
        action: ExpenseAction,
        approved_amount: Optional[float]
    ) -> tuple:
        """
        Returns (approved amount to persist, custom-amount flag).

        Non-approval actions return (None, False). Without an explicit amount,
        a manager approval takes the requested amount and a finance approval
        keeps whatever the manager approved.
        """
        if action not in APPROVAL_ACTIONS:
            return None, False

        if approved_amount is None:
            if action == ExpenseAction.FINANCE_APPROVE and expense.approved_amount is not None:
                final = expense.approved_amount
            else:
                final = expense.amount
        else:
            if approved_amount <= 0:
                raise ValidationError(
                    "Approved amount must be greater than zero",
                    details={"approved_amount": approved_amount}
                )
            final = float(approved_amount)

        return final, final != expense.amount

    def _require_reason(self, action: ExpenseAction, reason: Optional[str]) -> Optional[str]:
        if action not in REJECTION_ACTIONS:
            return None
        clean = (reason or "").strip()
        if not clean:
            raise ValidationError(
                "A rejection reason is required",
                details={"action": action.value}
            )
        return clean

    def _build_updates(
        self,
        ctx: OrgContext,
        action: ExpenseAction,
        to_status: ExpenseStatus,
        approved_amount: Optional[float],
        reason: Optional[str]
    ) -> Dict[str, Any]:
        updates: Dict[str, Any] = {"status": to_status.value}

        if action == ExpenseAction.RESUBMIT:
            updates["rejection_reason"] = None
            updates["approved_amount"] = None
        if action in MANAGER_DECISIONS:
            # Records who actually decided, which may be an admin standing in
            updates["approver_id"] = ctx.user_id
        if approved_amount is not None:
            updates["approved_amount"] = approved_amount
        if reason is not None:
            updates["rejection_reason"] = reason

        return updates

    @staticmethod
    def _amount_note(amount: Optional[float]) -> Optional[str]:
        return f"approved amount {amount:.2f}" if amount is not None else None

    # =========================================================================
    # Side Effects
    # =========================================================================

    def _record_history(
        self,
        actor: ActorContext,
        expense: Expense,
        history_action,
        old_status: ExpenseStatus,
        note: Optional[str] = None
    ) -> SideEffectReport:
        report = SideEffectReport()
        try:
            self.audit_writer.write_transition(
                expense.expense_id, history_action, actor,
                old_status=old_status.value, new_status=expense.status.value, note=note
            )
        except Exception as e:
            logger.warning(f"Failed to write history: {e}", extra={"expense_id": expense.expense_id})
            report.failures.append(f"history: {e}")
        return report

    def record_created(self, actor: ActorContext, expense: Expense) -> SideEffectReport:
        """History entry for a newly created expense"""
        report = SideEffectReport()
        try:
            self.audit_writer.write_created(expense.expense_id, actor, expense.status.value)
        except Exception as e:
            logger.warning(f"Failed to write history: {e}", extra={"expense_id": expense.expense_id})
            report.failures.append(f"history: {e}")
        return report

    def build_payload(
        self,
        ctx: OrgContext,
        expense: Expense,
        profiles: Dict[str, Any],
        **extra: Any
    ) -> Dict[str, Any]:
        """Template payload shared by every expense notification"""
        creator = profiles.get(expense.user_id)
        payload = {
            "expense_id": expense.expense_id,
            "org_slug": ctx.organization.slug,
            "org_name": ctx.organization.name,
            "expense_type": expense.expense_type,
            "amount": expense.amount,
            "approved_amount": expense.approved_amount,
            "expense_date": expense.expense_date.isoformat(),
            "description": expense.description,
            "status": expense.status.value,
            "status_label": STATUS_LABELS[expense.status],
            "creator_name": creator.label if creator else "A team member",
            "actor_name": ctx.actor.display_name,
        }
        payload.update({k: v for k, v in extra.items() if v is not None})
        return payload

    def _load_parties(self, expense: Expense) -> Dict[str, Any]:
        return self.profile_repo.get_profiles([expense.user_id, expense.approver_id])

    def _enqueue(self, routing: RoutingResult, expense: Expense) -> SideEffectReport:
        report = self.notification_service.enqueue_intents(routing.intents, expense_id=expense.expense_id)
        report.skipped.extend(routing.skipped)
        return report

    def notify_action(
        self,
        ctx: OrgContext,
        expense: Expense,
        action: ExpenseAction,
        custom_amount: bool = False,
        reason: Optional[str] = None,
        policy_warning: Optional[PolicyWarning] = None,
        stage: Optional[DecisionStage] = None
    ) -> SideEffectReport:
        """Route and enqueue the notification for a transition (best-effort)"""
        try:
            profiles = self._load_parties(expense)
            payload = self.build_payload(
                ctx, expense, profiles,
                custom_amount=custom_amount,
                reason=reason,
                stage=stage.value if stage else None,
                policy_warning=policy_warning.message if policy_warning else None,
            )
            return self._enqueue(route_action(expense, action, profiles, payload), expense)
        except Exception as e:
            logger.warning(
                f"Failed to dispatch notification for {action.value}: {e}",
                extra={"expense_id": expense.expense_id, "action": action.value}
            )
            return SideEffectReport(failures=[f"notification: {e}"])

    def notify_comment(self, ctx: OrgContext, expense: Expense, comment: ExpenseComment) -> SideEffectReport:
        """Route a new comment by who wrote it (best-effort)"""
        try:
            profiles = self._load_parties(expense)
            payload = self.build_payload(
                ctx, expense, profiles,
                comment=comment.content,
                commenter_name=ctx.actor.display_name,
            )
            return self._enqueue(route_comment(expense, ctx.user_id, ctx.role, profiles, payload), expense)
        except Exception as e:
            logger.warning(f"Failed to dispatch comment notification: {e}", extra={"expense_id": expense.expense_id})
            return SideEffectReport(failures=[f"notification: {e}"])

    def _voucher_to_render(self, expense: Expense) -> Optional[str]:
        try:
            voucher = self.voucher_repo.get_voucher_for_expense(expense.expense_id)
        except Exception as e:
            logger.warning(f"Voucher lookup failed: {e}", extra={"expense_id": expense.expense_id})
            return None
        return voucher.voucher_id if voucher else None

    # =========================================================================
    # Decision Support
    # =========================================================================

    def evaluate_policy_for(self, expense: Expense, eligibility: Optional[str] = None) -> Optional[PolicyWarning]:
        """Advisory warning for an expense against its org's policies"""
        try:
            policies = self.policy_repo.list_policies(expense.org_id)
        except Exception as e:
            logger.warning(f"Policy lookup failed: {e}", extra={"expense_id": expense.expense_id})
            return None
        return evaluate_policy(expense.expense_type, expense.amount, policies, eligibility)

    def allowed_actions(self, ctx: OrgContext, expense: Expense) -> List[ExpenseAction]:
        """Actions the actor could take on the expense right now"""
        return [
            action for action in self.transition_resolver.allowed_actions(expense.status)
            if self.permission_guard.can_perform(ctx.user_id, ctx.role, expense, action)
        ]
