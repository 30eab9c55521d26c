"""Permission Guard - Authorization enforcement for expense and membership actions

All authorization decisions live in ordered rule tables. The first rule that
fails decides the error; later rules are not evaluated.
"""
from typing import Callable, Dict, List, NamedTuple, Optional

from ..domain.models import Expense, Membership
from ..domain.enums import ExpenseAction, Role, ADMIN_ROLES
from ..domain.errors import ForbiddenError, MembershipNotFoundError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ActionRequest(NamedTuple):
    """Everything an expense rule may look at"""
    actor_id: str
    role: Role
    expense: Expense


class Rule(NamedTuple):
    name: str
    check: Callable[[ActionRequest], bool]
    message: str


def _is_creator(req: ActionRequest) -> bool:
    return req.actor_id == req.expense.user_id


def _not_creator(req: ActionRequest) -> bool:
    return req.actor_id != req.expense.user_id


def _is_reviewer(req: ActionRequest) -> bool:
    if req.role in ADMIN_ROLES:
        return True
    return req.expense.approver_id is not None and req.actor_id == req.expense.approver_id


def _is_finance(req: ActionRequest) -> bool:
    return req.role == Role.FINANCE


_CREATOR_ONLY = [
    Rule("creator", _is_creator, "Only the creator can submit this expense"),
]

_MANAGER_DECISION = [
    Rule("not_creator", _not_creator, "You cannot approve your own expense."),
    Rule("reviewer", _is_reviewer, "Only the assigned approver, an admin or the owner can review this expense"),
]

_FINANCE_DECISION = [
    Rule("finance", _is_finance, "Only finance can perform this action"),
]

EXPENSE_RULES: Dict[ExpenseAction, List[Rule]] = {
    ExpenseAction.SUBMIT: _CREATOR_ONLY,
    ExpenseAction.RESUBMIT: _CREATOR_ONLY,
    ExpenseAction.MANAGER_APPROVE: _MANAGER_DECISION,
    ExpenseAction.MANAGER_REJECT: _MANAGER_DECISION,
    ExpenseAction.FINANCE_APPROVE: _FINANCE_DECISION,
    ExpenseAction.FINANCE_REJECT: _FINANCE_DECISION,
    ExpenseAction.MARK_PAYMENT_PROCESSED: _FINANCE_DECISION,
    ExpenseAction.MARK_PAYMENT_NOT_PROCESSED: _FINANCE_DECISION,
}


class PermissionGuard:
    """
    Permission enforcement for expense and membership operations

    Rules:
    - Only the creator submits, resubmits and edits
    - Manager decisions: assigned approver, admin or owner, never the creator
    - Finance and payment decisions: finance role only
    - Membership administration: owner or admin, with owner protections
    """

    def __init__(self, rules: Optional[Dict[ExpenseAction, List[Rule]]] = None):
        self.rules = rules or EXPENSE_RULES

    def authorize_action(
        self,
        actor_id: str,
        role: Role,
        expense: Expense,
        action: ExpenseAction
    ) -> None:
        """
        Raises:
            ForbiddenError: The first failing rule for this action
        """
        request = ActionRequest(actor_id=actor_id, role=role, expense=expense)
        for rule in self.rules.get(action, []):
            if not rule.check(request):
                logger.info(
                    f"Denied {action.value}: rule '{rule.name}'",
                    extra={"expense_id": expense.expense_id, "actor_id": actor_id, "action": action.value}
                )
                raise ForbiddenError(
                    rule.message,
                    details={"action": action.value, "rule": rule.name, "role": role.value}
                )

    def can_perform(self, actor_id: str, role: Role, expense: Expense, action: ExpenseAction) -> bool:
        try:
            self.authorize_action(actor_id, role, expense, action)
        except ForbiddenError:
            return False
        return True

    def ensure_creator(self, actor_id: str, expense: Expense) -> None:
        if actor_id != expense.user_id:
            raise ForbiddenError("Only the creator can modify this expense")

    def ensure_admin(self, role: Role) -> None:
        if role not in ADMIN_ROLES:
            raise ForbiddenError("Insufficient permissions", details={"role": role.value})

    # =========================================================================
    # Membership administration
    # =========================================================================

    def authorize_role_change(
        self,
        actor_id: str,
        actor_role: Role,
        target: Optional[Membership],
        new_role: Role,
        target_user_id: Optional[str] = None
    ) -> None:
        """
        Ordered rules, first failure wins:
        1. Actor is owner or admin
        2. Target membership exists
        3. Actor is not the target
        4. Only an owner changes an owner's role
        5. Only an owner grants the owner role
        """
        if actor_role not in ADMIN_ROLES:
            raise ForbiddenError("Insufficient permissions", details={"rule": "admin"})
        if target is None:
            raise MembershipNotFoundError(
                "Member not found in this organization",
                details={"user_id": target_user_id}
            )
        if target.user_id == actor_id:
            raise ForbiddenError("Cannot change your own role", details={"rule": "self"})
        if target.role == Role.OWNER and actor_role != Role.OWNER:
            raise ForbiddenError("Only owner can change another owner's role", details={"rule": "owner_target"})
        if new_role == Role.OWNER and actor_role != Role.OWNER:
            raise ForbiddenError("Only owner can assign owner role", details={"rule": "owner_grant"})

    def authorize_member_removal(
        self,
        actor_id: str,
        actor_role: Role,
        target: Optional[Membership],
        target_user_id: Optional[str] = None
    ) -> None:
        """Same ordering as role changes, without the grant rule"""
        if actor_role not in ADMIN_ROLES:
            raise ForbiddenError("Insufficient permissions", details={"rule": "admin"})
        if target is None:
            raise MembershipNotFoundError(
                "Member not found in this organization",
                details={"user_id": target_user_id}
            )
        if target.user_id == actor_id:
            raise ForbiddenError("Cannot remove yourself", details={"rule": "self"})
        if target.role == Role.OWNER and actor_role != Role.OWNER:
            raise ForbiddenError("Only owner can remove another owner", details={"rule": "owner_target"})
