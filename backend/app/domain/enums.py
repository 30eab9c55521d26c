"""Domain Enums - All enumeration types"""
from enum import Enum


# ============================================================================
# Organization & Roles
# ============================================================================

class Role(str, Enum):
    """Membership role inside an organization"""
    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"
    FINANCE = "finance"


ADMIN_ROLES = frozenset({Role.OWNER, Role.ADMIN})


# ============================================================================
# Expense Workflow
# ============================================================================

class ExpenseStatus(str, Enum):
    """Expense workflow status"""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"                      # Manager approved
    MANAGER_REJECTED = "manager_rejected"
    FINANCE_APPROVED = "finance_approved"
    FINANCE_REJECTED = "finance_rejected"
    PAYMENT_PROCESSED = "payment_processed"
    PAYMENT_NOT_PROCESSED = "payment_not_processed"


TERMINAL_STATUSES = frozenset({
    ExpenseStatus.PAYMENT_PROCESSED,
    ExpenseStatus.PAYMENT_NOT_PROCESSED,
})

EDITABLE_STATUSES = frozenset({
    ExpenseStatus.DRAFT,
    ExpenseStatus.MANAGER_REJECTED,
    ExpenseStatus.FINANCE_REJECTED,
})

STATUS_LABELS = {
    ExpenseStatus.DRAFT: "Draft",
    ExpenseStatus.SUBMITTED: "Submitted",
    ExpenseStatus.APPROVED: "Manager Approved",
    ExpenseStatus.MANAGER_REJECTED: "Manager Rejected",
    ExpenseStatus.FINANCE_APPROVED: "Finance Approved",
    ExpenseStatus.FINANCE_REJECTED: "Finance Rejected",
    ExpenseStatus.PAYMENT_PROCESSED: "Payment successful",
    ExpenseStatus.PAYMENT_NOT_PROCESSED: "Payment has been rejected",
}


class ExpenseAction(str, Enum):
    """Actions that move an expense between statuses"""
    SUBMIT = "submit"
    RESUBMIT = "resubmit"
    MANAGER_APPROVE = "manager_approve"
    MANAGER_REJECT = "manager_reject"
    FINANCE_APPROVE = "finance_approve"
    FINANCE_REJECT = "finance_reject"
    MARK_PAYMENT_PROCESSED = "mark_payment_processed"
    MARK_PAYMENT_NOT_PROCESSED = "mark_payment_not_processed"


APPROVAL_ACTIONS = frozenset({
    ExpenseAction.MANAGER_APPROVE,
    ExpenseAction.FINANCE_APPROVE,
})

REJECTION_ACTIONS = frozenset({
    ExpenseAction.MANAGER_REJECT,
    ExpenseAction.FINANCE_REJECT,
    ExpenseAction.MARK_PAYMENT_NOT_PROCESSED,
})


class DecisionStage(str, Enum):
    """Which review stage produced a decision"""
    MANAGER = "manager"
    FINANCE = "finance"
    PAYMENT = "payment"


class ApprovalType(str, Enum):
    """How the manager chose the approved amount"""
    FULL = "full"        # Approved amount equals requested amount
    POLICY = "policy"    # Approved amount capped at the policy limit
    CUSTOM = "custom"    # Approver typed an amount


class HistoryAction(str, Enum):
    """Action types recorded in the expense history"""
    CREATED = "created"
    UPDATED = "updated"
    SUBMITTED = "submitted"
    RESUBMITTED = "resubmitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    FINANCE_APPROVED = "finance_approved"
    FINANCE_REJECTED = "finance_rejected"
    PAYMENT_PROCESSED = "payment_processed"
    PAYMENT_NOT_PROCESSED = "payment_not_processed"
    COMMENTED = "commented"


# ============================================================================
# Notifications
# ============================================================================

class NotificationStatus(str, Enum):
    """Notification outbox status"""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class NotificationTemplateKey(str, Enum):
    """Email template keys"""
    APPROVAL_PENDING = "APPROVAL_PENDING"
    MANAGER_APPROVED = "MANAGER_APPROVED"
    MANAGER_REJECTED = "MANAGER_REJECTED"
    FINANCE_APPROVED = "FINANCE_APPROVED"
    FINANCE_REJECTED = "FINANCE_REJECTED"
    PAYMENT_PROCESSED = "PAYMENT_PROCESSED"
    PAYMENT_NOT_PROCESSED = "PAYMENT_NOT_PROCESSED"
    COMMENT_ADDED = "COMMENT_ADDED"
    ORGANIZATION_INVITE = "ORGANIZATION_INVITE"


class NotificationEvent(str, Enum):
    """Workflow events that may produce notifications"""
    EXPENSE_SUBMITTED = "EXPENSE_SUBMITTED"
    MANAGER_DECISION = "MANAGER_DECISION"
    FINANCE_DECISION = "FINANCE_DECISION"
    PAYMENT_OUTCOME = "PAYMENT_OUTCOME"
    COMMENT_ADDED = "COMMENT_ADDED"


# ============================================================================
# Invitations
# ============================================================================

class InviteStatus(str, Enum):
    """Email invite status"""
    PENDING = "pending"
    ACCEPTED = "accepted"
