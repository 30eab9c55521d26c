"""Domain Models - Pydantic schemas for all entities"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, EmailStr, ConfigDict, field_serializer

from .enums import (
    Role, ExpenseStatus, ExpenseAction, DecisionStage, HistoryAction,
    NotificationStatus, NotificationTemplateKey, InviteStatus
)


# ============================================================================
# Identity & Session Context
# ============================================================================

class ActorContext(BaseModel):
    """Current actor context from JWT token"""
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., description="Identity provider user id (sub)")
    email: EmailStr = Field(..., description="User email")
    display_name: str = Field(..., description="User display name")


class Profile(BaseModel):
    """Directory entry used to resolve names and notification recipients"""
    model_config = ConfigDict(extra="ignore")

    user_id: str
    email: Optional[EmailStr] = None
    full_name: Optional[str] = None
    updated_at: Optional[datetime] = None

    @property
    def label(self) -> str:
        return self.full_name or self.email or self.user_id


# ============================================================================
# Organization & Membership
# ============================================================================

class Organization(BaseModel):
    """Tenant boundary"""
    model_config = ConfigDict(extra="ignore")

    org_id: str
    name: str
    slug: str
    created_by: str
    settings: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: Optional[datetime] = None


class Membership(BaseModel):
    """Ties a user to an organization with exactly one role"""
    model_config = ConfigDict(extra="ignore")

    membership_id: str
    org_id: str
    user_id: str
    role: Role
    created_at: datetime


class OrgContext(BaseModel):
    """Session-scoped context: who is acting, in which org, with which role"""

    actor: ActorContext
    organization: Organization
    role: Role

    @property
    def org_id(self) -> str:
        return self.organization.org_id

    @property
    def user_id(self) -> str:
        return self.actor.user_id


# ============================================================================
# Expenses
# ============================================================================

class Expense(BaseModel):
    """Reimbursement request moving through the workflow"""
    model_config = ConfigDict(extra="ignore")

    expense_id: str
    org_id: str
    user_id: str = Field(..., description="Creator")
    approver_id: Optional[str] = Field(None, description="Assigned manager")
    amount: float = Field(..., gt=0)
    expense_type: str
    expense_date: date
    description: Optional[str] = None
    status: ExpenseStatus
    approved_amount: Optional[float] = None
    rejection_reason: Optional[str] = None
    event_id: Optional[str] = None
    receipt_path: Optional[str] = None
    custom_fields: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: Optional[datetime] = None

    @field_serializer("expense_date")
    def _serialize_date(self, value: date) -> str:
        # Stored as ISO string; BSON has no date-only type
        return value.isoformat()


class ExpenseComment(BaseModel):
    """Comment on an expense"""
    model_config = ConfigDict(extra="ignore")

    comment_id: str
    expense_id: str
    user_id: str
    user_name: Optional[str] = None
    content: str
    created_at: datetime


class ExpenseHistoryEntry(BaseModel):
    """Append-only audit entry for an expense"""
    model_config = ConfigDict(extra="ignore")

    history_id: str
    expense_id: str
    user_id: str
    user_name: str
    action_type: HistoryAction
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    created_at: datetime


# ============================================================================
# Policies
# ============================================================================

class Policy(BaseModel):
    """Per-organization, per-expense-type spending guidance"""
    model_config = ConfigDict(extra="ignore")

    policy_id: str
    org_id: str
    expense_type: str
    upper_limit: Optional[float] = None
    eligibility: Optional[str] = None
    conditions: Optional[str] = None
    per_unit_cost: Optional[str] = None
    position: int = Field(0, description="Stored order; first match wins")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PolicyWarning(BaseModel):
    """Advisory signal: the expense exceeds its policy limit"""

    policy_id: str
    expense_type: str
    amount: float
    upper_limit: float
    excess: float
    message: str


# ============================================================================
# Vouchers
# ============================================================================

class Voucher(BaseModel):
    """Printable snapshot of an expense"""
    model_config = ConfigDict(extra="ignore")

    voucher_id: str
    expense_id: str
    org_id: str
    your_name: str = Field(..., description="Payer name")
    amount: float
    purpose: Optional[str] = None
    credit_person: Optional[str] = None
    signature_url: Optional[str] = None
    pdf_path: Optional[str] = None
    created_by: str
    created_at: datetime
    updated_at: Optional[datetime] = None


class VoucherPdf(BaseModel):
    """Result of voucher PDF generation"""

    voucher_id: str
    path: str
    signed_url: str


# ============================================================================
# Invitations
# ============================================================================

class Invite(BaseModel):
    """Single-use email invite"""
    model_config = ConfigDict(extra="ignore")

    invite_id: str
    org_id: str
    email: EmailStr
    role: Role
    status: InviteStatus = InviteStatus.PENDING
    invited_by: str
    created_at: datetime
    accepted_at: Optional[datetime] = None


class InviteLink(BaseModel):
    """Multi-use invite link with optional expiry and usage cap"""
    model_config = ConfigDict(extra="ignore")

    link_id: str
    org_id: str
    role: Role
    created_by: str
    is_active: bool = True
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, ge=1)
    current_uses: int = 0
    created_at: datetime


class InviteLinkUsage(BaseModel):
    """Record of an email redeeming an invite link"""
    model_config = ConfigDict(extra="ignore")

    usage_id: str
    link_id: str
    email: EmailStr
    user_id: str
    used_at: datetime


# ============================================================================
# Notifications
# ============================================================================

class NotificationOutbox(BaseModel):
    """Notification queued for asynchronous delivery"""
    model_config = ConfigDict(extra="ignore")

    notification_id: str
    expense_id: Optional[str] = None
    template_key: NotificationTemplateKey
    recipients: List[str]
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: NotificationStatus = NotificationStatus.PENDING
    retry_count: int = 0
    next_retry_at: Optional[datetime] = None
    locked_until: Optional[datetime] = None
    locked_by: Optional[str] = None
    last_error: Optional[str] = None
    created_at: datetime
    sent_at: Optional[datetime] = None


class NotificationIntent(BaseModel):
    """One email the router decided to send"""

    recipient_email: str
    template_key: NotificationTemplateKey
    payload: Dict[str, Any] = Field(default_factory=dict)


class SideEffectReport(BaseModel):
    """
    Outcome of best-effort side effects.

    Never converted into an exception on the transition path.
    """

    enqueued: List[str] = Field(default_factory=list, description="Recipient emails queued")
    skipped: List[str] = Field(default_factory=list, description="Reasons recipients were skipped")
    failures: List[str] = Field(default_factory=list, description="Errors swallowed at the boundary")

    @property
    def ok(self) -> bool:
        return not self.failures

    def merge(self, other: "SideEffectReport") -> "SideEffectReport":
        return SideEffectReport(
            enqueued=self.enqueued + other.enqueued,
            skipped=self.skipped + other.skipped,
            failures=self.failures + other.failures,
        )


class TransitionResult(BaseModel):
    """What a workflow transition hands back to its caller"""

    expense: Expense
    action: ExpenseAction
    previous_status: ExpenseStatus
    stage: Optional[DecisionStage] = None
    custom_amount: bool = False
    policy_warning: Optional[PolicyWarning] = None
    side_effects: SideEffectReport = Field(default_factory=SideEffectReport)
    voucher_id_to_render: Optional[str] = None
