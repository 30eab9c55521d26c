"""Policy Service - Organization spending policies"""
from typing import Any, Dict, List, Optional

from ..domain.models import OrgContext, Policy, PolicyWarning
from ..domain.errors import NotFoundError, ValidationError
from ..repositories.policy_repo import PolicyRepository
from ..engine.permission_guard import PermissionGuard
from ..engine.policy_evaluator import evaluate_policy
from ..utils.idgen import generate_policy_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

ALL_MEMBERS = "All Team Members"
LEADERSHIP = "Leads + Heads + Directors + CEO/CIO"

# Seeded into every new organization, in this order
DEFAULT_POLICIES: List[Dict[str, Any]] = [
    {
        "expense_type": "Flights",
        "upper_limit": 5000,
        "eligibility": ALL_MEMBERS,
        "conditions": (
            "- for distances above 1000 km\n"
            "- under 1000km for team members >50yrs or in case of a severe medical condition "
            "with doctor's recommendation note\n"
            "- for distances for which the fastest train route is still over 24hrs"
        ),
        "per_unit_cost": None,
    },
    {
        "expense_type": "Flights",
        "upper_limit": 6500,
        "eligibility": ALL_MEMBERS,
        "conditions": "- only for team members residing in the North Eastern Region as well as Islands of India",
        "per_unit_cost": None,
    },
    {
        "expense_type": "Flights",
        "upper_limit": 6500,
        "eligibility": LEADERSHIP,
        "conditions": "- only for corporate and flexi bookings if and when needed",
        "per_unit_cost": None,
    },
    {
        "expense_type": "Trains",
        "upper_limit": 2000,
        "eligibility": ALL_MEMBERS,
        "conditions": "- for 3AC",
        "per_unit_cost": None,
    },
    {
        "expense_type": "Buses",
        "upper_limit": 1500,
        "eligibility": ALL_MEMBERS,
        "conditions": None,
        "per_unit_cost": None,
    },
    {
        "expense_type": "Personal Two-Wheeler",
        "upper_limit": 1000,
        "eligibility": ALL_MEMBERS,
        "conditions": None,
        "per_unit_cost": "3/km",
    },
    {
        "expense_type": "Personal Four-Wheeler",
        "upper_limit": 1000,
        "eligibility": ALL_MEMBERS,
        "conditions": None,
        "per_unit_cost": "7/km",
    },
    {
        "expense_type": "Auto/Cab",
        "upper_limit": 500,
        "eligibility": ALL_MEMBERS,
        "conditions": None,
        "per_unit_cost": "10/km",
    },
    {
        "expense_type": "Meal(s)",
        "upper_limit": 600,
        "eligibility": ALL_MEMBERS,
        "conditions": "- for non-campus stays",
        "per_unit_cost": "200/meal",
    },
    {
        "expense_type": "Meal(s)",
        "upper_limit": 750,
        "eligibility": LEADERSHIP,
        "conditions": "- for networking meals only",
        "per_unit_cost": None,
    },
    {
        "expense_type": "Day Stay",
        "upper_limit": 1000,
        "eligibility": ALL_MEMBERS,
        "conditions": "- only if there is no vacancy in any existing NG Flat or Campus",
        "per_unit_cost": None,
    },
    {
        "expense_type": "Overnight Stay",
        "upper_limit": 1500,
        "eligibility": ALL_MEMBERS,
        "conditions": "- only if there is no vacancy in any existing NG Flat or Campus",
        "per_unit_cost": None,
    },
    {
        "expense_type": "Month long stay",
        "upper_limit": 8000,
        "eligibility": ALL_MEMBERS,
        "conditions": "- only if there is no vacancy in any existing NG Flat or Campus",
        "per_unit_cost": None,
    },
]

EDITABLE_POLICY_FIELDS = ("expense_type", "upper_limit", "eligibility", "conditions", "per_unit_cost")


class PolicyService:
    """Service for policy management"""

    def __init__(self, permission_guard: Optional[PermissionGuard] = None):
        self.repo = PolicyRepository()
        self.permission_guard = permission_guard or PermissionGuard()

    def seed_default_policies(self, org_id: str) -> List[Policy]:
        """Insert the default policy table unless the org already has policies"""
        existing = self.repo.list_policies(org_id)
        if existing:
            logger.info(f"Org {org_id} already has {len(existing)} policies, skipping seed", extra={"org_id": org_id})
            return existing

        now = utc_now()
        policies = [
            Policy(policy_id=generate_policy_id(), org_id=org_id, position=index, created_at=now, **row)
            for index, row in enumerate(DEFAULT_POLICIES)
        ]
        return self.repo.create_policies_bulk(policies)

    def list_policies(self, ctx: OrgContext) -> List[Policy]:
        return self.repo.list_policies(ctx.org_id)

    def check_amount(
        self,
        ctx: OrgContext,
        expense_type: str,
        amount: float,
        eligibility: Optional[str] = None
    ) -> Optional[PolicyWarning]:
        """Preview the policy warning for an amount before submitting"""
        return evaluate_policy(expense_type, amount, self.repo.list_policies(ctx.org_id), eligibility)

    def create_policy(self, ctx: OrgContext, data: Dict[str, Any]) -> Policy:
        self.permission_guard.ensure_admin(ctx.role)
        self._validate(data)

        policy = Policy(
            policy_id=generate_policy_id(),
            org_id=ctx.org_id,
            created_at=utc_now(),
            **{k: data.get(k) for k in EDITABLE_POLICY_FIELDS}
        )
        created = self.repo.create_policy(policy)
        logger.info(
            f"Created policy {created.policy_id} for {created.expense_type}",
            extra={"org_id": ctx.org_id, "actor_id": ctx.user_id}
        )
        return created

    def update_policy(self, ctx: OrgContext, policy_id: str, data: Dict[str, Any]) -> Policy:
        self.permission_guard.ensure_admin(ctx.role)
        updates = {k: v for k, v in data.items() if k in EDITABLE_POLICY_FIELDS}
        if not updates:
            raise ValidationError("No policy fields to update")
        self._validate(updates)

        if self.repo.get_policy(ctx.org_id, policy_id) is None:
            raise NotFoundError(f"Policy {policy_id} not found")
        return self.repo.update_policy(ctx.org_id, policy_id, updates)

    def delete_policy(self, ctx: OrgContext, policy_id: str) -> None:
        self.permission_guard.ensure_admin(ctx.role)
        self.repo.delete_policy(ctx.org_id, policy_id)
        logger.info(f"Deleted policy {policy_id}", extra={"org_id": ctx.org_id, "actor_id": ctx.user_id})

    @staticmethod
    def _validate(data: Dict[str, Any]) -> None:
        if "expense_type" in data and not (data["expense_type"] or "").strip():
            raise ValidationError("Expense type is required")
        limit = data.get("upper_limit")
        if limit is not None and limit < 0:
            raise ValidationError("Upper limit cannot be negative", details={"upper_limit": limit})
