"""Policy Evaluator - Advisory policy-limit checks

Pure functions: same inputs always give the same warning or absence of one,
and nothing here ever blocks a transition.
"""
from typing import Iterable, List, Optional

from ..domain.models import Policy, PolicyWarning
from ..utils.formatting import format_plain_amount


def find_matching_policy(
    expense_type: str,
    policies: Iterable[Policy],
    eligibility: Optional[str] = None
) -> Optional[Policy]:
    """
    Pick the policy row that governs an expense type.

    Matching is an exact, case-sensitive comparison on expense_type. When an
    eligibility class is given, rows with that class are preferred; without
    one (or with no row for that class) the first row for the type wins.
    Rows are considered in stored order.
    """
    candidates: List[Policy] = [p for p in policies if p.expense_type == expense_type]
    if not candidates:
        return None

    if eligibility is not None:
        narrowed = [p for p in candidates if p.eligibility == eligibility]
        if narrowed:
            return narrowed[0]

    return candidates[0]


def evaluate_policy(
    expense_type: str,
    amount: float,
    policies: Iterable[Policy],
    eligibility: Optional[str] = None
) -> Optional[PolicyWarning]:
    """
    Return a warning when amount exceeds the matching policy's upper limit.

    Examples:
        Flights at 6000 with a 5000 limit -> warning with excess 1000
        Flights at 4000 with a 5000 limit -> None
        No Flights policy, or no upper limit -> None
    """
    policy = find_matching_policy(expense_type, policies, eligibility)
    if policy is None or policy.upper_limit is None:
        return None

    if amount <= policy.upper_limit:
        return None

    return PolicyWarning(
        policy_id=policy.policy_id,
        expense_type=expense_type,
        amount=amount,
        upper_limit=policy.upper_limit,
        excess=round(amount - policy.upper_limit, 2),
        message=(
            f"The amount ({format_plain_amount(amount)}) is above the policy limit of "
            f"{format_plain_amount(policy.upper_limit)} for {expense_type}."
        ),
    )
