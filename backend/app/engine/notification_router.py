"""Notification Router - Decide who hears about a workflow event

Routing is a pure decision over the event, the expense parties and the
directory profiles. It never sends anything; the engine enqueues the
resulting intents into the outbox.
"""
from enum import Enum
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Tuple

from ..domain.models import Expense, NotificationIntent, Profile
from ..domain.enums import ExpenseAction, NotificationEvent, NotificationTemplateKey, Role


class Party(str, Enum):
    CREATOR = "creator"
    APPROVER = "approver"


ROUTING_TABLE: Dict[NotificationEvent, Tuple[Party, ...]] = {
    NotificationEvent.EXPENSE_SUBMITTED: (Party.APPROVER,),
    NotificationEvent.MANAGER_DECISION: (Party.CREATOR,),
    NotificationEvent.FINANCE_DECISION: (Party.CREATOR,),
    NotificationEvent.PAYMENT_OUTCOME: (Party.CREATOR,),
}

ACTION_NOTIFICATIONS: Dict[ExpenseAction, Tuple[NotificationEvent, NotificationTemplateKey]] = {
    ExpenseAction.SUBMIT: (NotificationEvent.EXPENSE_SUBMITTED, NotificationTemplateKey.APPROVAL_PENDING),
    ExpenseAction.RESUBMIT: (NotificationEvent.EXPENSE_SUBMITTED, NotificationTemplateKey.APPROVAL_PENDING),
    ExpenseAction.MANAGER_APPROVE: (NotificationEvent.MANAGER_DECISION, NotificationTemplateKey.MANAGER_APPROVED),
    ExpenseAction.MANAGER_REJECT: (NotificationEvent.MANAGER_DECISION, NotificationTemplateKey.MANAGER_REJECTED),
    ExpenseAction.FINANCE_APPROVE: (NotificationEvent.FINANCE_DECISION, NotificationTemplateKey.FINANCE_APPROVED),
    ExpenseAction.FINANCE_REJECT: (NotificationEvent.FINANCE_DECISION, NotificationTemplateKey.FINANCE_REJECTED),
    ExpenseAction.MARK_PAYMENT_PROCESSED: (NotificationEvent.PAYMENT_OUTCOME, NotificationTemplateKey.PAYMENT_PROCESSED),
    ExpenseAction.MARK_PAYMENT_NOT_PROCESSED: (NotificationEvent.PAYMENT_OUTCOME, NotificationTemplateKey.PAYMENT_NOT_PROCESSED),
}


class RoutingResult(NamedTuple):
    intents: List[NotificationIntent]
    skipped: List[str]


def comment_parties(
    expense: Expense,
    commenter_id: str,
    commenter_role: Optional[Role]
) -> Tuple[Party, ...]:
    """
    Comment routing by who wrote it:
    finance -> both; creator -> approver; approver -> creator; anyone else -> both
    """
    if commenter_role == Role.FINANCE:
        return (Party.CREATOR, Party.APPROVER)
    if commenter_id == expense.user_id:
        return (Party.APPROVER,)
    if expense.approver_id and commenter_id == expense.approver_id:
        return (Party.CREATOR,)
    return (Party.CREATOR, Party.APPROVER)


def _party_user_id(expense: Expense, party: Party) -> Optional[str]:
    if party == Party.CREATOR:
        return expense.user_id
    return expense.approver_id


def resolve_recipients(
    expense: Expense,
    parties: Tuple[Party, ...],
    template_key: NotificationTemplateKey,
    profiles: Mapping[str, Profile],
    payload: Optional[Dict[str, Any]] = None
) -> RoutingResult:
    """
    Turn parties into one intent per distinct email.

    Parties without a user or without an email are skipped silently; the same
    email reached through two parties is notified once.
    """
    intents: List[NotificationIntent] = []
    skipped: List[str] = []
    seen = set()

    for party in parties:
        user_id = _party_user_id(expense, party)
        if not user_id:
            skipped.append(f"{party.value}: not assigned")
            continue

        profile = profiles.get(user_id)
        email = (profile.email if profile else None) or ""
        if not email:
            skipped.append(f"{party.value}: no email on file")
            continue

        key = email.lower()
        if key in seen:
            continue
        seen.add(key)

        intents.append(NotificationIntent(
            recipient_email=email,
            template_key=template_key,
            payload=dict(payload or {}),
        ))

    return RoutingResult(intents=intents, skipped=skipped)


def route_action(
    expense: Expense,
    action: ExpenseAction,
    profiles: Mapping[str, Profile],
    payload: Optional[Dict[str, Any]] = None
) -> RoutingResult:
    """Recipients for a state transition"""
    event, template_key = ACTION_NOTIFICATIONS[action]
    return resolve_recipients(expense, ROUTING_TABLE[event], template_key, profiles, payload)


def route_comment(
    expense: Expense,
    commenter_id: str,
    commenter_role: Optional[Role],
    profiles: Mapping[str, Profile],
    payload: Optional[Dict[str, Any]] = None
) -> RoutingResult:
    """Recipients for a new comment"""
    parties = comment_parties(expense, commenter_id, commenter_role)
    return resolve_recipients(
        expense, parties, NotificationTemplateKey.COMMENT_ADDED, profiles, payload
    )
