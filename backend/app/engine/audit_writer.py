"""Audit Writer - Append-only expense history"""
from typing import Optional

from ..domain.models import ActorContext, ExpenseHistoryEntry
from ..domain.enums import HistoryAction
from ..repositories.audit_repo import AuditRepository
from ..utils.idgen import generate_history_id
from ..utils.time import utc_now


class AuditWriter:
    """
    Write expense history entries (append-only)

    Every status change, edit and comment produces one entry.
    """

    def __init__(self, repo: Optional[AuditRepository] = None):
        self.repo = repo or AuditRepository()

    def write_event(
        self,
        expense_id: str,
        action_type: HistoryAction,
        actor: ActorContext,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None
    ) -> ExpenseHistoryEntry:
        """Write a single history entry"""
        entry = ExpenseHistoryEntry(
            history_id=generate_history_id(),
            expense_id=expense_id,
            user_id=actor.user_id,
            user_name=actor.display_name,
            action_type=action_type,
            old_value=old_value,
            new_value=new_value,
            created_at=utc_now(),
        )
        return self.repo.create_entry(entry)

    def write_created(self, expense_id: str, actor: ActorContext, status: str) -> ExpenseHistoryEntry:
        return self.write_event(expense_id, HistoryAction.CREATED, actor, new_value=status)

    def write_transition(
        self,
        expense_id: str,
        action_type: HistoryAction,
        actor: ActorContext,
        old_status: str,
        new_status: str,
        note: Optional[str] = None
    ) -> ExpenseHistoryEntry:
        """Status change; note carries the reason or the approved amount"""
        new_value = f"{new_status}: {note}" if note else new_status
        return self.write_event(expense_id, action_type, actor, old_value=old_status, new_value=new_value)

    def write_updated(self, expense_id: str, actor: ActorContext, changed_fields: str) -> ExpenseHistoryEntry:
        return self.write_event(expense_id, HistoryAction.UPDATED, actor, new_value=changed_fields)

    def write_comment(self, expense_id: str, actor: ActorContext, content: str) -> ExpenseHistoryEntry:
        return self.write_event(expense_id, HistoryAction.COMMENTED, actor, new_value=content[:200])
