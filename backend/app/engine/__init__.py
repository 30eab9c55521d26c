"""Expense Workflow Engine - The brain of the system"""
from .engine import ExpenseWorkflowEngine
from .permission_guard import PermissionGuard
from .transition_resolver import TransitionResolver, EDGES
from .policy_evaluator import evaluate_policy, find_matching_policy
from .notification_router import route_action, route_comment
from .audit_writer import AuditWriter

__all__ = [
    "ExpenseWorkflowEngine",
    "PermissionGuard",
    "TransitionResolver",
    "EDGES",
    "evaluate_policy",
    "find_matching_policy",
    "route_action",
    "route_comment",
    "AuditWriter",
]
